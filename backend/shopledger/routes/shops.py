# Overview: Flask API routes for shop operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import shop_service
from ..validation import ConflictError, NotFoundError, StoreUnavailableError, ValidationError

shops_bp = Blueprint("shops", __name__, url_prefix="/api/shops")


@shops_bp.get("")
@require_auth
def list_shops_route():
    shops = shop_service.list_shops(g.org_id)
    return jsonify({"items": [s.to_dict() for s in shops], "count": len(shops)}), 200


@shops_bp.post("")
@require_auth
def create_shop_route():
    data = request.get_json(silent=True) or {}
    try:
        shop = shop_service.create_shop(g.org_id, data.get("name"), data.get("description"))
        return jsonify(shop.to_dict()), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except StoreUnavailableError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to create shop")
        return jsonify({"error": "Internal server error"}), 500


@shops_bp.put("/<int:shop_id>")
@require_auth
def update_shop_route(shop_id: int):
    data = request.get_json(silent=True) or {}
    is_active = data.get("is_active")
    if is_active is not None and not isinstance(is_active, bool):
        return jsonify({"error": "is_active must be a boolean"}), 400

    try:
        shop = shop_service.update_shop(
            g.org_id,
            shop_id,
            name=data.get("name"),
            description=data.get("description"),
            is_active=is_active,
        )
        return jsonify(shop.to_dict()), 200
    except NotFoundError:
        return jsonify({"error": "Shop not found"}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except StoreUnavailableError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to update shop")
        return jsonify({"error": "Internal server error"}), 500


@shops_bp.delete("/<int:shop_id>")
@require_auth
def delete_shop_route(shop_id: int):
    """Delete a shop together with its items, ledger, sales and purchases."""
    try:
        removed = shop_service.delete_shop(g.org_id, shop_id)
        return jsonify({"ok": True, "removed": removed}), 200
    except NotFoundError:
        return jsonify({"error": "Shop not found"}), 404
    except StoreUnavailableError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to delete shop")
        return jsonify({"error": "Internal server error"}), 500
