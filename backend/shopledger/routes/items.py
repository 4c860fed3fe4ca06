# Overview: Flask API routes for item catalog operations; parses input and returns JSON responses.

"""
Item catalog routes.

MULTI-TENANT: All item operations are scoped to the caller's organization.
The org_id is derived from g.org_id (set by @require_auth).

current_stock is read-only here. It is seeded on create (initial_stock) and
afterwards changes only through /api/stock/transactions, /api/sales and
/api/purchases.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..models import Item
from ..services import catalog_service
from ..services.ledger_service import list_ledger_entries, reconcile_item
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
    coerce_int,
    enforce_rules_item,
    validate_payload,
)

ITEM_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "description",
        "sku",
        "unit_price_cents",
        "cost_price_cents",
        "low_stock_threshold",
    },
    required_on_create={"name"},
)

items_bp = Blueprint("items", __name__, url_prefix="/api/items")


def _bool_arg(name: str) -> bool:
    return request.args.get(name, "").strip().lower() in {"1", "true", "yes"}


@items_bp.get("")
@require_auth
def list_items_route():
    """
    Query params:
    - shop_id: int (optional) - must belong to caller's org
    - include_archived: bool (optional, default false)
    """
    shop_id = request.args.get("shop_id", type=int)
    try:
        items = catalog_service.list_items(g.org_id, shop_id, include_archived=_bool_arg("include_archived"))
    except NotFoundError:
        return jsonify({"error": "Shop not found"}), 404
    return jsonify({"items": [i.to_dict() for i in items], "count": len(items)}), 200


@items_bp.get("/low-stock")
@require_auth
def low_stock_route():
    shop_id = request.args.get("shop_id", type=int)
    try:
        items = catalog_service.list_low_stock_items(g.org_id, shop_id)
    except NotFoundError:
        return jsonify({"error": "Shop not found"}), 404
    return jsonify({"items": [i.to_dict() for i in items], "count": len(items)}), 200


@items_bp.post("")
@require_auth
def create_item_route():
    """
    Create an item in one of the caller's shops.

    Body: shop_id (required), name (required), description, sku,
    unit_price_cents, cost_price_cents, low_stock_threshold, initial_stock.
    """
    payload = dict(request.get_json(silent=True) or {})

    try:
        shop_id = payload.pop("shop_id", None)
        if shop_id is None:
            raise ValidationError("shop_id is required")
        shop_id = coerce_int(shop_id, "shop_id")

        raw_initial = payload.pop("initial_stock", None)
        initial_stock = coerce_int(raw_initial, "initial_stock") if raw_initial is not None else 0
        if initial_stock < 0:
            raise ValidationError("initial_stock must be >= 0")

        patch = validate_payload(model=Item, payload=payload, policy=ITEM_POLICY, partial=False)
        enforce_rules_item(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        item = catalog_service.create_item(
            org_id=g.org_id,
            shop_id=shop_id,
            patch=patch,
            initial_stock=initial_stock,
            actor_user_id=g.current_user.id,
        )
        return jsonify(item.to_dict()), 201
    except NotFoundError:
        return jsonify({"error": "Shop not found"}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except StoreUnavailableError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to create item")
        return jsonify({"error": "Internal server error"}), 500


@items_bp.get("/<int:item_id>")
@require_auth
def get_item_route(item_id: int):
    try:
        item = catalog_service.get_item(g.org_id, item_id)
    except NotFoundError:
        return jsonify({"error": "Item not found"}), 404
    return jsonify(item.to_dict()), 200


@items_bp.put("/<int:item_id>")
@require_auth
def update_item_route(item_id: int):
    """Update metadata and prices. current_stock is rejected with 400."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Item, payload=payload, policy=ITEM_POLICY, partial=True)
        enforce_rules_item(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        item = catalog_service.update_item_metadata(org_id=g.org_id, item_id=item_id, patch=patch)
        return jsonify(item.to_dict()), 200
    except NotFoundError:
        return jsonify({"error": "Item not found"}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except StoreUnavailableError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to update item")
        return jsonify({"error": "Internal server error"}), 500


@items_bp.delete("/<int:item_id>")
@require_auth
def archive_item_route(item_id: int):
    """Archive (soft-delete) an item. Its history is kept."""
    try:
        item = catalog_service.archive_item(org_id=g.org_id, item_id=item_id)
        return jsonify({"ok": True, "item": item.to_dict()}), 200
    except NotFoundError:
        return jsonify({"error": "Item not found"}), 404
    except StoreUnavailableError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to archive item")
        return jsonify({"error": "Internal server error"}), 500


@items_bp.get("/<int:item_id>/ledger")
@require_auth
def item_ledger_route(item_id: int):
    """Ledger entries for one item (newest first) plus a reconciliation check."""
    limit = min(request.args.get("limit", default=50, type=int) or 50, 500)
    try:
        item = catalog_service.get_item(g.org_id, item_id)
    except NotFoundError:
        return jsonify({"error": "Item not found"}), 404

    entries = list_ledger_entries(shop_ids={item.shop_id}, item_id=item.id, limit=limit)
    return jsonify({
        "item": item.to_dict(),
        "entries": [e.to_dict() for e in entries],
        "reconciliation": reconcile_item(item).to_dict(),
    }), 200
