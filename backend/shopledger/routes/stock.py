# Overview: Flask API routes for stock movements; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..schemas import MovementRequest
from ..services import movement_service
from ..validation import InsufficientStockError, NotFoundError, StoreUnavailableError, ValidationError

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/transactions")
@require_auth
def list_transactions_route():
    """
    Recent stock movements, newest first.

    Query params: shop_id, item_id, limit (default 50, max 500).
    """
    shop_id = request.args.get("shop_id", type=int)
    item_id = request.args.get("item_id", type=int)
    limit = min(request.args.get("limit", default=50, type=int) or 50, 500)

    try:
        entries = movement_service.list_movements(
            org_id=g.org_id, shop_id=shop_id, item_id=item_id, limit=limit
        )
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)}), 200


@stock_bp.post("/transactions")
@require_auth
def record_transaction_route():
    """
    Record one stock movement.

    Body: item_id, transaction_type (in|out|adjustment), quantity, reason.
    """
    try:
        req = MovementRequest.from_payload(request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        result = movement_service.record_movement(
            org_id=g.org_id,
            item_id=req.item_id,
            kind=req.kind,
            quantity=req.quantity,
            reason=req.reason,
            actor_user_id=g.current_user.id,
        )
        return jsonify(result.to_dict()), 201
    except InsufficientStockError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except NotFoundError:
        return jsonify({"error": "Item not found"}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except StoreUnavailableError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to record stock transaction")
        return jsonify({"error": "Internal server error"}), 500
