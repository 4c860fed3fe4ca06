# Overview: Flask API routes for purchase operations; parses input and returns JSON responses.

"""Purchases API routes"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..schemas import PurchaseRequest
from ..services import purchase_service
from ..validation import NotFoundError, StoreUnavailableError, ValidationError

purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.post("")
@require_auth
def record_purchase_route():
    """
    Record a purchase (stock received).

    Body: shop_id, items [{item_id, quantity, unit_cost_cents}], notes,
    purchase_date, idempotency_key. The key may also come from the
    Idempotency-Key header; replaying it returns the original purchase with
    200 instead of 201.
    """
    try:
        req = PurchaseRequest.from_payload(
            request.get_json(silent=True),
            idempotency_key=request.headers.get("Idempotency-Key"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        purchase, created = purchase_service.record_purchase_or_replay(
            org_id=g.org_id,
            shop_id=req.shop_id,
            lines=req.lines,
            notes=req.notes,
            purchase_date=req.purchase_date,
            idempotency_key=req.idempotency_key,
            actor_user_id=g.current_user.id,
        )
        return jsonify({"purchase": purchase.to_dict(include_lines=True)}), 201 if created else 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except StoreUnavailableError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to record purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("")
@require_auth
def list_purchases_route():
    shop_id = request.args.get("shop_id", type=int)
    limit = min(request.args.get("limit", default=50, type=int) or 50, 500)
    try:
        purchases = purchase_service.list_purchases(g.org_id, shop_id, limit=limit)
    except NotFoundError:
        return jsonify({"error": "Shop not found"}), 404
    return jsonify({"items": [p.to_dict() for p in purchases], "count": len(purchases)}), 200


@purchases_bp.get("/<int:purchase_id>")
@require_auth
def get_purchase_route(purchase_id: int):
    try:
        purchase = purchase_service.get_purchase(g.org_id, purchase_id)
    except NotFoundError:
        return jsonify({"error": "Purchase not found"}), 404
    return jsonify({"purchase": purchase.to_dict(include_lines=True)}), 200
