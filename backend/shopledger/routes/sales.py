# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""Sales API routes"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..schemas import SaleRequest
from ..services import sales_service
from ..validation import InsufficientStockError, NotFoundError, StoreUnavailableError, ValidationError

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
def record_sale_route():
    """
    Record a sale.

    Body: shop_id, items [{item_id, quantity, unit_price_cents}], notes,
    sale_date, idempotency_key. The key may also come from the
    Idempotency-Key header; replaying it returns the original sale with 200
    instead of 201.
    """
    try:
        req = SaleRequest.from_payload(
            request.get_json(silent=True),
            idempotency_key=request.headers.get("Idempotency-Key"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        sale, created = sales_service.record_sale_or_replay(
            org_id=g.org_id,
            shop_id=req.shop_id,
            lines=req.lines,
            notes=req.notes,
            sale_date=req.sale_date,
            idempotency_key=req.idempotency_key,
            actor_user_id=g.current_user.id,
        )
        return jsonify({"sale": sale.to_dict(include_lines=True)}), 201 if created else 200

    except InsufficientStockError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except StoreUnavailableError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
def list_sales_route():
    shop_id = request.args.get("shop_id", type=int)
    limit = min(request.args.get("limit", default=50, type=int) or 50, 500)
    try:
        sales = sales_service.list_sales(g.org_id, shop_id, limit=limit)
    except NotFoundError:
        return jsonify({"error": "Shop not found"}), 404
    return jsonify({"items": [s.to_dict() for s in sales], "count": len(sales)}), 200


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(g.org_id, sale_id)
    except NotFoundError:
        return jsonify({"error": "Sale not found"}), 404
    return jsonify({"sale": sale.to_dict(include_lines=True)}), 200
