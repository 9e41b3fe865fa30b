"""Sales (checkout) API routes."""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import sales_service
from ..services.stock_service import InsufficientStockError
from ..time_utils import parse_date_range
from ..validation import ConflictError, NotFoundError, ValidationError, parse_checkout_request


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
def checkout_route():
    """
    Checkout a cart: record the sale and take its items out of stock.

    Body: {items: [{productId, qty, unitPrice}], paymentMethod, paidAmount}
    """
    try:
        checkout_request = parse_checkout_request(request.get_json(silent=True))
        sale = sales_service.checkout(checkout_request, user_id=g.current_user.id)
        return jsonify(sale.to_dict()), 201

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except InsufficientStockError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Checkout failed")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
def list_sales_route():
    """
    List sales, newest first.

    Query params: page, limit, fromDate, toDate (YYYY-MM-DD, inclusive)
    """
    try:
        start, end = parse_date_range(request.args.get("fromDate"), request.args.get("toDate"))
    except ValueError:
        return jsonify({"error": "fromDate/toDate must be YYYY-MM-DD"}), 400

    result = sales_service.list_sales(
        page=request.args.get("page", type=int),
        limit=request.args.get("limit", type=int),
        start=start,
        end=end,
    )
    return jsonify(result), 200


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(sale.to_dict()), 200
