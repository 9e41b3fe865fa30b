"""Manual stock movement API routes."""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..models.inventory import MOVEMENT_TYPES
from ..services import stock_service
from ..services.stock_service import InsufficientStockError
from ..time_utils import parse_date_range
from ..validation import NotFoundError, ValidationError, parse_movement_request


stock_movements_bp = Blueprint("stock_movements", __name__, url_prefix="/api/stock-movements")


@stock_movements_bp.post("")
@require_auth
def create_movement_route():
    """
    Record a manual stock movement.

    Body: {productId, type: IN|OUT|ADJUST, qty, note?, referenceType?, referenceId?}
    """
    try:
        movement_request = parse_movement_request(request.get_json(silent=True))
        movement = stock_service.create_manual_movement(movement_request, user_id=g.current_user.id)
        return jsonify(movement.to_dict()), 201

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except InsufficientStockError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to record stock movement")
        return jsonify({"error": "Internal server error"}), 500


@stock_movements_bp.get("")
@require_auth
def list_movements_route():
    """
    List movements, newest first.

    Query params: page, limit, type, productId, fromDate, toDate
    """
    movement_type = request.args.get("type") or None
    if movement_type is not None and movement_type not in MOVEMENT_TYPES:
        return jsonify({"error": "type must be IN, OUT, or ADJUST"}), 400

    try:
        start, end = parse_date_range(request.args.get("fromDate"), request.args.get("toDate"))
    except ValueError:
        return jsonify({"error": "fromDate/toDate must be YYYY-MM-DD"}), 400

    result = stock_service.list_movements(
        page=request.args.get("page", type=int),
        limit=request.args.get("limit", type=int),
        movement_type=movement_type,
        product_id=request.args.get("productId", type=int),
        start=start,
        end=end,
    )
    return jsonify(result), 200


@stock_movements_bp.get("/<int:movement_id>")
@require_auth
def get_movement_route(movement_id: int):
    try:
        movement = stock_service.get_movement(movement_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(movement.to_dict()), 200
