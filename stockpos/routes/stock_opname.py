"""Stock opname (physical count) API routes."""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import opname_service
from ..time_utils import parse_date_range
from ..validation import NotFoundError, ValidationError, parse_opname_request


stock_opname_bp = Blueprint("stock_opname", __name__, url_prefix="/api/stock-opname")


@stock_opname_bp.post("")
@require_auth
def create_opname_route():
    """
    Record a stock count.

    Body: {items: [{productId, countedQty}], confirmAdjustment}
    With confirmAdjustment=true, stock is set to the counted quantities.
    """
    try:
        opname_request = parse_opname_request(request.get_json(silent=True))
        opname = opname_service.create_opname(opname_request, user_id=g.current_user.id)
        return jsonify(opname.to_dict()), 201

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to record stock opname")
        return jsonify({"error": "Internal server error"}), 500


@stock_opname_bp.get("")
@require_auth
def list_opnames_route():
    try:
        start, end = parse_date_range(request.args.get("fromDate"), request.args.get("toDate"))
    except ValueError:
        return jsonify({"error": "fromDate/toDate must be YYYY-MM-DD"}), 400

    result = opname_service.list_opnames(
        page=request.args.get("page", type=int),
        limit=request.args.get("limit", type=int),
        start=start,
        end=end,
    )
    return jsonify(result), 200


@stock_opname_bp.get("/<int:opname_id>")
@require_auth
def get_opname_route(opname_id: int):
    try:
        opname = opname_service.get_opname(opname_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(opname.to_dict()), 200
