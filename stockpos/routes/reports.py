"""Reporting and dashboard routes."""

from flask import Blueprint, Response, current_app, jsonify, request

from ..decorators import require_auth
from ..services import reporting_service
from ..services.reporting_service import ReportError
from ..time_utils import parse_date_range


reports_bp = Blueprint("reports", __name__, url_prefix="/api")


@reports_bp.get("/reports")
@require_auth
def report_route():
    """
    Query params:
    - type: sales | stock | top-selling | stock-movements (default sales)
    - fromDate, toDate: YYYY-MM-DD, inclusive
    - format: json (default) | csv
    """
    report_type = request.args.get("type") or reporting_service.REPORT_SALES
    output_format = (request.args.get("format") or "json").lower()
    if output_format not in ("json", "csv"):
        return jsonify({"error": "format must be json or csv"}), 400

    try:
        start, end = parse_date_range(request.args.get("fromDate"), request.args.get("toDate"))
    except ValueError:
        return jsonify({"error": "fromDate/toDate must be YYYY-MM-DD"}), 400

    try:
        data = reporting_service.build_report(report_type, start=start, end=end)
        if output_format == "csv":
            body = reporting_service.report_to_csv(report_type, data)
            filename = reporting_service.report_filename(report_type)
            return Response(
                body,
                mimetype="text/csv",
                headers={"Content-Disposition": f'attachment; filename="{filename}"'},
            )
        return jsonify(data), 200

    except ReportError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to build %s report", report_type)
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/dashboard")
@require_auth
def dashboard_route():
    try:
        return jsonify(reporting_service.dashboard_summary()), 200
    except Exception:
        current_app.logger.exception("Failed to build dashboard")
        return jsonify({"error": "Internal server error"}), 500
