"""Shop settings routes (flat key/value)."""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth
from ..services import settings_service
from ..services.settings_service import SettingsValidationError


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
@require_auth
def get_settings_route():
    return jsonify(settings_service.get_settings()), 200


@settings_bp.post("")
@require_auth
def update_settings_route():
    """
    Upsert settings.

    Body: {settings: {key: value, ...}}
    """
    payload = request.get_json(silent=True) or {}
    try:
        updated = settings_service.update_settings(payload.get("settings"))
    except SettingsValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to update settings")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"message": "Settings saved successfully", "settings": updated}), 200
