"""
Authentication API routes.

Login returns the plaintext session token once, both in the JSON body (for
Authorization: Bearer clients) and as an HttpOnly cookie (for the browser
front end).
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import get_request_token, require_auth
from ..services import auth_service, session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """Authenticate user and create session token."""
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not isinstance(email, str) or not isinstance(password, str) or not email or not password:
            return jsonify({"error": "Email and password are required"}), 400

        user = auth_service.authenticate(email, password)
        if not user:
            current_app.logger.warning("Failed login for %s from %s", email, request.remote_addr)
            return jsonify({"error": "Invalid email or password"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        response = jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
        })
        response.set_cookie(
            current_app.config.get("AUTH_COOKIE_NAME", "auth-token"),
            token,
            max_age=current_app.config.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", 168) * 3600,
            httponly=True,
            secure=current_app.config.get("AUTH_COOKIE_SECURE", False),
            samesite="Lax",
        )
        return response, 200

    except Exception:
        current_app.logger.exception("Login failed")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the current session token and clear the cookie."""
    session_service.revoke_session(get_request_token(), reason="User logout")

    response = jsonify({"message": "Logged out successfully"})
    response.delete_cookie(current_app.config.get("AUTH_COOKIE_NAME", "auth-token"))
    return response, 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200
