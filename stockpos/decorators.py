from functools import wraps

from flask import current_app, g, jsonify, request

from .services import session_service


def get_request_token() -> str | None:
    """Bearer token from the Authorization header, else the auth cookie."""
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1].strip()
        return token or None

    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "auth-token")
    return request.cookies.get(cookie_name) or None


def require_auth(f):
    """
    Require an authenticated session.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.session_context: The full SessionContext object

    Returns 401 if no token was sent, or the token is invalid, expired or
    revoked, or the user account was deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = get_request_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function
