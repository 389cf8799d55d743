# Overview: Flask API routes for auth operations; login, logout and the current user.

"""
Authentication API routes.

In password mode login hands out a bearer token. In demo mode /me answers for
the demo user without a token and login is refused.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..decorators import is_demo_mode, require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Body: {"username": "...", "password": "..."}; "email" works in place of
    "username". Returns the plaintext token once.
    """
    try:
        if is_demo_mode():
            return jsonify({"error": "Login is disabled in demo mode"}), 400

        data = request.get_json(silent=True) or {}
        login = data.get("username") or data.get("email")
        password = data.get("password")
        if not login or not password:
            return jsonify({"error": "username/email and password required"}), 400

        user = auth_service.authenticate(login, password)
        if user is None:
            current_app.logger.info("Failed login for %r from %s", login, request.remote_addr)
            return jsonify({"error": "Invalid credentials"}), 401

        row, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify({"user": user.to_dict(), "token": token, "session": row.to_dict()}), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """Revoke the bearer token; it cannot be used again afterwards."""
    try:
        token = session_service.bearer_token_from(request.headers.get("Authorization"))
        if token is None:
            return jsonify({"error": "Authorization header required"}), 401
        if not session_service.revoke_session(token, reason="User logout"):
            return jsonify({"error": "Invalid or expired token"}), 401
        return jsonify({"message": "Logged out"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({
        "user": g.current_user.to_dict(),
        "mode": g.session_mode,
        "business_name": current_app.config.get("BUSINESS_NAME"),
    }), 200
