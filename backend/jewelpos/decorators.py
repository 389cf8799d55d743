# Overview: Request decorators for API routes.

from functools import wraps
from flask import current_app, request, jsonify, g

from .services import auth_service, session_service
from .services.session_service import SessionContext


def is_demo_mode() -> bool:
    return (current_app.config.get("AUTH_MODE") or "password").strip().lower() == "demo"


def require_auth(f):
    """
    Require an authenticated caller.

    Sets g.current_user, g.session_mode ("password" or "demo") and
    g.session_context. AUTH_MODE=demo is server configuration: every request
    runs as the demo user without a token. In password mode a missing,
    invalid, expired or revoked Bearer token returns 401.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if is_demo_mode():
            context = SessionContext(user=auth_service.ensure_demo_user(), session=None, mode="demo")
        else:
            token = session_service.bearer_token_from(request.headers.get("Authorization"))
            if token is None:
                return jsonify({"error": "Authentication required"}), 401

            context = session_service.validate_session(token)
            if context is None:
                return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.session_mode = context.mode
        g.session_context = context
        return f(*args, **kwargs)

    return decorated_function
