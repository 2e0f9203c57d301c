# Overview: Request authentication and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import AuthenticationError
from .models.users import ROLE_ADMIN, ROLE_DISTRIBUTOR
from .services import token_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid access token.

    Sets on flask.g:
    - g.current_user: the authenticated, Active User
    - g.token_payload: decoded JWT claims

    SECURITY: Returns 401 if the header is missing, the token is invalid,
    expired or blacklisted, or the account is no longer Active.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        try:
            user, payload = token_service.verify_access_token(token)
        except AuthenticationError as e:
            return jsonify({"error": e.message}), 401

        g.current_user = user
        g.token_payload = payload
        g.access_token = token
        return f(*args, **kwargs)

    return decorated_function


def optional_auth(f):
    """Like require_auth, but anonymous callers pass through with g.current_user = None."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.current_user = None
        g.token_payload = None
        token = _bearer_token()
        if token:
            try:
                g.current_user, g.token_payload = token_service.verify_access_token(token)
            except AuthenticationError as e:
                return jsonify({"error": e.message}), 401
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require the authenticated user to hold one of `roles`.

    Must be stacked under @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return jsonify({"error": "Authentication required"}), 401
            if user.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                }), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator


require_admin = require_role(ROLE_ADMIN)
require_distributor = require_role(ROLE_DISTRIBUTOR, ROLE_ADMIN)
