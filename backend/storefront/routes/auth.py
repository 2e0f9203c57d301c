# Overview: Flask API routes for registration, login, logout and token refresh.

# backend/storefront/routes/auth.py
"""
Authentication API Routes

DESIGN:
- Access/refresh JWT pair returned on register and login
- Logout blacklists the presented tokens (server-side revocation)
- Refresh rotates: the old refresh token is blacklisted
- A guest cart (cart_session) is merged into the account on login/register

SECURITY:
- Login and register are rate limited per client IP
- Suspended/Pending accounts get the same 401 as bad credentials
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import StorefrontError, error_response
from ..middleware import rate_limit
from ..services import auth_service, cart_service, token_service, user_service
from ..validation import require_fields


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _merge_guest_cart(data: dict, user_id: int) -> int:
    session_id = data.get("cart_session") or request.headers.get("X-Cart-Session")
    if not session_id:
        return 0
    return cart_service.transfer_cart(cart_service.guest_owner(session_id), cart_service.user_owner(user_id))


@auth_bp.post("/register")
@rate_limit(5, 60)
def register_route():
    """
    Request body:
    {
        "email": "buyer@example.com",
        "password": "Password123!",
        "name": "Buyer",                 (optional)
        "referral_code": "AB12CD34",     (optional)
        "cart_session": "..."            (optional)
    }
    """
    try:
        data = require_fields(request.get_json(silent=True), "email", "password")
        user = user_service.create_user(
            email=data["email"],
            password=data["password"],
            name=data.get("name"),
            referred_by_code=data.get("referral_code"),
        )
        merged = _merge_guest_cart(data, user.id)
        tokens = token_service.issue_token_pair(user)
        return jsonify({
            "user": user.to_dict(),
            "tokens": tokens.to_dict(),
            "cart_items_merged": merged,
        }), 201

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
@rate_limit(10, 60)
def login_route():
    try:
        data = require_fields(request.get_json(silent=True), "email", "password")
        user = auth_service.authenticate(data["email"], data["password"])
        if not user:
            current_app.logger.info("Failed login for %s from %s", data["email"], request.remote_addr)
            return jsonify({"error": "Invalid email or password"}), 401

        merged = _merge_guest_cart(data, user.id)
        tokens = token_service.issue_token_pair(user)
        return jsonify({
            "user": user.to_dict(),
            "tokens": tokens.to_dict(),
            "cart_items_merged": merged,
        }), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to log in")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """
    Revoke the bearer access token and, if supplied, the refresh token.

    Always 200: logging out with a token that is already invalid is fine.
    """
    try:
        data = request.get_json(silent=True) or {}
        revoked = 0
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            revoked += int(token_service.blacklist_token(auth_header.split(" ", 1)[1].strip(), reason="logout"))
        if data.get("refresh_token"):
            revoked += int(token_service.blacklist_token(data["refresh_token"], reason="logout"))
        return jsonify({"message": "Logged out", "revoked": revoked}), 200

    except Exception:
        current_app.logger.exception("Failed to log out")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/refresh")
@rate_limit(30, 60)
def refresh_route():
    try:
        data = require_fields(request.get_json(silent=True), "refresh_token")
        tokens = token_service.refresh_tokens(data["refresh_token"])
        return jsonify({"tokens": tokens.to_dict()}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to refresh token")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/verify")
@require_auth
def verify_route():
    return jsonify({"valid": True, "user": g.current_user.to_dict()}), 200
