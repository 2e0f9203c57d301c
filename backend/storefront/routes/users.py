# Overview: Flask API routes for the signed-in customer's account, referrals and wholesale application.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import StorefrontError, error_response
from ..middleware import rate_limit
from ..services import commission_service, discount_service, task_service, user_service
from ..validation import parse_pagination, require_fields, coerce_int


users_bp = Blueprint("users", __name__, url_prefix="/api")


# =============================================================================
# PROFILE
# =============================================================================

@users_bp.get("/users/me")
@require_auth
def get_me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


@users_bp.put("/users/me")
@require_auth
def update_me_route():
    try:
        data = request.get_json(silent=True) or {}
        user = user_service.update_profile(g.current_user.id, name=data.get("name"), email=data.get("email"))
        return jsonify({"user": user.to_dict()}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update profile")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.post("/users/me/password")
@require_auth
@rate_limit(5, 300)
def change_password_route():
    try:
        data = require_fields(request.get_json(silent=True), "current_password", "new_password")
        user_service.change_password(g.current_user.id, data["current_password"], data["new_password"])
        return jsonify({"message": "Password updated"}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to change password")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# COMMISSIONS & REFERRALS
# =============================================================================

@users_bp.get("/users/me/commissions")
@require_auth
def my_commissions_route():
    """Stats by status plus a paginated commission list (?status=&page=&limit=)."""
    try:
        page = parse_pagination(request.args)
        commissions, pagination = commission_service.get_user_commissions(
            g.current_user.id, page, status=request.args.get("status"),
        )
        return jsonify({
            "stats": commission_service.get_user_commission_stats(g.current_user.id),
            "commissions": [c.to_dict() for c in commissions],
            "pagination": pagination,
        }), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load commissions")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.get("/users/me/referrals")
@require_auth
def my_referrals_route():
    try:
        page = parse_pagination(request.args)
        referrals, pagination = user_service.get_referrals(g.current_user.id, page)
        return jsonify({
            "referrals": [
                {"id": u.id, "name": u.name, "email": u.email, "joined_at": u.to_dict()["created_at"]}
                for u in referrals
            ],
            "pagination": pagination,
        }), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load referrals")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.get("/users/me/referral-link")
@require_auth
def referral_link_route():
    code = g.current_user.referral_code
    return jsonify({
        "referral_code": code,
        "referral_url": f"{request.host_url.rstrip('/')}/register?ref={code}",
    }), 200


@users_bp.post("/users/me/referral-link")
@require_auth
def regenerate_referral_link_route():
    try:
        user = user_service.regenerate_referral_code(g.current_user.id)
        return jsonify({"referral_code": user.referral_code}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to regenerate referral code")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.get("/referrals/validate")
@rate_limit(30, 60)
def validate_referral_route():
    return jsonify(user_service.validate_referral_code(request.args.get("code"))), 200


# =============================================================================
# TASKS ASSIGNED TO ME
# =============================================================================

@users_bp.get("/users/me/tasks")
@require_auth
def my_tasks_route():
    try:
        page = parse_pagination(request.args)
        tasks, pagination = task_service.list_tasks(
            page,
            status=request.args.get("status"),
            assigned_to_user_id=g.current_user.id,
        )
        return jsonify({"tasks": [t.to_dict() for t in tasks], "pagination": pagination}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load tasks")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# WHOLESALE & DISCOUNTS
# =============================================================================

@users_bp.post("/wholesale/apply")
@require_auth
def wholesale_apply_route():
    try:
        application = user_service.apply_for_wholesale(g.current_user.id, request.get_json(silent=True) or {})
        return jsonify({"application": application.to_dict()}), 201

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to submit wholesale application")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.post("/discount/validate")
@rate_limit(30, 60)
def validate_discount_route():
    try:
        data = require_fields(request.get_json(silent=True), "code", "subtotal_cents")
        subtotal = coerce_int(data["subtotal_cents"], "subtotal_cents", minimum=0)
        result = discount_service.validate_discount_code(data["code"], subtotal)
        return jsonify(result.to_dict()), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to validate discount code")
        return jsonify({"error": "Internal server error"}), 500
