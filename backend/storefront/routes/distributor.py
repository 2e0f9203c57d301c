# Overview: Flask API routes for distributors working their assigned orders.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_distributor
from ..errors import StorefrontError, error_response
from ..models.commissions import COMMISSION_DISTRIBUTOR_FULFILLMENT
from ..services import commission_service, order_service
from ..validation import parse_pagination
from .orders import order_detail


distributor_bp = Blueprint("distributor", __name__, url_prefix="/api/distributor")


@distributor_bp.get("/orders")
@require_auth
@require_distributor
def distributor_orders_route():
    """Orders assigned to the caller. Query: status, page, limit."""
    try:
        page = parse_pagination(request.args)
        orders, pagination = order_service.get_distributor_orders(
            g.current_user.id, page, status=request.args.get("status"),
        )
        return jsonify({"orders": [o.to_dict() for o in orders], "pagination": pagination}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list distributor orders")
        return jsonify({"error": "Internal server error"}), 500


@distributor_bp.post("/orders/<order_id>/fulfill")
@require_auth
@require_distributor
def fulfill_order_route(order_id: str):
    """
    Body: {"tracking_number": "...", "carrier": "...", "notes": "...", "proof": {...}}

    Moves the order to Fulfilled and returns the fulfillment commission, if any.
    """
    try:
        order, fulfillment = order_service.record_fulfillment(
            order_id, request.get_json(silent=True) or {}, g.current_user.id,
        )
        commission = commission_service.find_live_commission(order.id, COMMISSION_DISTRIBUTOR_FULFILLMENT)
        return jsonify({
            "order": order_detail(order),
            "fulfillment": fulfillment.to_dict(),
            "commission": commission.to_dict() if commission else None,
        }), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record fulfillment")
        return jsonify({"error": "Internal server error"}), 500


@distributor_bp.get("/commissions")
@require_auth
@require_distributor
def distributor_commissions_route():
    try:
        return jsonify({"stats": commission_service.get_user_commission_stats(g.current_user.id)}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load distributor commissions")
        return jsonify({"error": "Internal server error"}), 500
