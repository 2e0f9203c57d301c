# Overview: Flask API routes for checkout, customer order history and admin status changes.

# backend/storefront/routes/orders.py
"""
Order API Routes

DESIGN:
- POST /api/orders checks out the caller's cart (prices snapshotted)
- Customers only ever see their own orders (404 otherwise)
- Status changes go through the order state machine; invalid transitions
  are 400 with the reason

SECURITY:
- Checkout requires an Active account
- Status changes and commission recalculation are Admin-only
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_admin
from ..errors import StorefrontError, error_response
from ..middleware import rate_limit
from ..services import cart_service, commission_service, order_service, payment_service
from ..validation import parse_pagination, require_fields


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def order_detail(order) -> dict:
    data = order.to_dict()
    data["history"] = [h.to_dict() for h in order_service.get_order_history(order.id)]
    data["payments"] = []
    for payment in payment_service.get_order_payments(order.id):
        entry = payment.to_dict()
        entry["instructions"] = payment_service.payment_instructions(payment)
        data["payments"].append(entry)
    data["fulfillments"] = [f.to_dict() for f in order_service.get_order_fulfillments(order.id)]
    return data


@orders_bp.post("")
@require_auth
@rate_limit(10, 60)
def create_order_route():
    """
    Check out the caller's cart.

    Request body:
    {
        "shipping_address": {"line1": "...", "city": "...", "postal_code": "..."},
        "billing_address": {...},          (optional, defaults to shipping)
        "payment_method": "ETransfer",     (CreditCard, ETransfer, Bitcoin, Manual)
        "referral_code": "AB12CD34",       (optional)
        "discount_code": "WELCOME10",      (optional)
        "notes": "..."                     (optional)
    }

    Returns:
        201: Order with items, history and payment instructions
        400: Empty cart, below minimum, insufficient stock, bad code
    """
    try:
        data = require_fields(request.get_json(silent=True), "shipping_address", "payment_method")
        order = order_service.place_order_from_cart(
            cart_service.user_owner(g.current_user.id),
            g.current_user.id,
            data["shipping_address"],
            data["payment_method"],
            billing_address=data.get("billing_address"),
            referral_code=data.get("referral_code"),
            discount_code=data.get("discount_code"),
            notes=data.get("notes"),
        )
        return jsonify({"order": order_detail(order)}), 201

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/me")
@require_auth
def my_orders_route():
    try:
        page = parse_pagination(request.args)
        orders, pagination = order_service.get_user_orders(
            g.current_user.id, page, status=request.args.get("status"),
        )
        return jsonify({
            "orders": [o.to_dict(include_items=False) for o in orders],
            "pagination": pagination,
        }), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/me/<order_id>")
@require_auth
def my_order_route(order_id: str):
    try:
        order = order_service.get_user_order(g.current_user.id, order_id)
        return jsonify({"order": order_detail(order)}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/<order_id>/status")
@require_auth
@require_admin
def update_order_status_route(order_id: str):
    """Body: {"status": "PaymentReceived", "notes": "..."}"""
    try:
        data = require_fields(request.get_json(silent=True), "status")
        order = order_service.update_order_status(
            order_id, data["status"], notes=data.get("notes"), admin_user_id=g.current_user.id,
        )
        return jsonify({"order": order_detail(order)}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<order_id>/calculate-commission")
@require_auth
@require_admin
def calculate_commission_route(order_id: str):
    try:
        commission = commission_service.calculate_commission_for_order(order_id)
        return jsonify({"commission": commission.to_dict() if commission else None}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to calculate commission")
        return jsonify({"error": "Internal server error"}), 500
