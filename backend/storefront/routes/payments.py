# Overview: Flask API routes for manual payment confirmation and per-order payment lookup.

"""
Payment API Routes

E-transfer and Bitcoin payments are confirmed by an admin after the money
arrives. Both confirm endpoints accept camelCase or snake_case keys:

    {"orderId": "...", "transactionId": "...", "senderName": "...", "notes": "..."}

A confirmation against an order with nothing awaiting confirmation is a 400
carrying the PaymentResult body, and the order is left unchanged.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_admin
from ..errors import PermissionDeniedError, StorefrontError, ValidationError, error_response
from ..models.payments import METHOD_BITCOIN, METHOD_ETRANSFER
from ..services import order_service, payment_service


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


def _field(data: dict, camel: str, snake: str):
    value = data.get(camel)
    return value if value is not None else data.get(snake)


def _confirm(method: str):
    data = request.get_json(silent=True) or {}
    order_id = _field(data, "orderId", "order_id")
    transaction_id = _field(data, "transactionId", "transaction_id")
    if not order_id or not transaction_id:
        raise ValidationError("orderId and transactionId are required")

    result = payment_service.confirm_manual_payment(
        order_id,
        transaction_id,
        g.current_user.id,
        notes=data.get("notes"),
        sender_name=_field(data, "senderName", "sender_name"),
        method=method,
    )
    return jsonify(result.to_dict()), 200 if result.success else 400


@payments_bp.post("/manual/etransfer-confirm")
@require_auth
@require_admin
def confirm_etransfer_route():
    try:
        return _confirm(METHOD_ETRANSFER)

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to confirm e-transfer payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/manual/btc-confirm")
@require_auth
@require_admin
def confirm_bitcoin_route():
    try:
        return _confirm(METHOD_BITCOIN)

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to confirm bitcoin payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/manual/reject")
@require_auth
@require_admin
def reject_manual_payment_route():
    """Body: {"orderId": "...", "reason": "Amount did not match"}"""
    try:
        data = request.get_json(silent=True) or {}
        order_id = _field(data, "orderId", "order_id")
        if not order_id:
            raise ValidationError("orderId is required")
        result = payment_service.reject_manual_payment(order_id, g.current_user.id, data.get("reason"))
        return jsonify(result.to_dict()), 200 if result.success else 400

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reject manual payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/orders/<order_id>")
@require_auth
def order_payments_route(order_id: str):
    """Payments for one order; visible to the order owner and admins."""
    try:
        order = order_service.get_order(order_id)
        if order.user_id != g.current_user.id and not g.current_user.is_admin:
            raise PermissionDeniedError("Not allowed to view payments for this order")

        payments = []
        for payment in payment_service.get_order_payments(order.id):
            entry = payment.to_dict()
            entry["instructions"] = payment_service.payment_instructions(payment)
            payments.append(entry)
        return jsonify({
            "order_id": order.id,
            "payment_status": order.payment_status,
            "payments": payments,
        }), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load order payments")
        return jsonify({"error": "Internal server error"}), 500
