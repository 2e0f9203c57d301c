# Overview: Service-layer operations for payment; encapsulates business logic and database work.

"""
Payment Service

WHY: Card payments are captured by an external gateway, but e-transfer and
Bitcoin payments arrive outside the system and have to be matched by hand.
This module creates the payment record at checkout and owns the single write
path that turns an admin's confirmation into order progress.

MANUAL PAYMENT FLOW:
    checkout             -> Payment PendingConfirmation + PaymentReview task
    admin confirms       -> Payment Completed, Order Processing/Completed,
                            review task closed, OrderProcessing task opened
    admin rejects        -> Payment Failed, Order payment_status Failed,
                            review task cancelled
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Order, Payment, OrderStatusHistory, EntityRef
from ..models.orders import (
    ORDER_PROCESSING,
    ORDER_PENDING,
    ORDER_PAYMENT_RECEIVED,
    PAYMENT_STATUS_COMPLETED,
    PAYMENT_STATUS_FAILED,
)
from ..models.payments import (
    VALID_PAYMENT_METHODS,
    MANUAL_PAYMENT_METHODS,
    METHOD_ETRANSFER,
    METHOD_BITCOIN,
    PAYMENT_PENDING,
    PAYMENT_PENDING_CONFIRMATION,
    PAYMENT_COMPLETED,
    PAYMENT_FAILED,
)
from ..models.tasks import (
    CATEGORY_PAYMENT_REVIEW,
    CATEGORY_ORDER_PROCESSING,
    PRIORITY_HIGH,
    PRIORITY_MEDIUM,
    TASK_CANCELLED,
)
from ..time_utils import utcnow
from ..validation import coerce_choice
from . import task_service
from .transaction import lock_for_update, run_with_retry, unit_of_work


# Order states from which a confirmed payment moves the order to Processing
CONFIRMABLE_ORDER_STATUSES = (ORDER_PENDING, ORDER_PAYMENT_RECEIVED)

_REFERENCE_PREFIX = {
    METHOD_ETRANSFER: "ET",
    METHOD_BITCOIN: "BTC",
}


@dataclass(frozen=True)
class PaymentResult:
    success: bool
    message: str
    order_id: str | None = None
    payment_id: int | None = None
    status: str | None = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "message": self.message,
            "order_id": self.order_id,
            "payment_id": self.payment_id,
            "status": self.status,
        }


def generate_reference(method: str, order_id: str) -> str:
    prefix = _REFERENCE_PREFIX.get(method, "MP")
    return f"{prefix}{order_id.split('-')[0].upper()}-{secrets.token_hex(3).upper()}"


def payment_instructions(payment: Payment) -> dict | None:
    """What the customer needs to send a manual payment."""
    if payment.payment_method == METHOD_ETRANSFER:
        return {
            "recipient": current_app.config["ETRANSFER_RECIPIENT"],
            "amount_cents": payment.amount_cents,
            "message": f"Include reference {payment.reference_number} in the transfer message",
        }
    if payment.payment_method == METHOD_BITCOIN:
        return {
            "address": current_app.config["BITCOIN_RECEIVING_ADDRESS"],
            "amount_cents": payment.amount_cents,
            "message": f"Quote reference {payment.reference_number} when contacting support",
        }
    return None


def initiate_payment(order: Order, method: str, uow=None) -> Payment:
    """
    Create the order's first payment record.

    Manual methods start PendingConfirmation with a reference number and a
    High-priority PaymentReview task; card payments start Pending.
    """
    coerce_choice(method, "payment_method", VALID_PAYMENT_METHODS)
    with unit_of_work(uow) as work:
        manual = method in MANUAL_PAYMENT_METHODS
        payment = Payment(
            order_id=order.id,
            amount_cents=order.total_cents,
            payment_method=method,
            status=PAYMENT_PENDING_CONFIRMATION if manual else PAYMENT_PENDING,
            reference_number=generate_reference(method, order.id) if manual else None,
        )
        work.add(payment)
        work.flush()

        if manual:
            task_service.create_task(
                f"Verify {method} payment",
                category=CATEGORY_PAYMENT_REVIEW,
                priority=PRIORITY_HIGH,
                description=(
                    f"Order {order.id}: expect {order.total_cents} cents "
                    f"with reference {payment.reference_number}"
                ),
                related=EntityRef.order(order.id),
                uow=work,
            )
    return payment


def _find_pending_confirmation(order_id: str) -> Payment | None:
    return lock_for_update(
        db.session.query(Payment)
        .filter_by(order_id=order_id, status=PAYMENT_PENDING_CONFIRMATION)
        .order_by(Payment.id.desc())
    ).first()


def fail_pending_payments(order_id: str, reason: str, user_id: int | None = None, uow=None) -> int:
    """Mark every payment still awaiting confirmation as Failed. Returns the count."""
    with unit_of_work(uow) as work:
        payments = lock_for_update(
            db.session.query(Payment).filter(
                Payment.order_id == order_id,
                Payment.status.in_((PAYMENT_PENDING, PAYMENT_PENDING_CONFIRMATION)),
            )
        ).all()
        for payment in payments:
            payment.status = PAYMENT_FAILED
            payment.notes = reason
            payment.confirmed_by_user_id = user_id
            payment.confirmed_at = utcnow()
        work.flush()
    return len(payments)


def confirm_manual_payment(
    order_id: str,
    transaction_id: str,
    admin_user_id: int | None,
    notes: str | None = None,
    sender_name: str | None = None,
    method: str | None = None,
) -> PaymentResult:
    """
    Admin confirmation that a manual payment arrived.

    Returns success=False, leaving the order untouched, when the order is
    past the point of payment (Processing or later, or Cancelled) or has no
    payment awaiting confirmation (or, with `method`, none of that method).
    """
    if not order_id:
        raise ValidationError("order_id required")
    if not transaction_id or not str(transaction_id).strip():
        raise ValidationError("transaction_id required")

    def _op() -> PaymentResult:
        with unit_of_work() as uow:
            order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
            if not order:
                raise NotFoundError(f"Order {order_id} not found")

            payment = None
            if order.status in CONFIRMABLE_ORDER_STATUSES:
                payment = _find_pending_confirmation(order_id)
            if not payment or (method and payment.payment_method != method):
                return PaymentResult(
                    success=False,
                    message="Order is not awaiting payment confirmation",
                    order_id=order_id,
                    status=order.status,
                )

            now = utcnow()
            payment.status = PAYMENT_COMPLETED
            payment.transaction_id = str(transaction_id).strip()
            payment.sender_name = sender_name
            payment.notes = notes
            payment.confirmed_by_user_id = admin_user_id
            payment.confirmed_at = now

            order.payment_status = PAYMENT_STATUS_COMPLETED
            order.status = ORDER_PROCESSING
            uow.add(OrderStatusHistory(
                order_id=order.id,
                status=order.status,
                payment_status=order.payment_status,
                notes=f"{payment.payment_method} payment confirmed (transaction {payment.transaction_id})"
                      + (f": {notes}" if notes else ""),
                changed_by_user_id=admin_user_id,
            ))

            task_service.close_tasks_for(
                EntityRef.order(order.id),
                category=CATEGORY_PAYMENT_REVIEW,
                user_id=admin_user_id,
                note="Payment confirmed",
                uow=uow,
            )
            task_service.create_task(
                "Process paid order",
                category=CATEGORY_ORDER_PROCESSING,
                priority=PRIORITY_MEDIUM,
                description=f"Order {order.id} is paid and ready to assign to a distributor",
                related=EntityRef.order(order.id),
                created_by_user_id=admin_user_id,
                uow=uow,
            )
            result = PaymentResult(
                success=True,
                message="Payment confirmed",
                order_id=order.id,
                payment_id=payment.id,
                status=order.status,
            )

        current_app.logger.info("Manual payment confirmed for order %s by user %s", order_id, admin_user_id)
        return result

    return run_with_retry(_op)


def reject_manual_payment(order_id: str, admin_user_id: int | None, reason: str) -> PaymentResult:
    if not reason or not reason.strip():
        raise ValidationError("reason required")

    with unit_of_work() as uow:
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise NotFoundError(f"Order {order_id} not found")

        payment = _find_pending_confirmation(order_id)
        if not payment:
            return PaymentResult(
                success=False,
                message="Order is not awaiting payment confirmation",
                order_id=order_id,
                status=order.status,
            )

        payment.status = PAYMENT_FAILED
        payment.notes = reason.strip()
        payment.confirmed_by_user_id = admin_user_id
        payment.confirmed_at = utcnow()
        order.payment_status = PAYMENT_STATUS_FAILED
        uow.add(OrderStatusHistory(
            order_id=order.id,
            status=order.status,
            payment_status=order.payment_status,
            notes=f"{payment.payment_method} payment rejected: {reason.strip()}",
            changed_by_user_id=admin_user_id,
        ))
        task_service.close_tasks_for(
            EntityRef.order(order.id),
            category=CATEGORY_PAYMENT_REVIEW,
            status=TASK_CANCELLED,
            user_id=admin_user_id,
            note=f"Payment rejected: {reason.strip()}",
            uow=uow,
        )
        result = PaymentResult(
            success=True,
            message="Payment rejected",
            order_id=order.id,
            payment_id=payment.id,
            status=order.status,
        )
    current_app.logger.info("Manual payment rejected for order %s by user %s", order_id, admin_user_id)
    return result


def get_order_payments(order_id: str) -> list[Payment]:
    return (
        db.session.query(Payment)
        .filter_by(order_id=order_id)
        .order_by(Payment.id.asc())
        .all()
    )
