"""
Manual payment tests.

Verifies:
- Checkout opens a PendingConfirmation payment and a review task
- Confirmation moves the order to Processing with exactly one history row
- Confirmation is single-shot and honors the method filter
- Rejection fails the payment and cancels the review task
- Cancelled orders cannot be confirmed afterwards
"""

import pytest

from storefront.errors import NotFoundError, ValidationError
from storefront.extensions import db
from storefront.models import EntityRef, Order
from storefront.models.orders import (
    ORDER_CANCELLED,
    ORDER_PENDING,
    ORDER_PROCESSING,
    PAYMENT_STATUS_COMPLETED,
    PAYMENT_STATUS_FAILED,
    PAYMENT_STATUS_PENDING,
)
from storefront.models.payments import (
    METHOD_BITCOIN,
    METHOD_ETRANSFER,
    PAYMENT_COMPLETED,
    PAYMENT_FAILED,
    PAYMENT_PENDING,
    PAYMENT_PENDING_CONFIRMATION,
)
from storefront.models.tasks import (
    CATEGORY_ORDER_PROCESSING,
    CATEGORY_PAYMENT_REVIEW,
    TASK_CANCELLED,
    TASK_COMPLETED,
    TASK_PENDING,
)
from storefront.services import order_service, payment_service, task_service
from storefront.validation import PageRequest


def _tasks(order, category):
    tasks, _ = task_service.list_tasks(PageRequest(1, 20), category=category, related=EntityRef.order(order.id))
    return tasks


class TestInitiatePayment:
    def test_etransfer_awaits_confirmation(self, customer, place_order):
        order = place_order(customer, payment_method=METHOD_ETRANSFER)

        [payment] = payment_service.get_order_payments(order.id)
        assert payment.status == PAYMENT_PENDING_CONFIRMATION
        assert payment.amount_cents == order.total_cents
        assert payment.reference_number.startswith("ET")

        [review] = _tasks(order, CATEGORY_PAYMENT_REVIEW)
        assert review.status == TASK_PENDING
        assert payment.reference_number in review.description

    def test_bitcoin_reference_prefix(self, customer, place_order):
        order = place_order(customer, payment_method=METHOD_BITCOIN)
        [payment] = payment_service.get_order_payments(order.id)
        assert payment.reference_number.startswith("BTC")

    def test_card_payment_has_no_review(self, customer, place_order):
        order = place_order(customer, payment_method="CreditCard")

        [payment] = payment_service.get_order_payments(order.id)
        assert payment.status == PAYMENT_PENDING
        assert payment.reference_number is None
        assert _tasks(order, CATEGORY_PAYMENT_REVIEW) == []

    def test_instructions_quote_reference(self, app, customer, place_order):
        order = place_order(customer)
        [payment] = payment_service.get_order_payments(order.id)

        instructions = payment_service.payment_instructions(payment)
        assert instructions["recipient"] == app.config["ETRANSFER_RECIPIENT"]
        assert instructions["amount_cents"] == order.total_cents
        assert payment.reference_number in instructions["message"]


class TestConfirmManualPayment:
    def test_confirm_moves_order_to_processing(self, customer, admin, place_order):
        order = place_order(customer)
        history_before = len(order_service.get_order_history(order.id))

        result = payment_service.confirm_manual_payment(order.id, "TX-1001", admin.id, sender_name="J. Buyer")

        assert result.success is True
        assert result.status == ORDER_PROCESSING

        order = order_service.get_order(order.id)
        assert order.status == ORDER_PROCESSING
        assert order.payment_status == PAYMENT_STATUS_COMPLETED

        [payment] = payment_service.get_order_payments(order.id)
        assert payment.status == PAYMENT_COMPLETED
        assert payment.transaction_id == "TX-1001"
        assert payment.confirmed_by_user_id == admin.id

        history = order_service.get_order_history(order.id)
        assert len(history) == history_before + 1
        assert history[-1].status == ORDER_PROCESSING

        assert [t.status for t in _tasks(order, CATEGORY_PAYMENT_REVIEW)] == [TASK_COMPLETED]
        assert [t.status for t in _tasks(order, CATEGORY_ORDER_PROCESSING)] == [TASK_PENDING]

    def test_second_confirmation_is_refused(self, customer, admin, place_order):
        order = place_order(customer)
        payment_service.confirm_manual_payment(order.id, "TX-1", admin.id)

        again = payment_service.confirm_manual_payment(order.id, "TX-2", admin.id)

        assert again.success is False
        assert again.message == "Order is not awaiting payment confirmation"
        assert len(_tasks(order, CATEGORY_ORDER_PROCESSING)) == 1

    def test_cancelled_order_cannot_be_confirmed(self, customer, admin, place_order):
        order = place_order(customer)
        order_service.update_order_status(order.id, ORDER_CANCELLED, admin_user_id=admin.id)

        [payment] = payment_service.get_order_payments(order.id)
        assert payment.status == PAYMENT_FAILED

        result = payment_service.confirm_manual_payment(order.id, "TX-LATE", admin.id)

        assert result.success is False
        assert result.message == "Order is not awaiting payment confirmation"
        order = order_service.get_order(order.id)
        assert order.status == ORDER_CANCELLED
        assert order.payment_status == PAYMENT_STATUS_PENDING
        assert _tasks(order, CATEGORY_ORDER_PROCESSING) == []
        assert [t.status for t in _tasks(order, CATEGORY_PAYMENT_REVIEW)] == [TASK_CANCELLED]

    def test_confirm_checks_order_status_not_just_payment(self, customer, admin, place_order):
        order = place_order(customer)
        # a cancelled order whose payment row was never closed
        db.session.query(Order).filter_by(id=order.id).update({"status": ORDER_CANCELLED})
        db.session.commit()

        result = payment_service.confirm_manual_payment(order.id, "TX-1", admin.id)

        assert result.success is False
        [payment] = payment_service.get_order_payments(order.id)
        assert payment.status == PAYMENT_PENDING_CONFIRMATION
        assert order_service.get_order(order.id).payment_status == PAYMENT_STATUS_PENDING

    def test_card_order_cannot_be_confirmed_manually(self, customer, admin, place_order):
        order = place_order(customer, payment_method="CreditCard")

        result = payment_service.confirm_manual_payment(order.id, "TX-1", admin.id)

        assert result.success is False
        assert order_service.get_order(order.id).status == ORDER_PENDING

    def test_method_filter_must_match(self, customer, admin, place_order):
        order = place_order(customer, payment_method=METHOD_ETRANSFER)

        result = payment_service.confirm_manual_payment(order.id, "TX-1", admin.id, method=METHOD_BITCOIN)

        assert result.success is False
        [payment] = payment_service.get_order_payments(order.id)
        assert payment.status == PAYMENT_PENDING_CONFIRMATION

    def test_transaction_id_required(self, customer, admin, place_order):
        order = place_order(customer)
        with pytest.raises(ValidationError):
            payment_service.confirm_manual_payment(order.id, "  ", admin.id)

    def test_unknown_order(self, admin):
        with pytest.raises(NotFoundError):
            payment_service.confirm_manual_payment("00000000-0000-0000-0000-000000000000", "TX", admin.id)


class TestRejectManualPayment:
    def test_reject_fails_payment_and_cancels_review(self, customer, admin, place_order):
        order = place_order(customer)

        result = payment_service.reject_manual_payment(order.id, admin.id, "Amount did not match")

        assert result.success is True
        order = order_service.get_order(order.id)
        assert order.status == ORDER_PENDING
        assert order.payment_status == PAYMENT_STATUS_FAILED
        [payment] = payment_service.get_order_payments(order.id)
        assert payment.status == PAYMENT_FAILED
        assert [t.status for t in _tasks(order, CATEGORY_PAYMENT_REVIEW)] == [TASK_CANCELLED]

    def test_reason_required(self, customer, admin, place_order):
        order = place_order(customer)
        with pytest.raises(ValidationError):
            payment_service.reject_manual_payment(order.id, admin.id, "")
        assert order_service.get_order(order.id).payment_status == PAYMENT_STATUS_PENDING
