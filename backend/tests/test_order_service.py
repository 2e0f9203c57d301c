"""
Order lifecycle tests.

Verifies:
- Checkout snapshots prices, deducts stock and writes one history row
- Minimum quantities and wholesale classification
- Only allow-listed transitions are accepted; Delivered/Cancelled are final
- Cancellation restocks and voids commissions
- Distributor assignment and fulfillment
"""

import pytest

from storefront.errors import PermissionDeniedError, StateConflictError, ValidationError
from storefront.extensions import db
from storefront.models import Commission, Order, StockMovement
from storefront.models.commissions import COMMISSION_CANCELLED, COMMISSION_DISTRIBUTOR_FULFILLMENT
from storefront.models.orders import (
    ORDER_PENDING,
    ORDER_PAYMENT_RECEIVED,
    ORDER_PROCESSING,
    ORDER_ASSIGNED,
    ORDER_FULFILLED,
    ORDER_DELIVERED,
    ORDER_CANCELLED,
    ORDER_TYPE_RETAIL,
    ORDER_TYPE_WHOLESALE,
    PAYMENT_STATUS_COMPLETED,
)
from storefront.models.tasks import CATEGORY_FULFILLMENT, TASK_CANCELLED, TASK_COMPLETED
from storefront.models.users import ROLE_DISTRIBUTOR, ROLE_WHOLESALE_BUYER
from storefront.services import order_service, product_service, task_service
from storefront.validation import PageRequest


def _history(order):
    return order_service.get_order_history(order.id)


def _advance(order, *statuses):
    for status in statuses:
        order_service.update_order_status(order.id, status)


# =============================================================================
# CHECKOUT
# =============================================================================


class TestCreateOrder:
    def test_totals_and_price_snapshot(self, customer, variation, place_order):
        order = place_order(customer, quantity=10)

        assert order.status == ORDER_PENDING
        assert order.subtotal_cents == 10_000
        assert order.total_cents == 10_000
        assert order.items[0].unit_price_cents == 1000

        product_service.update_variation(variation.id, {"price_cents": 1500})
        db.session.expire_all()

        reloaded = order_service.get_order(order.id)
        assert reloaded.items[0].unit_price_cents == 1000
        assert reloaded.items[0].line_total_cents == 10_000
        assert reloaded.total_cents == 10_000

    def test_order_id_is_uuid_string(self, customer, place_order):
        order = place_order(customer)
        assert isinstance(order.id, str)
        assert len(order.id) == 36

    def test_creation_writes_one_history_row(self, customer, place_order):
        order = place_order(customer)
        history = _history(order)
        assert len(history) == 1
        assert history[0].status == ORDER_PENDING
        assert history[0].notes == "Order created"

    def test_stock_is_deducted_with_movement(self, customer, variation, place_order):
        order = place_order(customer, quantity=12)

        assert product_service.get_available_quantity(variation.id) == 488
        movement = db.session.query(StockMovement).filter_by(reference_id=order.id).one()
        assert movement.quantity_delta == -12
        assert movement.movement_type == product_service.MOVEMENT_SALE

    def test_below_retail_minimum_rejected(self, customer, place_order):
        with pytest.raises(ValidationError) as exc:
            place_order(customer, quantity=4)
        assert "at least 5 units" in exc.value.message
        assert db.session.query(Order).count() == 0

    def test_retail_minimum_met_exactly(self, customer, place_order):
        assert place_order(customer, quantity=5).order_type == ORDER_TYPE_RETAIL

    def test_wholesale_requires_eligibility(self, customer, make_user, place_order):
        retail = place_order(customer, quantity=100)
        assert retail.order_type == ORDER_TYPE_RETAIL

        buyer = make_user("bulk@test.local", role=ROLE_WHOLESALE_BUYER)
        assert place_order(buyer, quantity=100).order_type == ORDER_TYPE_WHOLESALE
        assert place_order(buyer, quantity=99).order_type == ORDER_TYPE_RETAIL

    def test_insufficient_stock_rolls_back_everything(self, customer, make_variation, stock, place_order):
        scarce = make_variation(price_cents=800)
        stock(scarce, 3)

        with pytest.raises(ValidationError):
            place_order(customer, quantity=6, variation_id=scarce.id)

        assert db.session.query(Order).count() == 0
        assert product_service.get_available_quantity(scarce.id) == 3

    def test_repeated_variation_lines_are_merged(self, customer, variation):
        order = order_service.create_order(
            customer.id,
            [{"variation_id": variation.id, "quantity": 3}, {"variation_id": variation.id, "quantity": 4}],
            {"line1": "1 Main St"},
            "ETransfer",
        )
        assert len(order.items) == 1
        assert order.items[0].quantity == 7

    def test_unknown_payment_method_rejected(self, customer, place_order):
        with pytest.raises(ValidationError):
            place_order(customer, payment_method="Cheque")

    def test_own_referral_code_rejected(self, customer, place_order):
        with pytest.raises(ValidationError):
            place_order(customer, referral_code=customer.referral_code)


# =============================================================================
# STATE MACHINE
# =============================================================================


class TestStatusTransitions:
    def test_allowed_transition_appends_exactly_one_history_row(self, customer, place_order):
        order = place_order(customer)

        order_service.update_order_status(order.id, ORDER_PAYMENT_RECEIVED, notes="Paid at counter")

        history = _history(order)
        assert len(history) == 2
        assert history[-1].status == ORDER_PAYMENT_RECEIVED
        assert history[-1].notes == "Paid at counter"
        assert order_service.get_order(order.id).payment_status == PAYMENT_STATUS_COMPLETED

    def test_skipping_a_state_is_rejected_without_history(self, customer, place_order):
        order = place_order(customer)

        with pytest.raises(StateConflictError):
            order_service.update_order_status(order.id, ORDER_PROCESSING)

        assert order_service.get_order(order.id).status == ORDER_PENDING
        assert len(_history(order)) == 1

    def test_unknown_status_is_validation_error(self, customer, place_order):
        order = place_order(customer)
        with pytest.raises(ValidationError):
            order_service.update_order_status(order.id, "Shipped")

    @pytest.mark.parametrize("target", [ORDER_PENDING, ORDER_CANCELLED, ORDER_FULFILLED])
    def test_delivered_is_terminal(self, customer, distributor, place_order, target):
        order = place_order(customer)
        _advance(order, ORDER_PAYMENT_RECEIVED, ORDER_PROCESSING)
        order_service.assign_distributor(order.id, distributor.id)
        _advance(order, ORDER_FULFILLED, ORDER_DELIVERED)

        with pytest.raises(StateConflictError):
            order_service.update_order_status(order.id, target)

    @pytest.mark.parametrize("target", [ORDER_PENDING, ORDER_PAYMENT_RECEIVED, ORDER_CANCELLED])
    def test_cancelled_is_terminal(self, customer, place_order, target):
        order = place_order(customer)
        _advance(order, ORDER_CANCELLED)

        with pytest.raises(StateConflictError):
            order_service.update_order_status(order.id, target)

    def test_can_transition_table(self):
        assert order_service.can_transition(ORDER_PENDING, ORDER_PAYMENT_RECEIVED)
        assert order_service.can_transition(ORDER_FULFILLED, ORDER_CANCELLED)
        assert not order_service.can_transition(ORDER_PENDING, ORDER_DELIVERED)
        assert not order_service.can_transition(ORDER_CANCELLED, ORDER_PENDING)


class TestCancellation:
    def test_cancel_restocks_inventory(self, customer, variation, place_order):
        order = place_order(customer, quantity=20)
        assert product_service.get_available_quantity(variation.id) == 480

        order_service.update_order_status(order.id, ORDER_CANCELLED, notes="Customer request")

        assert product_service.get_available_quantity(variation.id) == 500

    def test_cancel_voids_referral_commission(self, make_user, place_order):
        referrer = make_user("partner@test.local")
        buyer = make_user("friend@test.local", referred_by_code=referrer.referral_code)
        order = place_order(buyer)

        order_service.update_order_status(order.id, ORDER_CANCELLED)

        commission = db.session.query(Commission).filter_by(user_id=referrer.id).one()
        assert commission.status == COMMISSION_CANCELLED

    def test_cancel_fails_payment_awaiting_confirmation(self, customer, place_order):
        from storefront.models.payments import PAYMENT_FAILED
        from storefront.services import payment_service

        order = place_order(customer)
        order_service.update_order_status(order.id, ORDER_CANCELLED, notes="Customer request")

        assert [p.status for p in payment_service.get_order_payments(order.id)] == [PAYMENT_FAILED]


class TestDistributorRequired:
    def test_assigned_needs_a_distributor(self, customer, place_order):
        order = place_order(customer)
        _advance(order, ORDER_PAYMENT_RECEIVED, ORDER_PROCESSING)

        with pytest.raises(StateConflictError):
            order_service.update_order_status(order.id, ORDER_ASSIGNED)

        assert order_service.get_order(order.id).status == ORDER_PROCESSING
        assert len(_history(order)) == 3

    def test_status_route_refuses_assigned_without_distributor(self, client, admin, customer, place_order, auth_headers):
        order = place_order(customer)
        _advance(order, ORDER_PAYMENT_RECEIVED, ORDER_PROCESSING)

        response = client.put(f'/api/orders/{order.id}/status', json={'status': ORDER_ASSIGNED},
                              headers=auth_headers(admin))

        assert response.status_code == 400
        assert 'no assigned distributor' in response.get_json()['error']

    def test_fulfilled_allowed_once_assigned(self, customer, distributor, place_order):
        order = place_order(customer)
        _advance(order, ORDER_PAYMENT_RECEIVED, ORDER_PROCESSING)
        order_service.assign_distributor(order.id, distributor.id)

        order = order_service.update_order_status(order.id, ORDER_FULFILLED)

        assert order.status == ORDER_FULFILLED
        assert order.commission_cents == 1000


# =============================================================================
# DISTRIBUTION & FULFILLMENT
# =============================================================================


class TestFulfillment:
    def _paid_order(self, customer, place_order):
        order = place_order(customer)
        _advance(order, ORDER_PAYMENT_RECEIVED, ORDER_PROCESSING)
        return order

    def test_assign_moves_processing_to_assigned_and_opens_task(self, customer, distributor, place_order):
        order = self._paid_order(customer, place_order)

        order_service.assign_distributor(order.id, distributor.id)

        order = order_service.get_order(order.id)
        assert order.status == ORDER_ASSIGNED
        assert order.distributor_id == distributor.id
        assert db.session.query(Commission).count() == 0
        tasks, _ = task_service.list_tasks(PageRequest(1, 20), category=CATEGORY_FULFILLMENT)
        assert [t.assigned_to_user_id for t in tasks] == [distributor.id]

    def test_assign_requires_distributor_role(self, customer, make_user, place_order):
        order = self._paid_order(customer, place_order)
        other = make_user("not-a-driver@test.local")
        with pytest.raises(ValidationError):
            order_service.assign_distributor(order.id, other.id)

    def test_assign_rejected_while_pending(self, customer, distributor, place_order):
        order = place_order(customer)
        with pytest.raises(StateConflictError):
            order_service.assign_distributor(order.id, distributor.id)

    def test_fulfillment_records_commission(self, customer, distributor, place_order):
        order = self._paid_order(customer, place_order)
        order_service.assign_distributor(order.id, distributor.id)

        order, fulfillment = order_service.record_fulfillment(
            order.id, {"tracking_number": "1Z999", "carrier": "UPS"}, distributor.id,
        )

        assert order.status == ORDER_FULFILLED
        assert fulfillment.tracking_number == "1Z999"
        commission = db.session.query(Commission).filter_by(
            commission_type=COMMISSION_DISTRIBUTOR_FULFILLMENT
        ).one()
        assert commission.user_id == distributor.id
        assert commission.amount_cents == 1000
        assert order.commission_cents == 1000

        tasks, _ = task_service.list_tasks(PageRequest(1, 20), category=CATEGORY_FULFILLMENT)
        assert tasks[0].status == TASK_COMPLETED

    def test_only_assigned_distributor_may_fulfill(self, customer, distributor, make_user, place_order):
        order = self._paid_order(customer, place_order)
        order_service.assign_distributor(order.id, distributor.id)
        rival = make_user("rival@test.local", role=ROLE_DISTRIBUTOR)

        with pytest.raises(PermissionDeniedError):
            order_service.record_fulfillment(order.id, {}, rival.id)

    def test_reassignment_cancels_previous_task(self, customer, distributor, make_user, place_order):
        order = self._paid_order(customer, place_order)
        order_service.assign_distributor(order.id, distributor.id)
        second = make_user("second@test.local", role=ROLE_DISTRIBUTOR)
        order_service.assign_distributor(order.id, second.id)

        tasks, _ = task_service.list_tasks(PageRequest(1, 20), category=CATEGORY_FULFILLMENT)
        by_assignee = {t.assigned_to_user_id: t.status for t in tasks}
        assert by_assignee[distributor.id] == TASK_CANCELLED
        assert by_assignee[second.id] != TASK_CANCELLED
