"""
Commission tests.

Verifies:
- Half-up cent rounding of rate * total
- Referral commission on checkout; referral and fulfillment recalculation are idempotent
- Approval credits the earner balance; payout pays only Approved rows
- The review task is best-effort: its failure never loses the commission
"""

import pytest

from storefront.errors import StateConflictError, StorefrontError, ValidationError
from storefront.extensions import db
from storefront.models import Commission, EntityRef, Task
from storefront.models.commissions import (
    COMMISSION_APPROVED,
    COMMISSION_BONUS,
    COMMISSION_CANCELLED,
    COMMISSION_DISTRIBUTOR_FULFILLMENT,
    COMMISSION_ORDER_REFERRAL,
    COMMISSION_PAID,
    COMMISSION_PENDING,
    COMMISSION_WHOLESALE_REFERRAL,
)
from storefront.models.orders import ORDER_PAYMENT_RECEIVED, ORDER_PROCESSING
from storefront.models.tasks import CATEGORY_COMMISSION_REVIEW, TASK_COMPLETED
from storefront.models.users import ROLE_WHOLESALE_BUYER
from storefront.services import commission_service, order_service, task_service
from storefront.validation import PageRequest


@pytest.fixture
def referrer(make_user):
    return make_user("partner@test.local")


@pytest.fixture
def referred_buyer(make_user, referrer):
    return make_user("friend@test.local", referred_by_code=referrer.referral_code)


class TestComputeCommission:
    @pytest.mark.parametrize(
        "total,rate,expected",
        [
            (10_000, 500, 500),
            (10_000, 1000, 1000),
            (1010, 500, 51),     # 50.5 rounds up
            (1009, 500, 50),     # 50.45 rounds down
            (1, 500, 0),
        ],
    )
    def test_half_up_rounding(self, total, rate, expected):
        assert commission_service.compute_commission_cents(total, rate) == expected


class TestReferralCommission:
    def test_checkout_creates_pending_referral(self, referrer, referred_buyer, place_order):
        order = place_order(referred_buyer, quantity=10)

        commission = db.session.query(Commission).one()
        assert commission.user_id == referrer.id
        assert commission.commission_type == COMMISSION_ORDER_REFERRAL
        assert commission.status == COMMISSION_PENDING
        assert commission.amount_cents == 500
        assert commission.rate_bps == 500
        assert commission.related == EntityRef.order(order.id)
        assert commission.to_dict()["amount"] == "5.00"
        assert order.applied_referral_code == referrer.referral_code

    def test_referral_code_at_checkout_when_unreferred(self, referrer, customer, place_order):
        place_order(customer, referral_code=referrer.referral_code)
        assert db.session.query(Commission).filter_by(user_id=referrer.id).count() == 1

    def test_wholesale_order_yields_wholesale_referral(self, make_user, referrer, place_order):
        buyer = make_user("bulk@test.local", role=ROLE_WHOLESALE_BUYER, referred_by_code=referrer.referral_code)
        place_order(buyer, quantity=100)
        commission = db.session.query(Commission).one()
        assert commission.commission_type == COMMISSION_WHOLESALE_REFERRAL
        assert commission.amount_cents == 5000

    def test_recalculation_is_idempotent(self, referred_buyer, place_order):
        order = place_order(referred_buyer)

        first = commission_service.calculate_commission_for_order(order.id)
        second = commission_service.calculate_commission_for_order(order.id)

        assert first.id == second.id
        assert db.session.query(Commission).count() == 1

    def test_fulfillment_recalculation_is_idempotent(self, customer, distributor, place_order):
        order = place_order(customer)
        order_service.update_order_status(order.id, ORDER_PAYMENT_RECEIVED)
        order_service.update_order_status(order.id, ORDER_PROCESSING)
        order_service.assign_distributor(order.id, distributor.id)
        order_service.record_fulfillment(order.id, {"tracking_number": "TRK-2"}, distributor.id)

        first = commission_service.calculate_commission_for_order(order.id)
        second = commission_service.calculate_commission_for_order(order.id)

        assert first.id == second.id
        rows = db.session.query(Commission).filter_by(
            user_id=distributor.id, commission_type=COMMISSION_DISTRIBUTOR_FULFILLMENT,
        ).all()
        assert [c.id for c in rows] == [first.id]
        assert rows[0].amount_cents == 1000

    def test_no_earner_means_no_commission(self, customer, place_order):
        order = place_order(customer)
        assert commission_service.calculate_commission_for_order(order.id) is None
        assert db.session.query(Commission).count() == 0

    def test_review_task_is_linked_to_commission(self, referred_buyer, place_order):
        place_order(referred_buyer)
        commission = db.session.query(Commission).one()

        tasks, _ = task_service.list_tasks(PageRequest(1, 10), related=EntityRef.commission(commission.id))
        assert len(tasks) == 1
        assert tasks[0].category == CATEGORY_COMMISSION_REVIEW


class TestCreateCommission:
    def test_rejects_non_positive_amount(self, referrer):
        with pytest.raises(ValidationError):
            commission_service.create_commission(
                referrer.id, 0, COMMISSION_BONUS, EntityRef.user(referrer.id), 0,
            )

    def test_rejects_unknown_type(self, referrer):
        with pytest.raises(ValidationError):
            commission_service.create_commission(
                referrer.id, 100, "Tip", EntityRef.user(referrer.id), 0,
            )

    def test_review_task_failure_keeps_commission(self, referrer, monkeypatch):
        def broken_create_task(*args, **kwargs):
            raise StorefrontError("task queue unavailable")

        monkeypatch.setattr(task_service, "create_task", broken_create_task)

        commission = commission_service.create_commission(
            referrer.id, 2500, COMMISSION_BONUS, EntityRef.user(referrer.id), 0,
        )

        assert db.session.get(Commission, commission.id).amount_cents == 2500
        assert db.session.query(Task).count() == 0


class TestApprovalAndPayout:
    def _bonus(self, user, amount):
        return commission_service.create_commission(
            user.id, amount, COMMISSION_BONUS, EntityRef.user(user.id), 0,
        )

    def test_approve_credits_balance_and_closes_task(self, referrer, admin):
        commission = self._bonus(referrer, 1200)

        approved = commission_service.approve_commissions([commission.id], admin.id)

        assert [c.status for c in approved] == [COMMISSION_APPROVED]
        assert referrer.commission_balance_cents == 1200
        tasks, _ = task_service.list_tasks(PageRequest(1, 10), related=EntityRef.commission(commission.id))
        assert tasks[0].status == TASK_COMPLETED

    def test_payout_skips_already_paid(self, referrer, admin):
        first = self._bonus(referrer, 1000)
        second = self._bonus(referrer, 700)
        commission_service.approve_commissions([first.id, second.id], admin.id)
        commission_service.process_commission_payout([second.id], "ETransfer", admin_user_id=admin.id)

        result = commission_service.process_commission_payout(
            [first.id, second.id], "ETransfer", payment_reference="ET-42", admin_user_id=admin.id,
        )

        assert result.success is True
        assert result.processed_count == 1
        assert result.total_amount_cents == 1000
        assert result.skipped_ids == [second.id]
        assert db.session.get(Commission, first.id).status == COMMISSION_PAID
        assert db.session.get(Commission, first.id).payment_reference == "ET-42"
        assert db.session.get(Commission, first.id).payout_batch_id == result.batch_id
        assert referrer.commission_balance_cents == 0

    def test_payout_with_nothing_approved_fails_cleanly(self, referrer, admin):
        pending = self._bonus(referrer, 900)

        result = commission_service.process_commission_payout([pending.id], "ETransfer", admin_user_id=admin.id)

        assert result.success is False
        assert result.message == "No approved commissions found to process"
        assert result.batch_id is None
        assert db.session.get(Commission, pending.id).status == COMMISSION_PENDING

    def test_payable_list_includes_earner(self, referrer, admin):
        commission = self._bonus(referrer, 400)
        commission_service.approve_commissions([commission.id], admin.id)

        payable = commission_service.get_payable_commissions()
        assert [(p["id"], p["user_email"]) for p in payable] == [(commission.id, referrer.email)]

    def test_cancel_approved_reverses_balance(self, referrer, admin):
        commission = self._bonus(referrer, 600)
        commission_service.approve_commissions([commission.id], admin.id)

        commission_service.cancel_commission(commission.id, "Chargeback", admin.id)

        assert db.session.get(Commission, commission.id).status == COMMISSION_CANCELLED
        assert referrer.commission_balance_cents == 0

    def test_paid_commission_cannot_be_cancelled(self, referrer, admin):
        commission = self._bonus(referrer, 600)
        commission_service.approve_commissions([commission.id], admin.id)
        commission_service.process_commission_payout([commission.id], "ETransfer")

        with pytest.raises(StateConflictError):
            commission_service.cancel_commission(commission.id)

    def test_stats_exclude_cancelled(self, referrer, admin):
        kept = self._bonus(referrer, 300)
        dropped = self._bonus(referrer, 200)
        commission_service.approve_commissions([kept.id], admin.id)
        commission_service.cancel_commission(dropped.id)

        stats = commission_service.get_user_commission_stats(referrer.id)
        assert stats["pending_cents"] == 0
        assert stats["approved_cents"] == 300
        assert stats["lifetime_cents"] == 300
        assert len(stats["recent"]) == 2
