# Overview: Service-layer operations for commissions; calculation, approval and payout batching.

"""
Commission Service

WHY: Referral partners and distributors are paid a percentage of the orders
they bring in or ship. This module computes those amounts, records them,
and moves them through review and payout.

LIFECYCLE:
    Pending -> Approved -> Paid
    Pending/Approved -> Cancelled (order voided or admin decision)

RATES (basis points, configurable):
- Referral: REFERRAL_COMMISSION_BPS (500 = 5%) of the order total, earned by
  the buyer's referrer. Wholesale orders produce a Wholesale Referral.
- Fulfillment: FULFILLMENT_COMMISSION_BPS (1000 = 10%) of the order total,
  earned by the assigned distributor when the order is fulfilled.

RULES:
1. Amounts are integer cents, rounded half-up from the exact product
2. At most one live (non-cancelled) commission per (order, type); repeat
   calculation returns the existing row
3. Creating a commission also opens a CommissionReview task, best-effort:
   a task failure is logged and the commission still stands
4. commission_balance_cents on the earner tracks Approved, unpaid money
5. Payout re-checks Approved status under lock and skips stale ids; it fails
   only when nothing payable is left
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app
from sqlalchemy import func

from ..errors import NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models import Commission, Order, PayoutBatch, User, EntityRef, RelatedEntity
from ..models.commissions import (
    VALID_COMMISSION_TYPES,
    VALID_COMMISSION_STATUSES,
    COMMISSION_PENDING,
    COMMISSION_APPROVED,
    COMMISSION_PAID,
    COMMISSION_CANCELLED,
    COMMISSION_ORDER_REFERRAL,
    COMMISSION_WHOLESALE_REFERRAL,
    COMMISSION_DISTRIBUTOR_FULFILLMENT,
)
from ..models.orders import ORDER_TYPE_WHOLESALE
from ..models.tasks import CATEGORY_COMMISSION_REVIEW, PRIORITY_MEDIUM, TASK_CANCELLED
from ..models.users import ROLE_DISTRIBUTOR
from ..time_utils import format_cents, utcnow
from ..validation import PageRequest, coerce_choice, paginate
from . import task_service
from .transaction import best_effort, lock_for_update, run_with_retry, unit_of_work


LIVE_STATUSES = (COMMISSION_PENDING, COMMISSION_APPROVED, COMMISSION_PAID)
CANCELLABLE_STATUSES = (COMMISSION_PENDING, COMMISSION_APPROVED)


@dataclass(frozen=True)
class PayoutResult:
    success: bool
    batch_id: str | None
    total_amount_cents: int
    processed_count: int
    message: str
    skipped_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "batch_id": self.batch_id,
            "total_amount_cents": self.total_amount_cents,
            "total_amount": format_cents(self.total_amount_cents),
            "processed_count": self.processed_count,
            "skipped_ids": list(self.skipped_ids),
            "message": self.message,
        }


def compute_commission_cents(total_cents: int, rate_bps: int) -> int:
    """total * rate, rounded half-up to the cent. 10000 cents at 500 bps -> 500."""
    exact = Decimal(total_cents) * Decimal(rate_bps) / Decimal(10_000)
    return int(exact.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# =============================================================================
# CREATION
# =============================================================================

def create_commission(
    user_id: int,
    amount_cents: int,
    commission_type: str,
    related: EntityRef,
    rate_bps: int,
    *,
    status: str = COMMISSION_PENDING,
    notes: str | None = None,
    uow=None,
) -> Commission:
    """
    Record a commission and open its review task.

    Pass `uow` to make the insert part of a larger transaction (order
    creation, fulfillment); the review task is written in a savepoint so its
    failure never rolls back the commission.
    """
    if not user_id:
        raise ValidationError("user_id required")
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValidationError("amount_cents must be a positive integer")
    if isinstance(rate_bps, bool) or not isinstance(rate_bps, int) or rate_bps < 0:
        raise ValidationError("rate_bps must be a non-negative integer")
    coerce_choice(commission_type, "commission_type", VALID_COMMISSION_TYPES)
    coerce_choice(status, "status", VALID_COMMISSION_STATUSES)
    if not isinstance(related, EntityRef):
        raise ValidationError("related entity required")

    with unit_of_work(uow) as work:
        if not db.session.get(User, user_id):
            raise ValidationError(f"User {user_id} not found")
        if related.kind is RelatedEntity.ORDER and not db.session.get(Order, related.id):
            raise ValidationError(f"Order {related.id} not found")

        commission = Commission(
            user_id=user_id,
            amount_cents=amount_cents,
            rate_bps=rate_bps,
            commission_type=commission_type,
            status=status,
            related=related,
            notes=notes,
        )
        work.add(commission)
        work.flush()

        with best_effort(work, f"review task for commission {commission.id}"):
            task_service.create_task(
                f"Review {commission_type} commission",
                category=CATEGORY_COMMISSION_REVIEW,
                priority=PRIORITY_MEDIUM,
                description=(
                    f"Commission of {format_cents(amount_cents)} for user {user_id} "
                    f"({related.kind.value} {related.id})"
                ),
                related=EntityRef.commission(commission.id),
                uow=work,
            )

    current_app.logger.info(
        "Created %s commission %s for user %s: %s cents",
        commission_type, commission.id, user_id, amount_cents,
    )
    return commission


def find_live_commission(order_id: str, commission_type: str) -> Commission | None:
    """Existing non-cancelled commission for an order and type, if any."""
    related_to, related_id = EntityRef.order(order_id).to_columns()
    return (
        db.session.query(Commission)
        .filter(
            Commission.related_to == related_to,
            Commission.related_id == related_id,
            Commission.commission_type == commission_type,
            Commission.status.in_(LIVE_STATUSES),
        )
        .order_by(Commission.id.asc())
        .first()
    )


def create_order_commission(
    order: Order,
    earner: User,
    commission_type: str,
    rate_bps: int,
    uow=None,
) -> Commission | None:
    """
    Idempotent per (order, type): returns the live commission if one exists.

    Returns None when the computed amount rounds to zero.
    """
    existing = find_live_commission(order.id, commission_type)
    if existing:
        return existing

    amount = compute_commission_cents(order.total_cents, rate_bps)
    if amount <= 0:
        return None

    return create_commission(
        earner.id,
        amount,
        commission_type,
        EntityRef.order(order.id),
        rate_bps,
        notes=f"{format_cents(rate_bps)}% of order {order.id}",
        uow=uow,
    )


def referral_commission_type(order: Order) -> str:
    if order.order_type == ORDER_TYPE_WHOLESALE:
        return COMMISSION_WHOLESALE_REFERRAL
    return COMMISSION_ORDER_REFERRAL


def calculate_commission_for_order(order_id: str, uow=None) -> Commission | None:
    """
    Commission owed for an order, created if not yet recorded.

    An assigned user with role Distributor earns the fulfillment rate;
    otherwise the buyer's referrer earns the referral rate; otherwise None.
    """
    with unit_of_work(uow) as work:
        order = db.session.get(Order, order_id)
        if not order:
            raise NotFoundError(f"Order {order_id} not found")

        distributor = order.distributor
        if distributor is not None and distributor.role == ROLE_DISTRIBUTOR:
            return create_order_commission(
                order,
                distributor,
                COMMISSION_DISTRIBUTOR_FULFILLMENT,
                current_app.config["FULFILLMENT_COMMISSION_BPS"],
                uow=work,
            )

        referrer = order.user.referred_by if order.user else None
        if referrer is not None:
            return create_order_commission(
                order,
                referrer,
                referral_commission_type(order),
                current_app.config["REFERRAL_COMMISSION_BPS"],
                uow=work,
            )

    return None


# =============================================================================
# STATUS CHANGES
# =============================================================================

def get_commission(commission_id: int) -> Commission:
    commission = db.session.get(Commission, commission_id)
    if not commission:
        raise NotFoundError(f"Commission {commission_id} not found")
    return commission


def approve_commissions(commission_ids: list[int], admin_user_id: int | None = None) -> list[Commission]:
    """
    Pending -> Approved for each id; ids in any other state are skipped.

    Approval credits the earner's commission balance.
    """
    if not commission_ids:
        raise ValidationError("commission_ids required")

    with unit_of_work() as uow:
        commissions = lock_for_update(
            db.session.query(Commission).filter(
                Commission.id.in_(commission_ids),
                Commission.status == COMMISSION_PENDING,
            )
        ).all()
        now = utcnow()
        for commission in commissions:
            commission.status = COMMISSION_APPROVED
            commission.approved_at = now
            commission.approved_by_user_id = admin_user_id
            earner = db.session.get(User, commission.user_id)
            earner.commission_balance_cents = (earner.commission_balance_cents or 0) + commission.amount_cents
            task_service.close_tasks_for(
                EntityRef.commission(commission.id),
                user_id=admin_user_id,
                note="Commission approved",
                uow=uow,
            )
    return commissions


def _cancel(commission: Commission, reason: str | None, uow, user_id: int | None = None) -> None:
    if commission.status == COMMISSION_APPROVED:
        earner = db.session.get(User, commission.user_id)
        earner.commission_balance_cents = max((earner.commission_balance_cents or 0) - commission.amount_cents, 0)
    commission.status = COMMISSION_CANCELLED
    if reason:
        commission.notes = f"{commission.notes}\nCancelled: {reason}" if commission.notes else f"Cancelled: {reason}"
    task_service.close_tasks_for(
        EntityRef.commission(commission.id),
        status=TASK_CANCELLED,
        user_id=user_id,
        note=reason,
        uow=uow,
    )


def cancel_commission(commission_id: int, reason: str | None = None, user_id: int | None = None) -> Commission:
    with unit_of_work() as uow:
        commission = get_commission(commission_id)
        if commission.status not in CANCELLABLE_STATUSES:
            raise StateConflictError(f"Cannot cancel a {commission.status} commission")
        _cancel(commission, reason, uow, user_id)
    return commission


def cancel_commissions_for_order(order_id: str, reason: str | None = None, *, user_id: int | None = None, uow=None) -> int:
    """Cancel the order's Pending/Approved commissions and their review tasks."""
    related_to, related_id = EntityRef.order(order_id).to_columns()
    with unit_of_work(uow) as work:
        commissions = db.session.query(Commission).filter(
            Commission.related_to == related_to,
            Commission.related_id == related_id,
            Commission.status.in_(CANCELLABLE_STATUSES),
        ).all()
        for commission in commissions:
            _cancel(commission, reason, work, user_id)
    if commissions:
        current_app.logger.info("Cancelled %s commissions for order %s", len(commissions), order_id)
    return len(commissions)


# =============================================================================
# PAYOUTS
# =============================================================================

def get_payable_commissions() -> list[dict]:
    """Approved commissions with earner contact info, oldest first."""
    rows = (
        db.session.query(Commission, User.email, User.name)
        .join(User, User.id == Commission.user_id)
        .filter(Commission.status == COMMISSION_APPROVED)
        .order_by(Commission.created_at.asc(), Commission.id.asc())
        .all()
    )
    result = []
    for commission, email, name in rows:
        data = commission.to_dict()
        data["user_email"] = email
        data["user_name"] = name
        result.append(data)
    return result


def process_commission_payout(
    commission_ids: list[int],
    payout_method: str,
    payment_reference: str | None = None,
    admin_user_id: int | None = None,
) -> PayoutResult:
    """
    Pay out a set of Approved commissions as one batch.

    Ids that are no longer Approved are skipped. If none remain the call
    returns success=False and changes nothing.
    """
    if not commission_ids:
        raise ValidationError("commission_ids required")
    if not payout_method or not str(payout_method).strip():
        raise ValidationError("payout_method required")
    requested = list(dict.fromkeys(int(cid) for cid in commission_ids))

    def _op() -> PayoutResult:
        with unit_of_work() as uow:
            commissions = lock_for_update(
                db.session.query(Commission)
                .filter(Commission.id.in_(requested), Commission.status == COMMISSION_APPROVED)
                .order_by(Commission.id.asc())
            ).all()

            processed_ids = {c.id for c in commissions}
            skipped = [cid for cid in requested if cid not in processed_ids]

            if not commissions:
                return PayoutResult(
                    success=False,
                    batch_id=None,
                    total_amount_cents=0,
                    processed_count=0,
                    message="No approved commissions found to process",
                    skipped_ids=skipped,
                )

            now = utcnow()
            total = sum(c.amount_cents for c in commissions)
            batch = PayoutBatch(
                payout_method=str(payout_method).strip(),
                payment_reference=payment_reference,
                total_amount_cents=total,
                commission_count=len(commissions),
                processed_at=now,
                created_by_user_id=admin_user_id,
            )
            uow.add(batch)
            uow.flush()

            for commission in commissions:
                commission.status = COMMISSION_PAID
                commission.payout_batch_id = batch.id
                commission.payment_date = now
                commission.payment_reference = payment_reference
                earner = db.session.get(User, commission.user_id)
                earner.commission_balance_cents = max((earner.commission_balance_cents or 0) - commission.amount_cents, 0)

            batch_id = batch.id

        if skipped:
            current_app.logger.warning("Payout %s skipped non-approved commissions %s", batch_id, skipped)
        current_app.logger.info("Payout %s processed %s commissions, %s cents", batch_id, len(commissions), total)
        return PayoutResult(
            success=True,
            batch_id=batch_id,
            total_amount_cents=total,
            processed_count=len(commissions),
            message=f"Processed {len(commissions)} commissions",
            skipped_ids=skipped,
        )

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_user_commission_stats(user_id: int) -> dict:
    """Sums per status (Cancelled excluded) plus the 10 most recent commissions."""
    sums = dict(
        db.session.query(Commission.status, func.coalesce(func.sum(Commission.amount_cents), 0))
        .filter(Commission.user_id == user_id, Commission.status != COMMISSION_CANCELLED)
        .group_by(Commission.status)
        .all()
    )
    pending = int(sums.get(COMMISSION_PENDING, 0))
    approved = int(sums.get(COMMISSION_APPROVED, 0))
    paid = int(sums.get(COMMISSION_PAID, 0))

    recent = (
        db.session.query(Commission)
        .filter(Commission.user_id == user_id)
        .order_by(Commission.created_at.desc(), Commission.id.desc())
        .limit(10)
        .all()
    )
    return {
        "pending_cents": pending,
        "approved_cents": approved,
        "paid_cents": paid,
        "lifetime_cents": pending + approved + paid,
        "recent": [c.to_dict() for c in recent],
    }


def list_commissions(
    page: PageRequest,
    *,
    status: str | None = None,
    user_id: int | None = None,
    commission_type: str | None = None,
) -> tuple[list[dict], dict]:
    query = db.session.query(Commission, User.email, User.name).join(User, User.id == Commission.user_id)
    if status:
        query = query.filter(Commission.status == status)
    if user_id is not None:
        query = query.filter(Commission.user_id == user_id)
    if commission_type:
        query = query.filter(Commission.commission_type == commission_type)
    query = query.order_by(Commission.created_at.desc(), Commission.id.desc())

    rows, pagination = paginate(query, page)
    result = []
    for commission, email, name in rows:
        data = commission.to_dict()
        data["user_email"] = email
        data["user_name"] = name
        result.append(data)
    return result, pagination


def get_user_commissions(user_id: int, page: PageRequest, status: str | None = None) -> tuple[list[Commission], dict]:
    query = db.session.query(Commission).filter(Commission.user_id == user_id)
    if status:
        query = query.filter(Commission.status == status)
    query = query.order_by(Commission.created_at.desc(), Commission.id.desc())
    return paginate(query, page)
