from __future__ import annotations

import uuid

from ..extensions import db
from ..time_utils import format_cents, to_utc_z
from .related import RelatedEntityMixin


COMMISSION_ORDER_REFERRAL = "Order Referral"
COMMISSION_WHOLESALE_REFERRAL = "Wholesale Referral"
COMMISSION_DISTRIBUTOR_FULFILLMENT = "Distributor Fulfillment"
COMMISSION_BONUS = "Bonus"

VALID_COMMISSION_TYPES = (
    COMMISSION_ORDER_REFERRAL,
    COMMISSION_WHOLESALE_REFERRAL,
    COMMISSION_DISTRIBUTOR_FULFILLMENT,
    COMMISSION_BONUS,
)

COMMISSION_PENDING = "Pending"
COMMISSION_APPROVED = "Approved"
COMMISSION_PAID = "Paid"
COMMISSION_CANCELLED = "Cancelled"

VALID_COMMISSION_STATUSES = (
    COMMISSION_PENDING,
    COMMISSION_APPROVED,
    COMMISSION_PAID,
    COMMISSION_CANCELLED,
)


class Commission(RelatedEntityMixin, db.Model):
    """
    Money owed to a user for a referral or a fulfilled order.

    Lifecycle: Pending -> Approved -> Paid, or Cancelled from Pending/Approved.
    Rows are cancelled, never deleted, when the underlying order is voided.
    """
    __tablename__ = "commissions"
    __table_args__ = (
        db.Index("ix_commissions_related", "related_to", "related_id"),
        db.Index("ix_commissions_user_status", "user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    rate_bps = db.Column(db.Integer, nullable=False)
    commission_type = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=COMMISSION_PENDING)

    related_to = db.Column(db.String(32), nullable=False)
    related_id = db.Column(db.String(64), nullable=False)

    notes = db.Column(db.Text, nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    payout_batch_id = db.Column(db.String(36), db.ForeignKey("payout_batches.id"), nullable=True, index=True)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=True)
    payment_reference = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    user = db.relationship("User", foreign_keys=[user_id])

    def to_dict(self) -> dict:
        related = self.related
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount_cents": self.amount_cents,
            "amount": format_cents(self.amount_cents),
            "rate_bps": self.rate_bps,
            "rate": format_cents(self.rate_bps),
            "commission_type": self.commission_type,
            "status": self.status,
            "related": related.to_dict() if related else None,
            "notes": self.notes,
            "approved_at": to_utc_z(self.approved_at),
            "approved_by_user_id": self.approved_by_user_id,
            "payout_batch_id": self.payout_batch_id,
            "payment_date": to_utc_z(self.payment_date),
            "payment_reference": self.payment_reference,
            "created_at": to_utc_z(self.created_at),
        }


class PayoutBatch(db.Model):
    """A group of commissions paid out together with one reference."""
    __tablename__ = "payout_batches"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    payout_method = db.Column(db.String(32), nullable=False)
    payment_reference = db.Column(db.String(128), nullable=True)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    commission_count = db.Column(db.Integer, nullable=False)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payout_method": self.payout_method,
            "payment_reference": self.payment_reference,
            "total_amount_cents": self.total_amount_cents,
            "total_amount": format_cents(self.total_amount_cents),
            "commission_count": self.commission_count,
            "processed_at": to_utc_z(self.processed_at),
            "created_by_user_id": self.created_by_user_id,
        }
