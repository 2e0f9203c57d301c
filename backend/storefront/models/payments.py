from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


METHOD_CREDIT_CARD = "CreditCard"
METHOD_ETRANSFER = "ETransfer"
METHOD_BITCOIN = "Bitcoin"
METHOD_MANUAL = "Manual"

VALID_PAYMENT_METHODS = (METHOD_CREDIT_CARD, METHOD_ETRANSFER, METHOD_BITCOIN, METHOD_MANUAL)

# Methods an admin has to confirm by hand
MANUAL_PAYMENT_METHODS = (METHOD_ETRANSFER, METHOD_BITCOIN, METHOD_MANUAL)

PAYMENT_PENDING = "Pending"
PAYMENT_PENDING_CONFIRMATION = "PendingConfirmation"
PAYMENT_COMPLETED = "Completed"
PAYMENT_FAILED = "Failed"


class Payment(db.Model):
    """
    Payment attempt against an order.

    Manual methods start in PendingConfirmation and only leave it through
    payment_service.confirm_manual_payment / reject_manual_payment.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_order_status", "order_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id"), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(32), nullable=False, default=PAYMENT_PENDING)

    transaction_id = db.Column(db.String(128), nullable=True)
    reference_number = db.Column(db.String(64), nullable=True, index=True)
    sender_name = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    confirmed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    order = db.relationship("Order", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "status": self.status,
            "transaction_id": self.transaction_id,
            "reference_number": self.reference_number,
            "sender_name": self.sender_name,
            "notes": self.notes,
            "confirmed_by_user_id": self.confirmed_by_user_id,
            "confirmed_at": to_utc_z(self.confirmed_at),
            "created_at": to_utc_z(self.created_at),
        }
