from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


DISCOUNT_PERCENTAGE = "Percentage"
DISCOUNT_FIXED_AMOUNT = "FixedAmount"

VALID_DISCOUNT_TYPES = (DISCOUNT_PERCENTAGE, DISCOUNT_FIXED_AMOUNT)


class DiscountCode(db.Model):
    """
    Checkout discount code.

    value is basis points for Percentage codes (1500 = 15%) and cents for
    FixedAmount codes.
    """
    __tablename__ = "discount_codes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, unique=True, index=True)
    description = db.Column(db.String(255), nullable=True)
    discount_type = db.Column(db.String(16), nullable=False)
    value = db.Column(db.Integer, nullable=False)
    min_purchase_cents = db.Column(db.Integer, nullable=True)
    max_discount_cents = db.Column(db.Integer, nullable=True)
    starts_at = db.Column(db.DateTime(timezone=True), nullable=True)
    ends_at = db.Column(db.DateTime(timezone=True), nullable=True)
    usage_limit = db.Column(db.Integer, nullable=True)
    usage_count = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "description": self.description,
            "discount_type": self.discount_type,
            "value": self.value,
            "min_purchase_cents": self.min_purchase_cents,
            "max_discount_cents": self.max_discount_cents,
            "starts_at": to_utc_z(self.starts_at),
            "ends_at": to_utc_z(self.ends_at),
            "usage_limit": self.usage_limit,
            "usage_count": self.usage_count,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
