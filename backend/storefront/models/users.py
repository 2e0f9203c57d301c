from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


# =============================================================================
# ROLES & STATUSES
# =============================================================================

ROLE_CUSTOMER = "Customer"
ROLE_DISTRIBUTOR = "Distributor"
ROLE_ADMIN = "Admin"
ROLE_WHOLESALE_BUYER = "Wholesale Buyer"
ROLE_REFERRAL_PARTNER = "Referral Partner"

VALID_ROLES = (
    ROLE_CUSTOMER,
    ROLE_DISTRIBUTOR,
    ROLE_ADMIN,
    ROLE_WHOLESALE_BUYER,
    ROLE_REFERRAL_PARTNER,
)

USER_STATUS_ACTIVE = "Active"
USER_STATUS_SUSPENDED = "Suspended"
USER_STATUS_PENDING = "Pending"

VALID_USER_STATUSES = (USER_STATUS_ACTIVE, USER_STATUS_SUSPENDED, USER_STATUS_PENDING)

APPLICATION_PENDING = "Pending"
APPLICATION_APPROVED = "Approved"
APPLICATION_REJECTED = "Rejected"


class User(db.Model):
    """
    Storefront account.

    One table covers customers, distributors, admins and referral partners;
    the role column decides what each account may do. Accounts are never
    hard-deleted because orders and commissions reference them.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_role_status", "role", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=True)
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(32), nullable=False, default=ROLE_CUSTOMER)
    status = db.Column(db.String(16), nullable=False, default=USER_STATUS_ACTIVE)

    referral_code = db.Column(db.String(16), nullable=False, unique=True, index=True)
    referred_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    # Running total of Approved-but-unpaid commission
    commission_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    wholesale_eligible = db.Column(db.Boolean, nullable=False, default=False)
    wholesale_approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    wholesale_approved_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    referred_by = db.relationship("User", remote_side=[id], foreign_keys=[referred_by_id])

    @property
    def is_active(self) -> bool:
        return self.status == USER_STATUS_ACTIVE

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "status": self.status,
            "referral_code": self.referral_code,
            "referred_by_id": self.referred_by_id,
            "commission_balance_cents": self.commission_balance_cents,
            "wholesale_eligible": self.wholesale_eligible,
            "wholesale_approved_at": to_utc_z(self.wholesale_approved_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "last_login_at": to_utc_z(self.last_login_at),
        }


class TokenBlacklist(db.Model):
    """
    Revoked JWT ids.

    Checked on every token verification. Rows are only needed until the token
    would have expired anyway; `maintenance purge-token-blacklist` removes the
    rest.
    """
    __tablename__ = "token_blacklist"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    jti = db.Column(db.String(64), nullable=False, unique=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    reason = db.Column(db.String(64), nullable=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())


class WholesaleApplication(db.Model):
    """Request from a customer to buy at wholesale volume."""
    __tablename__ = "wholesale_applications"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    business_name = db.Column(db.String(255), nullable=False)
    business_address = db.Column(db.Text, nullable=False)
    business_phone = db.Column(db.String(32), nullable=False)
    business_email = db.Column(db.String(255), nullable=False)
    tax_id = db.Column(db.String(64), nullable=True)
    website = db.Column(db.String(255), nullable=True)
    years_in_business = db.Column(db.Integer, nullable=True)
    estimated_monthly_order = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=APPLICATION_PENDING, index=True)
    reviewed_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    user = db.relationship("User", foreign_keys=[user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_email": self.user.email if self.user else None,
            "business_name": self.business_name,
            "business_address": self.business_address,
            "business_phone": self.business_phone,
            "business_email": self.business_email,
            "tax_id": self.tax_id,
            "website": self.website,
            "years_in_business": self.years_in_business,
            "estimated_monthly_order": self.estimated_monthly_order,
            "notes": self.notes,
            "status": self.status,
            "reviewed_by_id": self.reviewed_by_id,
            "reviewed_at": to_utc_z(self.reviewed_at),
            "rejection_reason": self.rejection_reason,
            "created_at": to_utc_z(self.created_at),
        }
