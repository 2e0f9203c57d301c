# Overview: Service-layer operations for accounts, referrals and wholesale applications.

"""
User Service

Account creation, profile changes, admin listing/moderation, referral codes
and the wholesale application workflow.

REFERRALS: every user gets a unique 8-character code at creation. A new
account registered with someone's code stores that user in referred_by; the
referrer then earns a commission on the new account's orders (see
commission_service).

WHOLESALE: customers apply with business details; an admin approves (role
becomes Wholesale Buyer, wholesale_eligible set) or rejects. Each pending
application carries a WholesaleReview task.
"""

from __future__ import annotations

import secrets
import string

from sqlalchemy import or_
from flask import current_app

from ..errors import NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models import User, WholesaleApplication, EntityRef, RelatedEntity
from ..models.users import (
    VALID_ROLES,
    VALID_USER_STATUSES,
    ROLE_CUSTOMER,
    ROLE_WHOLESALE_BUYER,
    USER_STATUS_ACTIVE,
    USER_STATUS_SUSPENDED,
    APPLICATION_PENDING,
    APPLICATION_APPROVED,
    APPLICATION_REJECTED,
)
from ..models.tasks import CATEGORY_WHOLESALE_REVIEW, PRIORITY_MEDIUM, TASK_CANCELLED
from ..time_utils import utcnow
from ..validation import PageRequest, coerce_choice, coerce_int, normalize_email, paginate
from .auth_service import hash_password, verify_password
from .transaction import unit_of_work
from . import task_service


REFERRAL_CODE_LENGTH = 8
_REFERRAL_ALPHABET = string.ascii_uppercase + string.digits

SORTABLE_USER_FIELDS = {
    "created_at": User.created_at,
    "email": User.email,
    "name": User.name,
    "role": User.role,
    "status": User.status,
}


# =============================================================================
# LOOKUPS
# =============================================================================

def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError(f"User {user_id} not found")
    return user


def get_user_by_email(email: str) -> User | None:
    return db.session.query(User).filter_by(email=email.strip().lower()).first()


def get_user_by_referral_code(code: str | None) -> User | None:
    if not code:
        return None
    return db.session.query(User).filter_by(referral_code=code.strip().upper()).first()


def _generate_referral_code() -> str:
    for _ in range(10):
        code = "".join(secrets.choice(_REFERRAL_ALPHABET) for _ in range(REFERRAL_CODE_LENGTH))
        if not db.session.query(User.id).filter_by(referral_code=code).first():
            return code
    raise RuntimeError("Could not generate a unique referral code")


# =============================================================================
# ACCOUNT CREATION & PROFILE
# =============================================================================

def create_user(
    email: str,
    password: str,
    name: str | None = None,
    role: str = ROLE_CUSTOMER,
    referred_by_code: str | None = None,
    status: str = USER_STATUS_ACTIVE,
) -> User:
    """
    Register an account.

    Raises ValidationError for a weak password, duplicate email, unknown role
    or unknown referral code.
    """
    email = normalize_email(email)
    coerce_choice(role, "role", VALID_ROLES)
    coerce_choice(status, "status", VALID_USER_STATUSES)

    if get_user_by_email(email):
        raise ValidationError("An account with this email already exists")

    referrer = None
    if referred_by_code:
        referrer = get_user_by_referral_code(referred_by_code)
        if not referrer:
            raise ValidationError("Invalid referral code")

    password_hash = hash_password(password)

    with unit_of_work() as uow:
        user = User(
            email=email,
            name=(name or "").strip() or None,
            password_hash=password_hash,
            role=role,
            status=status,
            referral_code=_generate_referral_code(),
            referred_by_id=referrer.id if referrer else None,
            commission_balance_cents=0,
            wholesale_eligible=role == ROLE_WHOLESALE_BUYER,
        )
        uow.add(user)
        uow.flush()

    current_app.logger.info("Created user %s (%s)", user.id, user.role)
    return user


def update_profile(user_id: int, *, name: str | None = None, email: str | None = None) -> User:
    with unit_of_work():
        user = get_user(user_id)
        if name is not None:
            user.name = name.strip() or None
        if email is not None:
            new_email = normalize_email(email)
            if new_email != user.email:
                if get_user_by_email(new_email):
                    raise ValidationError("An account with this email already exists")
                user.email = new_email
    return user


def update_user(user_id: int, fields: dict) -> User:
    """Admin update: name, email, role, status, wholesale_eligible."""
    allowed = {"name", "email", "role", "status", "wholesale_eligible"}
    unknown = set(fields) - allowed
    if unknown:
        raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

    if "name" in fields or "email" in fields:
        update_profile(user_id, name=fields.get("name"), email=fields.get("email"))

    with unit_of_work():
        user = get_user(user_id)
        if "role" in fields:
            user.role = coerce_choice(fields["role"], "role", VALID_ROLES)
            if user.role == ROLE_WHOLESALE_BUYER:
                user.wholesale_eligible = True
        if "status" in fields:
            user.status = coerce_choice(fields["status"], "status", VALID_USER_STATUSES)
        if "wholesale_eligible" in fields:
            user.wholesale_eligible = bool(fields["wholesale_eligible"])
    return user


def change_password(user_id: int, current_password: str, new_password: str) -> None:
    user = get_user(user_id)
    if not verify_password(current_password, user.password_hash):
        raise ValidationError("Current password is incorrect")
    new_hash = hash_password(new_password)
    with unit_of_work():
        user.password_hash = new_hash


def set_user_status(user_id: int, status: str) -> User:
    coerce_choice(status, "status", VALID_USER_STATUSES)
    with unit_of_work():
        user = get_user(user_id)
        user.status = status
    current_app.logger.info("User %s status set to %s", user_id, status)
    return user


def activate_user(user_id: int) -> User:
    return set_user_status(user_id, USER_STATUS_ACTIVE)


def suspend_user(user_id: int) -> User:
    return set_user_status(user_id, USER_STATUS_SUSPENDED)


def list_users(
    page: PageRequest,
    *,
    role: str | None = None,
    status: str | None = None,
    search: str | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> tuple[list[User], dict]:
    query = db.session.query(User)
    if role:
        query = query.filter(User.role == role)
    if status:
        query = query.filter(User.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            User.email.ilike(pattern),
            User.name.ilike(pattern),
            User.referral_code.ilike(pattern),
        ))

    column = SORTABLE_USER_FIELDS.get(sort_by)
    if column is None:
        raise ValidationError(f"Cannot sort by {sort_by}")
    ordering = column.asc() if sort_order == "asc" else column.desc()
    query = query.order_by(ordering, User.id.desc() if sort_order != "asc" else User.id.asc())
    return paginate(query, page)


# =============================================================================
# REFERRALS
# =============================================================================

def regenerate_referral_code(user_id: int) -> User:
    with unit_of_work():
        user = get_user(user_id)
        user.referral_code = _generate_referral_code()
    return user


def validate_referral_code(code: str | None) -> dict:
    referrer = get_user_by_referral_code(code)
    if not referrer or not referrer.is_active:
        return {"valid": False, "message": "Invalid referral code"}
    return {
        "valid": True,
        "referrer_name": referrer.name,
        "message": "Referral code applied",
    }


def get_referrals(user_id: int, page: PageRequest) -> tuple[list[User], dict]:
    query = (
        db.session.query(User)
        .filter(User.referred_by_id == user_id)
        .order_by(User.created_at.desc(), User.id.desc())
    )
    return paginate(query, page)


# =============================================================================
# WHOLESALE APPLICATIONS
# =============================================================================

WHOLESALE_REQUIRED_FIELDS = ("business_name", "business_address", "business_phone", "business_email")
WHOLESALE_OPTIONAL_FIELDS = ("tax_id", "website", "years_in_business", "estimated_monthly_order", "notes")


def apply_for_wholesale(user_id: int, data: dict) -> WholesaleApplication:
    missing = [f for f in WHOLESALE_REQUIRED_FIELDS if not data.get(f)]
    if missing:
        raise ValidationError(f"{', '.join(missing)} required")

    user = get_user(user_id)
    if user.wholesale_eligible:
        raise StateConflictError("Account is already approved for wholesale")

    existing = (
        db.session.query(WholesaleApplication)
        .filter_by(user_id=user_id, status=APPLICATION_PENDING)
        .first()
    )
    if existing:
        raise StateConflictError("A wholesale application is already pending review")

    fields = {f: data[f] for f in WHOLESALE_REQUIRED_FIELDS}
    for f in WHOLESALE_OPTIONAL_FIELDS:
        if data.get(f) not in (None, ""):
            fields[f] = data[f]
    for f in ("years_in_business", "estimated_monthly_order"):
        if f in fields:
            fields[f] = coerce_int(fields[f], f, minimum=0)
    fields["business_email"] = normalize_email(fields["business_email"])

    with unit_of_work() as uow:
        application = WholesaleApplication(user_id=user_id, status=APPLICATION_PENDING, **fields)
        uow.add(application)
        uow.flush()
        task_service.create_task(
            f"Review wholesale application: {application.business_name}",
            category=CATEGORY_WHOLESALE_REVIEW,
            priority=PRIORITY_MEDIUM,
            description=f"{user.email} applied for wholesale pricing.",
            related=EntityRef(RelatedEntity.WHOLESALE_APPLICATION, application.id),
            created_by_user_id=user_id,
            uow=uow,
        )
    return application


def get_wholesale_application(application_id: int) -> WholesaleApplication:
    application = db.session.get(WholesaleApplication, application_id)
    if not application:
        raise NotFoundError(f"Wholesale application {application_id} not found")
    return application


def list_wholesale_applications(page: PageRequest, status: str | None = None) -> tuple[list[WholesaleApplication], dict]:
    query = db.session.query(WholesaleApplication)
    if status:
        query = query.filter(WholesaleApplication.status == status)
    query = query.order_by(WholesaleApplication.created_at.desc(), WholesaleApplication.id.desc())
    return paginate(query, page)


def approve_wholesale_application(application_id: int, admin_user_id: int) -> WholesaleApplication:
    with unit_of_work() as uow:
        application = get_wholesale_application(application_id)
        if application.status != APPLICATION_PENDING:
            raise StateConflictError(f"Application is already {application.status}")

        now = utcnow()
        application.status = APPLICATION_APPROVED
        application.reviewed_by_id = admin_user_id
        application.reviewed_at = now

        user = get_user(application.user_id)
        user.role = ROLE_WHOLESALE_BUYER
        user.wholesale_eligible = True
        user.wholesale_approved_at = now
        user.wholesale_approved_by_id = admin_user_id

        task_service.close_tasks_for(
            EntityRef(RelatedEntity.WHOLESALE_APPLICATION, application.id),
            user_id=admin_user_id,
            note="Application approved",
            uow=uow,
        )
    current_app.logger.info("Wholesale application %s approved by %s", application_id, admin_user_id)
    return application


def reject_wholesale_application(application_id: int, admin_user_id: int, reason: str | None) -> WholesaleApplication:
    if not reason or not reason.strip():
        raise ValidationError("rejection reason required")

    with unit_of_work() as uow:
        application = get_wholesale_application(application_id)
        if application.status != APPLICATION_PENDING:
            raise StateConflictError(f"Application is already {application.status}")

        application.status = APPLICATION_REJECTED
        application.reviewed_by_id = admin_user_id
        application.reviewed_at = utcnow()
        application.rejection_reason = reason.strip()

        task_service.close_tasks_for(
            EntityRef(RelatedEntity.WHOLESALE_APPLICATION, application.id),
            status=TASK_CANCELLED,
            user_id=admin_user_id,
            note=f"Application rejected: {reason.strip()}",
            uow=uow,
        )
    return application
