# Overview: Service-layer operations for discount codes.

from __future__ import annotations

from dataclasses import dataclass

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import DiscountCode
from ..models.discounts import DISCOUNT_PERCENTAGE, VALID_DISCOUNT_TYPES
from ..time_utils import utcnow, to_utc_z
from ..validation import coerce_choice, coerce_datetime, coerce_int
from .transaction import lock_for_update, unit_of_work


@dataclass(frozen=True)
class DiscountQuote:
    valid: bool
    discount_cents: int = 0
    message: str = ""
    code: str | None = None

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "discount_cents": self.discount_cents,
            "message": self.message,
            "code": self.code,
        }


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def _clean_fields(data: dict, *, partial: bool) -> dict:
    allowed = (
        "code", "description", "discount_type", "value", "min_purchase_cents",
        "max_discount_cents", "starts_at", "ends_at", "usage_limit", "is_active",
    )
    cleaned = {k: data[k] for k in allowed if k in data}
    if not partial:
        missing = [f for f in ("code", "discount_type", "value") if cleaned.get(f) in (None, "")]
        if missing:
            raise ValidationError(f"{', '.join(missing)} required")

    if "code" in cleaned:
        cleaned["code"] = normalize_code(cleaned["code"])
        if not cleaned["code"]:
            raise ValidationError("code cannot be empty")
    if "discount_type" in cleaned:
        coerce_choice(cleaned["discount_type"], "discount_type", VALID_DISCOUNT_TYPES)
    if "value" in cleaned:
        cleaned["value"] = coerce_int(cleaned["value"], "value", minimum=1)
    for f in ("min_purchase_cents", "max_discount_cents", "usage_limit"):
        if cleaned.get(f) is not None:
            cleaned[f] = coerce_int(cleaned[f], f, minimum=0)
    for f in ("starts_at", "ends_at"):
        if f in cleaned:
            cleaned[f] = coerce_datetime(cleaned[f], f)
    if "is_active" in cleaned:
        cleaned["is_active"] = bool(cleaned["is_active"])
    return cleaned


def _check_percentage(discount: DiscountCode) -> None:
    if discount.discount_type == DISCOUNT_PERCENTAGE and discount.value > 10_000:
        raise ValidationError("Percentage discounts cannot exceed 100%")
    if discount.starts_at and discount.ends_at and discount.ends_at <= discount.starts_at:
        raise ValidationError("ends_at must be after starts_at")


def create_discount_code(data: dict) -> DiscountCode:
    fields = _clean_fields(data, partial=False)
    if get_discount_code(fields["code"]):
        raise ValidationError(f"Discount code {fields['code']} already exists")
    with unit_of_work() as uow:
        discount = DiscountCode(usage_count=0, **fields)
        _check_percentage(discount)
        uow.add(discount)
        uow.flush()
    return discount


def update_discount_code(discount_id: int, data: dict) -> DiscountCode:
    fields = _clean_fields(data, partial=True)
    with unit_of_work():
        discount = get_discount_code_by_id(discount_id)
        if "code" in fields and fields["code"] != discount.code and get_discount_code(fields["code"]):
            raise ValidationError(f"Discount code {fields['code']} already exists")
        for key, value in fields.items():
            setattr(discount, key, value)
        _check_percentage(discount)
    return discount


def deactivate_discount_code(discount_id: int) -> DiscountCode:
    with unit_of_work():
        discount = get_discount_code_by_id(discount_id)
        discount.is_active = False
    return discount


def get_discount_code(code: str) -> DiscountCode | None:
    return db.session.query(DiscountCode).filter_by(code=normalize_code(code)).first()


def get_discount_code_by_id(discount_id: int) -> DiscountCode:
    discount = db.session.get(DiscountCode, discount_id)
    if not discount:
        raise NotFoundError(f"Discount code {discount_id} not found")
    return discount


def list_discount_codes(active_only: bool = False) -> list[DiscountCode]:
    query = db.session.query(DiscountCode)
    if active_only:
        query = query.filter(DiscountCode.is_active.is_(True))
    return query.order_by(DiscountCode.created_at.desc(), DiscountCode.id.desc()).all()


def quote(discount: DiscountCode | None, subtotal_cents: int) -> DiscountQuote:
    """Price a code against a subtotal without touching usage counts."""
    if discount is None or not discount.is_active:
        return DiscountQuote(False, 0, "Invalid discount code")

    now = utcnow()
    if discount.starts_at and now < discount.starts_at:
        return DiscountQuote(False, 0, f"Discount code is valid from {to_utc_z(discount.starts_at)}", discount.code)
    if discount.ends_at and now > discount.ends_at:
        return DiscountQuote(False, 0, "Discount code has expired", discount.code)
    if discount.usage_limit is not None and discount.usage_count >= discount.usage_limit:
        return DiscountQuote(False, 0, "Discount code usage limit reached", discount.code)
    if discount.min_purchase_cents and subtotal_cents < discount.min_purchase_cents:
        return DiscountQuote(
            False, 0,
            f"Minimum purchase of {discount.min_purchase_cents} cents required",
            discount.code,
        )

    if discount.discount_type == DISCOUNT_PERCENTAGE:
        amount = (subtotal_cents * discount.value + 5_000) // 10_000
    else:
        amount = discount.value
    if discount.max_discount_cents is not None:
        amount = min(amount, discount.max_discount_cents)
    amount = max(0, min(amount, subtotal_cents))
    return DiscountQuote(True, amount, "Discount applied", discount.code)


def validate_discount_code(code: str | None, subtotal_cents: int) -> DiscountQuote:
    if not normalize_code(code):
        return DiscountQuote(False, 0, "Discount code required")
    return quote(get_discount_code(code), subtotal_cents)


def redeem(code: str, subtotal_cents: int, uow) -> DiscountQuote:
    """
    Lock, re-validate and count one use of a code inside the caller's unit.

    Raises ValidationError if the code is not usable for this subtotal.
    """
    discount = lock_for_update(
        db.session.query(DiscountCode).filter_by(code=normalize_code(code))
    ).first()
    result = quote(discount, subtotal_cents)
    if not result.valid:
        raise ValidationError(result.message)
    discount.usage_count = (discount.usage_count or 0) + 1
    uow.flush()
    return result
