from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .errors import ValidationError
from .time_utils import parse_iso_datetime


# Maximum price: $99,999.99 (9,999,999 cents)
MAX_PRICE_CENTS = 9_999_999
MAX_PAGE_SIZE = 100

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def require_fields(data: dict | None, *fields: str) -> dict:
    """Ensure a JSON body is present and carries every named field."""
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"{', '.join(missing)} required")
    return data


def normalize_email(value: Any) -> str:
    if not isinstance(value, str):
        raise ValidationError("email must be a string")
    email = value.strip().lower()
    if not _EMAIL_RE.match(email) or len(email) > 255:
        raise ValidationError("Invalid email address")
    return email


def coerce_int(value: Any, field: str, *, minimum: int | None = None) -> int:
    """
    Strict integer coercion for JSON and query-string input.

    Rejects floats, booleans and scientific notation.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be an integer")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    return result


def coerce_price_cents(value: Any, field: str = "price_cents") -> int:
    cents = coerce_int(value, field, minimum=0)
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} exceeds maximum allowed value")
    return cents


def coerce_datetime(value: Any, field: str) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def coerce_choice(value: Any, field: str, choices) -> str:
    if value not in choices:
        raise ValidationError(f"Invalid {field} '{value}'. Must be one of: {', '.join(choices)}")
    return value


@dataclass(frozen=True)
class PageRequest:
    page: int = 1
    limit: int = 20

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def parse_pagination(args) -> PageRequest:
    page = coerce_int(args.get("page", 1), "page", minimum=1)
    limit = coerce_int(args.get("limit", 20), "limit", minimum=1)
    return PageRequest(page=page, limit=min(limit, MAX_PAGE_SIZE))


def paginate(query, page: PageRequest) -> tuple[list, dict]:
    """Apply offset/limit to a SQLAlchemy query and build the pagination block."""
    total = query.order_by(None).count()
    rows = query.offset(page.offset).limit(page.limit).all()
    total_pages = (total + page.limit - 1) // page.limit if total else 0
    return rows, {
        "total": total,
        "page": page.page,
        "limit": page.limit,
        "total_pages": total_pages,
    }
