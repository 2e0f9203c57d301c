# Overview: Service-layer password hashing and credential checks.

"""
Authentication Service

WHY: Every order, payout and confirmation is attributed to an account, so
credentials have to be strong and stored safely.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters; upper, lower, digit and special char required
- Only Active accounts may sign in; Suspended/Pending are refused with the
  same message as a bad password
- Session state lives in JWTs (see token_service.py)
"""

import re

import bcrypt
from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import User
from ..models.users import USER_STATUS_ACTIVE
from ..time_utils import utcnow


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>?_\-+=]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then bcrypt-hash (cost 12 unless BCRYPT_ROUNDS overrides)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe check; malformed hashes simply fail."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def authenticate(email: str, password: str) -> User | None:
    """
    Return the user for a valid email/password pair, else None.

    Records last_login_at on success.
    """
    if not email or not password:
        return None

    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user or not verify_password(password, user.password_hash):
        return None

    if user.status != USER_STATUS_ACTIVE:
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
