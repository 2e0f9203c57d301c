# Overview: Service-layer JWT issuance, verification, rotation and revocation.

"""
Token Service

Access and refresh tokens are HS256 JWTs signed with JWT_SECRET via
python-jose. Payload:

    {userId, email, role, type: "access"|"refresh", jti, iat, exp}

Every verification also checks the token_blacklist table by jti, which is
how logout, refresh rotation and admin suspension revoke tokens before they
expire.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from flask import current_app
from jose import jwt, JWTError, ExpiredSignatureError

from ..errors import AuthenticationError
from ..extensions import db
from ..models import User, TokenBlacklist
from ..models.users import USER_STATUS_ACTIVE
from ..time_utils import utcnow


TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": "Bearer",
            "expires_in": self.expires_in,
        }


def _secret() -> str:
    return current_app.config["JWT_SECRET"]


def _algorithm() -> str:
    return current_app.config.get("JWT_ALGORITHM", "HS256")


def _encode(user: User, token_type: str, ttl: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "userId": user.id,
        "email": user.email,
        "role": user.role,
        "type": token_type,
        "jti": secrets.token_hex(16),
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
    }
    return jwt.encode(payload, _secret(), algorithm=_algorithm())


def issue_token_pair(user: User) -> TokenPair:
    access_ttl = timedelta(minutes=current_app.config["ACCESS_TOKEN_TTL_MINUTES"])
    refresh_ttl = timedelta(days=current_app.config["REFRESH_TOKEN_TTL_DAYS"])
    return TokenPair(
        access_token=_encode(user, TOKEN_TYPE_ACCESS, access_ttl),
        refresh_token=_encode(user, TOKEN_TYPE_REFRESH, refresh_ttl),
        expires_in=int(access_ttl.total_seconds()),
    )


def decode_token(token: str, expected_type: str) -> dict:
    """Decode and check signature, expiry, type and blacklist."""
    if not token:
        raise AuthenticationError("Authentication required")
    try:
        payload = jwt.decode(token, _secret(), algorithms=[_algorithm()])
    except ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except JWTError:
        raise AuthenticationError("Invalid token")

    if payload.get("type") != expected_type:
        raise AuthenticationError("Invalid token type")

    jti = payload.get("jti")
    if not jti or is_blacklisted(jti):
        raise AuthenticationError("Token has been revoked")

    return payload


def verify_access_token(token: str) -> tuple[User, dict]:
    """
    Resolve an access token to its user.

    Raises AuthenticationError when the token is bad or the account is no
    longer Active.
    """
    payload = decode_token(token, TOKEN_TYPE_ACCESS)
    user = db.session.get(User, payload.get("userId"))
    if not user:
        raise AuthenticationError("User not found")
    if user.status != USER_STATUS_ACTIVE:
        raise AuthenticationError("Account is not active")
    return user, payload


def verify_refresh_token(token: str) -> tuple[User, dict]:
    payload = decode_token(token, TOKEN_TYPE_REFRESH)
    user = db.session.get(User, payload.get("userId"))
    if not user or user.status != USER_STATUS_ACTIVE:
        raise AuthenticationError("Invalid refresh token")
    return user, payload


def refresh_tokens(refresh_token: str) -> TokenPair:
    """Rotate: the presented refresh token is revoked and a new pair issued."""
    user, payload = verify_refresh_token(refresh_token)
    _blacklist_payload(payload, reason="rotated")
    db.session.commit()
    return issue_token_pair(user)


def is_blacklisted(jti: str) -> bool:
    return db.session.query(TokenBlacklist.id).filter_by(jti=jti).first() is not None


def _blacklist_payload(payload: dict, reason: str) -> None:
    jti = payload.get("jti")
    if not jti or is_blacklisted(jti):
        return
    exp = payload.get("exp")
    expires_at = (
        datetime.fromtimestamp(exp, tz=timezone.utc).replace(tzinfo=None)
        if exp
        else utcnow() + timedelta(days=current_app.config["REFRESH_TOKEN_TTL_DAYS"])
    )
    db.session.add(TokenBlacklist(
        jti=jti,
        user_id=payload.get("userId"),
        reason=reason,
        expires_at=expires_at,
    ))


def blacklist_token(token: str, reason: str = "logout") -> bool:
    """
    Revoke a token by jti.

    Returns False (without raising) if the token cannot be decoded: logging
    out with an already-invalid token is not an error.
    """
    try:
        payload = jwt.decode(
            token,
            _secret(),
            algorithms=[_algorithm()],
            options={"verify_exp": False},
        )
    except JWTError:
        return False
    _blacklist_payload(payload, reason)
    db.session.commit()
    return True


def purge_expired_blacklist() -> int:
    """Delete blacklist rows whose tokens would be expired anyway."""
    deleted = (
        db.session.query(TokenBlacklist)
        .filter(TokenBlacklist.expires_at < utcnow())
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return deleted
