# backend/storefront/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # POSTGRES_URL is required in production; DATABASE_URL kept for local overrides
    SQLALCHEMY_DATABASE_URI = os.environ.get("POSTGRES_URL") or os.environ.get("DATABASE_URL")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

    # JWT signing (python-jose)
    JWT_SECRET = os.environ.get("JWT_SECRET")
    JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
    ACCESS_TOKEN_TTL_MINUTES = _env_int("ACCESS_TOKEN_TTL_MINUTES", 60)
    REFRESH_TOKEN_TTL_DAYS = _env_int("REFRESH_TOKEN_TTL_DAYS", 7)

    # Request guards
    CSRF_ENABLED = _env_bool("CSRF_ENABLED", True)
    CSRF_COOKIE_NAME = "csrf_token"
    CSRF_HEADER_NAME = "X-CSRF-Token"
    CSRF_EXEMPT_PATHS = (
        "/api/auth/login",
        "/api/auth/register",
        "/api/auth/logout",
        "/api/auth/verify",
    )
    RATELIMIT_ENABLED = _env_bool("RATELIMIT_ENABLED", True)
    RATELIMIT_CLEANUP_INTERVAL_SECONDS = 60
    # Number of reverse proxies in front of the app; 0 ignores X-Forwarded-For
    TRUSTED_PROXY_COUNT = _env_int("TRUSTED_PROXY_COUNT", 0)

    # Order policy
    RETAIL_MIN_UNITS = _env_int("RETAIL_MIN_UNITS", 5)
    WHOLESALE_MIN_UNITS = _env_int("WHOLESALE_MIN_UNITS", 100)

    # Commission rates in basis points (500 = 5%)
    REFERRAL_COMMISSION_BPS = _env_int("REFERRAL_COMMISSION_BPS", 500)
    FULFILLMENT_COMMISSION_BPS = _env_int("FULFILLMENT_COMMISSION_BPS", 1000)

    QUERY_CACHE_TTL_SECONDS = _env_int("QUERY_CACHE_TTL_SECONDS", 300)

    # Manual payment instructions shown to customers
    ETRANSFER_RECIPIENT = os.environ.get("ETRANSFER_RECIPIENT", "payments@example.com")
    BITCOIN_RECEIVING_ADDRESS = os.environ.get("BITCOIN_RECEIVING_ADDRESS", "")

    CORS_ALLOWED_ORIGINS = tuple(
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
        ).split(",")
        if origin.strip()
    )

    REQUIRED_SETTINGS = ("SQLALCHEMY_DATABASE_URI", "JWT_SECRET")
