# Overview: Request guards: double-submit CSRF check and per-route rate limiting.

"""
Request Guards

CSRF (double-submit cookie):
- GET /api/csrf issues a random token in the `csrf_token` cookie and the body
- Every non-GET/HEAD/OPTIONS request under /api/ must echo it in the
  X-CSRF-Token header; the comparison is constant-time
- Login/register/logout/verify are exempt; failure is 403

RATE LIMITING:
- @rate_limit(limit, window_seconds) counts requests per client IP + path
- Counters live in memory on the app (app.extensions["rate_limiter"]) with a
  wall-clock expiry; expired entries are swept at most once per interval
- Over the limit: 429 with Retry-After and X-RateLimit-* headers
- Per-process only: several workers each keep their own counters
"""

from __future__ import annotations

import hmac
import math
import secrets
import threading
import time
from dataclasses import dataclass
from functools import wraps
from typing import Callable

from flask import current_app, g, jsonify, request


SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


# =============================================================================
# CSRF
# =============================================================================

def generate_csrf_token() -> str:
    return secrets.token_urlsafe(32)


def csrf_protect():
    """before_request hook; returns a 403 response or None."""
    if not current_app.config.get("CSRF_ENABLED", True):
        return None
    if request.method in SAFE_METHODS or not request.path.startswith("/api/"):
        return None
    if request.path in current_app.config.get("CSRF_EXEMPT_PATHS", ()):
        return None

    cookie_token = request.cookies.get(current_app.config["CSRF_COOKIE_NAME"])
    header_token = request.headers.get(current_app.config["CSRF_HEADER_NAME"])
    if not cookie_token or not header_token:
        return jsonify({"error": "CSRF token missing"}), 403
    if not hmac.compare_digest(cookie_token.encode(), header_token.encode()):
        return jsonify({"error": "CSRF token invalid"}), 403
    return None


def set_csrf_cookie(response, token: str):
    response.set_cookie(
        current_app.config["CSRF_COOKIE_NAME"],
        token,
        httponly=False,
        samesite="Strict",
        secure=not current_app.config.get("TESTING", False) and not current_app.debug,
        path="/",
    )
    return response


# =============================================================================
# RATE LIMITING
# =============================================================================

@dataclass
class _Window:
    count: int
    expires_at: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int


class RateLimiter:
    """Fixed-window counters keyed by an arbitrary string."""

    def __init__(self, cleanup_interval: float = 60.0, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._cleanup_interval = cleanup_interval
        self._next_cleanup = clock() + cleanup_interval
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        now = self._clock()
        with self._lock:
            if now >= self._next_cleanup:
                self._sweep(now)

            window = self._windows.get(key)
            if window is None or window.expires_at <= now:
                window = _Window(count=0, expires_at=now + window_seconds)
                self._windows[key] = window
            window.count += 1

            allowed = window.count <= limit
            return RateLimitDecision(
                allowed=allowed,
                limit=limit,
                remaining=max(limit - window.count, 0),
                reset_at=window.expires_at,
                retry_after=0 if allowed else max(int(math.ceil(window.expires_at - now)), 1),
            )

    def _sweep(self, now: float) -> None:
        expired = [k for k, w in self._windows.items() if w.expires_at <= now]
        for k in expired:
            del self._windows[k]
        self._next_cleanup = now + self._cleanup_interval

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def __len__(self) -> int:
        return len(self._windows)


def init_rate_limiter(app) -> RateLimiter:
    limiter = RateLimiter(cleanup_interval=app.config.get("RATELIMIT_CLEANUP_INTERVAL_SECONDS", 60))
    app.extensions["rate_limiter"] = limiter
    return limiter


def client_ip() -> str:
    # X-Forwarded-For is only honored through ProxyFix (TRUSTED_PROXY_COUNT)
    return request.remote_addr or "unknown"


def _apply_headers(response, decision: RateLimitDecision):
    response.headers["X-RateLimit-Limit"] = str(decision.limit)
    response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
    response.headers["X-RateLimit-Reset"] = str(int(decision.reset_at))
    return response


def rate_limit(limit: int, window_seconds: int = 60):
    """Limit a route to `limit` requests per `window_seconds` per client IP."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_app.config.get("RATELIMIT_ENABLED", True):
                return f(*args, **kwargs)

            limiter: RateLimiter = current_app.extensions["rate_limiter"]
            decision = limiter.hit(f"{client_ip()}:{request.path}", limit, window_seconds)
            if not decision.allowed:
                current_app.logger.warning("Rate limit exceeded for %s on %s", client_ip(), request.path)
                response = jsonify({"error": "Too many requests, please try again later"})
                response.status_code = 429
                response.headers["Retry-After"] = str(decision.retry_after)
                return _apply_headers(response, decision)

            g.rate_limit_decision = decision
            response = current_app.make_response(f(*args, **kwargs))
            return _apply_headers(response, decision)

        return decorated_function
    return decorator
