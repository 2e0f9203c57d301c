# Overview: Domain exception taxonomy and its mapping onto HTTP responses.

"""
Storefront error taxonomy.

Services raise these; route handlers catch them and translate to a status
code with error_response(). Anything outside this hierarchy is an internal
error: routes log it with current_app.logger.exception and return a generic
500 body so details never leak to clients.
"""

from __future__ import annotations

from flask import jsonify


class StorefrontError(Exception):
    """Base class for all domain errors."""

    status_code = 400

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(StorefrontError, ValueError):
    """400-level input problem."""


class StateConflictError(StorefrontError, ValueError):
    """Resource exists but is in the wrong state for the requested transition."""


class AuthenticationError(StorefrontError):
    """Missing, invalid, expired or blacklisted credentials."""

    status_code = 401


class PermissionDeniedError(StorefrontError):
    """Authenticated, but the role is not allowed to do this."""

    status_code = 403


class NotFoundError(StorefrontError):
    status_code = 404


class ConfigurationError(RuntimeError):
    """Raised at boot when required settings are missing."""


def error_response(exc: StorefrontError):
    return jsonify(exc.to_dict()), exc.status_code
