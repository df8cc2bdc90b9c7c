"""Domain error taxonomy.

Every error carries a user-facing message; the HTTP layer renders
``{"detail": message, "code": code}`` and never exposes database codes.
"""

from __future__ import annotations


class GamificationError(Exception):
    """Base class for errors surfaced to callers."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "An unexpected error occurred. Please try again."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(GamificationError):
    """Malformed input, rejected before any mutation."""

    status_code = 422
    code = "validation_error"
    default_message = "The request is invalid."


class ConflictError(GamificationError):
    """Uniqueness violation the user can correct."""

    status_code = 409
    code = "conflict"
    default_message = "A record with this information already exists."


class NotFoundError(GamificationError):
    """Referenced profile, quest or achievement does not exist."""

    status_code = 404
    code = "not_found"
    default_message = "The requested record was not found."


class TransientError(GamificationError):
    """Store or network unavailable; idempotent operations may be retried."""

    status_code = 503
    code = "unavailable"
    default_message = "The service is temporarily unavailable. Please try again."
