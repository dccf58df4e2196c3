"""Application error types.

Error codes are stable strings for programmatic handling; the exception
handlers in ``html2png.main`` turn every ``AppError`` into a JSON body of
the form ``{"error": {...}}``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from html2png.core.rate_limit import RateLimitResult


class AppError(Exception):
    """Base error for all html2png exceptions."""

    code: str = "internal_error"
    message: str = "An internal error occurred"
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.__class__.message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self, request_id: str | None = None) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = self.details
        if request_id:
            error["request_id"] = request_id
        return {"error": error}


class InvalidCredentialError(AppError):
    """Missing, malformed, expired, revoked or unknown credential (401).

    The message is deliberately the same for every cause.
    """

    code = "unauthorized"
    message = "Unauthorized"
    status_code = 401


class ForbiddenError(AppError):
    """Permission denied (403)."""

    code = "forbidden"
    message = "Permission denied"
    status_code = 403


class NotFoundError(AppError):
    """Resource not found (404)."""

    code = "not_found"
    message = "Resource not found"
    status_code = 404


class ConflictError(AppError):
    """Conflict with existing state (409)."""

    code = "conflict"
    message = "Conflict"
    status_code = 409


class ValidationError(AppError):
    """Request validation error (400)."""

    code = "validation_error"
    message = "Validation error"
    status_code = 400


class RateLimitedError(AppError):
    """Quota exceeded for the current window (429)."""

    code = "rate_limited"
    message = "Too many requests, please try again later"
    status_code = 429

    def __init__(self, result: RateLimitResult, message: str | None = None) -> None:
        super().__init__(message)
        self.result = result


class RenderError(AppError):
    """Any load, measure or capture failure while rendering (500).

    ``stage`` is the last pipeline stage completed before the failure;
    ``detail`` keeps the engine's own message for logs and development-mode
    responses only.
    """

    code = "conversion_failed"
    message = "Conversion failed"
    status_code = 500

    def __init__(self, stage: str, detail: str | None = None) -> None:
        super().__init__()
        self.stage = stage
        self.detail = detail


class HistoryWriteError(AppError):
    """Conversion history could not be persisted. Logged, never returned."""

    code = "history_write_failed"
    message = "Conversion history could not be saved"
