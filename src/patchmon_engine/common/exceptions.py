"""PatchMon-Engine exception hierarchy.

Every error carries an HTTP status so the application-level handler can
translate it without per-route bookkeeping.
"""

from typing import Any


class PatchmonError(Exception):
    """Base exception for all PatchMon errors."""

    status_code = 500

    def __init__(
        self,
        message: str = "",
        code: str = "PATCHMON_ERROR",
        reason: str | None = None,
        extra: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.reason = reason
        self.extra = extra or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.reason is not None:
            body["reason"] = self.reason
        body.update(self.extra)
        return body


class ValidationFailedError(PatchmonError):
    """Raised when a request is well-formed but semantically invalid."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", **kwargs: Any):
        super().__init__(message, code="VALIDATION_ERROR", **kwargs)


class AuthenticationError(PatchmonError):
    """Raised when a caller cannot be authenticated. Always carries a reason."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", reason: str | None = None, **kwargs: Any):
        super().__init__(message, code="UNAUTHORIZED", reason=reason or message, **kwargs)


class PermissionDeniedError(PatchmonError):
    """Raised when an authenticated caller lacks a capability."""

    status_code = 403

    def __init__(self, message: str = "Insufficient permissions", **kwargs: Any):
        super().__init__(message, code="FORBIDDEN", **kwargs)


class NotFoundError(PatchmonError):
    """Raised when a requested record does not exist."""

    status_code = 404

    def __init__(self, message: str = "Not found", **kwargs: Any):
        super().__init__(message, code="NOT_FOUND", **kwargs)


class ConflictError(PatchmonError):
    """Raised on duplicate usernames, emails, machine IDs or friendly names."""

    status_code = 409

    def __init__(self, message: str = "Already exists", **kwargs: Any):
        super().__init__(message, code="CONFLICT", **kwargs)


class RateLimitError(PatchmonError):
    """Raised when an enrollment token has exhausted its daily quota."""

    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded", **kwargs: Any):
        super().__init__(message, code="RATE_LIMITED", **kwargs)


class ReconciliationError(PatchmonError):
    """Raised when an agent report could not be applied."""

    status_code = 500

    def __init__(self, message: str = "Failed to update host", **kwargs: Any):
        super().__init__(message, code="RECONCILIATION_FAILED", **kwargs)
