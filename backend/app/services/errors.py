from __future__ import annotations

from typing import Any


class ResumeAccessError(Exception):
    """
    Base class for every failure the resume engine surfaces to callers.

    `kind` is the stable machine-readable error code; `message` is safe to show
    to end users. Policy and validation failures are terminal; only
    StorageUnavailable is worth retrying.
    """

    kind = "INTERNAL_ERROR"
    status_code = 500
    default_message = "Request failed"
    retryable = False

    def __init__(
        self,
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
        retry_after_seconds: int | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.details = dict(details or {})
        self.retry_after_seconds = retry_after_seconds
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.kind, "message": self.message}
        details = dict(self.details)
        if self.retry_after_seconds is not None:
            details["retry_after_seconds"] = self.retry_after_seconds
        if details:
            payload["details"] = details
        return payload

    def headers(self) -> dict[str, str] | None:
        if self.retry_after_seconds is None:
            return None
        return {"Retry-After": str(max(1, int(self.retry_after_seconds)))}


class NotFound(ResumeAccessError):
    kind = "NOT_FOUND"
    status_code = 404
    default_message = "Not found"


class Forbidden(ResumeAccessError):
    kind = "FORBIDDEN"
    status_code = 403
    default_message = "You do not have access to this resume"

    def __init__(self, message: str | None = None, *, reason: str = "no_grant") -> None:
        super().__init__(message, details={"reason": reason})
        self.reason = reason


class RateLimited(ResumeAccessError):
    kind = "RATE_LIMITED"
    status_code = 429
    default_message = "Too many access attempts. Please try again later."


class QuotaExceeded(ResumeAccessError):
    kind = "QUOTA_EXCEEDED"
    status_code = 429
    default_message = "Daily upload limit reached"


class InvalidInput(ResumeAccessError):
    kind = "INVALID_INPUT"
    status_code = 400
    default_message = "Invalid input"


class TokenInvalid(ResumeAccessError):
    kind = "TOKEN_INVALID"
    status_code = 400
    default_message = "Invalid or expired upload token"


class TokenOwnerMismatch(ResumeAccessError):
    kind = "TOKEN_OWNER_MISMATCH"
    status_code = 403
    default_message = "Upload token was issued to a different user"


class ScanNotClean(ResumeAccessError):
    kind = "SCAN_NOT_CLEAN"
    status_code = 409
    default_message = "Resume has not passed the security scan"


class StorageUnavailable(ResumeAccessError):
    kind = "STORAGE_UNAVAILABLE"
    status_code = 503
    default_message = "File storage is temporarily unavailable. Please retry."
    retryable = True


class Conflict(ResumeAccessError):
    kind = "CONFLICT"
    status_code = 409
    default_message = "Conflicting update"


class AlreadyShared(Conflict):
    kind = "ALREADY_SHARED"
    default_message = "Resume already shared with this company"
