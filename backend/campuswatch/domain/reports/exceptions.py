"""Domain-level exceptions for the report lifecycle."""

from __future__ import annotations

from typing import Sequence

from campuswatch.infra.rate_limit import RateLimitExceeded


class ReportError(Exception):
    """Base class for report lifecycle errors.

    `kind` is the stable machine-checkable category surfaced to clients,
    `reason` a short code for the concrete cause.
    """

    kind: str = "internal"
    reason: str = "unknown"

    def __init__(self, reason: str | None = None, message: str | None = None) -> None:
        super().__init__(message or reason or self.reason)
        if reason:
            self.reason = reason
        self.message = message or self.reason.replace("_", " ")


class InvalidArgument(ReportError):
    kind = "invalid_argument"
    reason = "invalid_argument"

    def __init__(
        self,
        reason: str | None = None,
        message: str | None = None,
        *,
        field: str | None = None,
        errors: Sequence[dict[str, str]] | None = None,
    ) -> None:
        super().__init__(reason, message)
        if errors is not None:
            self.errors = list(errors)
        elif field is not None:
            self.errors = [{"field": field, "message": self.message}]
        else:
            self.errors = []


class Forbidden(ReportError):
    kind = "forbidden"
    reason = "forbidden"


class NotFound(ReportError):
    kind = "not_found"
    reason = "not_found"


class Conflict(ReportError):
    kind = "conflict"
    reason = "conflict"


class StaleVersion(Conflict):
    reason = "stale_version"


class EditWindowClosed(ReportError):
    kind = "edit_window_closed"
    reason = "edit_window_closed"


class StorageUnavailable(ReportError):
    kind = "storage_unavailable"
    reason = "storage_unavailable"


class Unauthenticated(ReportError):
    kind = "unauthenticated"
    reason = "invalid_token"


class RateLimited(RateLimitExceeded, ReportError):
    """Raised when report creation hits the hourly quota."""

    kind = "rate_limited"
    reason = "rate_limited"

    def __init__(
        self,
        reason: str | None = None,
        message: str | None = None,
        *,
        retry_after: int | None = None,
    ) -> None:
        ReportError.__init__(self, reason, message)
        self.retry_after = retry_after
