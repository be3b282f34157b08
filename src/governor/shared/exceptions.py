"""
Shared exceptions.

Governor failures are expressed as a small closed set of error kinds. Each
kind carries a user-facing message and a link to the screen where the
operator can fix the cause, so callers can route without parsing text.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Optional


@dataclass
class AppError(Exception):
    message: str = "Application error"
    details: Optional[dict[str, Any]] = None

    def __str__(self) -> str:
        return self.message


class NotFoundError(AppError):
    pass


class InvalidTokenError(AppError):
    def __init__(self, message: str = "Invalid token", details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message=message, details=details)


class TokenExpiredError(AppError):
    def __init__(self, message: str = "Token expired", details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message=message, details=details)


class GovernorError(AppError):
    """Base for every failure that crosses the governor boundary."""

    kind: ClassVar[str] = "governor_error"
    remedy: ClassVar[str | None] = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "error": self.kind,
            "message": self.message,
            "remedy": self.remedy,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(GovernorError):
    """Missing or invalid budget, target or settings; the user corrects input."""

    kind = "validation"
    remedy = "/dashboard/settings/dialer-automation"


class NoCallableLeadsError(GovernorError):
    """No lead can be dialed right now; sub_reason says why."""

    kind = "no_callable_leads"
    remedy = "/dashboard/leads"

    def __init__(
        self,
        message: str = "No callable leads",
        sub_reason: str | None = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, details=details)
        self.sub_reason = sub_reason

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["sub_reason"] = self.sub_reason
        return payload


class InsufficientBalanceError(GovernorError):
    """Prepaid balance too low and auto-refill is off."""

    kind = "insufficient_balance"
    remedy = "/dashboard/settings/balance"


class ConcurrentLaunchError(GovernorError):
    """A run is already active or in flight; callers treat this as a no-op."""

    kind = "concurrent_launch"
    remedy = None


class TransientFault(GovernorError):
    """A collaborator was unreachable; the operation can simply be retried."""

    kind = "transient_fault"
    remedy = None
