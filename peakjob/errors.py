"""Error taxonomy for the job client.

Actions never raise for service-side failures; they record them on their
error channel. The orchestrator turns them into these exceptions at the
``run()`` boundary.
"""

from __future__ import annotations

from typing import Optional

from .constants import ERROR_AUTHENTICATION


class PeakJobError(RuntimeError):
    """Base class for every failure surfaced by ``JobOrchestrator.run()``."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.message = str(message)
        self.operation = operation

    def __str__(self) -> str:
        if self.operation:
            return f"{self.operation}: {self.message}"
        return self.message


class TransportError(PeakJobError):
    """Network failure, non-success HTTP status or host key mismatch."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, operation)
        self.status_code = status_code


class ServiceError(PeakJobError):
    """The service answered, but reported an application-level failure."""

    def __init__(self, message: str, code: int, operation: Optional[str] = None):
        super().__init__(message, operation)
        self.code = int(code)

    @property
    def is_auth_failure(self) -> bool:
        return self.code == ERROR_AUTHENTICATION

    @classmethod
    def from_action(cls, action, operation: Optional[str] = None) -> "ServiceError":
        return cls(
            action.error_message or "Unknown service error",
            action.error_code,
            operation or action.ACTION,
        )


class ValidationError(PeakJobError):
    """Local precondition failure. Never involves a network round-trip."""


class UserCancelled(PeakJobError):
    """A selection collaborator returned None. Not an error for callers."""
