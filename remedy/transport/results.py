"""
Outcome values returned by the sync transport.

Transport calls never raise. Callers inspect the returned value and handle
each case explicitly.
"""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class TransportResult:
    """Base class for transport outcomes."""

    @property
    def ok(self) -> bool:
        return False

    @property
    def reason(self) -> str:
        return ""


@dataclass(frozen=True)
class Ok(TransportResult):
    """The remote accepted the request."""
    data: Any = None
    status_code: int = 200

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Conflict(TransportResult):
    """The remote detected a version conflict (HTTP 409)."""
    message: str = "Conflict detected"
    info: dict = field(default_factory=dict)
    status_code: int = 409

    @property
    def reason(self) -> str:
        return self.message


@dataclass(frozen=True)
class Rejected(TransportResult):
    """The remote refused the request (4xx) or answered with garbage."""
    message: str
    status_code: Optional[int] = None

    @property
    def reason(self) -> str:
        return self.message


@dataclass(frozen=True)
class Timeout(TransportResult):
    """The request timed out. Not retried."""
    message: str = "Request timeout"

    @property
    def reason(self) -> str:
        return self.message


@dataclass(frozen=True)
class NetworkError(TransportResult):
    """Connection errors or 5xx responses persisted through every retry."""
    message: str
    attempts: int = 0

    @property
    def reason(self) -> str:
        return self.message
