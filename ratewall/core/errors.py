"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, NotRequired, TypedDict

if TYPE_CHECKING:
    from ratewall.adapters.rate_limit.base import RateLimitDecision


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    http_status: int
    retry_after: float
    backend: str
    command: str
    policy: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input validation fails."""


class ConfigurationAppError(AppError):
    """Raised for deployment/programming mistakes such as an unknown policy."""


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class StoreUnavailableError(AppError):
    """Raised when a counter store backend cannot complete an operation."""


class RateLimitExceededError(AppError):
    """Raised at the HTTP edge to turn a denied decision into a 429.

    The cause (limit exceeded or explicit block) stays in ``reason`` for
    logging; clients always receive the same generic response.
    """

    def __init__(self, decision: "RateLimitDecision", *, reason: str = "limit_exceeded") -> None:
        self.decision = decision
        self.reason = reason
        super().__init__(
            code="rate_limited",
            message="Too many requests. Please try again later.",
            details={"retry_after": decision.retry_after_seconds or 0},
        )
