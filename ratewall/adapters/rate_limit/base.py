"""Window counter store interfaces.

The evaluator and block list depend on this abstraction (not the concrete
implementation) so the shared remote store and the in-process fallback are
interchangeable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class WindowCount:
    """Counter state observed right after an increment.

    Attributes:
        count: Number of hits recorded in the current window, this one included.
        reset_at: UNIX epoch seconds when the current window ends.
    """

    count: int
    reset_at: float

    def ttl_remaining(self, now: float) -> float:
        """Seconds left in the window as seen at ``now`` (never negative)."""
        return max(0.0, self.reset_at - now)


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of evaluating one request against a policy.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the current window resets.
        retry_after_seconds: Suggested wait time in seconds when blocked.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after_seconds: int | None


class WindowCounterStore(ABC):
    """Interface for key -> (count, expiry) stores."""

    name: str = "store"

    @abstractmethod
    def increment_and_get(self, key: str, window_seconds: int) -> WindowCount:
        """Atomically add one hit to ``key`` and return the window state.

        A key that is absent or expired starts a fresh window of
        ``window_seconds``.

        Raises:
            StoreUnavailableError: When the backend cannot complete the call.
        """
        raise NotImplementedError

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Return True when ``key`` is present and not expired."""
        raise NotImplementedError

    @abstractmethod
    def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
        raise NotImplementedError

    def close(self) -> None:
        """Release backend resources (no-op by default)."""
