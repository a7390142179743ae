"""Remote/local store pairing with whole-operation fallback.

The pair is built once at startup. When a remote store is configured every
operation runs there first; if any step fails, the *whole* operation is redone
on the local store so a single decision never mixes state from both.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, TypeVar

from ratewall.adapters.rate_limit.base import WindowCounterStore
from ratewall.adapters.rate_limit.in_memory import InMemoryWindowStore
from ratewall.core.errors import StoreUnavailableError
from ratewall.core.logging import hash_for_log

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StoreBackends:
    """Remote store (optional) plus the always-available local store.

    Attributes:
        remote: Shared store, or None when running local-only.
        local: In-process store used standalone or as the fallback.
    """

    def __init__(
        self,
        *,
        local: InMemoryWindowStore,
        remote: WindowCounterStore | None = None,
        remote_cooldown_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the pair.

        Args:
            local: In-process store.
            remote: Optional shared store.
            remote_cooldown_seconds: After a remote failure, skip the remote store
                for this long so an outage does not cost a timeout per request.
                0 retries the remote store on every call.
            clock: Monotonic time source used for the cooldown only.
        """
        if remote_cooldown_seconds < 0:
            raise ValueError("remote_cooldown_seconds must be >= 0")
        self.local = local
        self.remote = remote
        self._cooldown = remote_cooldown_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._remote_retry_at = 0.0

    @property
    def mode(self) -> str:
        return "remote" if self.remote is not None else "local"

    def _remote_cooling_down(self) -> bool:
        with self._lock:
            return self._clock() < self._remote_retry_at

    def _mark_remote_failed(self) -> None:
        with self._lock:
            self._remote_retry_at = self._clock() + self._cooldown

    def run(
        self,
        operation: str,
        key: str,
        fn: Callable[[WindowCounterStore], T],
        *,
        allow_fallback: bool = True,
    ) -> T:
        """Run ``fn`` against the remote store, falling back to local on error.

        Args:
            operation: Short name used in logs (e.g. ``increment``).
            key: Store key the operation touches (logged hashed).
            fn: The complete operation, taking the store to run against.
            allow_fallback: When False a remote failure is re-raised instead of
                being redone locally (fail-closed deployments).

        Returns:
            Whatever ``fn`` returns.

        Raises:
            StoreUnavailableError: Remote failed and ``allow_fallback`` is False.
        """
        if self.remote is None:
            return fn(self.local)

        if self._remote_cooling_down():
            if not allow_fallback:
                raise StoreUnavailableError(
                    code="remote_store_cooling_down",
                    message="Remote store is cooling down after a failure",
                    details={"backend": self.remote.name},
                )
            return fn(self.local)

        try:
            return fn(self.remote)
        except Exception as exc:
            self._mark_remote_failed()
            logger.warning(
                "rate_limit.backend_failed",
                extra={
                    "operation": operation,
                    "key_hash": hash_for_log(key),
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                    "fallback": "local" if allow_fallback else "none",
                    "cooldown_s": self._cooldown,
                },
            )
            if not allow_fallback:
                if isinstance(exc, StoreUnavailableError):
                    raise
                raise StoreUnavailableError(
                    code="remote_store_unavailable",
                    message=str(exc),
                    details={"backend": self.remote.name},
                ) from exc
        return fn(self.local)

    def close(self) -> None:
        if self.remote is not None:
            self.remote.close()
        self.local.close()
