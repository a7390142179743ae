"""Fixed-window rate limit evaluation.

Counting strategy:
- One counter per ``ratelimit:<policy>:<identifier>`` key, so the same phone
  number is counted separately by ``otp-send`` and ``otp-verify``.
- Windows are fixed, not sliding: a client straddling a boundary can land up
  to ``2 * limit - 1`` requests across the two adjacent windows.
- Every call increments, denied calls included, so retry floods keep counting.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Callable

from ratewall.adapters.rate_limit.base import RateLimitDecision, WindowCount
from ratewall.core.errors import StoreUnavailableError
from ratewall.core.logging import hash_for_log
from ratewall.services.backends import StoreBackends
from ratewall.services.policies import Policy

logger = logging.getLogger(__name__)

KEY_PREFIX = "ratelimit"

DEGRADED_LOCAL = "local"
DEGRADED_DENY = "deny"


def counter_key(policy: Policy, identifier: str) -> str:
    return f"{KEY_PREFIX}:{policy.name}:{identifier}"


class RateLimitEvaluator:
    """Turns store increments into allow/deny decisions."""

    def __init__(
        self,
        backends: StoreBackends,
        *,
        clock: Callable[[], float] = time.time,
        degraded_mode: str = DEGRADED_LOCAL,
    ) -> None:
        """Initialize the evaluator.

        Args:
            backends: Remote/local store pair.
            clock: Time source function returning UNIX time in seconds.
            degraded_mode: ``local`` counts per process while the remote store
                is failing (fail-open); ``deny`` rejects every request instead
                (fail-closed).

        Raises:
            ValueError: If degraded_mode is unknown.
        """
        if degraded_mode not in (DEGRADED_LOCAL, DEGRADED_DENY):
            raise ValueError(f"degraded_mode must be {DEGRADED_LOCAL!r} or {DEGRADED_DENY!r}")
        self._backends = backends
        self._clock = clock
        self._degraded_mode = degraded_mode

    def now(self) -> float:
        """Current time from the clock decisions are computed with."""
        return self._clock()

    def evaluate(self, identifier: str, policy: Policy) -> RateLimitDecision:
        """Count one request for ``identifier`` and decide whether it may proceed.

        Args:
            identifier: Caller identity (phone number, ``user:<id>``, ``ip:<addr>``).
            policy: Limit and window to apply.

        Returns:
            RateLimitDecision. A denied decision is a normal return value.

        Raises:
            ValueError: If identifier is empty.
        """
        if not identifier:
            raise ValueError("identifier must be a non-empty string")

        key = counter_key(policy, identifier)
        try:
            window = self._backends.run(
                "increment",
                key,
                lambda store: store.increment_and_get(key, policy.window_seconds),
                allow_fallback=self._degraded_mode == DEGRADED_LOCAL,
            )
        except StoreUnavailableError:
            return self._fail_closed(policy)

        decision = self._decide(policy, window)
        if not decision.allowed:
            logger.info(
                "rate_limit.exceeded",
                extra={
                    "policy": policy.name,
                    "key_hash": hash_for_log(key),
                    "count": window.count,
                    "limit": policy.limit,
                    "retry_after_s": decision.retry_after_seconds,
                },
            )
        return decision

    def _decide(self, policy: Policy, window: WindowCount) -> RateLimitDecision:
        now = self._clock()
        ttl = window.ttl_remaining(now)
        allowed = window.count <= policy.limit
        return RateLimitDecision(
            allowed=allowed,
            limit=policy.limit,
            remaining=max(0, policy.limit - window.count),
            reset_at=max(window.reset_at, now),
            retry_after_seconds=None if allowed else max(0, math.ceil(ttl)),
        )

    def _fail_closed(self, policy: Policy) -> RateLimitDecision:
        logger.warning(
            "rate_limit.fail_closed",
            extra={"policy": policy.name, "degraded_mode": self._degraded_mode},
        )
        return RateLimitDecision(
            allowed=False,
            limit=policy.limit,
            remaining=0,
            reset_at=self._clock() + policy.window_seconds,
            retry_after_seconds=policy.window_seconds,
        )

    def is_counted(self, identifier: str, policy: Policy) -> bool:
        """Return True when a live counter exists for ``identifier``."""
        key = counter_key(policy, identifier)
        return self._backends.run("exists", key, lambda store: store.exists(key))

    def clear(self, identifier: str, policy: Policy) -> None:
        """Drop the counter for ``identifier`` so its next request starts a new window."""
        key = counter_key(policy, identifier)
        self._backends.run("delete", key, lambda store: store.delete(key))
        logger.info(
            "rate_limit.cleared",
            extra={"policy": policy.name, "key_hash": hash_for_log(key)},
        )
