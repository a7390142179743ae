"""Explicit, TTL-based blocking of abusive identifiers.

Blocks live under ``blocked:<identifier>``, a key space disjoint from the
``ratelimit:`` counters, so "rate exceeded" and "explicitly blocked" can be
inspected and cleared independently.

Every block is also mirrored into the local store. A block written while the
remote store was failing therefore stays visible after the remote store
recovers, until its own TTL runs out.
"""

from __future__ import annotations

import logging

from ratewall.core.logging import hash_for_log
from ratewall.services.backends import StoreBackends

logger = logging.getLogger(__name__)

KEY_PREFIX = "blocked"
_SENTINEL = "1"


def block_key(identifier: str) -> str:
    return f"{KEY_PREFIX}:{identifier}"


class AbuseBlockList:
    """Out-of-band deny list consulted by collaborators that detect abuse."""

    def __init__(self, backends: StoreBackends) -> None:
        self._backends = backends

    def block(self, identifier: str, duration_seconds: int) -> None:
        """Deny ``identifier`` unconditionally for ``duration_seconds``.

        Raises:
            ValueError: If identifier is empty or duration is not positive.
        """
        if not identifier:
            raise ValueError("identifier must be a non-empty string")
        if duration_seconds < 1:
            raise ValueError("duration_seconds must be >= 1")

        key = block_key(identifier)
        self._backends.run(
            "block",
            key,
            lambda store: store.set_with_ttl(key, _SENTINEL, duration_seconds),
        )
        if self._backends.remote is not None:
            self._backends.local.set_with_ttl(key, _SENTINEL, duration_seconds)
        logger.warning(
            "block_list.blocked",
            extra={"key_hash": hash_for_log(key), "duration_s": duration_seconds},
        )

    def is_blocked(self, identifier: str) -> bool:
        """Presence-and-non-expiry check; never reads or touches counters."""
        if not identifier:
            return False
        key = block_key(identifier)
        if self._backends.local.exists(key):
            return True
        if self._backends.remote is None:
            return False
        return self._backends.run("is_blocked", key, lambda store: store.exists(key))

    def unblock(self, identifier: str) -> None:
        key = block_key(identifier)
        self._backends.run("unblock", key, lambda store: store.delete(key))
        self._backends.local.delete(key)
        logger.info("block_list.unblocked", extra={"key_hash": hash_for_log(key)})
