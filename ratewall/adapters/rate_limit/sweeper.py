"""Background sweep of expired local counter entries.

Usage::

    sweeper = ExpirySweeper(local_store, interval_seconds=60)
    await sweeper.start()       # spawns the background loop
    ...
    await sweeper.stop()        # cancels the background loop

The sweep only bounds memory. Reads re-check expiry on their own, so a
stopped or slow sweeper never changes a decision.
"""

from __future__ import annotations

import asyncio
import logging

from ratewall.adapters.rate_limit.in_memory import InMemoryWindowStore

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """Owns the asyncio task that periodically calls ``store.sweep()``."""

    def __init__(self, store: InMemoryWindowStore, *, interval_seconds: float = 60.0) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._store = store
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ── Lifecycle ──────────────────────────────────────────────────────

    async def start(self) -> None:
        """Start the background loop (idempotent)."""
        if self.running:
            return
        self._task = asyncio.create_task(self._sweep_loop(), name="ratelimit-sweep")
        logger.info(
            "rate_limit.sweeper_started",
            extra={"interval_s": self._interval},
        )

    async def stop(self) -> None:
        """Cancel the background loop."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("rate_limit.sweeper_stopped")

    # ── Background sweep ───────────────────────────────────────────────

    async def _sweep_loop(self) -> None:
        """Runs forever, sweeping the store on a fixed interval."""
        while True:
            await asyncio.sleep(self._interval)
            try:
                removed = self._store.sweep()
            except Exception:
                logger.exception("rate_limit.sweep_failed")
                continue
            if removed:
                logger.debug(
                    "rate_limit.swept",
                    extra={"removed": removed, "entries": len(self._store)},
                )
