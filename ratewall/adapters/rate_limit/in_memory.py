"""In-memory fixed-window counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from ratewall.adapters.rate_limit.base import WindowCount, WindowCounterStore


@dataclass
class _Entry:
    count: int
    reset_at: float
    value: str | None = None


class InMemoryWindowStore(WindowCounterStore):
    """Counter store backed by a process-local dict.

    Each entry carries its own absolute expiry. Every read re-checks expiry,
    so correctness never depends on :meth:`sweep` having run; the sweep only
    bounds memory.

    Important:
        This store is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits.
    """

    name = "local"

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize the in-memory store.

        Args:
            clock: Time source function returning UNIX time in seconds.
        """
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @staticmethod
    def _is_expired(entry: _Entry, now: float) -> bool:
        return now >= entry.reset_at

    def increment_and_get(self, key: str, window_seconds: int) -> WindowCount:
        """Add one hit to ``key``, starting a new window when the old one ended.

        An expired entry is fully reset to ``count=1`` with a fresh
        ``reset_at``; it is never incremented past its window.

        Args:
            key: Namespaced counter key.
            window_seconds: Window size applied when a new window starts.

        Returns:
            WindowCount with the post-increment count and window end.

        Raises:
            ValueError: If key is empty or window_seconds is invalid.
        """
        if not key:
            raise ValueError("key must be a non-empty string")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            if entry is None or self._is_expired(entry, now):
                entry = _Entry(count=1, reset_at=now + window_seconds)
                self._entries[key] = entry
            else:
                entry.count += 1
            return WindowCount(count=entry.count, reset_at=entry.reset_at)

    def exists(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if self._is_expired(entry, self._clock()):
                del self._entries[key]
                return False
            return True

    def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")

        with self._lock:
            self._entries[key] = _Entry(
                count=0,
                reset_at=self._clock() + ttl_seconds,
                value=value,
            )

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def sweep(self) -> int:
        """Drop every expired entry.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            now = self._clock()
            expired = [k for k, entry in self._entries.items() if self._is_expired(entry, now)]
            for key in expired:
                del self._entries[key]
            return len(expired)
