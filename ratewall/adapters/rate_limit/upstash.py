"""Shared counter store on the Upstash Redis REST API.

Commands are sent as JSON arrays (``["INCR", "key"]``) to the REST base URL
with a bearer token. Every failure, whether transport, HTTP status, a Redis
error payload or an unexpected body, is raised as
:class:`StoreUnavailableError` so callers can fall back to the local store.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import httpx

from ratewall.adapters.rate_limit.base import WindowCount, WindowCounterStore
from ratewall.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

# Redis TTL sentinels
_TTL_NO_EXPIRY = -1
_TTL_MISSING = -2


class UpstashRestStore(WindowCounterStore):
    """Counter store shared by every process through Upstash Redis.

    INCR is atomic across concurrent callers; the window expiry is attached on
    the increment that creates the key.
    """

    name = "remote"

    def __init__(
        self,
        *,
        base_url: str,
        token: str,
        timeout_seconds: float = 1.0,
        clock: Callable[[], float] = time.time,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the REST client.

        Args:
            base_url: Upstash REST endpoint (``https://<db>.upstash.io``).
            token: REST API token.
            timeout_seconds: Bound applied to connect, read, write and pool waits.
            clock: Time source function returning UNIX time in seconds.
            transport: Optional httpx transport (tests use ``httpx.MockTransport``).

        Raises:
            ValueError: If base_url or token is empty.
        """
        if not base_url:
            raise ValueError("base_url must be a non-empty string")
        if not token:
            raise ValueError("token must be a non-empty string")

        self._clock = clock
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {token}"},
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    def _command(self, *args: str | int) -> Any:
        """Execute one Redis command and return its ``result`` field."""
        command = [str(arg) for arg in args]
        try:
            response = self._client.post("/", json=command)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise StoreUnavailableError(
                code="remote_store_unavailable",
                message=f"Upstash command {command[0]} failed: {type(exc).__name__}",
                details={"backend": self.name, "command": command[0]},
            ) from exc

        if not isinstance(payload, dict) or "result" not in payload:
            error = payload.get("error") if isinstance(payload, dict) else None
            raise StoreUnavailableError(
                code="remote_store_error",
                message=f"Upstash command {command[0]} returned an error: {error or 'malformed response'}",
                details={"backend": self.name, "command": command[0]},
            )
        return payload["result"]

    def _int_command(self, *args: str | int) -> int:
        result = self._command(*args)
        if isinstance(result, bool) or not isinstance(result, int):
            raise StoreUnavailableError(
                code="remote_store_error",
                message=f"Upstash command {args[0]} returned a non-integer result",
                details={"backend": self.name, "command": str(args[0])},
            )
        return result

    def increment_and_get(self, key: str, window_seconds: int) -> WindowCount:
        count = self._int_command("INCR", key)
        if count == 1:
            self._int_command("EXPIRE", key, window_seconds)

        ttl = self._int_command("TTL", key)
        if ttl == _TTL_NO_EXPIRY:
            # An earlier EXPIRE never landed; without one the key lives forever.
            logger.warning(
                "rate_limit.remote_expiry_rearmed",
                extra={"backend": self.name, "window_s": window_seconds},
            )
            self._int_command("EXPIRE", key, window_seconds)
            ttl = window_seconds
        elif ttl == _TTL_MISSING:
            ttl = window_seconds

        return WindowCount(count=count, reset_at=self._clock() + ttl)

    def exists(self, key: str) -> bool:
        return self._int_command("EXISTS", key) > 0

    def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")
        self._command("SET", key, value, "EX", ttl_seconds)

    def delete(self, key: str) -> None:
        self._command("DEL", key)

    def close(self) -> None:
        self._client.close()
