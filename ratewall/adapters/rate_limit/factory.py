"""Factory for the shared counter store."""

from __future__ import annotations

import logging

from ratewall.adapters.rate_limit.base import WindowCounterStore
from ratewall.adapters.rate_limit.upstash import UpstashRestStore
from ratewall.core.config import RemoteStoreSettings

logger = logging.getLogger(__name__)


def create_remote_store(remote_settings: RemoteStoreSettings) -> WindowCounterStore | None:
    """Instantiate the remote store when it is fully configured.

    Selection happens once at startup: with both URL and token present the
    Upstash store is used (with local fallback); with either missing the
    service runs on the in-process store only.

    Returns:
        UpstashRestStore, or None for local-only operation.
    """
    if not remote_settings.configured:
        logger.info(
            "rate_limit.backend_selected",
            extra={
                "backend": "local",
                "url_present": bool(remote_settings.url),
                "token_present": bool(remote_settings.token),
            },
        )
        return None

    logger.info(
        "rate_limit.backend_selected",
        extra={"backend": "remote", "timeout_s": remote_settings.timeout_seconds},
    )
    return UpstashRestStore(
        base_url=remote_settings.url or "",
        token=remote_settings.token or "",
        timeout_seconds=remote_settings.timeout_seconds,
    )
