"""Construction and lifecycle of the rate limiting services.

Everything is built once, explicitly, and handed around by reference; there
is no module-level store. The application lifespan owns one instance.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from ratewall.adapters.rate_limit.base import WindowCounterStore
from ratewall.adapters.rate_limit.factory import create_remote_store
from ratewall.adapters.rate_limit.in_memory import InMemoryWindowStore
from ratewall.adapters.rate_limit.sweeper import ExpirySweeper
from ratewall.core.config import Settings
from ratewall.services.backends import StoreBackends
from ratewall.services.block_list import AbuseBlockList
from ratewall.services.evaluator import RateLimitEvaluator
from ratewall.services.policies import PolicyRegistry

logger = logging.getLogger(__name__)


@dataclass
class RateLimitServices:
    """The wired-up rate limiting components."""

    backends: StoreBackends
    evaluator: RateLimitEvaluator
    registry: PolicyRegistry
    block_list: AbuseBlockList
    sweeper: ExpirySweeper

    async def start(self) -> None:
        await self.sweeper.start()

    async def stop(self) -> None:
        await self.sweeper.stop()
        self.backends.close()


def build_rate_limit_services(
    cfg: Settings,
    *,
    remote: WindowCounterStore | None = None,
    clock: Callable[[], float] = time.time,
) -> RateLimitServices:
    """Build stores, evaluator, registry, block list and sweeper from settings.

    Args:
        cfg: Application settings.
        remote: Remote store override; when omitted it is created from
            ``cfg.remote_store`` (None if not configured).
        clock: Wall-clock source shared by the local store and evaluator.
    """
    local = InMemoryWindowStore(clock=clock)
    if remote is None:
        remote = create_remote_store(cfg.remote_store)

    backends = StoreBackends(
        local=local,
        remote=remote,
        remote_cooldown_seconds=cfg.rate_limit.remote_cooldown_seconds,
    )
    evaluator = RateLimitEvaluator(
        backends,
        clock=clock,
        degraded_mode=cfg.rate_limit.degraded_mode,
    )
    services = RateLimitServices(
        backends=backends,
        evaluator=evaluator,
        registry=PolicyRegistry(evaluator),
        block_list=AbuseBlockList(backends),
        sweeper=ExpirySweeper(local, interval_seconds=cfg.rate_limit.sweep_interval_seconds),
    )
    logger.info(
        "rate_limit.services_built",
        extra={
            "backend": backends.mode,
            "degraded_mode": cfg.rate_limit.degraded_mode,
            "policies": services.registry.names(),
        },
    )
    return services
