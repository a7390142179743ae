from __future__ import annotations

from ratewall.api.routes.blocks import router as blocks_router
from ratewall.api.routes.health import router as health_router
from ratewall.api.routes.limits import router as limits_router

__all__ = ["blocks_router", "health_router", "limits_router"]
