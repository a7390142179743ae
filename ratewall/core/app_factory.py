"""Application factory for the FastAPI app.

Centralizes app construction (metadata, lifespan, middleware, handlers,
routers) so tests can build isolated instances with their own stores.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import FastAPI

from ratewall.api.routes import blocks_router, health_router, limits_router
from ratewall.core.config import Settings, settings
from ratewall.core.exception_handlers import setup_exception_handlers
from ratewall.core.logging import configure_logging
from ratewall.core.middleware import request_id_middleware
from ratewall.core.openapi import apply_openapi_customizations
from ratewall.services.container import RateLimitServices, build_rate_limit_services


def create_app(
    *,
    cfg: Settings | None = None,
    services_factory: Callable[[Settings], RateLimitServices] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        cfg: Settings to use; defaults to the global settings.
        services_factory: Builds the rate limiting services at startup;
            defaults to :func:`build_rate_limit_services`.

    Returns:
        Configured FastAPI app with lifespan, middleware, handlers and routers.
    """
    cfg = cfg or settings
    factory = services_factory or build_rate_limit_services

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        services = factory(cfg)
        app.state.rate_limits = services
        await services.start()
        try:
            yield
        finally:
            await services.stop()

    app = FastAPI(
        title="ratewall",
        description=(
            "Fixed-window rate limiting and abuse blocking for OTP issuance, "
            "OTP verification, chat and general API traffic. Counters are "
            "shared through Upstash Redis when configured and fall back to an "
            "in-process store on failure."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(limits_router, prefix="/v1")
    app.include_router(blocks_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
