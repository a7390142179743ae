from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from ratewall.core.rate_limit import get_services
from ratewall.services.container import RateLimitServices

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(services: Annotated[RateLimitServices, Depends(get_services)]) -> dict:
    """Health check endpoint.

    Reports which counter backend was selected at startup. A failing remote
    store does not make the service unhealthy; requests fall back to the
    local store.

    Returns:
        dict: ``{"status": "ok", "backend": "remote" | "local"}``.
    """

    return {"status": "ok", "backend": services.backends.mode}
