from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Response

from ratewall.core.auth import verify_admin_api_key
from ratewall.core.config import settings
from ratewall.core.errors import ValidationAppError
from ratewall.core.rate_limit import get_services, require_rate_limit
from ratewall.schemas.limits import BlockRequest, BlockStatus
from ratewall.services.container import RateLimitServices
from ratewall.services.policies import PolicyName

router = APIRouter(
    tags=["Blocks"],
    dependencies=[Depends(verify_admin_api_key), Depends(require_rate_limit(PolicyName.API))],
)

IdentifierPath = Annotated[str, Path(min_length=1, max_length=256)]


@router.put("/blocks/{identifier}", response_model=BlockStatus)
def block_identifier(
    identifier: IdentifierPath,
    body: BlockRequest,
    services: Annotated[RateLimitServices, Depends(get_services)],
) -> BlockStatus:
    """Block ``identifier`` for ``body.duration_seconds``.

    Raises:
        ValidationAppError: If the duration exceeds the configured maximum.
    """
    max_seconds = settings.rate_limit.max_block_seconds
    if body.duration_seconds > max_seconds:
        raise ValidationAppError(
            code="block_duration_too_long",
            message=f"duration_seconds must be <= {max_seconds}",
            details={"hint": "Raise RATE_LIMIT_MAX_BLOCK_SECONDS for longer blocks"},
        )

    services.block_list.block(identifier, body.duration_seconds)
    return BlockStatus(blocked=True)


@router.get("/blocks/{identifier}", response_model=BlockStatus)
def get_block(
    identifier: IdentifierPath,
    services: Annotated[RateLimitServices, Depends(get_services)],
) -> BlockStatus:
    return BlockStatus(blocked=services.block_list.is_blocked(identifier))


@router.delete("/blocks/{identifier}", status_code=204)
def lift_block(
    identifier: IdentifierPath,
    services: Annotated[RateLimitServices, Depends(get_services)],
) -> Response:
    """Lift a block. Rate-limit counters for the identifier are untouched."""
    services.block_list.unblock(identifier)
    return Response(status_code=204)
