from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Response

from ratewall.core.auth import verify_admin_api_key
from ratewall.core.rate_limit import deny_blocked, enforce_decision, get_services, require_rate_limit
from ratewall.schemas.limits import CheckRequest, CounterStatus, DecisionResponse
from ratewall.services.container import RateLimitServices
from ratewall.services.policies import PolicyName

router = APIRouter(tags=["Limits"])

_admin = [Depends(verify_admin_api_key), Depends(require_rate_limit(PolicyName.API))]

IdentifierPath = Annotated[str, Path(min_length=1, max_length=256)]


@router.post("/limits/{policy}/check", response_model=DecisionResponse)
def check_limit(
    policy: PolicyName,
    body: CheckRequest,
    response: Response,
    services: Annotated[RateLimitServices, Depends(get_services)],
) -> DecisionResponse:
    """Count one request for ``body.identifier`` against ``policy``.

    Used by collaborators that key limits on something other than the HTTP
    caller, e.g. the OTP flows keyed on phone number. Blocked identifiers are
    rejected before counting.

    Returns:
        DecisionResponse with rate-limit headers when allowed.

    Raises:
        RateLimitExceededError: Rendered as 429 when denied or blocked.
    """
    bound = services.registry.bound(policy)
    if services.block_list.is_blocked(body.identifier):
        deny_blocked(body.identifier, policy=bound.policy, now=services.evaluator.now())

    decision = bound.check(body.identifier)
    enforce_decision(decision, response, policy=policy.value, identifier=body.identifier)
    return DecisionResponse.from_decision(policy.value, decision)


@router.get(
    "/limits/{policy}/{identifier}",
    response_model=CounterStatus,
    dependencies=_admin,
)
def get_counter(
    policy: PolicyName,
    identifier: IdentifierPath,
    services: Annotated[RateLimitServices, Depends(get_services)],
) -> CounterStatus:
    """Report whether ``identifier`` has a live counter under ``policy``."""
    counted = services.evaluator.is_counted(identifier, services.registry.get(policy))
    return CounterStatus(policy=policy.value, counted=counted)


@router.delete("/limits/{policy}/{identifier}", status_code=204, dependencies=_admin)
def clear_counter(
    policy: PolicyName,
    identifier: IdentifierPath,
    services: Annotated[RateLimitServices, Depends(get_services)],
) -> Response:
    """Reset ``identifier``'s window under ``policy``. Blocks are untouched."""
    services.evaluator.clear(identifier, services.registry.get(policy))
    return Response(status_code=204)
