"""Rate limiting dependency and response helpers for FastAPI routes.

This module wires the evaluator into the HTTP layer.

Design goals:
- Minimal coupling: routes depend on ``require_rate_limit(<policy>)`` only.
- Uniform denials: limit exceeded and explicit blocks produce the same 429,
  so clients never learn which one applied.
- Proactive headers: allowed responses carry remaining/reset too, so
  well-behaved clients can throttle themselves.

Identifier strategy:
- ``user:<id>`` when the gateway forwarded an authenticated user id.
- Otherwise ``ip:<first X-Forwarded-For address>``, then the socket peer.
- A route can pass ``key_func`` to key on something else entirely.
"""

from __future__ import annotations

import logging
import math
from typing import Annotated, Callable

from fastapi import Depends, Request, Response

from ratewall.adapters.rate_limit.base import RateLimitDecision
from ratewall.core.auth import caller_user_id
from ratewall.core.config import settings
from ratewall.core.errors import RateLimitExceededError
from ratewall.core.logging import hash_for_log
from ratewall.services.container import RateLimitServices
from ratewall.services.policies import POLICIES, Policy, PolicyName

logger = logging.getLogger(__name__)


def get_services(request: Request) -> RateLimitServices:
    """Return the services built by the application lifespan."""
    return request.app.state.rate_limits


def client_identifier(request: Request, user_id: str | None) -> str:
    """Build the limiter identifier for the current request."""

    if user_id:
        return f"user:{user_id}"

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return f"ip:{first}"

    client_host = request.client.host if request.client else "unknown"
    return f"ip:{client_host}"


def rate_limit_headers(decision: RateLimitDecision) -> dict[str, str]:
    """Headers describing the caller's budget; Retry-After only when denied."""

    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(int(math.ceil(decision.reset_at))),
    }
    if decision.retry_after_seconds is not None:
        headers["Retry-After"] = str(decision.retry_after_seconds)
    return headers


def enforce_decision(
    decision: RateLimitDecision,
    response: Response,
    *,
    policy: str,
    identifier: str,
) -> None:
    """Raise a 429 for a denied decision, otherwise annotate ``response``.

    Raises:
        RateLimitExceededError: When ``decision.allowed`` is False.
    """

    if not decision.allowed:
        logger.info(
            "rate_limit.denied",
            extra={
                "policy": policy,
                "key_hash": hash_for_log(identifier),
                "limit": decision.limit,
                "retry_after_s": decision.retry_after_seconds,
            },
        )
        raise RateLimitExceededError(decision)

    if settings.rate_limit.include_headers:
        response.headers.update(rate_limit_headers(decision))


def deny_blocked(identifier: str, *, policy: Policy, now: float) -> None:
    """Reject a blocked identifier with the same 429 shape as a limit denial.

    The block's own expiry is not disclosed; the client is told to come back
    after one window of the policy it hit, like any other throttled caller.

    Args:
        identifier: The blocked caller.
        policy: Policy the request was checked against.
        now: Current time from the evaluator clock.

    Raises:
        RateLimitExceededError: Always.
    """

    logger.warning(
        "rate_limit.denied",
        extra={"policy": policy.name, "key_hash": hash_for_log(identifier), "reason": "blocked"},
    )
    raise RateLimitExceededError(
        RateLimitDecision(
            allowed=False,
            limit=policy.limit,
            remaining=0,
            reset_at=now + policy.window_seconds,
            retry_after_seconds=policy.window_seconds,
        ),
        reason="blocked",
    )


def _resolve_policy(policy: Policy | PolicyName | str) -> Policy:
    if isinstance(policy, Policy):
        named = POLICIES.get(policy.name)
        if named is not None and named != policy:
            raise ValueError(f"policy name {policy.name!r} is reserved for the built-in policy")
        return policy
    return POLICIES[PolicyName(policy).value]


def require_rate_limit(
    policy: Policy | PolicyName | str,
    *,
    key_func: Callable[[Request], str] | None = None,
) -> Callable[..., None]:
    """Build a FastAPI dependency enforcing ``policy`` per caller.

    ``policy`` is either a built-in policy name or an explicit
    :class:`Policy` carrying its own limit and window. It is resolved eagerly
    so a misspelled name fails at import time rather than on live traffic.

    ``key_func`` replaces the default caller identity (``user:``/``ip:``) with
    a key derived from the request, e.g. a route parameter.

    Usage:
        @router.post("/chat", dependencies=[Depends(require_rate_limit(PolicyName.CHAT))])

        @router.post(
            "/export",
            dependencies=[Depends(require_rate_limit(Policy("export", limit=10, window_seconds=60)))],
        )

    Raises:
        ValueError: If ``policy`` is not a known policy name, or an explicit
            policy reuses a built-in name with different settings.
    """

    resolved = _resolve_policy(policy)

    # Plain ``def`` so FastAPI runs it in the threadpool: remote store calls
    # are blocking I/O.
    def enforce_rate_limit(
        request: Request,
        response: Response,
        services: Annotated[RateLimitServices, Depends(get_services)],
        user_id: Annotated[str | None, Depends(caller_user_id)],
    ) -> None:
        if not settings.rate_limit.enabled:
            return

        if key_func is not None:
            identifier = key_func(request)
        else:
            identifier = client_identifier(request, user_id)

        if services.block_list.is_blocked(identifier):
            deny_blocked(identifier, policy=resolved, now=services.evaluator.now())

        decision = services.evaluator.evaluate(identifier, resolved)
        enforce_decision(decision, response, policy=resolved.name, identifier=identifier)

    return enforce_rate_limit
