"""Pydantic schemas for rate-limit checks, counters and blocks."""

from __future__ import annotations

import math

from pydantic import BaseModel, Field

from ratewall.adapters.rate_limit.base import RateLimitDecision


class CheckRequest(BaseModel):
    """Identifier to count against a policy."""

    identifier: str = Field(
        ...,
        min_length=1,
        max_length=256,
        description="Phone number, 'user:<id>', 'ip:<address>' or any caller-supplied key.",
    )


class DecisionResponse(BaseModel):
    """Allowed decision returned by the check endpoint."""

    success: bool = Field(True, description="Always true; denials are returned as HTTP 429.")
    policy: str = Field(..., description="Policy the identifier was counted against.")
    limit: int = Field(..., description="Maximum requests per window.")
    remaining: int = Field(..., ge=0, description="Requests left in the current window.")
    reset_at: int = Field(..., description="UNIX epoch seconds when the window resets.")

    @classmethod
    def from_decision(cls, policy: str, decision: RateLimitDecision) -> "DecisionResponse":
        return cls(
            policy=policy,
            limit=decision.limit,
            remaining=decision.remaining,
            reset_at=int(math.ceil(decision.reset_at)),
        )


class CounterStatus(BaseModel):
    policy: str
    counted: bool = Field(..., description="Whether a live window counter exists.")


class BlockRequest(BaseModel):
    duration_seconds: int = Field(
        ...,
        ge=1,
        description="How long the identifier stays blocked.",
    )


class BlockStatus(BaseModel):
    blocked: bool
