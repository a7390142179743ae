"""Named rate-limit policies.

The table is fixed at import time. Nothing creates or mutates policies at
runtime.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping

from ratewall.core.errors import ConfigurationAppError

if TYPE_CHECKING:
    from ratewall.adapters.rate_limit.base import RateLimitDecision
    from ratewall.services.evaluator import RateLimitEvaluator


@dataclass(frozen=True)
class Policy:
    """Fixed-window limit applied to one identifier space.

    Attributes:
        name: Namespace used in counter keys.
        limit: Maximum requests allowed per window.
        window_seconds: Window size in seconds.
        identifier_source: What callers are expected to pass as identifier.
    """

    name: str
    limit: int
    window_seconds: int
    identifier_source: str = "caller-supplied"

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("name must be a non-empty string")
        if self.limit < 1:
            raise ValueError("limit must be >= 1")
        if self.window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")


class PolicyName(str, Enum):
    OTP_SEND = "otp-send"
    OTP_VERIFY = "otp-verify"
    CHAT = "chat"
    API = "api"
    STRICT = "strict"


POLICIES: Mapping[str, Policy] = MappingProxyType(
    {
        policy.name: policy
        for policy in (
            Policy(PolicyName.OTP_SEND.value, limit=3, window_seconds=3600, identifier_source="phone number"),
            Policy(PolicyName.OTP_VERIFY.value, limit=5, window_seconds=600, identifier_source="phone number"),
            Policy(PolicyName.CHAT.value, limit=30, window_seconds=60, identifier_source="authenticated user id"),
            Policy(PolicyName.API.value, limit=100, window_seconds=60, identifier_source="user id, else IP"),
            Policy(PolicyName.STRICT.value, limit=10, window_seconds=3600, identifier_source="caller-supplied"),
        )
    }
)


class BoundPolicy:
    """A policy bound to an evaluator, exposing ``check(identifier)``."""

    def __init__(self, policy: Policy, evaluator: "RateLimitEvaluator") -> None:
        self.policy = policy
        self._evaluator = evaluator

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"BoundPolicy({self.policy.name!r}, limit={self.policy.limit}, window_s={self.policy.window_seconds})"

    def check(self, identifier: str) -> "RateLimitDecision":
        return self._evaluator.evaluate(identifier, self.policy)


class PolicyRegistry:
    """Lookup of the fixed policy table, bound to one evaluator."""

    def __init__(
        self,
        evaluator: "RateLimitEvaluator",
        policies: Mapping[str, Policy] = POLICIES,
    ) -> None:
        self._bound = {name: BoundPolicy(policy, evaluator) for name, policy in policies.items()}

    def names(self) -> list[str]:
        return sorted(self._bound)

    def bound(self, name: str | PolicyName) -> BoundPolicy:
        """Return the bound policy for ``name``.

        Raises:
            ConfigurationAppError: If no such policy exists. This is a
                programming/deployment error, not a request error.
        """
        key = name.value if isinstance(name, PolicyName) else name
        try:
            return self._bound[key]
        except KeyError:
            raise ConfigurationAppError(
                code="unknown_policy",
                message=f"No rate-limit policy named {key!r}",
                details={"policy": key, "hint": f"Known policies: {', '.join(self.names())}"},
            ) from None

    def get(self, name: str | PolicyName) -> Policy:
        return self.bound(name).policy

    def check(self, name: str | PolicyName, identifier: str) -> "RateLimitDecision":
        return self.bound(name).check(identifier)
