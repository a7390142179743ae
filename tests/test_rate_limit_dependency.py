"""Tests for the FastAPI rate limiting dependency and 429 rendering."""

from typing import Iterator

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from ratewall.core.config import settings
from ratewall.core.exception_handlers import RATE_LIMIT_MESSAGE_AR, RATE_LIMIT_MESSAGE_EN, setup_exception_handlers
from ratewall.core.rate_limit import require_rate_limit
from ratewall.services.container import RateLimitServices, build_rate_limit_services
from ratewall.services.policies import POLICIES, Policy, PolicyName


EXPORT = Policy("export", limit=2, window_seconds=120)


def _tenant_key(request) -> str:
    return f"tenant:{request.path_params['tenant']}"


@pytest.fixture
def services(clock) -> RateLimitServices:
    return build_rate_limit_services(settings, clock=clock)


@pytest.fixture
def guarded_client(services: RateLimitServices) -> Iterator[TestClient]:
    app = FastAPI()
    setup_exception_handlers(app)
    app.state.rate_limits = services

    @app.post("/chat", dependencies=[Depends(require_rate_limit(PolicyName.CHAT))])
    def chat() -> dict:
        return {"reply": "ok"}

    @app.get("/ping", dependencies=[Depends(require_rate_limit("api"))])
    def ping() -> dict:
        return {"pong": True}

    @app.post("/export", dependencies=[Depends(require_rate_limit(EXPORT))])
    def export() -> dict:
        return {"queued": True}

    @app.post(
        "/tenants/{tenant}/sync",
        dependencies=[Depends(require_rate_limit(PolicyName.STRICT, key_func=_tenant_key))],
    )
    def sync(tenant: str) -> dict:
        return {"tenant": tenant}

    yield TestClient(app)


def test_allowed_response_carries_budget_headers(guarded_client: TestClient) -> None:
    resp = guarded_client.post("/chat", headers={"X-User-Id": "42"})

    assert resp.status_code == 200
    assert resp.json() == {"reply": "ok"}
    assert resp.headers["X-RateLimit-Limit"] == "30"
    assert resp.headers["X-RateLimit-Remaining"] == "29"
    assert resp.headers["X-RateLimit-Reset"] == "1060"
    assert "Retry-After" not in resp.headers


def test_denied_request_short_circuits_with_429(guarded_client: TestClient) -> None:
    for _ in range(30):
        assert guarded_client.post("/chat", headers={"X-User-Id": "42"}).status_code == 200

    resp = guarded_client.post("/chat", headers={"X-User-Id": "42"})

    assert resp.status_code == 429
    assert resp.json() == {
        "success": False,
        "error": RATE_LIMIT_MESSAGE_AR,
        "error_en": RATE_LIMIT_MESSAGE_EN,
        "retryAfter": 60,
    }
    assert resp.headers["Retry-After"] == "60"
    assert resp.headers["X-RateLimit-Remaining"] == "0"
    assert resp.headers["X-RateLimit-Reset"] == "1060"


def test_authenticated_user_is_keyed_by_user_id(guarded_client: TestClient, services) -> None:
    guarded_client.post("/chat", headers={"X-User-Id": "42", "X-Forwarded-For": "9.9.9.9"})

    chat = POLICIES["chat"]
    assert services.evaluator.is_counted("user:42", chat) is True
    assert services.evaluator.is_counted("ip:9.9.9.9", chat) is False


def test_anonymous_caller_is_keyed_by_first_forwarded_address(guarded_client: TestClient, services) -> None:
    guarded_client.get("/ping", headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})
    guarded_client.get("/ping")

    api = POLICIES["api"]
    assert services.evaluator.is_counted("ip:203.0.113.7", api) is True
    assert services.evaluator.is_counted("ip:testclient", api) is True


def test_users_are_limited_independently(guarded_client: TestClient) -> None:
    for _ in range(31):
        guarded_client.post("/chat", headers={"X-User-Id": "noisy"})

    assert guarded_client.post("/chat", headers={"X-User-Id": "noisy"}).status_code == 429
    assert guarded_client.post("/chat", headers={"X-User-Id": "quiet"}).status_code == 200


def test_blocked_caller_gets_same_response_shape(guarded_client: TestClient, services) -> None:
    services.block_list.block("user:bad", 86400)

    resp = guarded_client.post("/chat", headers={"X-User-Id": "bad"})

    assert resp.status_code == 429
    body = resp.json()
    assert set(body) == {"success", "error", "error_en", "retryAfter"}
    assert body["retryAfter"] == 60
    assert resp.headers["X-RateLimit-Limit"] == "30"
    assert resp.headers["Retry-After"] == "60"
    assert resp.headers["X-RateLimit-Reset"] == "1060"
    # Blocked requests are not counted
    assert services.evaluator.is_counted("user:bad", POLICIES["chat"]) is False


def test_disabled_rate_limiting_skips_checks(
    guarded_client: TestClient, services, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(settings.rate_limit, "enabled", False)

    for _ in range(40):
        assert guarded_client.post("/chat", headers={"X-User-Id": "42"}).status_code == 200
    assert services.evaluator.is_counted("user:42", POLICIES["chat"]) is False


def test_headers_can_be_turned_off(guarded_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings.rate_limit, "include_headers", False)

    resp = guarded_client.get("/ping")

    assert resp.status_code == 200
    assert "X-RateLimit-Remaining" not in resp.headers


def test_unknown_policy_fails_at_definition_time() -> None:
    with pytest.raises(ValueError):
        require_rate_limit("otp-resend")


def test_retry_after_kept_when_budget_headers_are_off(
    guarded_client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(settings.rate_limit, "include_headers", False)
    for _ in range(30):
        guarded_client.post("/chat", headers={"X-User-Id": "42"})

    resp = guarded_client.post("/chat", headers={"X-User-Id": "42"})

    assert resp.status_code == 429
    assert resp.headers["Retry-After"] == "60"
    assert "X-RateLimit-Remaining" not in resp.headers
    assert "X-RateLimit-Reset" not in resp.headers


def test_explicit_policy_uses_its_own_limit_and_window(guarded_client: TestClient, services) -> None:
    statuses = [guarded_client.post("/export", headers={"X-User-Id": "7"}).status_code for _ in range(3)]

    assert statuses == [200, 200, 429]
    denied = guarded_client.post("/export", headers={"X-User-Id": "7"})
    assert denied.headers["X-RateLimit-Limit"] == "2"
    assert denied.headers["Retry-After"] == "120"
    assert services.evaluator.is_counted("user:7", EXPORT) is True
    assert services.evaluator.is_counted("user:7", POLICIES["api"]) is False


def test_key_func_replaces_caller_identity(guarded_client: TestClient, services) -> None:
    # Different callers share the tenant's budget
    for n in range(10):
        resp = guarded_client.post("/tenants/acme/sync", headers={"X-User-Id": f"u{n}"})
        assert resp.status_code == 200

    assert guarded_client.post("/tenants/acme/sync", headers={"X-User-Id": "fresh"}).status_code == 429
    assert guarded_client.post("/tenants/globex/sync").status_code == 200
    assert services.evaluator.is_counted("tenant:acme", POLICIES["strict"]) is True
    assert services.evaluator.is_counted("user:u0", POLICIES["strict"]) is False


def test_key_func_identifier_is_checked_against_block_list(guarded_client: TestClient, services) -> None:
    services.block_list.block("tenant:evil", 600)

    resp = guarded_client.post("/tenants/evil/sync")

    assert resp.status_code == 429
    assert resp.headers["Retry-After"] == "3600"
    assert resp.headers["X-RateLimit-Reset"] == "4600"


def test_explicit_policy_cannot_shadow_builtin_name() -> None:
    with pytest.raises(ValueError):
        require_rate_limit(Policy("chat", limit=1000, window_seconds=1))

    # The built-in policy object itself is accepted
    require_rate_limit(POLICIES["chat"])
