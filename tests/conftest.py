"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets the environment before settings are imported so no .env file or
real Upstash credentials leak into the tests.
"""

import json
import math
import os
from typing import Callable, Iterator

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ.pop("UPSTASH_REDIS_REST_URL", None)
os.environ.pop("UPSTASH_REDIS_REST_TOKEN", None)

# Set default env vars that all tests might need
os.environ.setdefault("APP_ADMIN_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_ADMIN_API_KEYS", "test-admin-key,second-admin-key")

import httpx
import pytest
from fastapi.testclient import TestClient

from ratewall.adapters.rate_limit.in_memory import InMemoryWindowStore
from ratewall.adapters.rate_limit.upstash import UpstashRestStore
from ratewall.core.app_factory import create_app
from ratewall.core.config import Settings
from ratewall.services.backends import StoreBackends
from ratewall.services.container import RateLimitServices, build_rate_limit_services

UPSTASH_URL = "https://fake-db.upstash.io"
UPSTASH_TOKEN = "test-token"


class FakeClock:
    """Deterministic clock used to test window and TTL expiry."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class FakeUpstash:
    """Just enough of the Upstash REST API (single commands) for the store.

    ``fail_on`` makes a command answer HTTP 503; ``timeout_on`` makes it raise
    a transport timeout; ``error_on`` answers 200 with a Redis error payload.
    """

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.data: dict[str, list] = {}
        self.commands: list[list[str]] = []
        self.fail_on: set[str] = set()
        self.timeout_on: set[str] = set()
        self.error_on: set[str] = set()

    def _live(self, key: str) -> list | None:
        item = self.data.get(key)
        if item is not None and item[1] is not None and self.clock() >= item[1]:
            del self.data[key]
            return None
        return item

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.headers.get("authorization") != f"Bearer {UPSTASH_TOKEN}":
            return httpx.Response(401, json={"error": "Unauthorized"})

        command = json.loads(request.content)
        self.commands.append(command)
        name, args = command[0].upper(), command[1:]

        if name in self.timeout_on:
            raise httpx.ReadTimeout("timed out", request=request)
        if name in self.fail_on:
            return httpx.Response(503, json={"error": "service unavailable"})
        if name in self.error_on:
            return httpx.Response(200, json={"error": "ERR simulated"})

        return httpx.Response(200, json={"result": self._execute(name, args)})

    def _execute(self, name: str, args: list[str]):
        key = args[0]
        item = self._live(key)
        if name == "INCR":
            count = int(item[0]) + 1 if item else 1
            self.data[key] = [str(count), item[1] if item else None]
            return count
        if name == "EXPIRE":
            if item is None:
                return 0
            item[1] = self.clock() + int(args[1])
            return 1
        if name == "TTL":
            if item is None:
                return -2
            if item[1] is None:
                return -1
            return math.ceil(item[1] - self.clock())
        if name == "SET":
            ttl = int(args[3]) if len(args) > 3 and args[2].upper() == "EX" else None
            self.data[key] = [args[1], self.clock() + ttl if ttl else None]
            return "OK"
        if name == "EXISTS":
            return 1 if item else 0
        if name == "DEL":
            return 1 if self.data.pop(key, None) is not None else 0
        raise AssertionError(f"unexpected command {name}")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def local_store(clock: FakeClock) -> InMemoryWindowStore:
    return InMemoryWindowStore(clock=clock)


@pytest.fixture
def fake_upstash(clock: FakeClock) -> FakeUpstash:
    return FakeUpstash(clock)


@pytest.fixture
def remote_store(clock: FakeClock, fake_upstash: FakeUpstash) -> Iterator[UpstashRestStore]:
    store = UpstashRestStore(
        base_url=UPSTASH_URL,
        token=UPSTASH_TOKEN,
        clock=clock,
        transport=httpx.MockTransport(fake_upstash.handler),
    )
    yield store
    store.close()


@pytest.fixture
def local_backends(local_store: InMemoryWindowStore) -> StoreBackends:
    return StoreBackends(local=local_store)


@pytest.fixture
def remote_backends(local_store: InMemoryWindowStore, remote_store: UpstashRestStore) -> StoreBackends:
    # No cooldown so every call retries the remote store first
    return StoreBackends(local=local_store, remote=remote_store, remote_cooldown_seconds=0)


@pytest.fixture
def services_factory(clock: FakeClock) -> Callable[[Settings], RateLimitServices]:
    def _factory(cfg: Settings) -> RateLimitServices:
        return build_rate_limit_services(cfg, clock=clock)

    return _factory


@pytest.fixture
def client(services_factory: Callable[[Settings], RateLimitServices]) -> Iterator[TestClient]:
    app = create_app(services_factory=services_factory)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-API-Key": "test-admin-key"}
