"""Pytest configuration and fixtures shared across all test modules.

APP_ENV is pinned to "testing" before any settings import so no developer
.env file leaks into the run, and operator credentials are removed from the
environment; tests pass the credentials they need explicitly.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
for _name in ("ALLOWED_ORIGIN", "CBEAPI_TOKEN", "GNEWS_API_KEY", "FINNHUB_KEY", "ANTHROPIC_API_KEY"):
    os.environ.pop(_name, None)

from typing import Any, Callable

import httpx
import pytest
from fastapi.testclient import TestClient

from edge_proxy.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from edge_proxy.core.app_factory import create_app
from edge_proxy.core.config import AppSettings, CredentialSettings, Settings
from edge_proxy.utils.response_cache import ResponseCache

TEST_SECRETS = {
    "cbeapi_token": "cbe-secret-token",
    "gnews_api_key": "gnews-secret-key",
    "finnhub_key": "finnhub-secret-key",
    "anthropic_api_key": "anthropic-secret-key",
}


class FakeClock:
    """Deterministic clock used to test window and TTL expiry."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class FakeUpstream:
    """Mock upstream that records every outbound request.

    ``responder`` builds the reply; replace it per test to change status,
    body or to raise a transport error.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responder: Callable[[httpx.Request], httpx.Response] = (
            lambda request: httpx.Response(200, json={"ok": True})
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    @property
    def calls(self) -> int:
        return len(self.requests)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def secrets() -> dict[str, str]:
    return dict(TEST_SECRETS)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def make_client(upstream: FakeUpstream, clock: FakeClock) -> Callable[..., TestClient]:
    """Build a TestClient over a fresh app with its own limiter and cache.

    Keyword arguments override AppSettings fields; ``secrets`` replaces the
    default credential set (pass a dict with None values to unset them).
    Pass ``raise_server_exceptions=False`` to receive 500 responses instead of
    the exception.
    """

    def _make(
        secrets: dict[str, Any] | None = None,
        raise_server_exceptions: bool = True,
        **app_overrides: Any,
    ) -> TestClient:
        creds = dict(TEST_SECRETS)
        if secrets is not None:
            creds.update(secrets)
        creds.setdefault("allowed_origin", None)

        cfg = Settings(
            app=AppSettings(**app_overrides),
            credentials=CredentialSettings(**creds),
        )
        app = create_app(
            cfg,
            rate_limiter=InMemoryFixedWindowRateLimiter(
                limit=cfg.app.rate_limit_requests,
                window_seconds=cfg.app.rate_limit_window_seconds,
                clock=clock,
            ),
            cache=ResponseCache(
                ttl_seconds=cfg.app.cache_ttl_seconds,
                max_entries=cfg.app.cache_max_entries,
                clock=clock,
            ),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler)),
            configure_logs=False,
        )
        return TestClient(app, raise_server_exceptions=raise_server_exceptions)

    return _make


@pytest.fixture
def client(make_client: Callable[..., TestClient]) -> TestClient:
    return make_client()
