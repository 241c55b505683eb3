"""Tests for global exception handlers.

Validates that every error type maps to its HTTP status, uses the proxy's
error envelope, carries CORS headers and never leaks internals.
"""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from edge_proxy.core.cors import CorsPolicy
from edge_proxy.core.errors import (
    AppError,
    CredentialMissingAppError,
    RateLimitAppError,
    RouteNotFoundAppError,
    UpstreamAppError,
    ValidationAppError,
)
from edge_proxy.core.exception_handlers import setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    app.state.cors_policy = CorsPolicy()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers, raise_server_exceptions=False)


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    @pytest.mark.parametrize(
        ("error_cls", "status"),
        [
            (ValidationAppError, 400),
            (RouteNotFoundAppError, 404),
            (RateLimitAppError, 429),
            (UpstreamAppError, 502),
            (CredentialMissingAppError, 503),
            (AppError, 500),
        ],
    )
    def test_error_class_sets_status(
        self, client: TestClient, app_with_handlers: FastAPI, error_cls, status
    ):
        @app_with_handlers.get("/test-error")
        async def test_endpoint():
            raise error_cls(code="some_code", message="Something went wrong")

        response = client.get("/test-error")

        assert response.status_code == status
        data = response.json()
        assert data["error"] == "Something went wrong"
        assert data["code"] == "some_code"
        assert "request_id" in data
        assert "detail" not in data

    def test_upstream_error_exposes_detail(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-upstream")
        async def test_endpoint():
            raise UpstreamAppError(
                code="upstream_request_failed",
                message="API request failed",
                details={"detail": "connection refused"},
            )

        data = client.get("/test-upstream").json()

        assert data["detail"] == "connection refused"

    def test_route_listing_is_included(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-routes")
        async def test_endpoint():
            raise RouteNotFoundAppError(
                code="route_not_found",
                message="Route not found",
                details={"routes": ["/api/a", "/api/b"]},
            )

        assert client.get("/test-routes").json()["routes"] == ["/api/a", "/api/b"]

    def test_internal_details_are_not_rendered(
        self, client: TestClient, app_with_handlers: FastAPI
    ):
        @app_with_handlers.get("/test-internal")
        async def test_endpoint():
            raise RateLimitAppError(
                code="rate_limited",
                message="Too many requests",
                details={"retry_after": 12},
                headers={"Retry-After": "12"},
            )

        response = client.get("/test-internal")

        assert "retry_after" not in response.json()
        assert response.headers["Retry-After"] == "12"

    def test_error_responses_carry_cors_headers(
        self, client: TestClient, app_with_handlers: FastAPI
    ):
        @app_with_handlers.get("/test-cors")
        async def test_endpoint():
            raise CredentialMissingAppError(code="credential_missing", message="nope")

        response = client.get("/test-cors", headers={"Origin": "http://localhost:5500"})

        assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:5500"
        assert response.headers["Vary"] == "Origin"


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_unexpected_exception_returns_generic_500(
        self, client: TestClient, app_with_handlers: FastAPI
    ):
        @app_with_handlers.get("/test-crash")
        async def test_endpoint():
            raise RuntimeError("database connection failed")

        response = client.get("/test-crash", headers={"Origin": "https://evil.example"})

        assert response.status_code == 500
        data = response.json()
        assert data["code"] == "internal_server_error"
        assert "database connection" not in response.text
        assert response.headers["Access-Control-Allow-Origin"] == "https://meyermansheidi.github.io"

    def test_general_exception_handler_never_leaks_stack_trace(self):
        from edge_proxy.core.exception_handlers import general_exception_handler

        request = MagicMock()
        request.url.path = "/test"
        request.state = SimpleNamespace()
        request.method = "GET"
        request.headers = {}
        request.app.state.cors_policy = CorsPolicy()

        response = asyncio.run(general_exception_handler(request, ValueError("Test error")))

        response_text = bytes(response.body).decode()
        data = json.loads(response_text)
        assert data["error"] == "An unexpected error occurred. Please try again later."
        assert "Traceback" not in response_text
        assert "ValueError" not in response_text


class TestErrorHandlerIntegration:
    def test_setup_exception_handlers_registers_handlers(self, app_with_handlers: FastAPI):
        assert AppError in app_with_handlers.exception_handlers
        assert Exception in app_with_handlers.exception_handlers

    def test_multiple_handler_setups_does_not_fail(self):
        app = FastAPI()

        setup_exception_handlers(app)
        setup_exception_handlers(app)

        assert AppError in app.exception_handlers
