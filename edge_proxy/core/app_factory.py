"""Application factory for the FastAPI app.

Builds the app together with the state it owns for its whole lifetime: the
rate limiter table, the response cache, the route table, the CORS policy and
the shared HTTP client. Callers (tests in particular) may pass their own
instances; anything omitted is built from settings.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
from fastapi import FastAPI

from edge_proxy.adapters.rate_limit.base import AbstractRateLimiter
from edge_proxy.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from edge_proxy.api.routes import health_router, proxy_router
from edge_proxy.core.config import Settings, settings as default_settings
from edge_proxy.core.cors import CorsPolicy, cors_middleware
from edge_proxy.core.exception_handlers import setup_exception_handlers
from edge_proxy.core.logging import configure_logging
from edge_proxy.core.middleware import request_id_middleware
from edge_proxy.services.chat_service import ChatCompletionService
from edge_proxy.services.proxy_service import ProxyService
from edge_proxy.services.routing import RouteTable
from edge_proxy.utils.response_cache import ResponseCache


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    await app.state.http_client.aclose()


def create_app(
    settings: Settings | None = None,
    *,
    rate_limiter: AbstractRateLimiter | None = None,
    cache: ResponseCache | None = None,
    route_table: RouteTable | None = None,
    http_client: httpx.AsyncClient | None = None,
    configure_logs: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        settings: Settings to use; defaults to the process-wide instance.
        rate_limiter: Limiter to use instead of a fresh in-memory one.
        cache: Response cache to use instead of a fresh one.
        route_table: Routes to serve instead of the default table.
        http_client: Client for upstream calls (e.g. one with a mock transport).
        configure_logs: Whether to (re)configure root logging.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and state.
    """
    cfg = settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    if configure_logs:
        configure_logging(cfg.log)

    app = FastAPI(
        title=cfg.app.service_name,
        description=(
            "Edge proxy that forwards browser requests to company-data, news, "
            "market-data and chat-completion APIs while keeping provider "
            "credentials server-side. Applies per-client rate limits, short-lived "
            "caching for company data and an origin allowlist for CORS."
        ),
        version="1.0.0",
        debug=cfg.app.debug,
        lifespan=_lifespan,
    )

    if http_client is None:
        http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(cfg.app.upstream_timeout_seconds),
        )
    if route_table is None:
        route_table = RouteTable()
    if rate_limiter is None:
        rate_limiter = InMemoryFixedWindowRateLimiter(
            limit=cfg.app.rate_limit_requests,
            window_seconds=cfg.app.rate_limit_window_seconds,
            max_entries=cfg.app.rate_limit_max_entries,
        )
    if cache is None:
        cache = ResponseCache(
            ttl_seconds=cfg.app.cache_ttl_seconds,
            max_entries=cfg.app.cache_max_entries,
        )

    app.state.settings = cfg
    app.state.http_client = http_client
    app.state.route_table = route_table
    app.state.cors_policy = CorsPolicy(extra_origin=cfg.credentials.allowed_origin)
    app.state.rate_limiter = rate_limiter
    app.state.cache = cache
    app.state.proxy_service = ProxyService(
        routes=route_table,
        cache=cache,
        client=http_client,
        secrets=cfg.credentials.secrets(),
        user_agent=cfg.app.upstream_user_agent,
        accept_language=cfg.app.upstream_accept_language,
    )
    app.state.chat_service = ChatCompletionService(
        client=http_client,
        api_key=cfg.credentials.anthropic_api_key,
        api_url=cfg.chat.api_url,
        api_version=cfg.chat.api_version,
        default_model=cfg.chat.default_model,
    )

    # Middleware: the last one added runs first, so request ids wrap CORS
    app.middleware("http")(cors_middleware)
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers: the proxy router ends in a catch-all, so it goes last
    app.include_router(health_router)
    app.include_router(proxy_router)

    return app
