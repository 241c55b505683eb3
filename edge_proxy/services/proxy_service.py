"""Generic upstream forwarding: route match, cache, credential injection.

``ProxyService`` performs at most one upstream call per request. GET
requests on cacheable routes are answered from ``ResponseCache`` while the
entry is fresh, and successful responses for them are stored on the way back.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Mapping
from urllib.parse import quote, urlsplit

import httpx

from edge_proxy.core.errors import RouteNotFoundAppError, UpstreamAppError
from edge_proxy.core.logging import scrub_secrets
from edge_proxy.services.routing import RouteTable, build_target_url, inject_credentials
from edge_proxy.utils.response_cache import ResponseCache, build_cache_key

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/json"

CACHE_HIT = "HIT"
CACHE_MISS = "MISS"
CACHE_BYPASS = "BYPASS"

_BODYLESS_METHODS = {"GET", "HEAD"}


@dataclass(frozen=True)
class ProxyResult:
    """Upstream answer ready to be turned into an HTTP response."""

    body: str
    status: int
    content_type: str
    cache_status: str | None = None


class ProxyService:
    """Forward requests on registered prefixes to their upstream API."""

    def __init__(
        self,
        *,
        routes: RouteTable,
        cache: ResponseCache,
        client: httpx.AsyncClient,
        secrets: Mapping[str, str | None],
        user_agent: str,
        accept_language: str = "nl",
    ) -> None:
        self._routes = routes
        self._cache = cache
        self._client = client
        self._secrets = dict(secrets)
        self._user_agent = user_agent
        self._accept_language = accept_language

    @property
    def routes(self) -> RouteTable:
        return self._routes

    def _scrub(self, message: str) -> str:
        values = [v for v in self._secrets.values() if v]
        values += [quote(v, safe="") for v in values]
        return scrub_secrets(message, values)

    async def forward(
        self,
        *,
        method: str,
        path: str,
        query: str = "",
        body: bytes = b"",
        content_type: str | None = None,
    ) -> ProxyResult:
        """Forward one request to the upstream owning ``path``.

        Args:
            method: HTTP method of the inbound request.
            path: Inbound request path.
            query: Raw inbound query string (without "?").
            body: Inbound body, forwarded for methods other than GET/HEAD.
            content_type: Inbound Content-Type, forwarded with the body.

        Returns:
            ProxyResult carrying the upstream status, body and content type.

        Raises:
            RouteNotFoundAppError: If no prefix matches ``path``.
            UpstreamAppError: If the upstream call fails at transport level.
        """
        method = method.upper()
        match = self._routes.match(path)
        if match is None:
            raise RouteNotFoundAppError(
                code="route_not_found",
                message="Route not found",
                details={"routes": self._routes.prefixes()},
            )

        route = match.route
        use_cache = route.cacheable and method == "GET"
        cache_key = build_cache_key(path, query)

        if use_cache:
            entry = self._cache.get(cache_key)
            if entry is not None:
                logger.info(
                    "proxy.cache_hit",
                    extra={"route": route.prefix, "method": method, "status_code": entry.status},
                )
                return ProxyResult(
                    body=entry.body,
                    status=entry.status,
                    content_type=entry.content_type,
                    cache_status=CACHE_HIT,
                )

        headers = {
            "Accept": "application/json",
            "User-Agent": self._user_agent,
        }
        send_body = method not in _BODYLESS_METHODS and bool(body)
        if send_body and content_type:
            headers["Content-Type"] = content_type

        url, headers = inject_credentials(
            route.credential,
            build_target_url(match, query),
            headers,
            self._secrets,
            accept_language=self._accept_language,
        )

        start = time.perf_counter()
        try:
            response = await self._client.request(
                method,
                url,
                headers=headers,
                content=body if send_body else None,
            )
        except httpx.HTTPError as exc:
            detail = self._scrub(str(exc) or type(exc).__name__)
            logger.warning(
                "upstream.failed",
                extra={
                    "route": route.prefix,
                    "method": method,
                    "error_type": type(exc).__name__,
                    "error_msg": detail,
                },
            )
            raise UpstreamAppError(
                code="upstream_request_failed",
                message="API request failed",
                details={"detail": detail},
            ) from exc

        text = response.text
        resp_content_type = response.headers.get("content-type") or DEFAULT_CONTENT_TYPE

        cache_status = CACHE_BYPASS
        if use_cache:
            cache_status = CACHE_MISS
            if response.is_success:
                self._cache.put(cache_key, text, response.status_code, resp_content_type)

        logger.info(
            "proxy.forwarded",
            extra={
                "route": route.prefix,
                "method": method,
                "upstream_host": urlsplit(url).hostname,
                "status_code": response.status_code,
                "cache": cache_status,
                "upstream_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )

        return ProxyResult(
            body=text,
            status=response.status_code,
            content_type=resp_content_type,
            cache_status=cache_status,
        )
