"""CORS negotiation for every response the proxy produces.

The policy echoes allowlisted origins. A missing origin, the literal "null",
or an unrecognised origin all receive the first allowlist entry instead of a
CORS failure. That fallback for unknown origins keeps misconfigured but
legitimate front-ends working; it is pending product-owner review and must
not be tightened silently.

Usage:
    app.middleware("http")(cors_middleware)
"""

from __future__ import annotations

import logging
from typing import Iterable

from fastapi import Request, Response

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_ORIGINS: tuple[str, ...] = (
    "https://meyermansheidi.github.io",
    "http://localhost:8000",
    "http://127.0.0.1:8000",
    "http://localhost:5500",
    "http://127.0.0.1:5500",
)

ALLOW_METHODS = "GET, POST, OPTIONS"
ALLOW_HEADERS = "Content-Type, Authorization"
MAX_AGE_SECONDS = 86400


class CorsPolicy:
    """Fixed origin allowlist plus one operator-configured origin."""

    def __init__(
        self,
        allowed_origins: Iterable[str] = DEFAULT_ALLOWED_ORIGINS,
        extra_origin: str | None = None,
    ) -> None:
        origins = list(allowed_origins)
        if extra_origin and extra_origin not in origins:
            origins.append(extra_origin)
        if not origins:
            raise ValueError("at least one allowed origin is required")
        self._origins = tuple(origins)

    @property
    def allowed_origins(self) -> tuple[str, ...]:
        return self._origins

    def resolve_origin(self, origin: str | None) -> str:
        """Pick the Access-Control-Allow-Origin value for a request origin."""

        if origin and origin != "null":
            if origin in self._origins:
                return origin
            logger.debug("cors.unknown_origin", extra={"origin": origin})
        return self._origins[0]

    def decorate(self, origin: str | None, response: Response) -> Response:
        """Set CORS headers on ``response`` for the given request origin.

        Args:
            origin: Value of the request's Origin header, if any.
            response: Outgoing response (mutated in place).

        Returns:
            The same response, for chaining.
        """

        headers = response.headers
        headers["Access-Control-Allow-Origin"] = self.resolve_origin(origin)
        headers["Access-Control-Allow-Methods"] = ALLOW_METHODS
        headers["Access-Control-Allow-Headers"] = ALLOW_HEADERS
        headers["Access-Control-Max-Age"] = str(MAX_AGE_SECONDS)

        vary = headers.get("Vary")
        if not vary:
            headers["Vary"] = "Origin"
        elif "origin" not in {v.strip().lower() for v in vary.split(",")}:
            headers["Vary"] = f"{vary}, Origin"
        return response


def decorate_for_request(request: Request, response: Response) -> Response:
    """Apply the app's CORS policy using the request's Origin header."""

    policy: CorsPolicy = request.app.state.cors_policy
    return policy.decorate(request.headers.get("origin"), response)


async def cors_middleware(request: Request, call_next) -> Response:
    """Answer preflight requests and decorate every other response.

    OPTIONS requests on any path receive an empty 204 without reaching the
    rate limiter or the routes.
    """

    if request.method == "OPTIONS":
        return decorate_for_request(request, Response(status_code=204))

    response: Response = await call_next(request)
    return decorate_for_request(request, response)
