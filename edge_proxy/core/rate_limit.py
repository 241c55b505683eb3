"""Rate limiting dependency for FastAPI routes.

The limiter instance lives on ``app.state`` (built by the application
factory), so each app, and each test, owns its own table.

Rate limiting strategy:
- Per-client fixed window keyed by source IP.
- The IP comes from the edge runtime header (CF-Connecting-IP by default),
  then the socket peer address.
"""

from __future__ import annotations

import hashlib
import logging

from fastapi import Request

from edge_proxy.adapters.rate_limit.base import AbstractRateLimiter
from edge_proxy.core.config import Settings
from edge_proxy.core.errors import RateLimitAppError

logger = logging.getLogger(__name__)


def get_client_id(request: Request, header_name: str) -> str:
    """Identify the client for rate limiting.

    Args:
        request: FastAPI request.
        header_name: Header carrying the original client IP.

    Returns:
        str: Client IP, or "unknown" when none is available.
    """

    forwarded = request.headers.get(header_name)
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _hash_limiter_key(key: str) -> str:
    """Hash the rate limit key for logging without exposing client IPs."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


async def enforce_rate_limit(request: Request) -> None:
    """FastAPI dependency enforcing the per-client rate limit.

    Args:
        request: FastAPI request.

    Raises:
        RateLimitAppError: 429 when the client exceeded its budget.
    """

    app_settings: Settings = request.app.state.settings
    if not app_settings.app.rate_limit_enabled:
        return

    limiter: AbstractRateLimiter = request.app.state.rate_limiter
    client_id = get_client_id(request, app_settings.app.client_ip_header)
    key_hash = _hash_limiter_key(client_id)

    result = limiter.consume(client_id)
    if result.allowed:
        logger.debug(
            "rate_limit.allowed",
            extra={
                "key_hash": key_hash,
                "limit": result.limit,
                "remaining": result.remaining,
            },
        )
        return

    retry_after = result.retry_after_seconds or 0
    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key_hash": key_hash,
            "limit": result.limit,
            "window_s": app_settings.app.rate_limit_window_seconds,
            "retry_after_s": retry_after,
        },
    )

    headers: dict[str, str] = {}
    if app_settings.app.rate_limit_include_headers:
        headers["Retry-After"] = str(retry_after)
        headers["X-RateLimit-Limit"] = str(result.limit)
        headers["X-RateLimit-Remaining"] = str(result.remaining)
        headers["X-RateLimit-Reset"] = str(result.reset_at)

    raise RateLimitAppError(
        code="rate_limited",
        message="Too many requests. Try again later.",
        details={"retry_after": retry_after},
        headers=headers or None,
    )
