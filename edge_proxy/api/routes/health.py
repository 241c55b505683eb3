from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from edge_proxy.api.routes.proxy import CHAT_PATH
from edge_proxy.core.rate_limit import enforce_rate_limit

router = APIRouter(tags=["Health"], dependencies=[Depends(enforce_rate_limit)])


@router.get("/")
@router.get("/health")
def health_check(request: Request) -> dict:
    """Health check endpoint.

    Reports the proxied routes and which optional features are active, so an
    operator can see at a glance which upstream credentials are configured.
    Counts against the caller's rate limit like any other request.

    Returns:
        dict: Status, service name, route listing, features and timestamp.
    """

    state = request.app.state
    app_settings = state.settings.app

    return {
        "status": "ok",
        "service": app_settings.service_name,
        "routes": state.route_table.prefixes() + [CHAT_PATH],
        "features": {
            "rate_limit": {
                "enabled": app_settings.rate_limit_enabled,
                "requests": app_settings.rate_limit_requests,
                "window_seconds": app_settings.rate_limit_window_seconds,
            },
            "cache": {
                "routes": [route.prefix for route in state.route_table if route.cacheable],
                "ttl_seconds": app_settings.cache_ttl_seconds,
            },
            "chat_completion": state.chat_service.configured,
            "cors_origins": list(state.cors_policy.allowed_origins),
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
