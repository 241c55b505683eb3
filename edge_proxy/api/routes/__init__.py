from __future__ import annotations

from edge_proxy.api.routes.health import router as health_router
from edge_proxy.api.routes.proxy import router as proxy_router

__all__ = ["health_router", "proxy_router"]
