"""HTTP middleware for request ID propagation and correlation.

The middleware:
- Accepts an incoming X-Request-ID header or generates a UUID
- Stores request_id in contextvars for logs and on request.state for the
  error handlers
- Echoes request_id and the total duration in response headers
- Clears the context afterwards so ids never leak between requests

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from edge_proxy.core.logging import clear_request_id, set_request_id


async def request_id_middleware(request: Request, call_next) -> Response:
    """Attach a correlation id and timing header to every request/response.

    The header name comes from the app's log settings (``LOG_REQUEST_ID_HEADER``).

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The response with X-Request-ID and X-Request-Duration-ms set.
    """

    header_name = request.app.state.settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    # Kept on the request too: the 500 handler runs after the context is cleared
    request.state.request_id = request_id
    request.state.request_id_header = header_name
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
