"""Global exception handlers for consistent error responses.

Every error leaves the proxy in the same envelope:

    {"error": <message>, "code": <code>, "request_id": <id>,
     "detail": <optional string>, "routes": <optional list>}

Design:
- AppError subclasses carry their own HTTP status (400, 404, 429, 502, 503)
- Unexpected Exception → generic 500 (safety net, nothing leaked)
- Responses are CORS-decorated so browsers can read the error body
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from edge_proxy.core.cors import decorate_for_request
from edge_proxy.core.errors import AppError
from edge_proxy.core.logging import get_request_id

logger = logging.getLogger(__name__)


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None) or get_request_id()


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render a domain error with its own status code.

    Only ``detail`` and ``routes`` from the structured details reach the
    client; everything else stays server-side.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with the error envelope.
    """
    status_code = exc.status_code
    details = exc.details or {}

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": _request_id(request),
        },
    )

    content: dict = {
        "error": exc.message,
        "code": exc.code,
        "request_id": _request_id(request),
    }
    if details.get("detail"):
        content["detail"] = details["detail"]
    if "routes" in details:
        content["routes"] = details["routes"]

    response = JSONResponse(
        status_code=status_code,
        content=content,
        headers=exc.headers,
    )
    return decorate_for_request(request, response)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs the failure for debugging while returning a generic message with no
    implementation details.

    Args:
        request: FastAPI request object.
        exc: Exception instance (unexpected).

    Returns:
        JSONResponse with a generic 500 error.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": _request_id(request),
        },
    )

    response = JSONResponse(
        status_code=500,
        content={
            "error": "An unexpected error occurred. Please try again later.",
            "code": "internal_server_error",
            "request_id": _request_id(request),
        },
    )
    # This response bypasses the request-id middleware, so echo the id here
    header_name = getattr(request.state, "request_id_header", None)
    request_id = _request_id(request)
    if header_name and request_id:
        response.headers[header_name] = request_id
    return decorate_for_request(request, response)


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with the FastAPI app.

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
