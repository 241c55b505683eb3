from __future__ import annotations

from urllib.parse import quote

from fastapi import APIRouter, Depends, Request, Response

from edge_proxy.core.rate_limit import enforce_rate_limit
from edge_proxy.services.proxy_service import ProxyResult

CHAT_PATH = "/api/anthropic"

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"]

router = APIRouter(tags=["Proxy"], dependencies=[Depends(enforce_rate_limit)])


def _raw_path(request: Request) -> str:
    # Percent-escapes such as %3F and %23 must reach the upstream untouched
    raw = request.scope.get("raw_path")
    if raw:
        return raw.decode("latin-1").partition("?")[0]
    return quote(request.url.path)


def _to_response(result: ProxyResult) -> Response:
    response = Response(
        content=result.body,
        status_code=result.status,
        media_type=result.content_type,
    )
    if result.cache_status:
        response.headers["X-Cache"] = result.cache_status
    return response


@router.post(CHAT_PATH)
async def chat_completion(request: Request) -> Response:
    """Validated proxy to the chat-completion provider.

    The provider key is checked before the body is read, so an unconfigured
    proxy answers 503 without parsing anything.

    Raises:
        CredentialMissingAppError: 503 when no provider key is configured.
        ValidationAppError: 400 when the body lacks a ``messages`` array.
        UpstreamAppError: 502 when the provider cannot be reached.
    """
    service = request.app.state.chat_service
    service.ensure_configured()
    raw_body = await request.body()
    return _to_response(await service.complete(raw_body))


@router.api_route("/{full_path:path}", methods=PROXY_METHODS)
async def proxy_request(request: Request, full_path: str) -> Response:
    """Forward any other request to the upstream owning its path prefix.

    Raises:
        RouteNotFoundAppError: 404 when no prefix matches.
        UpstreamAppError: 502 when the upstream cannot be reached.
    """
    body = b""
    if request.method not in ("GET", "HEAD"):
        body = await request.body()

    result = await request.app.state.proxy_service.forward(
        method=request.method,
        path=_raw_path(request),
        query=request.url.query,
        body=body,
        content_type=request.headers.get("content-type"),
    )
    return _to_response(result)
