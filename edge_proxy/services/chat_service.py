"""Validated pass-through to the chat-completion (Anthropic messages) API.

Unlike the generic routes, this one refuses to run without its server-side
key, validates the request body, clamps generation limits and always
answers with JSON. Responses are never cached.
"""

from __future__ import annotations

import json
import logging
import time

import httpx
from pydantic import ValidationError

from edge_proxy.core.errors import (
    CredentialMissingAppError,
    UpstreamAppError,
    ValidationAppError,
)
from edge_proxy.core.logging import scrub_secrets
from edge_proxy.schemas.chat import ChatCompletionRequest
from edge_proxy.services.proxy_service import ProxyResult

logger = logging.getLogger(__name__)

CHAT_CONTENT_TYPE = "application/json"


def _reject_constant(name: str) -> None:
    # NaN and Infinity are accepted by json.loads but are not JSON
    raise ValidationAppError(
        code="invalid_json",
        message=f"Invalid request: '{name}' is not a valid JSON number",
    )


def parse_chat_request(raw_body: bytes) -> ChatCompletionRequest:
    """Parse and validate a raw chat request body.

    Args:
        raw_body: Request body bytes.

    Returns:
        Validated ChatCompletionRequest.

    Raises:
        ValidationAppError: If the body is not JSON, not an object, or a
            recognised field (notably ``messages``) is missing or malformed.
            NaN and Infinity literals are rejected as invalid JSON.
    """
    try:
        payload = json.loads(raw_body or b"null", parse_constant=_reject_constant)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationAppError(
            code="invalid_json",
            message="Invalid request: body must be valid JSON",
        ) from exc

    if not isinstance(payload, dict):
        raise ValidationAppError(
            code="invalid_request",
            message="Invalid request: body must be a JSON object with a 'messages' array",
            details={"field": "messages"},
        )

    try:
        return ChatCompletionRequest.model_validate(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = str(first["loc"][0]) if first.get("loc") else "messages"
        if field == "messages":
            message = "Invalid request: 'messages' must be an array"
        else:
            message = f"Invalid request: '{field}' has an invalid value"
        raise ValidationAppError(
            code="invalid_request",
            message=message,
            details={"field": field},
        ) from exc


class ChatCompletionService:
    """Forward chat requests to the provider with the server-side key."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        api_key: str | None,
        api_url: str,
        api_version: str,
        default_model: str,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._api_url = api_url
        self._api_version = api_version
        self._default_model = default_model

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def ensure_configured(self) -> None:
        """Fail fast when the provider key is not configured.

        Raises:
            CredentialMissingAppError: If no API key is set.
        """
        if not self._api_key:
            logger.error("chat.credential_missing", extra={"setting": "ANTHROPIC_API_KEY"})
            raise CredentialMissingAppError(
                code="credential_missing",
                message="Chat completion is not configured on this proxy",
            )

    async def complete(self, raw_body: bytes) -> ProxyResult:
        """Validate, clamp and forward one chat request.

        Args:
            raw_body: Inbound request body.

        Returns:
            ProxyResult with the upstream status and body verbatim.

        Raises:
            CredentialMissingAppError: If the provider key is not configured.
            ValidationAppError: If the body has the wrong shape.
            UpstreamAppError: If the provider call fails at transport level.
        """
        self.ensure_configured()
        request = parse_chat_request(raw_body)
        payload = request.to_upstream_payload(self._default_model)

        headers = {
            "Content-Type": CHAT_CONTENT_TYPE,
            "x-api-key": self._api_key,
            "anthropic-version": self._api_version,
        }

        start = time.perf_counter()
        try:
            response = await self._client.post(self._api_url, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            detail = scrub_secrets(str(exc) or type(exc).__name__, [self._api_key])
            logger.warning(
                "upstream.failed",
                extra={
                    "route": "/api/anthropic",
                    "error_type": type(exc).__name__,
                    "error_msg": detail,
                },
            )
            raise UpstreamAppError(
                code="upstream_request_failed",
                message="API request failed",
                details={"detail": detail},
            ) from exc

        logger.info(
            "chat.forwarded",
            extra={
                "model": payload["model"],
                "message_count": len(payload["messages"]),
                "dropped_messages": len(request.messages) - len(payload["messages"]),
                "max_tokens": payload["max_tokens"],
                "status_code": response.status_code,
                "upstream_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )

        return ProxyResult(
            body=response.text,
            status=response.status_code,
            content_type=CHAT_CONTENT_TYPE,
        )
