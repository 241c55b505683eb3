"""Tests for the chat-completion proxy route (POST /api/anthropic)."""

import json

import httpx
import pytest

from edge_proxy.core.errors import ValidationAppError
from edge_proxy.schemas.chat import ChatCompletionRequest
from edge_proxy.services.chat_service import parse_chat_request

CHAT_URL = "/api/anthropic"


def _messages(count: int) -> list[dict]:
    return [{"role": "user", "content": f"message {i}"} for i in range(count)]


def _sent_payload(upstream) -> dict:
    return json.loads(upstream.last.content)


class TestChatForwarding:
    def test_limits_are_clamped_before_forwarding(self, client, upstream) -> None:
        response = client.post(
            CHAT_URL,
            json={"messages": _messages(15), "max_tokens": 999999, "temperature": 3.5},
        )

        assert response.status_code == 200
        payload = _sent_payload(upstream)
        assert payload["max_tokens"] == 4096
        assert payload["temperature"] == 1.0
        assert payload["messages"] == _messages(10)

    def test_defaults_are_filled_in(self, client, upstream) -> None:
        client.post(CHAT_URL, json={"messages": _messages(1)})

        payload = _sent_payload(upstream)
        assert payload == {
            "model": "claude-sonnet-4-20250514",
            "max_tokens": 2048,
            "temperature": 0.7,
            "system": "",
            "messages": _messages(1),
        }

    def test_client_values_within_limits_are_kept(self, client, upstream) -> None:
        client.post(
            CHAT_URL,
            json={
                "messages": _messages(2),
                "model": "claude-3-5-haiku-latest",
                "max_tokens": 512,
                "temperature": 0,
                "system": "Answer in Dutch.",
                "stream": True,
            },
        )

        payload = _sent_payload(upstream)
        assert payload["model"] == "claude-3-5-haiku-latest"
        assert payload["max_tokens"] == 512
        assert payload["temperature"] == 0
        assert payload["system"] == "Answer in Dutch."
        assert "stream" not in payload

    def test_provider_headers_carry_server_key(self, client, upstream) -> None:
        client.post(CHAT_URL, json={"messages": _messages(1)})

        sent = upstream.last
        assert str(sent.url) == "https://api.anthropic.com/v1/messages"
        assert sent.method == "POST"
        assert sent.headers["x-api-key"] == "anthropic-secret-key"
        assert sent.headers["anthropic-version"] == "2023-06-01"
        assert sent.headers["content-type"] == "application/json"

    def test_upstream_status_and_body_returned_as_json(self, client, upstream) -> None:
        upstream.responder = lambda request: httpx.Response(
            529,
            content=b'{"type":"error","error":{"type":"overloaded_error"}}',
            headers={"Content-Type": "text/plain"},
        )

        response = client.post(CHAT_URL, json={"messages": _messages(1)})

        assert response.status_code == 529
        assert response.content == b'{"type":"error","error":{"type":"overloaded_error"}}'
        assert response.headers["content-type"] == "application/json"
        assert "X-Cache" not in response.headers

    def test_chat_responses_are_never_cached(self, client, upstream) -> None:
        client.post(CHAT_URL, json={"messages": _messages(1)})
        client.post(CHAT_URL, json={"messages": _messages(1)})

        assert upstream.calls == 2

    def test_transport_failure_returns_502_without_key(self, client, upstream) -> None:
        def fail(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout(
                f"timed out (key {request.headers['x-api-key']})", request=request
            )

        upstream.responder = fail

        response = client.post(CHAT_URL, json={"messages": _messages(1)})

        assert response.status_code == 502
        assert "anthropic-secret-key" not in response.text
        assert response.json()["detail"] == "timed out (key [REDACTED])"


class TestChatRejections:
    def test_missing_messages_returns_400_before_upstream_call(self, client, upstream) -> None:
        response = client.post(CHAT_URL, json={"max_tokens": 10})

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "invalid_request"
        assert "messages" in body["error"]
        assert upstream.calls == 0

    @pytest.mark.parametrize(
        "body",
        [
            {"messages": "hello"},
            {"messages": {"role": "user"}},
            {"messages": None},
            [{"role": "user", "content": "hi"}],
        ],
    )
    def test_wrongly_shaped_messages_return_400(self, client, upstream, body) -> None:
        response = client.post(CHAT_URL, json=body)

        assert response.status_code == 400
        assert upstream.calls == 0

    def test_invalid_json_returns_400(self, client, upstream) -> None:
        response = client.post(
            CHAT_URL, content=b"{not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_json"
        assert upstream.calls == 0

    @pytest.mark.parametrize(
        "raw",
        [
            b'{"messages": [], "temperature": NaN}',
            b'{"messages": [], "temperature": -Infinity}',
            b'{"messages": [{"role": "user", "content": Infinity}]}',
        ],
    )
    def test_non_finite_numbers_return_400(self, client, upstream, raw) -> None:
        response = client.post(
            CHAT_URL, content=raw, headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_json"
        assert upstream.calls == 0

    def test_missing_credential_returns_503_before_body_parsing(
        self, make_client, upstream
    ) -> None:
        client = make_client(secrets={"anthropic_api_key": None})

        response = client.post(CHAT_URL, content=b"{not json")

        assert response.status_code == 503
        assert response.json()["code"] == "credential_missing"
        assert upstream.calls == 0

    def test_get_falls_through_to_route_not_found(self, client, upstream) -> None:
        response = client.get(CHAT_URL)

        assert response.status_code == 404
        assert upstream.calls == 0

    def test_chat_route_is_rate_limited(self, make_client) -> None:
        client = make_client(rate_limit_requests=1)
        client.post(CHAT_URL, json={"messages": _messages(1)})

        response = client.post(CHAT_URL, json={"messages": _messages(1)})

        assert response.status_code == 429


class TestChatRequestModel:
    def test_parse_names_the_offending_field(self) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            parse_chat_request(b'{"messages": [], "max_tokens": "lots"}')

        assert exc_info.value.details == {"field": "max_tokens"}

    def test_model_rejects_non_finite_temperature(self) -> None:
        with pytest.raises(ValueError):
            ChatCompletionRequest(messages=[], temperature=float("inf"))

    def test_empty_body_is_rejected(self) -> None:
        with pytest.raises(ValidationAppError):
            parse_chat_request(b"")

    def test_payload_keeps_explicit_zero_values(self) -> None:
        request = ChatCompletionRequest(messages=[], max_tokens=0, temperature=0.0)

        payload = request.to_upstream_payload("default-model")

        assert payload["max_tokens"] == 0
        assert payload["temperature"] == 0.0
        assert payload["model"] == "default-model"
