"""Request schema for the chat-completion proxy route."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

MAX_TOKENS_CEILING = 4096
DEFAULT_MAX_TOKENS = 2048
TEMPERATURE_CEILING = 1.0
DEFAULT_TEMPERATURE = 0.7
MAX_MESSAGES = 10


class ChatCompletionRequest(BaseModel):
    """Client-supplied chat request, before limits are applied.

    Unknown fields are dropped: only the fields below are ever forwarded.
    """

    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    messages: list[Any] = Field(..., description="Conversation turns, oldest first")
    model: str | None = Field(None, description="Provider model identifier")
    max_tokens: int | None = Field(None, description="Requested completion budget")
    temperature: float | None = Field(None, description="Requested sampling temperature")
    system: str | list[Any] | None = Field(None, description="Optional system prompt")

    def to_upstream_payload(self, default_model: str) -> dict[str, Any]:
        """Build the upstream body with limits applied.

        - ``max_tokens`` is capped at 4096 (2048 when unset)
        - ``temperature`` is capped at 1.0 (0.7 when unset)
        - only the first 10 messages are kept
        """

        max_tokens = DEFAULT_MAX_TOKENS if self.max_tokens is None else self.max_tokens
        temperature = DEFAULT_TEMPERATURE if self.temperature is None else self.temperature

        return {
            "model": self.model or default_model,
            "max_tokens": min(max_tokens, MAX_TOKENS_CEILING),
            "temperature": min(temperature, TEMPERATURE_CEILING),
            "system": self.system if self.system is not None else "",
            "messages": self.messages[:MAX_MESSAGES],
        }
