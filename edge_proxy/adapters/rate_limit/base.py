"""Rate limiter interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a single consume call.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Requests left in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the client's window resets.
        retry_after_seconds: Suggested wait time in seconds when blocked.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None


class AbstractRateLimiter(ABC):
    """Interface for per-client rate limiters."""

    @abstractmethod
    def consume(self, key: str, *, cost: int = 1) -> RateLimitResult:
        """Count a request against ``key`` and decide whether it is allowed.

        Args:
            key: Client identifier (e.g. source IP).
            cost: Units to consume (default 1).

        Returns:
            RateLimitResult describing the decision.
        """
        raise NotImplementedError

    def admit(self, key: str) -> bool:
        """Consume one unit and return only the admit/deny decision."""

        return self.consume(key).allowed
