"""In-memory per-client fixed-window rate limiter.

Notes:
- Per-process only: every worker (or edge isolate) keeps its own table, so a
  client spread over several instances can exceed the nominal quota.
- No locking: the table is only touched from the event loop between await
  points, never from worker threads.
- A restart silently resets all counters.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

from edge_proxy.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult

logger = logging.getLogger(__name__)


@dataclass
class _WindowState:
    count: int
    reset_at: float


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter with one fixed window per client.

    A client's window opens at its first request and lasts ``window_seconds``.
    Once the window has passed, the next request starts a fresh window with a
    zero count. Every request increments the counter, including rejected
    ones, and a request is admitted while the counter is at most ``limit``.

    The table is swept of expired windows whenever it grows beyond
    ``max_entries``. This only slows growth; it is not a hard cap.
    """

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: int,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            limit: Maximum number of admitted requests per window.
            window_seconds: Length of each client's window in seconds.
            max_entries: Table size above which expired windows are swept.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If any argument is out of range.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")

        self._limit = limit
        self._window_seconds = window_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._state_by_key: dict[str, _WindowState] = {}

    def __len__(self) -> int:
        return len(self._state_by_key)

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    def _get_or_reset_state(self, key: str, now: float) -> _WindowState:
        """Return the client's window, opening a new one when it has passed."""
        state = self._state_by_key.get(key)
        if state is None:
            state = _WindowState(count=0, reset_at=now + self._window_seconds)
            self._state_by_key[key] = state
        elif now > state.reset_at:
            state.count = 0
            state.reset_at = now + self._window_seconds
        return state

    def _sweep_expired(self, now: float) -> None:
        expired = [k for k, state in self._state_by_key.items() if now > state.reset_at]
        for key in expired:
            del self._state_by_key[key]
        logger.debug(
            "rate_limit.swept",
            extra={"removed": len(expired), "size": len(self._state_by_key)},
        )

    def consume(self, key: str, *, cost: int = 1) -> RateLimitResult:
        """Count a request for ``key`` and decide whether it is admitted.

        Args:
            key: Client identifier.
            cost: Units to consume (default 1).

        Returns:
            RateLimitResult with the decision and window metadata.

        Raises:
            ValueError: If key is empty or cost is invalid.
        """
        if cost < 1:
            raise ValueError("cost must be >= 1")
        if not key:
            raise ValueError("key must be a non-empty string")

        now = self._clock()
        if len(self._state_by_key) > self._max_entries:
            self._sweep_expired(now)

        state = self._get_or_reset_state(key, now)
        state.count += cost

        remaining = max(0, self._limit - state.count)
        if state.count <= self._limit:
            return RateLimitResult(
                allowed=True,
                limit=self._limit,
                remaining=remaining,
                reset_at=int(math.ceil(state.reset_at)),
                retry_after_seconds=None,
            )

        return RateLimitResult(
            allowed=False,
            limit=self._limit,
            remaining=remaining,
            reset_at=int(math.ceil(state.reset_at)),
            retry_after_seconds=max(0, int(math.ceil(state.reset_at - now))),
        )
