"""Rate limiting adapters.

The API layer depends on ``AbstractRateLimiter`` only, so the per-process
in-memory limiter can later be replaced by a shared store without touching
the routes.
"""

from edge_proxy.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from edge_proxy.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter

__all__ = [
    "AbstractRateLimiter",
    "InMemoryFixedWindowRateLimiter",
    "RateLimitResult",
]
