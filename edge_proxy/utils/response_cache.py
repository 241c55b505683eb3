"""In-memory TTL cache for upstream responses.

Entries are keyed by request path plus query string and hold the upstream
body, status and content type. The size bound is deliberately relaxed: when
the table grows past ``max_entries`` a write first sweeps expired entries,
which slows growth but does not enforce a hard ceiling.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """A cached upstream response with its expiration timestamp."""

    body: str
    status: int
    content_type: str
    expires_at: float


class ResponseCache:
    """Per-process TTL cache with opportunistic expiry sweeps.

    Attributes:
        ttl_seconds: Lifetime applied to every entry.
        max_entries: Size above which a write sweeps expired entries.
    """

    def __init__(
        self,
        ttl_seconds: int = 300,
        max_entries: int = 500,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")

        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._store: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __len__(self) -> int:
        return len(self._store)

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"ResponseCache(ttl_seconds={self._ttl}, max_entries={self._max_entries}, "
            f"size={len(self._store)}, hits={self._hits}, misses={self._misses}, "
            f"evictions={self._evictions})"
        )

    def get(self, key: str) -> CacheEntry | None:
        """Return the entry for ``key`` if present and still fresh.

        Expired entries are removed on the way out.

        Args:
            key: Request path plus query string.

        Returns:
            The cached entry, or None on a miss.
        """

        entry = self._store.get(key)
        if entry is None:
            self._misses += 1
            logger.debug("cache.miss", extra={"cache_key": key, "reason": "not_found"})
            return None

        if entry.expires_at <= self._clock():
            self._evict_single(key)
            self._misses += 1
            logger.debug("cache.miss", extra={"cache_key": key, "reason": "expired"})
            return None

        self._hits += 1
        logger.debug("cache.hit", extra={"cache_key": key})
        return entry

    def put(self, key: str, body: str, status: int, content_type: str) -> CacheEntry:
        """Store a response, replacing any previous entry for ``key``.

        Args:
            key: Request path plus query string.
            body: Upstream response body as text.
            status: Upstream HTTP status.
            content_type: Upstream content type.

        Returns:
            The stored entry.
        """

        now = self._clock()
        if len(self._store) > self._max_entries:
            self._evict_expired(now)

        entry = CacheEntry(
            body=body,
            status=status,
            content_type=content_type,
            expires_at=now + self._ttl,
        )
        self._store[key] = entry

        logger.debug(
            "cache.set",
            extra={
                "cache_key": key,
                "size": len(self._store),
                "ttl_s": self._ttl,
            },
        )
        return entry

    def clear(self) -> None:
        """Remove all cached entries and reset counters."""

        self._store.clear()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def stats(self) -> dict[str, int]:
        """Return lightweight cache metrics without exposing values."""

        return {
            "ttl_seconds": self._ttl,
            "max_entries": self._max_entries,
            "entries": len(self._store),
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
        }

    def _evict_single(self, key: str) -> None:
        if self._store.pop(key, None) is not None:
            self._evictions += 1

    def _evict_expired(self, now: float) -> None:
        expired_keys = [k for k, entry in self._store.items() if entry.expires_at <= now]
        for key in expired_keys:
            self._evict_single(key)


def build_cache_key(path: str, query: str = "") -> str:
    """Build the cache key for a request: its path plus query string."""

    return f"{path}?{query}" if query else path
