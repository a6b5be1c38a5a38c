"""
SupplyGuard Backend — Response Cache
======================================

What:  Per-URL TTL cache for GET JSON responses.
Why:   Dashboard endpoints (KPIs, forecasts, usage) are read far more often
       than they change; serving repeats from memory skips the database.
How:   Normalized "GET path?query" key → CachedResponse in an injected
       KeyValueStore, each entry with an absolute expiry.
Who:   Used by ResponseCacheMiddleware, the CacheSweeper monitor, and the
       cache administration routes.

Rules:
    - Only GET participates. lookup()/store_response() ignore other methods.
    - Only 200 responses are stored; errors are never replayed from cache.
    - An entry is absent once now >= expires_at, even before the sweep runs.
    - Query parameter order is normalized away:
      /api/kpi?b=2&a=1 and /api/kpi?a=1&b=2 share one entry.

Staleness:
    Entries are dropped early only through invalidate(), which the middleware
    calls after a successful write to the same resource path in this process.
    Writes that reach the database any other way (another replica, a batch
    job) stay invisible until the TTL runs out, so keep the TTL short.
"""

import logging
from typing import List, Optional
from urllib.parse import parse_qsl, urlencode

from supplyguard.schemas.system import CacheStats
from supplyguard.stores.base import Clock, KeyValueStore, SystemClock
from supplyguard.stores.memory import MemoryStore

logger = logging.getLogger(__name__)

CACHEABLE_METHOD = "GET"


class CachedResponse:
    """A captured response body plus what is needed to replay it."""

    __slots__ = ("body", "status_code", "media_type", "stored_at", "expires_at")

    def __init__(
        self,
        body: bytes,
        status_code: int,
        media_type: str,
        stored_at: float,
        expires_at: float,
    ):
        self.body = body
        self.status_code = status_code
        self.media_type = media_type
        self.stored_at = stored_at
        self.expires_at = expires_at

    def __repr__(self) -> str:
        return (
            f"<CachedResponse(status={self.status_code}, bytes={len(self.body)}, "
            f"expires_at={self.expires_at})>"
        )


def normalize_url(path: str, query_string: str = "") -> str:
    """Path plus query with parameters sorted; no '?' when there is no query."""
    if not query_string:
        return path
    pairs = sorted(parse_qsl(query_string, keep_blank_values=True))
    return f"{path}?{urlencode(pairs)}" if pairs else path


def cache_key(method: str, path: str, query_string: str = "") -> str:
    return f"{method.upper()} {normalize_url(path, query_string)}"


def _path_of(key: str) -> str:
    """'GET /api/x?a=1' → '/api/x'"""
    url = key.split(" ", 1)[1] if " " in key else key
    return url.split("?", 1)[0]


def is_under_prefix(path: str, prefix: str) -> bool:
    """Segment-aware prefix test: /api matches /api and /api/x, never /apiary."""
    if path == prefix:
        return True
    return path.startswith(prefix.rstrip("/") + "/")


def _paths_overlap(cached_path: str, written_path: str) -> bool:
    """True when one path equals or lies under the other."""
    return is_under_prefix(cached_path, written_path) or is_under_prefix(written_path, cached_path)


class ResponseCache:
    """
    TTL cache of GET responses.

    Attributes:
        ttl_seconds: Lifetime applied to each new entry
        hits / misses: Counters since construction (reported by stats())
    """

    def __init__(
        self,
        ttl_seconds: int = 300,
        store: Optional[KeyValueStore[CachedResponse]] = None,
        clock: Optional[Clock] = None,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self.store: KeyValueStore[CachedResponse] = store if store is not None else MemoryStore()
        self.clock = clock or SystemClock()
        self.hits = 0
        self.misses = 0

    def lookup(self, method: str, path: str, query_string: str = "") -> Optional[CachedResponse]:
        """
        Return the live entry for this request, or None.

        Non-GET methods always return None without counting a miss.
        """
        if method.upper() != CACHEABLE_METHOD:
            return None

        key = cache_key(method, path, query_string)
        cached = self.store.get(key)
        if cached is None or self.clock.now() >= cached.expires_at:
            self.misses += 1
            return None

        self.hits += 1
        return cached

    def store_response(
        self,
        method: str,
        path: str,
        query_string: str,
        status_code: int,
        body: bytes,
        media_type: str = "application/json",
    ) -> bool:
        """
        Capture a handler response.

        Returns:
            True if stored; False for non-GET or non-200 responses.
        """
        if method.upper() != CACHEABLE_METHOD or status_code != 200:
            return False

        now = self.clock.now()
        expires_at = now + self.ttl_seconds
        self.store.set(
            cache_key(method, path, query_string),
            CachedResponse(
                body=body,
                status_code=status_code,
                media_type=media_type,
                stored_at=now,
                expires_at=expires_at,
            ),
            expires_at,
        )
        return True

    def invalidate(self, path: str) -> int:
        """
        Drop every entry whose path equals, contains, or lies under `path`.

        POST /api/suppliers      → drops /api/suppliers?..., /api/suppliers/42
        PUT  /api/suppliers/42   → drops /api/suppliers/42 and /api/suppliers?...

        Returns:
            Number of entries removed.
        """
        stale: List[str] = [key for key in self.store.keys() if _paths_overlap(_path_of(key), path)]
        for key in stale:
            self.store.delete(key)
        if stale:
            logger.debug("Invalidated %d cached responses for %s", len(stale), path)
        return len(stale)

    def sweep(self) -> int:
        """Remove expired entries. Returns the count removed."""
        removed = self.store.sweep(self.clock.now())
        if removed:
            logger.debug("Cache sweep removed %d expired entries", removed)
        return removed

    def clear(self) -> int:
        cleared = self.store.clear()
        logger.info("Response cache flushed: %d entries removed", cleared)
        return cleared

    def stats(self) -> CacheStats:
        now = self.clock.now()
        live = 0
        for key in self.store.keys():
            entry = self.store.get_entry(key)
            if entry is not None and entry[1] > now:
                live += 1
        return CacheStats(
            entries=len(self.store),
            live_entries=live,
            ttl_seconds=self.ttl_seconds,
            hits=self.hits,
            misses=self.misses,
        )
