"""
SupplyGuard Backend — Fixed-Window Rate Limiter
=================================================

What:  Per-key request counter gating admission to the API.
Why:   Protects the API (and login, webhook and admin endpoints in particular)
       from abuse and brute force.
How:   Fixed-window counter per client key, held in an injected KeyValueStore.
Who:   Used by RateLimitMiddleware (global "api" limiter) and by the
       require_rate_limit() route dependency (strict / auth / webhook).
When:  Once per request, before the handler runs.

Algorithm: Fixed Window Counter
    On every admit(key):
    1. Purge every entry whose window has expired (full scan of the store)
    2. Fetch or create the entry for key
    3. If now >= reset_at: count = 0, reset_at = now + window
    4. count += 1
    5. count > max_requests → deny, retry_after = ceil(reset_at - now)
       otherwise allow

    Why fixed window (not sliding):
    - One integer and one timestamp per key, O(1) per request besides the purge
    - Matches the header contract: X-RateLimit-Reset is a single instant
    Trade-off: a client can burst up to 2 × max across a window boundary.

    The purge in step 1 scans every tracked key on every call. That is fine
    for thousands of keys and is the known scalability limit of this design.

Production Upgrade Path:
    Counters live in the injected store. With several workers or replicas,
    each keeps its own counters and the effective limit multiplies by the
    replica count. Swap MemoryStore for a shared store in create_app().
"""

import logging
from typing import Dict, Iterator, Mapping, Optional, Tuple

from supplyguard.schemas.rate_limit import RateLimitDecision, retry_after_seconds
from supplyguard.stores.base import Clock, KeyValueStore, SystemClock
from supplyguard.stores.memory import MemoryStore

logger = logging.getLogger(__name__)


class RateLimitEntry:
    """Counter state for one client key within one window."""

    __slots__ = ("count", "reset_at")

    def __init__(self, count: int, reset_at: float):
        self.count = count
        self.reset_at = reset_at

    def __repr__(self) -> str:
        return f"<RateLimitEntry(count={self.count}, reset_at={self.reset_at})>"


class RateLimiter:
    """
    One named fixed-window limiter with its own keyspace.

    Attributes:
        name:           Limiter name, used in logs ("api", "auth", ...)
        window_seconds: Length of each window
        max_requests:   Requests admitted per key per window
    """

    def __init__(
        self,
        name: str,
        window_seconds: float,
        max_requests: int,
        store: Optional[KeyValueStore[RateLimitEntry]] = None,
        clock: Optional[Clock] = None,
    ):
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.name = name
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.store: KeyValueStore[RateLimitEntry] = store if store is not None else MemoryStore()
        self.clock = clock or SystemClock()

    def admit(self, key: str) -> RateLimitDecision:
        """
        Count one request for key and decide whether it may proceed.

        Args:
            key: Client identifier (remote address, user id, ...)

        Returns:
            RateLimitDecision with allowed flag and header values.
            Denial is a normal return value, never an exception.
        """
        now = self.clock.now()

        # ── Lazy purge of expired windows ─────────────────────────────────
        purged = self.store.sweep(now)
        if purged:
            logger.debug("Limiter %s purged %d expired keys", self.name, purged)

        # ── Fetch or start the window ─────────────────────────────────────
        entry = self.store.get(key)
        if entry is None:
            entry = RateLimitEntry(count=0, reset_at=now + self.window_seconds)
        elif now >= entry.reset_at:
            entry.count = 0
            entry.reset_at = now + self.window_seconds

        entry.count += 1
        self.store.set(key, entry, entry.reset_at)

        remaining = max(0, self.max_requests - entry.count)

        if entry.count > self.max_requests:
            retry_after = retry_after_seconds(entry.reset_at, now)
            logger.warning(
                "Rate limit %s exceeded for %s: %d requests, limit %d per %ss",
                self.name,
                key,
                entry.count,
                self.max_requests,
                self.window_seconds,
            )
            return RateLimitDecision(
                allowed=False,
                limit=self.max_requests,
                remaining=remaining,
                count=entry.count,
                reset_at=entry.reset_at,
                retry_after=retry_after,
            )

        return RateLimitDecision(
            allowed=True,
            limit=self.max_requests,
            remaining=remaining,
            count=entry.count,
            reset_at=entry.reset_at,
        )

    def reset(self, key: Optional[str] = None) -> None:
        """Forget one key, or every key when key is None."""
        if key is None:
            self.store.clear()
        else:
            self.store.delete(key)

    def tracked_keys(self) -> int:
        return len(self.store)


class RateLimiterRegistry(Mapping[str, RateLimiter]):
    """
    Named, independent limiters.

    Each limiter owns a separate store, so hitting the auth limit never
    consumes the general API budget and vice versa.
    """

    def __init__(self, limiters: Dict[str, RateLimiter]):
        self._limiters = dict(limiters)

    @classmethod
    def from_profiles(
        cls,
        profiles: Mapping[str, Tuple[int, int]],
        clock: Optional[Clock] = None,
    ) -> "RateLimiterRegistry":
        """
        Build one MemoryStore-backed limiter per profile.

        Args:
            profiles: name → (window_seconds, max_requests), e.g.
                      Settings.rate_limit_profiles
            clock:    Shared time source (FakeClock in tests)
        """
        return cls(
            {
                name: RateLimiter(
                    name=name,
                    window_seconds=window,
                    max_requests=maximum,
                    store=MemoryStore(),
                    clock=clock,
                )
                for name, (window, maximum) in profiles.items()
            }
        )

    def __getitem__(self, name: str) -> RateLimiter:
        return self._limiters[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._limiters)

    def __len__(self) -> int:
        return len(self._limiters)

    def tracked_keys(self) -> Dict[str, int]:
        return {name: limiter.tracked_keys() for name, limiter in self._limiters.items()}
