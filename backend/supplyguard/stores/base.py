"""
SupplyGuard Backend — Store and Clock Interfaces
==================================================

What:  Abstract contracts for the expiring key-value state used by the rate
       limiter and the response cache, and for reading the current time.
Why:   The limiter and cache never touch a global dict. They receive a store and
       a clock, so a shared backend (e.g. Redis) can replace the in-process map
       without touching call sites, and tests can drive time by hand.
How:   Concrete stores inherit from KeyValueStore; concrete clocks from Clock.
Who:   Implemented by MemoryStore / SystemClock; consumed by RateLimiter and
       ResponseCache.

Contract notes:
    - Every entry carries an absolute expiry (epoch seconds).
    - get() returns stale entries as-is. Deciding what "expired" means for a
      value (>= vs >) is the caller's job; sweep() is the only bulk eviction.
    - All methods are synchronous: an in-memory map never blocks the event loop.
"""

import time
from abc import ABC, abstractmethod
from typing import Generic, Iterator, List, Optional, Tuple, TypeVar

V = TypeVar("V")


class Clock(ABC):
    """Source of the current time in epoch seconds."""

    @abstractmethod
    def now(self) -> float:
        ...


class SystemClock(Clock):
    """Wall-clock time (time.time)."""

    def now(self) -> float:
        return time.time()


class KeyValueStore(ABC, Generic[V]):
    """
    Abstract expiring key-value store.

    Implementations:
        - MemoryStore: process-local dict (default, single-instance only)
        - (Future) RedisStore: shared counters across replicas
    """

    @abstractmethod
    def get(self, key: str) -> Optional[V]:
        """Return the value for key, or None if absent."""
        ...

    @abstractmethod
    def get_entry(self, key: str) -> Optional[Tuple[V, float]]:
        """Return (value, expires_at) for key, or None if absent."""
        ...

    @abstractmethod
    def set(self, key: str, value: V, expires_at: float) -> None:
        """Insert or replace key with an absolute expiry timestamp."""
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove key. Returns True if it was present."""
        ...

    @abstractmethod
    def sweep(self, now: float) -> int:
        """Remove every entry with expires_at <= now. Returns the count removed."""
        ...

    @abstractmethod
    def clear(self) -> int:
        """Remove everything. Returns the count removed."""
        ...

    @abstractmethod
    def keys(self) -> List[str]:
        ...

    @abstractmethod
    def __len__(self) -> int:
        ...

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())
