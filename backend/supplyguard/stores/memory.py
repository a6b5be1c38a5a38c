"""
SupplyGuard Backend — In-Process Memory Store
===============================================

What:  Dict-backed implementation of KeyValueStore.
Why:   Default backing state for rate-limit counters and cached responses.
How:   key → (value, expires_at). Eviction only happens in sweep(), delete()
       and clear(); reads never evict.

Production Upgrade Path:
    This store is per-process. With several uvicorn workers or replicas, each
    one counts independently, so a limit of 100 behaves like 100 × replicas.
    → Implement KeyValueStore over Redis (INCR + PEXPIREAT for counters,
      SETEX for cache entries) and inject it in create_app().

Thread Safety:
    Safe for single-process async (uvicorn): every call completes without
    awaiting, so the event loop serializes access. NOT safe across threads.
"""

from typing import Dict, List, Optional, Tuple, TypeVar

from supplyguard.stores.base import KeyValueStore

V = TypeVar("V")


class MemoryStore(KeyValueStore[V]):
    """Process-local expiring map."""

    def __init__(self) -> None:
        self._data: Dict[str, Tuple[V, float]] = {}

    def get(self, key: str) -> Optional[V]:
        entry = self._data.get(key)
        return entry[0] if entry is not None else None

    def get_entry(self, key: str) -> Optional[Tuple[V, float]]:
        return self._data.get(key)

    def set(self, key: str, value: V, expires_at: float) -> None:
        self._data[key] = (value, expires_at)

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def sweep(self, now: float) -> int:
        # Snapshot keys first: deleting while iterating a dict raises
        expired = [key for key, (_, expires_at) in self._data.items() if expires_at <= now]
        for key in expired:
            del self._data[key]
        return len(expired)

    def clear(self) -> int:
        count = len(self._data)
        self._data.clear()
        return count

    def keys(self) -> List[str]:
        return list(self._data.keys())

    def __len__(self) -> int:
        return len(self._data)
