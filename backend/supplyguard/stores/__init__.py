# Stores package init
"""
SupplyGuard Backend — Stores Package
======================================

What:  Expiring key-value state and time sources injected into services.

Inventory:
    - base.py:   KeyValueStore and Clock abstract contracts, SystemClock
    - memory.py: MemoryStore (process-local dict)
"""

from supplyguard.stores.base import Clock, KeyValueStore, SystemClock
from supplyguard.stores.memory import MemoryStore

__all__ = ["Clock", "KeyValueStore", "MemoryStore", "SystemClock"]
