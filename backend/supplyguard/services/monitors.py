"""
SupplyGuard Backend — Periodic Monitors
=========================================

What:  Fixed-interval background tasks: cache sweep, memory usage, DB health.
Why:   Some upkeep must happen even when no requests arrive. The response
       cache in particular would otherwise hold expired entries forever.
How:   PeriodicTask wraps an async callable in an asyncio task that runs it,
       sleeps `interval` seconds, and repeats until stopped.
Who:   Started and stopped by the application lifespan in main.py.

Failure policy:
    An exception in one run is logged and the loop keeps going; a broken
    monitor must never take the process down.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, List, Optional

import psutil
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from supplyguard.services.response_cache import ResponseCache

logger = logging.getLogger(__name__)


class PeriodicTask:
    """
    Runs `func` every `interval` seconds on the event loop.

    Attributes:
        name:     Used in logs and as the asyncio task name
        interval: Seconds between the end of one run and the start of the next
        runs:     Completed runs (including failed ones)
    """

    def __init__(self, name: str, interval: float, func: Callable[[], Awaitable[None]]):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.interval = interval
        self.func = func
        self.runs = 0
        self._task: Optional["asyncio.Task[None]"] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop(), name=self.name)
        logger.debug("Started periodic task %s (every %ss)", self.name, self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.debug("Stopped periodic task %s", self.name)

    async def run_once(self) -> None:
        try:
            await self.func()
        except Exception as e:
            logger.error("Periodic task %s failed: %s", self.name, str(e), exc_info=True)
        finally:
            self.runs += 1

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.run_once()


# ══════════════════════════════════════════════════════════════════════════
# Monitor factories
# ══════════════════════════════════════════════════════════════════════════

def cache_sweeper(cache: ResponseCache, interval: float) -> PeriodicTask:
    """Evicts expired response cache entries regardless of traffic."""

    async def sweep() -> None:
        cache.sweep()

    return PeriodicTask("cache-sweeper", interval, sweep)


def current_memory_mb() -> float:
    """Current resident set size of this process in MB."""
    return psutil.Process().memory_info().rss / (1024 * 1024)


def memory_monitor(
    interval: float,
    warning_mb: float,
    probe: Callable[[], float] = current_memory_mb,
) -> PeriodicTask:
    """Warns on each check that finds resident memory above warning_mb."""

    async def check() -> None:
        usage = probe()
        if usage > warning_mb:
            logger.warning("High memory usage detected: %.0f MB (threshold %s MB)", usage, warning_mb)

    return PeriodicTask("memory-monitor", interval, check)


def database_health_monitor(
    engine: AsyncEngine,
    interval: float,
    slow_threshold_ms: float,
) -> PeriodicTask:
    """Runs SELECT 1 and warns on slow or failed round trips."""

    async def check() -> None:
        start = time.perf_counter()
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as e:
            logger.error("Database health check failed: %s", str(e))
            return
        elapsed_ms = (time.perf_counter() - start) * 1000
        if elapsed_ms > slow_threshold_ms:
            logger.warning("Slow database query detected: %.0fms", elapsed_ms)

    return PeriodicTask("db-health-monitor", interval, check)


async def stop_all(tasks: List[PeriodicTask]) -> None:
    for task in tasks:
        await task.stop()
