"""
SupplyGuard Backend — System Response Schemas
===============================================

What:  Pydantic models for the health and cache administration endpoints.
Why:   Explicit response models keep the OpenAPI docs accurate and stop
       internal fields (store keys, raw payloads) from leaking.
"""

from typing import Dict

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """
    What:  Health check response showing service and dependency status.
    Who:   Returned by GET /health for load balancers and monitoring.

    A gateway that cannot write its audit log is degraded, not down:
    requests still flow, only the audit trail is lost.
    """
    status: str = Field(description="Overall service status: healthy, degraded")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    cache_entries: int = Field(description="Entries currently held by the response cache")
    rate_limit_keys: Dict[str, int] = Field(
        description="Tracked client keys per named limiter"
    )
    uptime_seconds: float = Field(description="Seconds since service started")


class CacheStats(BaseModel):
    """Point-in-time view of the response cache."""
    enabled: bool = Field(default=True)
    entries: int = Field(description="Entries held, including not-yet-swept stale ones")
    live_entries: int = Field(description="Entries that would still be served")
    ttl_seconds: int = Field(description="TTL applied to new entries")
    hits: int = Field(description="Cache hits since startup")
    misses: int = Field(description="Cache misses since startup")


class CacheStatsResponse(BaseModel):
    success: bool = True
    data: CacheStats


class CacheFlushResult(BaseModel):
    cleared: int = Field(description="Number of entries removed")
    message: str


class CacheFlushResponse(BaseModel):
    success: bool = True
    data: CacheFlushResult
