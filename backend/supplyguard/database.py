"""
SupplyGuard Backend — Database Session Management
===================================================

What:  Async SQLAlchemy engine, session factory, and lifecycle helpers.
Why:   Centralizes all database connection logic in one place.
How:   Creates an async engine with connection pooling and a session factory.
       The audit sink opens one short session per record.
Who:   Used by DatabaseAuditSink, the health route, and the DB health monitor.
When:  Engine is created at module import; sessions are created per write.

Connection Pooling Strategy:
    The only writes are small audit inserts, so the pool is modest:
    pool_size=10, max_overflow=10, pool_pre_ping, pool_recycle=3600.
    SQLite URLs (tests, local tinkering) get SQLAlchemy's default pool for the
    dialect instead, since SQLite pools reject the sizing arguments.
"""

from typing import Any, Dict

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from supplyguard.config import settings


def build_engine(database_url: str) -> AsyncEngine:
    """
    Create an async engine, applying pool sizing only where the dialect allows it.
    """
    options: Dict[str, Any] = {"echo": settings.log_level == "DEBUG"}
    if not database_url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return create_async_engine(database_url, **options)


# ── Engine Configuration ──────────────────────────────────────────────────
engine = build_engine(settings.database_url)

# ── Session Factory ───────────────────────────────────────────────────────
# expire_on_commit=False: records stay readable after commit (used in logs)
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Registers models with a single metadata object, which Alembic reads for
    --autogenerate.
    """
    pass


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def dispose_engine() -> None:
    """
    What:  Gracefully closes all connections in the pool.
    When:  Called during application shutdown (lifespan handler), after
           pending audit writes have drained.
    """
    await engine.dispose()
