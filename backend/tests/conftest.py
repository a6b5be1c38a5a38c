"""
SupplyGuard Backend — Test Configuration (conftest.py)
========================================================

What:  Shared pytest fixtures for the entire test suite.
Why:   Every component takes its clock, store and audit sink as arguments, so
       tests build them here instead of patching module globals.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── fake_clock:     Manually advanced time source
    ├── recording_sink: In-memory AuditSink capturing every event
    ├── failing_sink:   AuditSink whose append() always raises
    ├── make_settings:  Settings factory with small test limits
    ├── make_app:       create_app() factory wired to fake_clock and recording_sink
    ├── test_app:       make_app() with the defaults
    └── test_client:    HTTPX AsyncClient over ASGITransport for test_app
"""

import os

# Override settings for testing BEFORE any supplyguard imports
# Why: the database engine is created from DATABASE_URL at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["MONITORS_ENABLED"] = "false"

from typing import Any, Callable, Dict, List, Optional, Tuple  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import APIRouter, Depends  # noqa: E402
from fastapi.responses import JSONResponse, PlainTextResponse  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from supplyguard.config import Settings  # noqa: E402
from supplyguard.dependencies import require_rate_limit  # noqa: E402
from supplyguard.exceptions import DatabaseError, ValidationError  # noqa: E402
from supplyguard.schemas.audit import AuditEvent  # noqa: E402
from supplyguard.services.audit_sink import AuditSink  # noqa: E402
from supplyguard.stores.base import Clock  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Test Doubles
# ══════════════════════════════════════════════════════════════════════════

class FakeClock(Clock):
    """Time only moves when a test calls advance()."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.current = start

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class RecordingSink(AuditSink):
    def __init__(self) -> None:
        self.events: List[AuditEvent] = []

    async def append(self, event: AuditEvent) -> None:
        self.events.append(event)


class FailingSink(AuditSink):
    def __init__(self) -> None:
        self.attempts = 0

    async def append(self, event: AuditEvent) -> None:
        self.attempts += 1
        raise RuntimeError("audit database unavailable")


def build_sample_router() -> Tuple[APIRouter, Dict[str, int]]:
    """
    Stand-in tenant routes for middleware tests.

    The handlers count their invocations so tests can tell a cache hit (no
    handler call) from a miss.
    """
    router = APIRouter()
    calls = {"suppliers": 0, "shipments": 0, "exports": 0}

    @router.get("/api/suppliers")
    async def list_suppliers(region: str = "all", page: int = 1):
        calls["suppliers"] += 1
        return {"success": True, "data": [{"id": "s-1", "region": region}], "page": page, "call": calls["suppliers"]}

    @router.post("/api/suppliers")
    async def create_supplier():
        return JSONResponse(status_code=201, content={"success": True, "data": {"id": "s-2"}})

    @router.get("/api/shipments")
    async def list_shipments():
        calls["shipments"] += 1
        return {"success": True, "data": [], "call": calls["shipments"]}

    @router.post("/api/shipments/validate")
    async def validate_shipment():
        raise ValidationError(message="Shipment weight must be positive", field="weight")

    @router.get("/api/reports/missing")
    async def missing_report():
        return JSONResponse(status_code=404, content={"success": False})

    @router.post("/api/shipments/crash")
    async def crash_shipment():
        raise RuntimeError("carrier client exploded")

    @router.get("/api/reports/ledger")
    async def ledger_report():
        raise DatabaseError(context={"table": "ledger", "sql": "SELECT * FROM ledger"})

    @router.get("/api/reports/plain")
    async def plain_report():
        return PlainTextResponse("on-time rate: 97%")

    @router.get("/api/exports/summary", dependencies=[Depends(require_rate_limit("strict"))])
    async def export_summary():
        calls["exports"] += 1
        return {"success": True, "data": {"rows": 12}}

    @router.get("/apiary")
    async def apiary_page():
        return {"hives": 3}

    @router.post("/apiary")
    async def add_hive():
        return {"hives": 4}

    return router, calls


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def failing_sink():
    return FailingSink()


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """
    Settings factory with test defaults; keyword arguments override them.

    Defaults: api 100 per 60s, strict 3 per 60s, cache TTL 300s, bcrypt cost 4.
    """

    def factory(**overrides: Any) -> Settings:
        values: Dict[str, Any] = {
            "database_url": "sqlite+aiosqlite:///:memory:",
            "rate_limit_api_window": 60,
            "rate_limit_api_max": 100,
            "rate_limit_strict_window": 60,
            "rate_limit_strict_max": 3,
            "cache_ttl": 300,
            "backup_code_rounds": 4,
            "monitors_enabled": False,
            "log_level": "WARNING",
        }
        values.update(overrides)
        return Settings(**values)

    return factory


@pytest.fixture
def make_app(make_settings, fake_clock, recording_sink):
    """
    App factory sharing the test's fake clock; settings overrides as kwargs.

    The sample tenant routes are mounted and their call counters exposed as
    app.state.sample_calls. Pass audit_sink= to replace the recording sink.
    """
    from supplyguard.main import create_app

    def factory(audit_sink: Optional[AuditSink] = None, **overrides: Any):
        app = create_app(
            app_settings=make_settings(**overrides),
            clock=fake_clock,
            audit_sink=audit_sink or recording_sink,
        )
        router, calls = build_sample_router()
        app.include_router(router)
        app.state.sample_calls = calls
        return app

    return factory


@pytest.fixture
def test_app(make_app):
    return make_app()


@pytest.fixture
def client_for() -> Callable[..., AsyncClient]:
    """
    Builds an HTTPX AsyncClient talking to an app through ASGITransport.

    Usage:
        async with client_for(make_app(rate_limit_api_max=2)) as client:
            response = await client.get("/api/suppliers")
    """

    def factory(app) -> AsyncClient:
        return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")

    return factory


@pytest_asyncio.fixture
async def test_client(test_app, client_for):
    async with client_for(test_app) as client:
        yield client
