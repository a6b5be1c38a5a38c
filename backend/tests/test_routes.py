"""
SupplyGuard Backend — Route Tests
===================================

What we test:
    ✅ GET /health reports version, cache size and limiter keys
    ✅ GET /api/cache/stats reflects stored entries and hit counters
    ✅ DELETE /api/cache flushes every entry
    ✅ create_app() builds fresh, settings-driven components per app
"""

from unittest.mock import MagicMock

import pytest

from supplyguard import __version__
from supplyguard.dependencies import get_backup_codes, get_rate_limiters


class TestHealthRoute:
    @pytest.mark.asyncio
    async def test_health_shape(self, test_client):
        await test_client.get("/api/shipments")
        response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] in {"healthy", "degraded"}
        assert body["database"] in {"connected", "disconnected"}
        assert body["version"] == __version__
        assert body["cache_entries"] == 1
        assert body["rate_limit_keys"]["api"] == 1
        assert body["rate_limit_keys"]["auth"] == 0
        assert body["uptime_seconds"] >= 0


class TestCacheRoutes:
    @pytest.mark.asyncio
    async def test_stats(self, test_client):
        await test_client.get("/api/suppliers")
        await test_client.get("/api/suppliers")

        response = await test_client.get("/api/cache/stats")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["entries"] == 1
        assert data["live_entries"] == 1
        assert data["ttl_seconds"] == 300
        assert data["hits"] == 1
        assert data["misses"] == 1

    @pytest.mark.asyncio
    async def test_stats_are_never_cached(self, test_client):
        first = await test_client.get("/api/cache/stats")
        second = await test_client.get("/api/cache/stats")
        assert "X-Cache" not in first.headers
        assert "X-Cache" not in second.headers

    @pytest.mark.asyncio
    async def test_flush(self, test_app, test_client):
        await test_client.get("/api/suppliers")
        await test_client.get("/api/shipments")

        response = await test_client.delete("/api/cache")

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "data": {"cleared": 2, "message": "Cleared 2 cached responses"},
        }
        assert len(test_app.state.response_cache.store) == 0
        after = await test_client.get("/api/suppliers")
        assert after.headers["X-Cache"] == "MISS"


class TestAppState:
    def test_components_come_from_settings(self, make_app):
        app = make_app(backup_code_rounds=5, backup_code_count=4, rate_limit_webhook_max=7)
        request = MagicMock()
        request.app = app

        assert get_backup_codes(request).rounds == 5
        assert len(get_backup_codes(request).generate()) == 4
        assert get_rate_limiters(request)["webhook"].max_requests == 7
        assert [task.name for task in app.state.monitors] == [
            "cache-sweeper",
            "memory-monitor",
            "db-health-monitor",
        ]

    def test_apps_do_not_share_state(self, make_app):
        first, second = make_app(), make_app()
        assert first.state.response_cache is not second.state.response_cache
        assert first.state.rate_limiters["api"] is not second.state.rate_limiters["api"]
