"""
SupplyGuard Backend — Middleware Chain Tests
==============================================

What:  End-to-end tests through the full app built by create_app().
How:   httpx AsyncClient over ASGITransport (client address 127.0.0.1),
       FakeClock for windows and TTLs, RecordingSink for audit events.

What we test:
    ✅ api limiter: [200, 200, 429], then 200 with remaining=1 after the window
    ✅ 429 envelope, Retry-After and X-RateLimit-* headers
    ✅ Route-level "strict" limiter answers with its own limit
    ✅ X-Cache MISS then HIT with identical bytes and no second handler call
    ✅ Non-GET bypasses the cache; a successful write invalidates it
    ✅ Security headers and X-Request-ID on every response
    ✅ Denials reach the security log; requests reach the access log
    ✅ Mutating calls produce an API_CALL audit event; a failing sink is harmless
    ✅ A crashing route gets the 500 envelope with headers, request id and audit event
    ✅ Rate limited routes and /apiary-style lookalike paths bypass the cache
"""

import logging

import pytest

from supplyguard.schemas.rate_limit import to_iso8601

SECURITY_HEADERS = {
    "x-content-type-options": "nosniff",
    "x-frame-options": "DENY",
    "x-xss-protection": "1; mode=block",
    "referrer-policy": "strict-origin-when-cross-origin",
}


class TestRateLimitMiddleware:
    @pytest.mark.asyncio
    async def test_limit_then_recover_after_window(self, make_app, client_for, fake_clock):
        app = make_app(rate_limit_api_max=2, rate_limit_api_window=60)
        async with client_for(app) as client:
            statuses = [(await client.get("/api/shipments")).status_code for _ in range(2)]
            denied = await client.get("/api/shipments")
            statuses.append(denied.status_code)

            assert statuses == [200, 200, 429]

            fake_clock.advance(61)
            recovered = await client.get("/api/shipments")

        assert recovered.status_code == 200
        assert recovered.headers["X-RateLimit-Remaining"] == "1"
        assert recovered.headers["X-RateLimit-Limit"] == "2"

    @pytest.mark.asyncio
    async def test_denial_envelope_and_headers(self, make_app, client_for, fake_clock):
        app = make_app(rate_limit_api_max=1, rate_limit_api_window=900)
        async with client_for(app) as client:
            first = await client.get("/api/shipments")
            fake_clock.advance(100)
            denied = await client.get("/api/shipments", headers={"X-Request-ID": "req-429"})

        assert first.headers["X-RateLimit-Remaining"] == "0"

        assert denied.status_code == 429
        assert denied.headers["Retry-After"] == "800"
        assert denied.headers["X-RateLimit-Limit"] == "1"
        assert denied.headers["X-RateLimit-Remaining"] == "0"
        assert denied.headers["X-RateLimit-Reset"] == to_iso8601(fake_clock.now() + 800)

        body = denied.json()
        assert body["success"] is False
        assert body["error"] == {
            "code": "RATE_LIMIT_EXCEEDED",
            "message": "Too many requests, please try again later.",
            "retryAfter": 800,
        }
        assert body["requestId"] == "req-429"
        assert body["timestamp"].endswith("Z")

    @pytest.mark.asyncio
    async def test_denial_is_recorded_as_security_event(self, make_app, client_for, caplog):
        app = make_app(rate_limit_api_max=1)
        async with client_for(app) as client:
            with caplog.at_level(logging.WARNING, logger="supplyguard.security"):
                await client.get("/api/shipments")
                await client.get("/api/shipments", headers={"X-Request-ID": "sec-1"})

        records = [r for r in caplog.records if r.name == "supplyguard.security"]
        assert len(records) == 1
        event = records[0].security_event
        assert event["event"] == "rate_limit_exceeded"
        assert event["ip"] == "127.0.0.1"
        assert event["path"] == "/api/shipments"
        assert event["request_id"] == "sec-1"
        assert event["details"]["limiter"] == "api"

    @pytest.mark.asyncio
    async def test_denied_request_never_reaches_handler(self, make_app, client_for):
        app = make_app(rate_limit_api_max=1)
        async with client_for(app) as client:
            await client.get("/api/shipments")
            await client.get("/api/shipments")
        assert app.state.sample_calls["shipments"] == 1

    @pytest.mark.asyncio
    async def test_health_is_not_rate_limited(self, make_app, client_for):
        app = make_app(rate_limit_api_max=1)
        async with client_for(app) as client:
            responses = [await client.get("/health") for _ in range(3)]
        assert [r.status_code for r in responses] == [200, 200, 200]
        assert "X-RateLimit-Limit" not in responses[0].headers

    @pytest.mark.asyncio
    async def test_route_level_strict_limiter(self, test_client):
        responses = [await test_client.get("/api/cache/stats") for _ in range(4)]

        assert [r.status_code for r in responses] == [200, 200, 200, 429]
        assert responses[0].headers["X-RateLimit-Limit"] == "3"
        assert responses[2].headers["X-RateLimit-Remaining"] == "0"
        assert responses[3].headers["X-RateLimit-Limit"] == "3"
        assert responses[3].headers["Retry-After"] == "60"
        assert responses[3].json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"

    @pytest.mark.asyncio
    async def test_general_routes_report_api_limit(self, test_client):
        response = await test_client.get("/api/shipments")
        assert response.headers["X-RateLimit-Limit"] == "100"
        assert response.headers["X-RateLimit-Remaining"] == "99"


class TestResponseCacheMiddleware:
    @pytest.mark.asyncio
    async def test_miss_then_hit_with_identical_body(self, test_app, test_client):
        miss = await test_client.get("/api/suppliers?region=eu&page=2")
        hit = await test_client.get("/api/suppliers?page=2&region=eu")

        assert miss.headers["X-Cache"] == "MISS"
        assert hit.headers["X-Cache"] == "HIT"
        assert hit.content == miss.content
        assert hit.headers["content-type"].startswith("application/json")
        assert test_app.state.sample_calls["suppliers"] == 1

    @pytest.mark.asyncio
    async def test_hit_expires_after_ttl(self, test_app, test_client, fake_clock):
        await test_client.get("/api/shipments")
        fake_clock.advance(300)
        again = await test_client.get("/api/shipments")

        assert again.headers["X-Cache"] == "MISS"
        assert test_app.state.sample_calls["shipments"] == 2

    @pytest.mark.asyncio
    async def test_non_get_bypasses_cache(self, test_client):
        response = await test_client.post("/api/suppliers")
        assert response.status_code == 201
        assert "X-Cache" not in response.headers

    @pytest.mark.asyncio
    async def test_successful_write_invalidates_collection(self, test_app, test_client):
        await test_client.get("/api/suppliers")
        assert (await test_client.get("/api/suppliers")).headers["X-Cache"] == "HIT"

        await test_client.post("/api/suppliers")
        after = await test_client.get("/api/suppliers")

        assert after.headers["X-Cache"] == "MISS"
        assert test_app.state.sample_calls["suppliers"] == 2

    @pytest.mark.asyncio
    async def test_failed_write_keeps_cache(self, test_client):
        await test_client.get("/api/shipments")
        rejected = await test_client.post("/api/shipments/validate")
        cached = await test_client.get("/api/shipments")

        assert rejected.status_code == 400
        assert cached.headers["X-Cache"] == "HIT"

    @pytest.mark.asyncio
    async def test_error_responses_are_not_cached(self, test_app, test_client):
        first = await test_client.get("/api/reports/missing")
        second = await test_client.get("/api/reports/missing")

        assert first.status_code == second.status_code == 404
        assert second.headers["X-Cache"] == "MISS"
        assert len(test_app.state.response_cache.store) == 0

    @pytest.mark.asyncio
    async def test_paths_outside_prefix_are_not_cached(self, test_app, test_client):
        await test_client.get("/health")
        assert len(test_app.state.response_cache.store) == 0

    @pytest.mark.asyncio
    async def test_non_json_miss_is_marked_and_not_stored(self, test_app, test_client):
        first = await test_client.get("/api/reports/plain")
        second = await test_client.get("/api/reports/plain")

        assert first.headers["X-Cache"] == "MISS"
        assert second.headers["X-Cache"] == "MISS"
        assert second.text == "on-time rate: 97%"
        assert len(test_app.state.response_cache.store) == 0

    @pytest.mark.asyncio
    async def test_rate_limited_routes_are_never_served_from_cache(self, test_app, test_client):
        responses = [await test_client.get("/api/exports/summary") for _ in range(4)]

        assert [r.status_code for r in responses] == [200, 200, 200, 429]
        assert all("X-Cache" not in r.headers for r in responses)
        assert responses[2].headers["X-RateLimit-Remaining"] == "0"
        assert test_app.state.sample_calls["exports"] == 3

    @pytest.mark.asyncio
    async def test_prefix_lookalike_paths_are_not_cached(self, test_app, test_client):
        first = await test_client.get("/apiary")
        second = await test_client.get("/apiary")

        assert first.json() == second.json() == {"hives": 3}
        assert "X-Cache" not in second.headers
        assert len(test_app.state.response_cache.store) == 0


class TestSecurityAndRequestId:
    @pytest.mark.asyncio
    async def test_security_headers_on_every_response(self, make_app, client_for):
        app = make_app(rate_limit_api_max=1)
        async with client_for(app) as client:
            ok = await client.get("/api/shipments")
            denied = await client.get("/api/shipments")
            health = await client.get("/health")

        for response in (ok, denied, health):
            for name, value in SECURITY_HEADERS.items():
                assert response.headers[name] == value
            assert "max-age=31536000" in response.headers["strict-transport-security"]
            assert "default-src 'self'" in response.headers["content-security-policy"]
            assert "x-powered-by" not in response.headers

    @pytest.mark.asyncio
    async def test_request_id_is_echoed_or_generated(self, test_client):
        echoed = await test_client.get("/health", headers={"X-Request-ID": "trace-42"})
        generated = await test_client.get("/health")

        assert echoed.headers["X-Request-ID"] == "trace-42"
        assert len(generated.headers["X-Request-ID"]) == 8

    @pytest.mark.asyncio
    async def test_access_log_line(self, test_client, caplog):
        with caplog.at_level(logging.INFO, logger="supplyguard.access"):
            await test_client.get("/api/shipments", headers={"X-Request-ID": "log-1"})
            await test_client.get("/health")

        lines = [r.getMessage() for r in caplog.records if r.name == "supplyguard.access"]
        assert len(lines) == 1
        assert lines[0].startswith("GET /api/shipments 200 ")
        assert "[log-1] from 127.0.0.1" in lines[0]

    @pytest.mark.asyncio
    async def test_validation_error_envelope(self, test_client):
        response = await test_client.post("/api/shipments/validate", headers={"X-Request-ID": "v-1"})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"] == {
            "code": "VALIDATION_ERROR",
            "message": "Shipment weight must be positive",
        }
        assert body["requestId"] == "v-1"


class TestAuditTrailMiddleware:
    @pytest.mark.asyncio
    async def test_mutating_call_is_audited(self, test_app, test_client, recording_sink):
        await test_client.post("/api/suppliers", headers={"User-Agent": "supplyguard-tests"})
        await test_app.state.audit_logger.drain()

        assert len(recording_sink.events) == 1
        event = recording_sink.events[0]
        assert event.action == "API_CALL"
        assert event.success is True
        assert event.ip_address == "127.0.0.1"
        assert event.user_agent == "supplyguard-tests"
        assert event.details["method"] == "POST"
        assert event.details["endpoint"] == "/api/suppliers"
        assert event.details["response_code"] == 201

    @pytest.mark.asyncio
    async def test_rejected_write_is_audited_as_failure(self, test_app, test_client, recording_sink):
        await test_client.post("/api/shipments/validate")
        await test_app.state.audit_logger.drain()

        assert recording_sink.events[0].success is False
        assert recording_sink.events[0].details["response_code"] == 400

    @pytest.mark.asyncio
    async def test_reads_are_not_audited(self, test_app, test_client, recording_sink):
        await test_client.get("/api/suppliers")
        await test_app.state.audit_logger.drain()
        assert recording_sink.events == []

    @pytest.mark.asyncio
    async def test_failing_sink_leaves_response_untouched(self, make_app, client_for, failing_sink):
        app = make_app(audit_sink=failing_sink)
        async with client_for(app) as client:
            response = await client.post("/api/suppliers")
        await app.state.audit_logger.drain()

        assert response.status_code == 201
        assert response.json() == {"success": True, "data": {"id": "s-2"}}
        assert failing_sink.attempts == 1

    @pytest.mark.asyncio
    async def test_prefix_lookalike_writes_are_not_audited(self, test_app, test_client, recording_sink):
        response = await test_client.post("/apiary")
        await test_app.state.audit_logger.drain()

        assert response.status_code == 200
        assert recording_sink.events == []


class TestErrorEnvelopes:
    @pytest.mark.asyncio
    async def test_crashing_route_still_passes_through_the_chain(self, test_app, test_client, recording_sink):
        response = await test_client.post("/api/shipments/crash", headers={"X-Request-ID": "rid-500"})
        await test_app.state.audit_logger.drain()

        assert response.status_code == 500
        for name, value in SECURITY_HEADERS.items():
            assert response.headers[name] == value
        assert "default-src 'self'" in response.headers["content-security-policy"]
        assert response.headers["X-Request-ID"] == "rid-500"
        assert response.headers["X-RateLimit-Limit"] == "100"

        body = response.json()
        assert body["success"] is False
        assert body["requestId"] == "rid-500"
        assert body["error"]["code"] == "INTERNAL_SERVER_ERROR"
        assert "exploded" not in body["error"]["message"]

        assert len(recording_sink.events) == 1
        event = recording_sink.events[0]
        assert event.action == "API_CALL"
        assert event.success is False
        assert event.details["response_code"] == 500
        assert event.details["endpoint"] == "/api/shipments/crash"

    @pytest.mark.asyncio
    async def test_crashing_route_is_logged(self, test_client, caplog):
        with caplog.at_level(logging.ERROR):
            await test_client.post("/api/shipments/crash", headers={"X-Request-ID": "rid-log"})

        access = [r for r in caplog.records if r.name == "supplyguard.access"]
        assert len(access) == 1
        assert access[0].levelno == logging.ERROR
        assert access[0].getMessage().startswith("POST /api/shipments/crash 500 ")

        errors = [r for r in caplog.records if r.name == "supplyguard.middleware.errors"]
        assert len(errors) == 1
        assert "[rid-log]" in errors[0].getMessage()
        assert errors[0].exc_info is not None

    @pytest.mark.asyncio
    async def test_database_error_hides_internal_context(self, test_client):
        response = await test_client.get("/api/reports/ledger")

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == {
            "code": "DATABASE_ERROR",
            "message": "An internal error occurred. Please try again later.",
        }
        assert "ledger" not in response.text
        assert response.headers["X-Cache"] == "MISS"

    @pytest.mark.asyncio
    async def test_unknown_route_uses_not_found_envelope(self, test_client):
        response = await test_client.get("/api/warehouses/unknown", headers={"X-Request-ID": "nf-1"})

        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["error"] == {
            "code": "NOT_FOUND",
            "message": "The requested endpoint was not found",
        }
        assert body["requestId"] == "nf-1"
        assert response.headers["x-content-type-options"] == "nosniff"
