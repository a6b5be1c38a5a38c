"""
SupplyGuard Backend — Middleware Package
==========================================

What:  Cross-cutting request handling applied in front of every route.

Middleware Chain (order matters!):
    Request → [Request ID] → [Logging] → [Security Headers] → [Rate Limit]
            → [GZip] → [CORS] → [Response Cache] → [Audit Trail]
            → [Unhandled Error] → Route

    Why this order:
    1. Request ID first: every later log line and error body carries it
    2. Logging: times the whole request, 429s included
    3. Security headers: applied to every response, denials and cache hits too
    4. Rate limit: rejects abuse before compression, caching or handler work
    5. GZip / CORS: standard Starlette middleware
    6. Response cache: stores uncompressed bodies, short-circuits GET hits
    7. Audit trail: records mutating calls, which the cache never answers
    8. Unhandled error: turns a crashed route into the 500 envelope here,
       so the response still passes back through every layer above

    add_middleware() wraps, so main.py registers them in reverse order.
"""
