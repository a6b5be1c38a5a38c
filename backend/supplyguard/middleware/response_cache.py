"""
SupplyGuard Backend — Response Cache Middleware
=================================================

What:  Serves repeated GET requests from the ResponseCache.
Why:   Dashboard pages poll the same list endpoints; answering from memory
       skips the handler and the database round trip.
How:   GET hit   → stored body returned byte-for-byte, X-Cache: HIT
       GET miss  → handler runs, X-Cache: MISS; only a 200 JSON body is stored
       2xx write → cache.invalidate(path) for POST/PUT/PATCH/DELETE
When:  Inside GZip, so stored bodies are uncompressed.

Scope:
    Only paths under path_prefix (default /api) take part. Routes that depend
    on require_rate_limit() never do, since a cache hit would skip their
    limiter; they are found from the app's routes on the first request.
    excluded_prefixes adds more paths by hand.

Tenancy:
    The key is the URL alone. Endpoints whose JSON differs per caller must
    carry the tenant in the path or query string.
"""

import logging
import re
from typing import Iterable, List, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from supplyguard.dependencies import is_rate_limited_route
from supplyguard.services.response_cache import ResponseCache, is_under_prefix

logger = logging.getLogger(__name__)

WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


class ResponseCacheMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        cache: ResponseCache,
        path_prefix: str = "/api",
        excluded_prefixes: Iterable[str] = (),
    ):
        super().__init__(app)
        self.cache = cache
        self.path_prefix = path_prefix
        self.excluded_prefixes = tuple(excluded_prefixes)
        self._limited_paths: Optional[List[re.Pattern[str]]] = None

    def _rate_limited_paths(self, request: Request) -> List[re.Pattern[str]]:
        if self._limited_paths is None:
            routes = getattr(request.scope.get("app"), "routes", [])
            self._limited_paths = [
                route.path_regex for route in routes if is_rate_limited_route(route)
            ]
            logger.debug("Response cache skips %d rate limited routes", len(self._limited_paths))
        return self._limited_paths

    def _applies_to(self, request: Request) -> bool:
        path = request.url.path
        if not is_under_prefix(path, self.path_prefix):
            return False
        if any(is_under_prefix(path, prefix) for prefix in self.excluded_prefixes):
            return False
        return not any(pattern.match(path) for pattern in self._rate_limited_paths(request))

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not self._applies_to(request):
            return await call_next(request)

        method = request.method.upper()
        path = request.url.path
        query = request.url.query

        if method == "GET":
            cached = self.cache.lookup(method, path, query)
            if cached is not None:
                return Response(
                    content=cached.body,
                    status_code=cached.status_code,
                    media_type=cached.media_type,
                    headers={"X-Cache": "HIT"},
                )

            response = await call_next(request)
            media_type = response.headers.get("content-type", "")
            if response.status_code != 200 or not media_type.startswith("application/json"):
                response.headers["X-Cache"] = "MISS"
                return response

            # Drain the streamed body so it can be both stored and returned
            body = b"".join([chunk async for chunk in response.body_iterator])
            self.cache.store_response(method, path, query, response.status_code, body, media_type)

            captured = Response(
                content=body,
                status_code=response.status_code,
                headers=dict(response.headers),
            )
            captured.headers["X-Cache"] = "MISS"
            return captured

        response = await call_next(request)
        if method in WRITE_METHODS and 200 <= response.status_code < 300:
            self.cache.invalidate(path)
        return response
