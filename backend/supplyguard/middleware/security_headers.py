"""
SupplyGuard Backend — Security Headers Middleware
===================================================

What:  Adds browser hardening headers to every response.
Why:   The API is called from the dashboard in a browser; these headers block
       MIME sniffing, framing (clickjacking) and inline script injection, and
       pin the client to HTTPS.
How:   Sets a fixed header set after the handler runs; removes X-Powered-By.

Headers:
    X-Content-Type-Options:    nosniff
    X-Frame-Options:           DENY
    X-XSS-Protection:          1; mode=block (legacy browsers)
    Strict-Transport-Security: max-age=<hsts_max_age>; includeSubDomains
    Referrer-Policy:           strict-origin-when-cross-origin
    Permissions-Policy:        camera=(), microphone=(), geolocation=()
    Content-Security-Policy:   from settings (allows the Stripe and Google Fonts
                               origins the dashboard loads)
"""

from typing import Dict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, content_security_policy: str, hsts_max_age: int = 31536000):
        super().__init__(app)
        self.headers: Dict[str, str] = {
            "X-Content-Type-Options": "nosniff",
            "X-Frame-Options": "DENY",
            "X-XSS-Protection": "1; mode=block",
            "Strict-Transport-Security": f"max-age={hsts_max_age}; includeSubDomains",
            "Referrer-Policy": "strict-origin-when-cross-origin",
            "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
            "Content-Security-Policy": content_security_policy,
        }

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)
        for name, value in self.headers.items():
            response.headers[name] = value
        if "x-powered-by" in response.headers:
            del response.headers["x-powered-by"]
        return response
