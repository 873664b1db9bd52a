"""Middleware to add common security headers to API responses."""

from typing import Dict, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

DEFAULT_HEADERS: Dict[str, str] = {
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}
HSTS_VALUE = "max-age=63072000; includeSubDomains"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach security headers to every response without overriding a route's own.

    HSTS is only sent for requests that arrived over HTTPS.
    """

    def __init__(self, app: ASGIApp, extra_headers: Optional[Dict[str, str]] = None) -> None:
        super().__init__(app)
        self.headers = {**DEFAULT_HEADERS, **(extra_headers or {})}

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for name, value in self.headers.items():
            response.headers.setdefault(name, value)
        if request.url.scheme == "https":
            response.headers.setdefault("Strict-Transport-Security", HSTS_VALUE)
        return response
