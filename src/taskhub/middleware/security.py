"""Security headers middleware.

Learn: Every response gets the BASE_HEADERS below. Two cases add more:
- paths under /api/v1/auth return tokens in their bodies, so they are
  marked Cache-Control: no-store and never land in a shared cache
- HTTPS requests get Strict-Transport-Security

Referrer-Policy is no-referrer because invitation and reset links carry
their token in the URL; a page opened from one must not leak it onward.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

BASE_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}
NO_STORE_PREFIX = "/api/v1/auth"
HSTS = "max-age=31536000; includeSubDomains"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response: Response = await call_next(request)
        response.headers.update(BASE_HEADERS)
        if request.url.path.startswith(NO_STORE_PREFIX):
            response.headers["Cache-Control"] = "no-store"
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = HSTS
        return response
