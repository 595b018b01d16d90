"""CORS response headers.

Browser UIs served from other origins need permissive CORS. The headers are
added to every response, including error envelopes; preflight requests are
answered directly so they never hit routing.
"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response


ALLOWED_METHODS = ("GET", "POST", "DELETE", "OPTIONS", "HEAD")
ALLOWED_HEADERS = ("origin", "content-type", "accept", "authorization", "x-requested-with")

# seconds; the largest value Chrome honours
MAX_AGE = 7200

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Credentials": "true",
    "Access-Control-Allow-Headers": ", ".join(ALLOWED_HEADERS),
    "Access-Control-Allow-Methods": ", ".join(ALLOWED_METHODS),
    "Access-Control-Max-Age": str(MAX_AGE),
}


def _is_preflight(request: Request) -> bool:
    return request.method == "OPTIONS" and "access-control-request-method" in request.headers


class CorsHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if _is_preflight(request):
            response = Response(status_code=200)
        else:
            response = await call_next(request)
        for name, value in CORS_HEADERS.items():
            response.headers[name] = value
        return response
