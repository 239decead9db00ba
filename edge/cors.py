"""
Cross-origin headers for every response.

The edge answers with one fixed, permissive policy: the caller's Origin is
echoed back (``*`` when absent) and credentials are allowed.  Any OPTIONS
request is treated as a preflight and answered here without routing.
"""

from typing import Dict, Optional

from starlette.datastructures import Headers, MutableHeaders
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

ALLOW_METHODS = "GET, POST, PUT, DELETE, OPTIONS, PATCH"
ALLOW_HEADERS = "Content-Type, Authorization, X-Requested-With"
MAX_AGE_SECONDS = 86400


def cors_headers(origin: Optional[str]) -> Dict[str, str]:
    """Return the CORS headers for a request with the given Origin value."""
    return {
        "Access-Control-Allow-Origin": origin or "*",
        "Access-Control-Allow-Methods": ALLOW_METHODS,
        "Access-Control-Allow-Headers": ALLOW_HEADERS,
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Max-Age": str(MAX_AGE_SECONDS),
    }


class CORSHeadersMiddleware:
    """ASGI middleware that stamps CORS headers onto every response start."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = cors_headers(Headers(scope=scope).get("origin"))

        if scope["method"] == "OPTIONS":
            preflight = Response(status_code=200, headers=headers)
            await preflight(scope, receive, send)
            return

        async def send_with_cors(message: Message) -> None:
            if message["type"] == "http.response.start":
                # Overwrite, so handlers and upstream responses cannot drop or alter them
                response_headers = MutableHeaders(scope=message)
                for name, value in headers.items():
                    response_headers[name] = value
            await send(message)

        await self.app(scope, receive, send_with_cors)
