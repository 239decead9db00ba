"""
Edge routes.

Dispatch order (CORS headers and OPTIONS preflights are handled by
CORSHeadersMiddleware before any of these run):

  /api/v1/ui/version  → answered here, never forwarded
  /api/*              → ProxyForwarder
  everything else     → StaticResolver
"""

import platform

from fastapi import APIRouter, Request
from starlette.responses import Response

from edge.models import VersionData, VersionResponse

VERSION_PATH = "/api/v1/ui/version"

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]

router = APIRouter()


@router.api_route(VERSION_PATH, methods=ALL_METHODS, response_model=VersionResponse)
def ui_version(request: Request) -> VersionResponse:
    """Report the edge server's own version and runtime."""
    return VersionResponse(
        data=VersionData(
            version=request.app.state.config.version,
            python_version=platform.python_version(),
        )
    )


@router.api_route("/api/{rest:path}", methods=ALL_METHODS, include_in_schema=False)
async def api_proxy(request: Request, rest: str) -> Response:
    """Forward to the backend with /api stripped."""
    return await request.app.state.proxy.forward(request)


@router.api_route("/{full_path:path}", methods=ALL_METHODS, include_in_schema=False)
def static_files(request: Request, full_path: str) -> Response:
    """Serve a file from the SPA build, falling back to index.html."""
    return request.app.state.static.resolve(request)
