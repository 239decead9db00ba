"""
Application entry point – FastAPI edge server.

Serves, under one origin:
  OPTIONS *            → CORS preflight, answered by the middleware
  /api/v1/ui/version   → the edge server's own version document
  /api/*               → forwarded to the backend with /api stripped
  /*                   → static files from the SPA build (index.html fallback)
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional, Sequence

import httpx
import uvicorn
from fastapi import FastAPI

from edge import __version__
from edge.config import EdgeConfig, load_config
from edge.cors import CORSHeadersMiddleware
from edge.errors import ConfigError
from edge.proxy import ProxyForwarder
from edge.routes import router
from edge.static import StaticResolver

EXIT_SUCCESS = 0
EXIT_ERROR = 1

logger = logging.getLogger("edge.server")


def create_app(
    config: EdgeConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the edge application.

    Args:
        config: Validated configuration
        transport: Optional httpx transport for the upstream client

    Returns:
        ASGI application
    """
    proxy = ProxyForwarder(config, transport=transport)
    static = StaticResolver(config.static_dir)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await proxy.aclose()

    app = FastAPI(
        title="spa-edge",
        version=__version__,
        description="Single-origin edge server for a single-page application",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.proxy = proxy
    app.state.static = static

    app.add_middleware(CORSHeadersMiddleware)
    app.include_router(router)
    return app


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code
    """
    try:
        config = load_config(argv)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_ERROR

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    host, port = config.listen_address
    logger.info("UI server listening on %s:%d", host, port)
    logger.info("Forwarding /api/* to %s", config.upstream)
    logger.info("Serving static files from %s (version %s)", config.static_dir, config.version)

    app = create_app(config)
    uvicorn.run(app, host=host, port=port, log_level=config.log_level.lower())
    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
