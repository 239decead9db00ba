"""
Reverse proxy for backend API calls.

Each request is relayed to one fixed upstream origin with the leading
``/api`` removed.  The upstream's status, headers and raw body are streamed
back unchanged.  There are no retries: a failed exchange becomes a 502
(or 504 on timeout) for the caller.
"""

import logging
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import quote

import anyio
import httpx
from fastapi import HTTPException, Request
from starlette.responses import Response, StreamingResponse

from edge.config import EdgeConfig

logger = logging.getLogger(__name__)

API_PREFIX = "/api"

HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
})

# Characters left as-is when re-quoting a raw path or query; "%" keeps existing escapes
_PATH_SAFE = "/%:@!$&'()*+,;=~"
_QUERY_SAFE = _PATH_SAFE + "?"

# nginx's convention for "client went away before we answered"
CLIENT_CLOSED_REQUEST = 499


def upstream_path(path: str, base_path: str = "") -> str:
    """
    Map an incoming request path onto the upstream.

    Strips a leading bare ``/api`` (not ``/api/``) and substitutes ``/``
    when nothing is left, then prefixes the upstream's own base path.

        /api/v1/test → /v1/test
        /api         → /
    """
    if path.startswith(API_PREFIX):
        path = path[len(API_PREFIX):]
    if not path.startswith("/"):
        path = "/" + path
    if base_path:
        path = base_path.rstrip("/") + path
    return path


class ProxyForwarder:
    """Forwards requests to a single upstream origin."""

    def __init__(
        self,
        config: EdgeConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the forwarder.

        Args:
            config: Edge configuration (upstream origin, timeouts, forwarded proto)
            transport: Optional httpx transport, e.g. httpx.MockTransport in tests
        """
        upstream = httpx.URL(config.upstream)
        self.origin = f"{upstream.scheme}://{config.upstream_host}"
        self.upstream_host = config.upstream_host
        self.base_path = config.upstream_base_path
        self.forwarded_proto = config.forwarded_proto
        self._client = httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(
                config.upstream_timeout,
                connect=config.upstream_connect_timeout,
            ),
            follow_redirects=False,
        )
        # Only headers the caller actually sent are relayed
        self._client.headers.clear()

    async def aclose(self) -> None:
        await self._client.aclose()

    def target_url(self, request: Request) -> httpx.URL:
        """
        Upstream URL for ``request``, built from the still-encoded raw path.

        Escapes such as ``%3F``, ``%23`` and ``%2F`` reach the upstream untouched.
        """
        raw_path = request.scope.get("raw_path")
        if raw_path:
            # some servers leave the query on raw_path; an encoded "?" is %3F
            raw_path = raw_path.split(b"?", 1)[0]
        else:
            raw_path = request.scope["path"].encode("utf-8")
        path = quote(raw_path, safe=_PATH_SAFE)
        target = upstream_path(path, quote(self.base_path, safe=_PATH_SAFE))
        query = request.scope.get("query_string", b"")
        if query:
            target += "?" + quote(query, safe=_QUERY_SAFE)
        return httpx.URL(self.origin).copy_with(raw_path=target.encode("ascii"))

    def outgoing_headers(self, request: Request) -> httpx.Headers:
        """Request headers minus Host and hop-by-hop, plus the forwarding headers."""
        headers = httpx.Headers([
            (name, value)
            for name, value in request.headers.items()
            if name not in HOP_BY_HOP_HEADERS and name not in ("host", "content-length")
        ])
        headers["host"] = self.upstream_host
        headers["x-forwarded-host"] = self.upstream_host
        headers["x-forwarded-proto"] = self.forwarded_proto
        if request.client is not None:
            prior = headers.get("x-forwarded-for")
            headers["x-forwarded-for"] = (
                f"{prior}, {request.client.host}" if prior else request.client.host
            )
        return headers

    async def forward(self, request: Request) -> Response:
        """
        Relay ``request`` to the upstream and stream its response back.

        Raises:
            HTTPException: 504 if the upstream times out, 502 if it cannot be reached
        """
        url = self.target_url(request)
        body = await request.body()
        upstream_request = self._client.build_request(
            request.method,
            url,
            headers=self.outgoing_headers(request),
            content=body,
        )
        logger.debug("Forwarding %s %s -> %s", request.method, request.scope["path"], url)

        try:
            upstream = await self._send_unless_disconnected(request, upstream_request)
        except httpx.TimeoutException as e:
            logger.warning("Upstream timed out: %s %s (%s)", request.method, url, e)
            raise HTTPException(status_code=504, detail="Upstream timed out")
        except httpx.HTTPError as e:
            logger.warning("Upstream unreachable: %s %s (%s)", request.method, url, e)
            raise HTTPException(status_code=502, detail="Upstream unavailable")

        if upstream is None:
            logger.info("Client disconnected before upstream replied: %s %s", request.method, url)
            return Response(status_code=CLIENT_CLOSED_REQUEST)

        response = StreamingResponse(self._stream_body(upstream), status_code=upstream.status_code)
        # ASGI header names are lowercase
        response.raw_headers = [
            (name.lower(), value)
            for name, value in upstream.headers.raw
            if name.lower().decode("latin-1") not in HOP_BY_HOP_HEADERS
        ]
        return response

    async def _send_unless_disconnected(
        self,
        request: Request,
        upstream_request: httpx.Request,
    ) -> Optional[httpx.Response]:
        """
        Send ``upstream_request``, abandoning it if the client disconnects first.

        The request body must already have been read so that the receive
        channel only carries the disconnect notification.

        Returns:
            The streaming upstream response, or None if the client went away
        """
        outcome: Dict[str, Any] = {}

        async with anyio.create_task_group() as tg:

            async def send() -> None:
                try:
                    outcome["response"] = await self._client.send(upstream_request, stream=True)
                except httpx.HTTPError as e:
                    outcome["error"] = e
                tg.cancel_scope.cancel()

            async def watch_disconnect() -> None:
                while True:
                    message = await request.receive()
                    if message["type"] == "http.disconnect":
                        tg.cancel_scope.cancel()
                        return

            tg.start_soon(send)
            tg.start_soon(watch_disconnect)

        if "error" in outcome:
            raise outcome["error"]
        return outcome.get("response")

    async def _stream_body(self, upstream: httpx.Response) -> AsyncIterator[bytes]:
        try:
            async for chunk in upstream.aiter_raw():
                yield chunk
        except httpx.HTTPError as e:
            # Status line is already out; all we can do is cut the body short
            logger.warning("Upstream failed mid-stream: %s (%s)", upstream.request.url, e)
            raise
        finally:
            await upstream.aclose()
