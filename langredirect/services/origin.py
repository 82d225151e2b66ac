"""
Origin Client

Forwards inbound requests to the origin website with httpx and turns the
origin's answer back into a Starlette response. Status, headers and body
are relayed byte for byte; only hop-by-hop headers are dropped.
"""

import logging

import httpx
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import Response, StreamingResponse

from langredirect.exceptions import OriginUnavailableError

logger = logging.getLogger(__name__)

HOP_BY_HOP_HEADERS = frozenset(
    {
        b"connection",
        b"keep-alive",
        b"proxy-authenticate",
        b"proxy-authorization",
        b"te",
        b"trailer",
        b"trailers",
        b"transfer-encoding",
        b"upgrade",
    }
)

BODYLESS_METHODS = frozenset({"GET", "HEAD"})


def _relay_headers(raw: list[tuple[bytes, bytes]], drop: frozenset[bytes] = frozenset()) -> list[tuple[bytes, bytes]]:
    return [(name, value) for name, value in raw if name.lower() not in HOP_BY_HOP_HEADERS | drop]


class OriginClient:
    """
    Thin httpx wrapper bound to the origin base URL.

    One instance is opened per process and shared by all requests; httpx
    pools the connections.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        preserve_host: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.preserve_host = preserve_host
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            follow_redirects=False,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def build_request(self, request: Request) -> httpx.Request:
        """Translate an inbound request into the equivalent origin request."""
        drop = frozenset() if self.preserve_host else frozenset({b"host"})
        headers = httpx.Headers(_relay_headers(request.headers.raw, drop))

        client_host = request.client.host if request.client else None
        if client_host:
            forwarded_for = headers.get("x-forwarded-for")
            headers["x-forwarded-for"] = f"{forwarded_for}, {client_host}" if forwarded_for else client_host
        headers.setdefault("x-forwarded-proto", request.url.scheme)
        if request.headers.get("host"):
            headers.setdefault("x-forwarded-host", request.headers["host"])

        raw_path = request.scope.get("raw_path") or request.url.path.encode()
        target = raw_path.decode("latin-1")
        if request.url.query:
            target += "?" + request.url.query

        content = None if request.method in BODYLESS_METHODS else request.stream()
        return self._client.build_request(request.method, target, headers=headers, content=content)

    async def send(self, request: Request) -> httpx.Response:
        """Send ``request`` to the origin without reading the response body.

        The caller owns the returned response and must close it, usually by
        handing it to ``stream_response``.

        Raises:
            OriginUnavailableError: the origin could not be reached or timed out.
        """
        outgoing = self.build_request(request)
        try:
            return await self._client.send(outgoing, stream=True)
        except httpx.HTTPError as e:
            raise OriginUnavailableError(str(outgoing.url), repr(e)) from e

    async def probe(self, request: Request) -> httpx.Response:
        """Trial fetch used to find out whether the origin knows a path."""
        upstream = await self.send(request)
        logger.debug("Origin probe %s %s -> %s", request.method, request.url.path, upstream.status_code)
        return upstream

    async def forward(self, request: Request) -> Response:
        """Relay ``request`` to the origin and stream its response back.

        A transport failure is answered with a bodiless 502; there is no
        origin response to pass through in that case.
        """
        try:
            upstream = await self.send(request)
        except OriginUnavailableError as e:
            logger.error(e.message)
            return Response(status_code=502)
        return stream_response(upstream)

    async def fetch_buffered(self, request: Request) -> Response:
        """Like ``forward`` but reads the whole body so the response can be cached."""
        try:
            upstream = await self.send(request)
        except OriginUnavailableError as e:
            logger.error(e.message)
            return Response(status_code=502)
        return await buffer_response(upstream)


def stream_response(upstream: httpx.Response) -> Response:
    """Wrap an open httpx response; the upstream is closed once the body is sent."""
    response = StreamingResponse(
        upstream.aiter_raw(),
        status_code=upstream.status_code,
        background=BackgroundTask(upstream.aclose),
    )
    response.raw_headers = _relay_headers(upstream.headers.raw)
    return response


async def buffer_response(upstream: httpx.Response) -> Response:
    """Read an open httpx response completely (still encoded) and close it."""
    try:
        body = b"".join([chunk async for chunk in upstream.aiter_raw()])
    except httpx.HTTPError as e:
        logger.error("Reading origin response body failed: %r", e)
        return Response(status_code=502)
    finally:
        await upstream.aclose()

    response = Response(content=body, status_code=upstream.status_code)
    response.raw_headers = _relay_headers(upstream.headers.raw, frozenset({b"content-length"})) + [
        (b"content-length", str(len(body)).encode("latin-1"))
    ]
    return response
