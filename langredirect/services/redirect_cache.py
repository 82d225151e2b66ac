"""
Redirect Cache

Cache-aside layer in front of the redirect pipeline. Entries are whole
HTTP responses keyed by request URL and negotiated language. ``Set-Cookie``
headers are never stored, so a cached entry cannot carry one client's
cookie to another. Passthrough pages are only stored and served when
neither the request nor the response marks them as personal.
"""

import base64
import logging
from dataclasses import dataclass

from starlette.requests import Request
from starlette.responses import Response

from langredirect.utils.cache import CacheStore
from langredirect.utils.metrics import record_cache_lookup, record_cache_write

logger = logging.getLogger(__name__)

NO_LANGUAGE = "-"

# Cache-Control directives that forbid replaying a response to another client
PRIVATE_DIRECTIVES = frozenset({"private", "no-store", "no-cache"})

# Vary entries the cache key already accounts for. Accept-Encoding is safe
# because encoded bodies are never stored.
KEYED_VARY = frozenset({"accept-language", "accept-encoding"})


def _header_tokens(value: str) -> set[str]:
    return {token.split("=", 1)[0].strip().lower() for token in value.split(",") if token.strip()}


def unshareable_response(response: Response) -> str | None:
    """Why an origin response must not be served to other clients, or None when it may be.

    Only plain 200s qualify: no cookie of their own, no private or no-store
    Cache-Control, no Content-Encoding, and no Vary beyond what the key holds.
    """
    if response.status_code != 200:
        return "status"
    headers = response.headers
    if "set-cookie" in headers:
        return "set-cookie"
    if _header_tokens(headers.get("cache-control", "")) & PRIVATE_DIRECTIVES:
        return "cache-control"
    if headers.get("content-encoding", "identity").strip().lower() != "identity":
        return "content-encoding"
    if _header_tokens(headers.get("vary", "")) - KEYED_VARY:
        return "vary"
    return None


def is_credentialed(request: Request, ignored_cookies: frozenset[str] = frozenset()) -> bool:
    """True when the request carries credentials or cookies other than ``ignored_cookies``.

    Such a request may get a personalized page, so a stored passthrough is
    neither written from it nor served to it.
    """
    if "authorization" in request.headers:
        return True
    return any(name not in ignored_cookies for name in request.cookies)


@dataclass(frozen=True)
class CachedResponse:
    """A stored response: status, ordered raw headers, body."""

    status_code: int
    headers: tuple[tuple[str, str], ...]
    body: bytes = b""

    @classmethod
    def from_response(cls, response: Response) -> "CachedResponse":
        headers = tuple(
            (name.decode("latin-1"), value.decode("latin-1"))
            for name, value in response.raw_headers
            if name.lower() != b"set-cookie"
        )
        return cls(status_code=response.status_code, headers=headers, body=response.body)

    @classmethod
    def from_dict(cls, data: dict) -> "CachedResponse":
        return cls(
            status_code=int(data["status_code"]),
            headers=tuple((name, value) for name, value in data["headers"]),
            body=base64.b64decode(data.get("body", "")),
        )

    def to_dict(self) -> dict:
        return {
            "status_code": self.status_code,
            "headers": [list(header) for header in self.headers],
            "body": base64.b64encode(self.body).decode("ascii"),
        }

    def to_response(self) -> Response:
        """Build a fresh response object; callers may mutate it freely."""
        response = Response(content=self.body, status_code=self.status_code)
        response.raw_headers = [(name.encode("latin-1"), value.encode("latin-1")) for name, value in self.headers]
        return response


class RedirectCache:
    """
    Reads and writes redirect outcomes through a CacheStore.

    Store failures never reach the caller: a failed read is a miss, a failed
    write is logged and dropped. With ``store=None`` caching is disabled.
    """

    def __init__(self, store: CacheStore | None, ttl: int = 3600, prefix: str = "langredirect:"):
        self.store = store
        self.ttl = ttl
        self.prefix = prefix

    @property
    def enabled(self) -> bool:
        return self.store is not None

    def key_for(self, url: str, language: str | None) -> str:
        return f"{self.prefix}{url}|{language or NO_LANGUAGE}"

    async def get(self, key: str) -> CachedResponse | None:
        if self.store is None:
            return None

        try:
            data = await self.store.get(key)
            entry = CachedResponse.from_dict(data) if data is not None else None
        except Exception as e:
            logger.warning(f"Cache get error for {key}: {e}")
            record_cache_lookup("error")
            return None

        if entry is None:
            logger.debug(f"Cache MISS: {key}")
            record_cache_lookup("miss")
            return None

        logger.debug(f"Cache HIT: {key}")
        record_cache_lookup("hit")
        return entry

    async def put(self, key: str, entry: CachedResponse) -> None:
        if self.store is None:
            return

        try:
            await self.store.put(key, entry.to_dict(), self.ttl)
        except Exception as e:
            logger.warning(f"Cache set error for {key}: {e}")
            record_cache_write("error")
            return
        record_cache_write("ok")
