"""
Pytest configuration and fixtures for the language redirector tests
"""

import os
import sys

import httpx
import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))  # noqa: PTH100, PTH118, PTH120

from langredirect.config import Settings  # noqa: E402
from langredirect.utils.cache import MemoryCacheStore  # noqa: E402


class FakeOrigin:
    """
    Stand-in for the origin website, served through httpx.MockTransport.

    Every request the redirector sends is recorded in ``calls``. Paths in
    ``statuses`` answer with that status, everything else with
    ``default_status``. Paths in ``headers`` get those extra response
    headers and paths in ``bodies`` that body. Each response sets ``cookie``
    unless it is None, and the default body echoes the request's Cookie
    header when one was sent. The first ``fail_times`` requests raise a
    connection error.
    """

    def __init__(
        self,
        statuses: dict[str, int] | None = None,
        default_status: int = 200,
        fail_times: int = 0,
        cookie: str | None = "session=abc; Path=/",
    ):
        self.statuses = statuses or {}
        self.default_status = default_status
        self.fail_times = fail_times
        self.cookie = cookie
        self.headers: dict[str, list[tuple[str, str]]] = {}
        self.bodies: dict[str, bytes] = {}
        self.calls: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise httpx.ConnectError("origin unreachable", request=request)
        status = self.statuses.get(request.url.path, self.default_status)

        headers = [("content-type", "text/html"), ("x-origin", "yes")]
        if self.cookie is not None:
            headers.append(("set-cookie", self.cookie))
        headers.extend(self.headers.get(request.url.path, []))

        body = f"origin:{request.method}:{request.url.path}"
        if "cookie" in request.headers:
            body += f":{request.headers['cookie']}"
        content = self.bodies.get(request.url.path, body.encode())
        # Unread stream, like a real transport hands back
        return httpx.Response(status, headers=headers, stream=httpx.ByteStream(content))

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def paths(self) -> list[str]:
        return [call.url.path for call in self.calls]


def make_settings(**overrides) -> Settings:
    values = {
        "origin_url": "http://origin.test",
        "default_language": "en",
        "supported_languages": ["de", "en", "fr", "pt-br"],
        "listen_on_paths": ["/*"],
        "redis_url": None,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def origin():
    return FakeOrigin()


@pytest.fixture
def memory_store():
    return MemoryCacheStore(max_size=100)


@pytest.fixture
def make_client(origin, memory_store):
    """Factory building a TestClient around an app with the given setting overrides."""
    clients = []

    def _make(**overrides) -> TestClient:
        from main import create_app

        app = create_app(make_settings(**overrides), origin_transport=origin.transport, cache_store=memory_store)
        client = TestClient(app, follow_redirects=False)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)
