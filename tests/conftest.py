"""
Shared fixtures: a local aiohttp server that plays the CDN, and a fetcher
bound to a real client session.
"""

from typing import Callable, Union

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from streamgrab.models.config import EngineConfig
from streamgrab.net.fetcher import SegmentFetcher

Handler = Callable[[web.Request], web.StreamResponse]


class MediaServer:
    """Serves registered paths and records every request it receives."""

    def __init__(self):
        self.routes: dict[str, Union[tuple[int, bytes, str], Handler]] = {}
        self.requests: list[tuple[str, dict[str, str]]] = []
        self.server: TestServer | None = None

    def add(
        self,
        path: str,
        body: bytes | str = b"",
        status: int = 200,
        content_type: str = "application/octet-stream",
    ) -> str:
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.routes[path] = (status, body, content_type)
        return self.url(path)

    def add_handler(self, path: str, handler: Handler) -> str:
        self.routes[path] = handler
        return self.url(path)

    def url(self, path: str) -> str:
        return str(self.server.make_url(path))

    def hits(self, path: str) -> list[dict[str, str]]:
        """Headers of every request made to `path`, in arrival order."""
        return [headers for seen, headers in self.requests if seen == path]

    async def handle(self, request: web.Request) -> web.StreamResponse:
        self.requests.append((request.path, dict(request.headers)))
        route = self.routes.get(request.path)
        if route is None:
            return web.Response(status=404)
        if callable(route):
            return route(request)
        status, body, content_type = route
        return web.Response(status=status, body=body, content_type=content_type)


@pytest.fixture
async def media_server():
    media = MediaServer()
    app = web.Application()
    app.router.add_route("GET", "/{tail:.*}", media.handle)
    server = TestServer(app)
    await server.start_server()
    media.server = server
    yield media
    await server.close()


@pytest.fixture
async def session():
    async with aiohttp.ClientSession() as client_session:
        yield client_session


@pytest.fixture
def fetcher(session):
    return SegmentFetcher(session)


@pytest.fixture
def config(tmp_path):
    return EngineConfig(
        output_dir=str(tmp_path / "out"),
        retry_delay=0,
        segment_retries=0,
        max_track_duration=60,
    )
