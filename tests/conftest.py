"""
Shared fixtures.

``FakeRemote`` is an in-memory object store speaking the same HTTP dialect as
the real endpoint (conditional GET/HEAD/PUT/DELETE plus ``/list``). It is
served to ``ResourceClient`` through ``httpx.MockTransport`` and has knobs for
outages, per-path failures and hooks that run in the middle of a request so
tests can stage races.
"""

import hashlib
import json
from typing import Awaitable, Callable

import httpx
import pytest

from lightnotes.config import ClientConfig
from lightnotes.store import DirectoryStore
from lightnotes.sync.client import ResourceClient
from lightnotes.sync.etag_cache import ETagCache
from lightnotes.sync.kv import InMemoryStore
from lightnotes.sync.orchestrator import SyncOrchestrator
from lightnotes.sync.writer import ConflictResolvingWriter

BASE_URL = "https://notes.test"
TOKEN = "test-token"

Hook = Callable[[str], Awaitable[None]]


def _content_type(path: str) -> str:
    if path.endswith(".json"):
        return "application/json"
    return "text/html; charset=utf-8"


class FakeRemote:
    """In-memory conditional object store."""

    def __init__(self, token: str = TOKEN):
        self.token = token
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.requests: list[httpx.Request] = []
        self.offline = False
        self.fail_paths: dict[str, int] = {}
        self.before_put: Hook | None = None
        self.before_get: Hook | None = None

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    # Direct access for test setup and assertions

    def seed(self, path: str, body) -> str:
        if isinstance(body, str):
            content = body.encode("utf-8")
        else:
            content = json.dumps(body).encode("utf-8")
        etag = hashlib.md5(content).hexdigest()
        self.objects[path] = (content, etag)
        return etag

    def etag(self, path: str) -> str | None:
        stored = self.objects.get(path)
        return stored[1] if stored else None

    def text(self, path: str) -> str:
        return self.objects[path][0].decode("utf-8")

    def json(self, path: str):
        return json.loads(self.objects[path][0])

    def calls(self, method: str | None = None, path: str | None = None) -> list:
        return [
            r
            for r in self.requests
            if (method is None or r.method == method)
            and (path is None or r.url.path.lstrip("/") == path)
        ]

    # HTTP side

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.offline:
            raise httpx.ConnectError("remote unreachable", request=request)
        if request.headers.get("Authorization") != f"Bearer {self.token}":
            return httpx.Response(401)

        path = request.url.path.lstrip("/")
        if path in self.fail_paths:
            return httpx.Response(self.fail_paths[path])

        if request.method == "GET" and path == "list":
            prefix = request.url.params.get("prefix", "")
            keys = sorted(k for k in self.objects if k.startswith(prefix))
            return httpx.Response(200, json={"keys": keys})

        if request.method == "HEAD":
            if path not in self.objects:
                return httpx.Response(404)
            return httpx.Response(200, headers={"ETag": f'"{self.etag(path)}"'})

        if request.method == "GET":
            if self.before_get is not None:
                await self.before_get(path)
            if path not in self.objects:
                return httpx.Response(404)
            content, etag = self.objects[path]
            if request.headers.get("If-None-Match", "").strip('"') == etag:
                return httpx.Response(304, headers={"ETag": f'"{etag}"'})
            return httpx.Response(
                200,
                content=content,
                headers={"ETag": f'"{etag}"', "Content-Type": _content_type(path)},
            )

        if request.method == "PUT":
            if self.before_put is not None:
                await self.before_put(path)
            current = self.etag(path)
            if_match = request.headers.get("If-Match")
            if request.headers.get("If-None-Match") == "*" and current is not None:
                return httpx.Response(412)
            if if_match is not None and if_match.strip('"') != current:
                return httpx.Response(412)
            content = await request.aread()
            etag = hashlib.md5(content).hexdigest()
            self.objects[path] = (content, etag)
            return httpx.Response(
                201 if current is None else 200, headers={"ETag": f'"{etag}"'}
            )

        if request.method == "DELETE":
            if self.objects.pop(path, None) is None:
                return httpx.Response(404)
            return httpx.Response(204)

        return httpx.Response(405)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def config():
    return ClientConfig(remote_url=BASE_URL, auth_token=TOKEN)


@pytest.fixture
def etag_cache():
    return ETagCache(InMemoryStore())


@pytest.fixture
def client(config, etag_cache, remote):
    return ResourceClient(config, etag_cache, transport=remote.transport)


@pytest.fixture
def writer(client):
    return ConflictResolvingWriter(client)


@pytest.fixture
def store(tmp_path):
    store = DirectoryStore(tmp_path / "data")
    store.init()
    return store


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def queue_store():
    return InMemoryStore()


@pytest.fixture
def orchestrator(store, client, queue_store, clock):
    return SyncOrchestrator(store, client, queue_store, save_delay=0.01, clock=clock)
