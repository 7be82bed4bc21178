"""Shared fixtures: in-memory Redis, a scripted collaborator API, manager factory."""

import inspect
import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest
from cryptography.fernet import Fernet

from appconnect.engine.manager import ConnectionManager
from appconnect.services.cache_service import CacheService
from appconnect.services.credential_cipher import CredentialCipher
from appconnect.services.remote_store import RemoteStore

API_BASE = "http://collab.test/api"
TOKEN = "session-token"


class InMemoryRedis:
    """Just enough of the redis client surface for CacheService."""

    def __init__(self):
        self.data: Dict[str, str] = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    def ping(self):
        return True


class Collaborator:
    """Scripted stand-in for the collaborator API behind an httpx.MockTransport.

    Routes are keyed by (method, path). Webhook-proxy targets are keyed by the
    upstream URL so each test can script what a given webhook returns.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Any] = {}
        self.webhooks: Dict[str, Any] = {}
        self.requests: List[httpx.Request] = []
        self.remote_state: Optional[Dict[str, Any]] = None
        self.remote_fails = False
        self.on("POST", "/api/webhook-proxy", self._proxy)
        self.on("GET", "/api/connections", self._get_connections)
        self.on("PUT", "/api/connections", self._put_connections)

    def on(self, method: str, path: str, handler: Any) -> None:
        self.routes[(method, path)] = handler

    def webhook(self, url: str, handler: Any) -> None:
        self.webhooks[url] = handler

    def requests_to(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    async def _resolve(self, handler: Any, request: httpx.Request) -> httpx.Response:
        result = handler(request) if callable(handler) else handler
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, json=result)

    async def _proxy(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        handler = self.webhooks.get(body["url"])
        if handler is None:
            return httpx.Response(502, json={"error": "Webhook unreachable: no route"})
        return await self._resolve(handler, request)

    def _get_connections(self, request: httpx.Request) -> httpx.Response:
        if self.remote_fails:
            return httpx.Response(500, json={"error": "down"})
        return httpx.Response(200, json=self.remote_state or {"connections": [], "connectedIds": []})

    def _put_connections(self, request: httpx.Request) -> httpx.Response:
        if self.remote_fails:
            return httpx.Response(500, json={"error": "down"})
        self.remote_state = json.loads(request.content)
        return httpx.Response(200, json={"success": True})

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"error": "Not found"})
        return await self._resolve(handler, request)


@pytest.fixture
def redis_client():
    return InMemoryRedis()


@pytest.fixture
def cache(redis_client):
    return CacheService(client=redis_client, prefix="test")


@pytest.fixture
def cipher():
    return CredentialCipher(Fernet.generate_key().decode())


@pytest.fixture
def collaborator():
    return Collaborator()


@pytest.fixture
def http_client(collaborator):
    return httpx.AsyncClient(transport=httpx.MockTransport(collaborator))


@pytest.fixture
def remote(http_client):
    return RemoteStore(client=http_client, base_url=API_BASE, token=TOKEN, timeout=1.0)


@pytest.fixture
def make_manager(cache, cipher, http_client) -> Callable[..., ConnectionManager]:
    def _make(token: Optional[str] = TOKEN, probe_timeout: float = 1.0, debounce: float = 0.0):
        return ConnectionManager(
            cache=cache,
            cipher=cipher,
            http_client=http_client,
            api_base_url=API_BASE,
            token=token,
            probe_timeout=probe_timeout,
            schema_version="v3",
            debounce=debounce,
        )
    return _make
