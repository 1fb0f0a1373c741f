"""Shared fixtures: settings, mocked upstream HTTP and a small in-process Redis stand-in."""

from typing import Callable, Dict, List

import httpx
import pytest

from domainchat.config import RegistrarCredentials, Settings


GODADDY_HOST = "api.godaddy.com"
DNS_HOST = "dns.google"
OPENROUTER_HOST = "openrouter.ai"


@pytest.fixture
def settings() -> Settings:
    """No registrar credentials, no pacing delay"""
    return Settings(registrar_delay=0, openrouter_api_key="test-llm-key")


@pytest.fixture
def settings_with_creds() -> Settings:
    return Settings(
        godaddy=RegistrarCredentials(api_key="key", api_secret="secret"),
        registrar_delay=0,
        openrouter_api_key="test-llm-key",
    )


class UpstreamRecorder:
    """Routes requests by host to per-upstream handlers and records every call."""

    def __init__(self):
        self.calls: List[httpx.Request] = []
        self.handlers: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}

    def on(self, host: str, handler: Callable[[httpx.Request], httpx.Response]):
        self.handlers[host] = handler

    def calls_to(self, host: str) -> List[httpx.Request]:
        return [c for c in self.calls if c.url.host == host]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        handler = self.handlers.get(request.url.host)
        if handler is None:
            raise httpx.ConnectError(f"no route to {request.url.host}", request=request)
        return handler(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
def upstream() -> UpstreamRecorder:
    return UpstreamRecorder()


def dns_answer(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"Status": 0, "Answer": [
        {"name": request.url.params["name"] + ".", "type": 1, "TTL": 300, "data": "93.184.216.34"}
    ]})


def dns_empty(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"Status": 3})


def network_error(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


def llm_reply(content: str) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})
    return handler


class FakeRedis:
    """Covers only the commands the conversation store issues."""

    def __init__(self):
        self.strings: Dict[str, str] = {}
        self.sets: Dict[str, set] = {}
        self.zsets: Dict[str, Dict[str, float]] = {}
        self.lists: Dict[str, List[str]] = {}

    def set(self, key, value):
        self.strings[key] = value
        return True

    def get(self, key):
        return self.strings.get(key)

    def sadd(self, key, *members):
        self.sets.setdefault(key, set()).update(members)
        return len(members)

    def zadd(self, key, mapping):
        self.zsets.setdefault(key, {}).update(mapping)
        return len(mapping)

    def zrevrange(self, key, start, end):
        items = sorted(self.zsets.get(key, {}).items(), key=lambda kv: (kv[1], kv[0]), reverse=True)
        members = [m for m, _ in items]
        return members[start:] if end == -1 else members[start:end + 1]

    def rpush(self, key, *values):
        self.lists.setdefault(key, []).extend(values)
        return len(self.lists[key])

    def lrange(self, key, start, end):
        values = self.lists.get(key, [])
        if start < 0:
            start = max(len(values) + start, 0)
        return values[start:] if end == -1 else values[start:end + 1]


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
