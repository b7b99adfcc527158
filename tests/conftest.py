import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import pytest

from snipwire.services.cache import CacheStore
from snipwire.services.sniprest import SnipREST
from snipwire.services.transport import HttpRequest, HttpResponse
from snipwire.settings import Settings

API_ENDPOINT = "https://app.snipcart.com/api/"


@dataclass
class FakeReply:
    status_code: int | None = 200
    body: Any = None
    text: str | None = None
    error: str | None = None


class FakeTransport:
    """In-memory transport, replies by resource path (URL without endpoint and query)."""

    def __init__(self, concurrent: bool = True):
        self.routes: dict[str, FakeReply] = {}
        self.calls: list[HttpRequest] = []
        self.batches: list[list[HttpRequest]] = []
        self._concurrent = concurrent
        self.closed = False

    @property
    def supports_concurrency(self) -> bool:
        return self._concurrent

    def add(self, path: str, body: Any = None, status_code: int = 200, **kwargs) -> None:
        self.routes[path] = FakeReply(status_code=status_code, body=body, **kwargs)

    def fail(self, path: str, status_code: int = 500) -> None:
        self.routes[path] = FakeReply(
            status_code=status_code,
            text='{"message": "boom"}',
            error=f"HTTP {status_code}: boom",
        )

    @staticmethod
    def path_of(url: str) -> str:
        return url[len(API_ENDPOINT):].split("?")[0]

    async def send(self, request: HttpRequest) -> HttpResponse:
        self.calls.append(request)
        reply = self.routes.get(self.path_of(request.url), FakeReply(body={}))
        text = reply.text if reply.text is not None else json.dumps(reply.body)
        return HttpResponse(
            url=request.url,
            status_code=reply.status_code,
            text=text,
            error=reply.error,
        )

    async def send_many(self, requests: list[HttpRequest]) -> dict[str, HttpResponse]:
        self.batches.append(list(requests))
        return {r.url: await self.send(r) for r in requests}

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def settings():
    return Settings(
        SNIPCART_API_KEY_SECRET="sk_live",
        SNIPCART_API_KEY_SECRET_TEST="sk_test",
        SNIPCART_ENVIRONMENT=0,
        SNIPCART_API_ENDPOINT=API_ENDPOINT,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return CacheStore(max_size=100, clock=clock)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def sniprest(settings, cache, transport):
    return SnipREST(settings=settings, cache=cache, transport=transport)
