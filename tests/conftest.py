import asyncio
import json
from typing import Callable, Dict, List, Optional

import httpx
import pytest

from backend.app.models.schemas import MediaSelection, ResolveResult, ServiceName
from backend.app.services.errors import ServiceAvailabilityError
from backend.app.services.link_store import ResolvedLinkStore
from backend.app.services.resolvers.base import BaseResolver


@pytest.fixture
def run():
    """Drive a coroutine to completion from a sync test."""
    return asyncio.run


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return ResolvedLinkStore(ttl_seconds=300, text_limit=600, clock=clock)


class RecordingTransport(httpx.MockTransport):
    """MockTransport that also keeps every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: List[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)


@pytest.fixture
def mock_transport():
    def _factory(handler: Callable[[httpx.Request], httpx.Response]) -> RecordingTransport:
        return RecordingTransport(handler)
    return _factory


def next_data_page(page_props: Optional[Dict]) -> str:
    payload = json.dumps({"props": {"pageProps": page_props}})
    return (
        "<html><head></head><body>"
        f'<script id="__NEXT_DATA__" type="application/json">{payload}</script>'
        "</body></html>"
    )


class StubResolver(BaseResolver):
    """Resolver with a fixed host and a canned outcome."""

    def __init__(self, service: ServiceName, host: str, result: Optional[ResolveResult] = None,
                 error: Optional[BaseException] = None):
        super().__init__()
        self.service = service
        self.host = host
        self.result = result
        self.error = error
        self.calls: List[str] = []

    def _matches(self, parsed) -> bool:
        return self._host(parsed).endswith(self.host)

    async def resolve(self, url: str) -> ResolveResult:
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def make_result():
    def _make(service: ServiceName = ServiceName.TIKTOK, **kwargs) -> ResolveResult:
        kwargs.setdefault("title", "Sample title")
        kwargs.setdefault("video", MediaSelection(url="https://cdn.example.com/v.mp4",
                                                  fallback_urls=["https://cdn.example.com/v-low.mp4"]))
        return ResolveResult(service=service, **kwargs)
    return _make


@pytest.fixture
def stub_resolver():
    return StubResolver


@pytest.fixture
def availability_error():
    return ServiceAvailabilityError(
        ServiceName.TIKTOK, "TikTok is unavailable", detail="upstream said 520 secret-token", status_code=503
    )
