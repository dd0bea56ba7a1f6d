"""Shared fakes for the try-on test suite."""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Dict, List, Optional

import httpx
import pytest

from styleme.core.storage_ops import InMemoryStorage
from styleme.models import ImageRef, PurchaseResult, SubscriptionPackage

JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00" + b"\x00" * 64 + b"\xff\xd9"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"\x00" * 64
GIF_BYTES = b"GIF89a" + b"\x00" * 64


class FakeClock:
    """Monotonic clock and datetime source that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2026, 10, 17, 12, 0, 0)
        self.monotonic = 0.0

    def now(self) -> datetime:
        return self.current

    def time(self) -> float:
        return self.monotonic

    def advance(self, seconds: float) -> None:
        self.monotonic += seconds
        self.current += timedelta(seconds=seconds)


class SleepRecorder:
    """Async sleep replacement that records delays and advances a FakeClock."""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.delays: List[float] = []
        self.clock = clock

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


class FakeOracle:
    def __init__(self, subscribed: bool = True, fail: bool = False, packages=None):
        self.subscribed = subscribed
        self.fail = fail
        self.packages: List[SubscriptionPackage] = list(packages or [])
        self.calls = 0
        self.purchases: List[str] = []

    async def get_status(self, force_refresh: bool = False) -> bool:
        self.calls += 1
        if self.fail:
            raise ConnectionError("billing platform unreachable")
        return self.subscribed

    async def purchase(self, package_id: str, **kwargs) -> PurchaseResult:
        self.purchases.append(package_id)
        self.subscribed = True
        return PurchaseResult(success=True, is_subscribed=True)

    async def restore(self) -> PurchaseResult:
        return PurchaseResult(success=True, is_subscribed=self.subscribed)

    async def get_offerings(self) -> List[SubscriptionPackage]:
        if self.fail:
            raise ConnectionError("billing platform unreachable")
        return self.packages


class FlakyStorage(InMemoryStorage):
    """InMemoryStorage that fails reads or writes for chosen collections."""

    def __init__(self, fail_reads=(), fail_writes=(), **kwargs):
        super().__init__(**kwargs)
        self.fail_reads = set(fail_reads)
        self.fail_writes = set(fail_writes)

    async def get_all(self, collection):
        if collection in self.fail_reads:
            raise OSError(f"cannot read {collection}")
        return await super().get_all(collection)

    async def set_all(self, collection, records):
        if collection in self.fail_writes:
            raise OSError(f"cannot write {collection}")
        await super().set_all(collection, records)


class ProviderStub:
    """Scripted fashn.ai endpoints for httpx.MockTransport."""

    def __init__(
        self,
        submit_responses: Optional[List[Callable[[httpx.Request], httpx.Response]]] = None,
        status_responses: Optional[List[Callable[[httpx.Request], httpx.Response]]] = None,
    ):
        self.submit_responses = list(submit_responses or [])
        self.status_responses = list(status_responses or [])
        self.requests: List[httpx.Request] = []

    @staticmethod
    def _next(queue):
        # The last scripted response repeats forever
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST" and request.url.path.endswith("/run"):
            return self._next(self.submit_responses)(request)
        if request.method == "GET" and "/status/" in request.url.path:
            return self._next(self.status_responses)(request)
        return httpx.Response(404, json={"error": "not found"})

    @property
    def submit_calls(self) -> int:
        return sum(1 for r in self.requests if r.method == "POST")

    @property
    def status_calls(self) -> int:
        return sum(1 for r in self.requests if r.method == "GET")

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def respond(status_code: int, body: Optional[Dict] = None) -> Callable[[httpx.Request], httpx.Response]:
    return lambda request: httpx.Response(status_code, json=body if body is not None else {})


def status(value: str, output=None, error=None) -> Callable[[httpx.Request], httpx.Response]:
    body = {"id": "abc", "status": value}
    if output is not None:
        body["output"] = output
    if error is not None:
        body["error"] = error
    return respond(200, body)


def network_error(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def image_files(tmp_path: Path) -> Dict[str, ImageRef]:
    user_path = tmp_path / "user.jpg"
    garment_path = tmp_path / "garment.png"
    user_path.write_bytes(JPEG_BYTES)
    garment_path.write_bytes(PNG_BYTES)
    return {
        "user": ImageRef(
            uri=str(user_path),
            width=1024,
            height=1024,
            file_size_bytes=len(JPEG_BYTES),
            mime_type="image/jpeg",
        ),
        "garment": ImageRef(
            uri=user_path.with_name("garment.png").as_uri(),
            width=1024,
            height=1024,
            file_size_bytes=len(PNG_BYTES),
            mime_type="image/png",
        ),
    }
