"""Shared pytest fixtures."""

import io
import json

import httpx
import pytest

from throttleup.app.services.source import UploadSource


class FakeClock:
    """Monotonic clock that only moves when told to, or when slept on."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    async def async_sleep(self, seconds: float) -> None:
        self.sleep(seconds)


class MemorySource(UploadSource):
    """In-memory upload source; ``declared_size`` may differ from the data."""

    def __init__(self, data: bytes, declared_size: int | None = None):
        super().__init__("memory://video", len(data) if declared_size is None else declared_size)
        self._buffer = io.BytesIO(data)
        self.closed = False

    async def read(self, num_bytes: int) -> bytes:
        return self._buffer.read(num_bytes)

    async def aclose(self) -> None:
        self.closed = True


UPLOAD_SESSION_URL = "https://www.googleapis.com/upload/youtube/v3/videos?upload_id=abc"


class FakeResumableServer:
    """Minimal resumable upload endpoint, used as a MockTransport handler.

    ``accept_limit`` caps how many bytes of each PUT are acknowledged, to
    exercise partial acceptance.
    """

    def __init__(self, accept_limit: int | None = None, fail_put_status: int | None = None):
        self.accept_limit = accept_limit
        self.fail_put_status = fail_put_status
        self.received = bytearray()
        self.session_requests: list[httpx.Request] = []
        self.content_ranges: list[str] = []
        self.session_body = None

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            self.session_requests.append(request)
            self.session_body = json.loads(request.content)
            return httpx.Response(200, headers={"Location": UPLOAD_SESSION_URL})

        body = b"".join([c async for c in request.stream])
        header = request.headers["Content-Range"]
        self.content_ranges.append(header)
        if self.fail_put_status is not None:
            return httpx.Response(self.fail_put_status, text="backend error")

        byte_range, _, total = header[len("bytes "):].partition("/")
        if byte_range != "*":
            start = int(byte_range.split("-")[0])
            del self.received[start:]
            accepted = body if self.accept_limit is None else body[:self.accept_limit]
            self.received.extend(accepted)

        if total != "*" and len(self.received) == int(total):
            return httpx.Response(200, json={"id": "vid123", "kind": "youtube#video"})

        headers = {}
        if self.received:
            headers["Range"] = f"bytes=0-{len(self.received) - 1}"
        return httpx.Response(308, headers=headers)


@pytest.fixture
def clock():
    """Fake monotonic clock starting at zero."""
    return FakeClock()


@pytest.fixture
def video_bytes():
    """600,000 bytes of non-repeating-looking payload."""
    return bytes(i % 251 for i in range(600_000))


@pytest.fixture
def memory_source():
    """Factory for in-memory upload sources."""
    return MemorySource


@pytest.fixture
def upload_server():
    """Factory for fake resumable upload servers."""
    return FakeResumableServer
