"""Tests for the throttling transports."""

import httpx
import pytest

from throttleup.app.transport.interceptor import (
    PAYLOAD_EXTENSION,
    AsyncThrottlingTransport,
    ThrottlingTransport,
    is_payload_request,
    mark_payload,
)
from throttleup.app.transport.monitor import TransferMonitor
from throttleup.app.transport.stream import AsyncRateLimitedStream, RateLimitedStream

UPLOAD_URL = "https://upload.example.com/session"
PAYLOAD = {PAYLOAD_EXTENSION: True}


class RecordingHandler:
    """MockTransport handler that drains request bodies the way a real transport does."""

    def __init__(self):
        self.bodies: list[bytes] = []
        self.streams: list = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.streams.append(request.stream)
        self.bodies.append(b"".join(request.stream))
        return httpx.Response(200, json={"received": len(self.bodies[-1])})


class AsyncRecordingHandler(RecordingHandler):
    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.streams.append(request.stream)
        self.bodies.append(b"".join([c async for c in request.stream]))
        return httpx.Response(200, json={"received": len(self.bodies[-1])})


class TestPayloadMarker:
    """Tests for explicit payload classification."""

    def test_unmarked_request(self):
        request = httpx.Request("PUT", UPLOAD_URL, content=b"x" * 5_000)
        assert is_payload_request(request) is False

    def test_marked_via_extensions(self):
        request = httpx.Request("PUT", UPLOAD_URL, content=b"x", extensions=PAYLOAD)
        assert is_payload_request(request) is True

    def test_mark_payload_on_built_request(self):
        request = mark_payload(httpx.Request("PUT", UPLOAD_URL, content=b"x"))
        assert is_payload_request(request) is True


class TestThrottlingTransport:
    """Tests for the synchronous interceptor."""

    @pytest.fixture
    def handler(self):
        return RecordingHandler()

    @pytest.fixture
    def transport(self, handler):
        return ThrottlingTransport(httpx.MockTransport(handler), total_bytes=1_000_000)

    def test_small_control_request_passes_through(self, handler, transport):
        """An unmarked 500 byte request is forwarded untouched."""
        request = httpx.Request("POST", UPLOAD_URL, content=b"m" * 500)
        original_stream = request.stream

        with httpx.Client(transport=transport) as client:
            response = client.send(request)

        assert response.status_code == 200
        assert handler.streams[0] is original_stream
        assert handler.bodies[0] == b"m" * 500
        assert transport.monitor is None
        assert transport.payload_requests == 0

    def test_unmarked_large_request_passes_through(self, handler, transport):
        """Size alone never makes a request payload-carrying."""
        with httpx.Client(transport=transport) as client:
            client.post(UPLOAD_URL, content=b"L" * 2_000_000)

        assert not isinstance(handler.streams[0], RateLimitedStream)
        assert transport.monitor is None

    def test_two_chunks_accumulate_on_one_monitor(self, handler, transport):
        """600,000 + 400,000 byte chunks complete a 1,000,000 byte transfer."""
        first = bytes(i % 7 for i in range(600_000))
        second = bytes(i % 11 for i in range(400_000))

        with httpx.Client(transport=transport) as client:
            client.put(UPLOAD_URL, content=first, extensions=PAYLOAD)
            monitor = transport.monitor
            assert monitor.bytes_so_far == 600_000
            client.put(UPLOAD_URL, content=second, extensions=PAYLOAD)

        assert transport.monitor is monitor
        assert transport.payload_requests == 2
        assert handler.bodies == [first, second]
        status = monitor.status()
        assert status.bytes_so_far == 1_000_000
        assert status.progress == 1.0

    def test_each_payload_gets_a_fresh_stream(self, handler, transport):
        with httpx.Client(transport=transport) as client:
            client.put(UPLOAD_URL, content=b"a" * 10, extensions=PAYLOAD)
            client.put(UPLOAD_URL, content=b"b" * 10, extensions=PAYLOAD)

        first, second = handler.streams
        assert isinstance(first, RateLimitedStream)
        assert isinstance(second, RateLimitedStream)
        assert first is not second
        assert first.monitor is second.monitor

    def test_set_rate_applies_to_later_bodies(self, handler, transport):
        with httpx.Client(transport=transport) as client:
            client.put(UPLOAD_URL, content=b"a", extensions=PAYLOAD)
            transport.set_rate(250_000)
            client.put(UPLOAD_URL, content=b"b", extensions=PAYLOAD)

        assert handler.streams[0].rate == 0
        assert handler.streams[1].rate == 250_000

    def test_set_total_size_updates_attached_monitor(self, handler, transport):
        with httpx.Client(transport=transport) as client:
            client.put(UPLOAD_URL, content=b"a" * 100, extensions=PAYLOAD)

        transport.set_total_size(400)

        assert transport.monitor.total_bytes == 400
        assert transport.monitor.status().progress == pytest.approx(0.25)

    def test_shared_monitor_can_be_supplied(self, handler):
        monitor = TransferMonitor(total_bytes=50)
        transport = ThrottlingTransport(httpx.MockTransport(handler), monitor=monitor)

        with httpx.Client(transport=transport) as client:
            client.put(UPLOAD_URL, content=b"q" * 50, extensions=PAYLOAD)

        assert transport.monitor is monitor
        assert monitor.bytes_so_far == 50

    def test_response_returned_unmodified(self, transport):
        with httpx.Client(transport=transport) as client:
            response = client.put(UPLOAD_URL, content=b"abc", extensions=PAYLOAD)

        assert response.json() == {"received": 3}

    def test_transport_error_propagates_unchanged(self):
        error = httpx.ConnectError("network is down")

        def handler(request):
            raise error

        transport = ThrottlingTransport(httpx.MockTransport(handler))

        with httpx.Client(transport=transport) as client:
            with pytest.raises(httpx.ConnectError) as excinfo:
                client.put(UPLOAD_URL, content=b"abc", extensions=PAYLOAD)

        assert excinfo.value is error

    def test_negative_rate_rejected(self, handler):
        with pytest.raises(ValueError):
            ThrottlingTransport(httpx.MockTransport(handler), rate=-1)

    def test_negative_total_size_rejected_before_any_request(self, handler, transport):
        """Bad sizes fail at the call, not later inside a payload request."""
        with pytest.raises(ValueError):
            transport.set_total_size(-1)
        with pytest.raises(ValueError):
            ThrottlingTransport(httpx.MockTransport(handler), total_bytes=-1)

        assert transport.total_bytes == 1_000_000
        with httpx.Client(transport=transport) as client:
            client.put(UPLOAD_URL, content=b"a" * 10, extensions=PAYLOAD)
        assert transport.monitor.total_bytes == 1_000_000


class TestAsyncThrottlingTransport:
    """Tests for the asyncio interceptor."""

    @pytest.mark.asyncio
    async def test_control_request_passes_through(self):
        handler = AsyncRecordingHandler()
        transport = AsyncThrottlingTransport(httpx.MockTransport(handler), total_bytes=10)

        async with httpx.AsyncClient(transport=transport) as client:
            await client.post(UPLOAD_URL, content=b"c" * 500)

        assert not isinstance(handler.streams[0], AsyncRateLimitedStream)
        assert transport.monitor is None

    @pytest.mark.asyncio
    async def test_two_chunks_accumulate_on_one_monitor(self):
        handler = AsyncRecordingHandler()
        transport = AsyncThrottlingTransport(
            httpx.MockTransport(handler), total_bytes=1_000_000
        )

        async with httpx.AsyncClient(transport=transport) as client:
            await client.put(UPLOAD_URL, content=b"1" * 600_000, extensions=PAYLOAD)
            await client.put(UPLOAD_URL, content=b"2" * 400_000, extensions=PAYLOAD)

        assert all(isinstance(s, AsyncRateLimitedStream) for s in handler.streams)
        assert [len(b) for b in handler.bodies] == [600_000, 400_000]
        status = transport.monitor.status()
        assert status.bytes_so_far == 1_000_000
        assert status.progress == 1.0

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self):
        async def handler(request):
            raise httpx.WriteTimeout("stalled")

        transport = AsyncThrottlingTransport(httpx.MockTransport(handler))

        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(httpx.WriteTimeout):
                await client.put(UPLOAD_URL, content=b"abc", extensions=PAYLOAD)

    @pytest.mark.asyncio
    async def test_aclose_closes_wrapped_transport(self):
        closed = []

        class Inner(httpx.AsyncBaseTransport):
            async def handle_async_request(self, request):
                return httpx.Response(204)

            async def aclose(self):
                closed.append(True)

        transport = AsyncThrottlingTransport(Inner())
        await transport.aclose()

        assert closed == [True]
