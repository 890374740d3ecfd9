"""Throttling httpx transports.

The transports sit between an httpx client and the real network transport.
Requests the caller marked as payload-carrying get their body swapped for a
rate limited stream; everything else is forwarded untouched.

Usage:
    transport = AsyncThrottlingTransport(
        httpx.AsyncHTTPTransport(), total_bytes=size, rate=125_000
    )
    async with httpx.AsyncClient(transport=transport) as client:
        await client.put(url, content=chunk, extensions={PAYLOAD_EXTENSION: True})
"""

import threading
from typing import Optional

import httpx

from throttleup.app.core.logging import get_log_context, get_logger
from throttleup.app.transport.monitor import TransferMonitor
from throttleup.app.transport.stream import (
    DEFAULT_BUFFER_SIZE,
    AsyncRateLimitedStream,
    RateLimitedStream,
)

logger = get_logger(__name__)

# Request extension that marks the body as the payload to shape and measure
PAYLOAD_EXTENSION = "throttleup.payload"


def mark_payload(request: httpx.Request) -> httpx.Request:
    """Tag an already built request as payload-carrying."""
    request.extensions[PAYLOAD_EXTENSION] = True
    return request


def is_payload_request(request: httpx.Request) -> bool:
    return bool(request.extensions.get(PAYLOAD_EXTENSION, False))


class _ThrottlingBase:
    """State shared by the sync and async transports.

    Owns exactly one TransferMonitor for its lifetime. The monitor is created
    on the first payload request (sized to ``total_bytes``) unless one is
    passed in, and every later payload body reports into it.
    """

    def __init__(
        self,
        total_bytes: int = 0,
        rate: float = 0,
        monitor: Optional[TransferMonitor] = None,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        window_seconds: float = 5.0,
    ):
        if rate < 0:
            raise ValueError("rate cannot be negative")
        if total_bytes < 0:
            raise ValueError("total_bytes cannot be negative")
        self.total_bytes = total_bytes
        self.rate = rate
        self.buffer_size = buffer_size
        self.window_seconds = window_seconds
        self.payload_requests = 0
        self._monitor = monitor
        self._lock = threading.Lock()

    @property
    def monitor(self) -> Optional[TransferMonitor]:
        """The transfer monitor, or None before the first payload request."""
        return self._monitor

    def set_rate(self, rate: float) -> None:
        """Change the ceiling for payload bodies created from now on."""
        if rate < 0:
            raise ValueError("rate cannot be negative")
        self.rate = rate

    def set_total_size(self, total_bytes: int) -> None:
        """Update the expected size, including on an already attached monitor."""
        if total_bytes < 0:
            raise ValueError("total_bytes cannot be negative")
        with self._lock:
            self.total_bytes = total_bytes
            monitor = self._monitor
        if monitor is not None:
            monitor.set_total_size(total_bytes)

    def _attach_monitor(self) -> TransferMonitor:
        with self._lock:
            if self._monitor is None:
                self._monitor = TransferMonitor(
                    total_bytes=self.total_bytes,
                    window_seconds=self.window_seconds,
                )
                logger.debug(
                    "Attached transfer monitor",
                    extra=get_log_context(total_bytes=self.total_bytes),
                )
            self.payload_requests += 1
            return self._monitor

    def _log_payload(self, request: httpx.Request) -> None:
        logger.debug(
            f"Throttling payload request #{self.payload_requests}",
            extra=get_log_context(
                url=str(request.url),
                method=request.method,
                rate_bps=self.rate,
                content_length=request.headers.get("Content-Length"),
            ),
        )


class ThrottlingTransport(_ThrottlingBase, httpx.BaseTransport):
    """Synchronous interceptor for ``httpx.Client``."""

    def __init__(self, transport: httpx.BaseTransport, **kwargs):
        """Initialize the interceptor.

        Args:
            transport: The transport that actually talks to the network
            **kwargs: total_bytes, rate, monitor, buffer_size, window_seconds
        """
        super().__init__(**kwargs)
        self._transport = transport

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        if is_payload_request(request):
            monitor = self._attach_monitor()
            request.stream = RateLimitedStream(
                request.stream,
                monitor,
                rate=self.rate,
                buffer_size=self.buffer_size,
            )
            self._log_payload(request)
        return self._transport.handle_request(request)

    def close(self) -> None:
        self._transport.close()


class AsyncThrottlingTransport(_ThrottlingBase, httpx.AsyncBaseTransport):
    """Asynchronous interceptor for ``httpx.AsyncClient``."""

    def __init__(self, transport: httpx.AsyncBaseTransport, **kwargs):
        super().__init__(**kwargs)
        self._transport = transport

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if is_payload_request(request):
            monitor = self._attach_monitor()
            request.stream = AsyncRateLimitedStream(
                request.stream,
                monitor,
                rate=self.rate,
                buffer_size=self.buffer_size,
            )
            self._log_payload(request)
        return await self._transport.handle_async_request(request)

    async def aclose(self) -> None:
        await self._transport.aclose()
