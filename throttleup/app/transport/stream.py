"""Rate limited request body streams.

The streams wrap an httpx request body and release it to the network no
faster than a configured ceiling (leaky bucket pacing). Content and length
are never changed; the only effects are timing and reporting every released
slice to a shared TransferMonitor.
"""

import asyncio
import time
from typing import AsyncIterable, AsyncIterator, Awaitable, Callable, Iterable, Iterator

import httpx

from throttleup.app.transport.monitor import TransferMonitor

DEFAULT_BUFFER_SIZE = 32 * 1024


class Pacer:
    """Leaky bucket bookkeeping for a single body.

    The number of bytes permitted so far is ``elapsed * rate``, measured from
    the first slice. A slice that would push the released total past that
    allowance has to wait ``excess / rate`` seconds first.
    """

    def __init__(self, rate: float, clock: Callable[[], float] = time.monotonic):
        """Initialize pacer.

        Args:
            rate: Ceiling in bytes/second, 0 for unlimited
            clock: Monotonic time source
        """
        if rate < 0:
            raise ValueError("rate cannot be negative")
        self.rate = rate
        self._clock = clock
        self._started_at: float | None = None
        self._released = 0

    @property
    def released(self) -> int:
        return self._released

    def delay_for(self, num_bytes: int) -> float:
        """Seconds to wait before releasing ``num_bytes`` more bytes."""
        if self.rate <= 0:
            return 0.0

        now = self._clock()
        if self._started_at is None:
            self._started_at = now

        permitted = (now - self._started_at) * self.rate
        excess = self._released + num_bytes - permitted
        if excess <= 0:
            return 0.0
        return excess / self.rate

    def commit(self, num_bytes: int) -> None:
        self._released += num_bytes


def _slices(chunk: bytes, size: int) -> Iterator[bytes]:
    if len(chunk) <= size:
        if chunk:
            yield chunk
        return
    for offset in range(0, len(chunk), size):
        yield chunk[offset:offset + size]


class RateLimitedStream(httpx.SyncByteStream):
    """Synchronous body stream paced to a ceiling rate.

    Usage:
        request.stream = RateLimitedStream(request.stream, monitor, rate=125_000)
    """

    def __init__(
        self,
        stream: Iterable[bytes],
        monitor: TransferMonitor,
        rate: float = 0,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if buffer_size < 1:
            raise ValueError("buffer_size must be at least 1")
        self._stream = stream
        self._monitor = monitor
        self._buffer_size = buffer_size
        self._pacer = Pacer(rate, clock=clock)
        self._sleep = sleep

    @property
    def monitor(self) -> TransferMonitor:
        return self._monitor

    @property
    def rate(self) -> float:
        return self._pacer.rate

    def __iter__(self) -> Iterator[bytes]:
        for chunk in self._stream:
            for piece in _slices(chunk, self._buffer_size):
                delay = self._pacer.delay_for(len(piece))
                if delay > 0:
                    self._sleep(delay)
                self._pacer.commit(len(piece))
                self._monitor.record_bytes(len(piece))
                yield piece

    def close(self) -> None:
        close = getattr(self._stream, "close", None)
        if close is not None:
            close()


class AsyncRateLimitedStream(httpx.AsyncByteStream):
    """Asynchronous body stream paced to a ceiling rate.

    Waiting happens with ``asyncio.sleep`` so other tasks on the loop, such
    as the progress reporter, keep running while the upload is held back.
    """

    def __init__(
        self,
        stream: AsyncIterable[bytes],
        monitor: TransferMonitor,
        rate: float = 0,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if buffer_size < 1:
            raise ValueError("buffer_size must be at least 1")
        self._stream = stream
        self._monitor = monitor
        self._buffer_size = buffer_size
        self._pacer = Pacer(rate, clock=clock)
        self._sleep = sleep

    @property
    def monitor(self) -> TransferMonitor:
        return self._monitor

    @property
    def rate(self) -> float:
        return self._pacer.rate

    async def __aiter__(self) -> AsyncIterator[bytes]:
        async for chunk in self._stream:
            for piece in _slices(chunk, self._buffer_size):
                delay = self._pacer.delay_for(len(piece))
                if delay > 0:
                    await self._sleep(delay)
                self._pacer.commit(len(piece))
                self._monitor.record_bytes(len(piece))
                yield piece

    async def aclose(self) -> None:
        aclose = getattr(self._stream, "aclose", None)
        if aclose is not None:
            await aclose()
