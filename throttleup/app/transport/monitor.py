"""Shared transfer accounting.

A single TransferMonitor tracks one logical transfer, even when the transfer
is split over several HTTP requests. Every rate limited stream created for
that transfer reports into the same instance, so byte totals and rate
history carry over chunk boundaries.
"""

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Optional, Tuple

# Lower bound on the span used for rates, in seconds
MIN_RATE_SPAN = 1.0


@dataclass(frozen=True)
class TransferStatus:
    """Point-in-time snapshot of a transfer.

    Attributes:
        bytes_so_far: Bytes released to the network so far
        total_bytes: Declared total size, 0 when unknown
        current_rate: Bytes/second over the recent sliding window
        average_rate: Bytes/second over the whole transfer
        peak_rate: Highest current_rate seen by a status query
        elapsed: Seconds since the monitor was created
    """

    bytes_so_far: int
    total_bytes: int
    current_rate: float
    average_rate: float
    peak_rate: float
    elapsed: float

    @property
    def progress(self) -> Optional[float]:
        """Completed fraction in [0, 1], or None when the total is unknown.

        Clamped to 1.0 when more bytes arrived than were declared.
        """
        if self.total_bytes <= 0:
            return None
        return min(self.bytes_so_far / self.total_bytes, 1.0)

    @property
    def bytes_remaining(self) -> Optional[int]:
        if self.total_bytes <= 0:
            return None
        return max(self.total_bytes - self.bytes_so_far, 0)

    @property
    def time_remaining(self) -> Optional[float]:
        """Estimated seconds left, or None when it cannot be estimated."""
        remaining = self.bytes_remaining
        if remaining is None:
            return None
        if remaining == 0:
            return 0.0
        if self.current_rate <= 0:
            return None
        return remaining / self.current_rate


class TransferMonitor:
    """Thread-safe accounting object for one logical transfer.

    Recent reads are kept as ``(timestamp, bytes)`` samples in a sliding
    window; the current rate is derived from that window on each status
    query. One lock guards every mutation and every read so a status
    snapshot never mixes an updated byte count with a stale window.
    """

    def __init__(
        self,
        total_bytes: int = 0,
        window_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize monitor.

        Args:
            total_bytes: Expected transfer size, 0 if unknown
            window_seconds: Length of the sliding window used for the current rate
            clock: Monotonic time source, injectable for tests
        """
        if total_bytes < 0:
            raise ValueError("total_bytes cannot be negative")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self._clock = clock
        self._window = window_seconds
        self._lock = threading.Lock()
        self._samples: Deque[Tuple[float, int]] = deque()
        self._total_bytes = total_bytes
        self._bytes_so_far = 0
        self._peak_rate = 0.0
        self.start_time = clock()

    @property
    def total_bytes(self) -> int:
        with self._lock:
            return self._total_bytes

    @property
    def bytes_so_far(self) -> int:
        with self._lock:
            return self._bytes_so_far

    def set_total_size(self, total_bytes: int) -> None:
        """Update the expected size without touching the bytes counted so far."""
        if total_bytes < 0:
            raise ValueError("total_bytes cannot be negative")
        with self._lock:
            self._total_bytes = total_bytes

    def record_bytes(self, num_bytes: int) -> None:
        """Account for bytes released by a rate limited stream.

        Args:
            num_bytes: Size of the slice just handed to the network
        """
        if num_bytes < 0:
            raise ValueError("num_bytes cannot be negative")
        if num_bytes == 0:
            return

        now = self._clock()
        with self._lock:
            self._bytes_so_far += num_bytes
            self._samples.append((now, num_bytes))
            self._cleanup(now)

    def status(self) -> TransferStatus:
        """Take a consistent snapshot of the transfer."""
        now = self._clock()
        with self._lock:
            self._cleanup(now)
            elapsed = now - self.start_time

            if self._samples:
                # Until a full window has passed, divide by the time elapsed so far
                span = max(min(elapsed, self._window), MIN_RATE_SPAN)
                current_rate = sum(b for _, b in self._samples) / span
            else:
                current_rate = 0.0
            self._peak_rate = max(self._peak_rate, current_rate)

            return TransferStatus(
                bytes_so_far=self._bytes_so_far,
                total_bytes=self._total_bytes,
                current_rate=current_rate,
                average_rate=self._bytes_so_far / max(elapsed, MIN_RATE_SPAN),
                peak_rate=self._peak_rate,
                elapsed=elapsed,
            )

    def _cleanup(self, now: float) -> None:
        """Remove samples outside the window."""
        cutoff = now - self._window
        while self._samples and self._samples[0][0] <= cutoff:
            self._samples.popleft()
