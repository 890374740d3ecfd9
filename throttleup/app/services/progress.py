"""Periodic progress display.

This module provides a background task that polls a transfer monitor at a
fixed cadence and rewrites a single status line in place.
"""

import asyncio
import sys
from enum import Enum
from typing import Optional, TextIO, Union

from throttleup.app.core.logging import get_logger
from throttleup.app.core.utils import format_duration, format_percent, format_rate
from throttleup.app.transport.monitor import TransferMonitor, TransferStatus

logger = get_logger(__name__)


class ReporterState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    STOPPED = "stopped"


def format_status_line(status: TransferStatus) -> str:
    """Render one progress line, prefixed with a carriage return.

    Example:
        ``\\rProgress:   800.00 kbps, 500000 / 1000000 (50.0%) ETA          5s``
    """
    return (
        f"\rProgress: {format_rate(status.current_rate)}, "
        f"{status.bytes_so_far} / {status.total_bytes} "
        f"({format_percent(status.progress)}) "
        f"ETA {format_duration(status.time_remaining):>11}"
    )


class ProgressReporter:
    """Renders transfer progress once per interval until stopped.

    The reporter reads the monitor through ``source``: either a
    TransferMonitor or anything exposing a ``monitor`` attribute, such as a
    throttling transport whose monitor only appears with the first payload
    request. Until then nothing is written.

    A reporter is single-use: NOT_STARTED -> RUNNING -> STOPPED.

    Usage:
        reporter = ProgressReporter(transport)
        await reporter.start()
        ...
        await reporter.stop()
    """

    def __init__(
        self,
        source: Union[TransferMonitor, object],
        output: Optional[TextIO] = None,
        interval: float = 1.0,
    ):
        """Initialize the reporter.

        Args:
            source: TransferMonitor, or an object with a ``monitor`` attribute
            output: Text stream to write to (default: sys.stdout)
            interval: Seconds between status lines
        """
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._source = source
        self._output = output if output is not None else sys.stdout
        self._interval = interval
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._wrote_line = False
        self.state = ReporterState.NOT_STARTED

    @property
    def monitor(self) -> Optional[TransferMonitor]:
        if isinstance(self._source, TransferMonitor):
            return self._source
        return getattr(self._source, "monitor", None)

    def render(self) -> Optional[str]:
        """Build the current status line, or None if no monitor exists yet."""
        monitor = self.monitor
        if monitor is None:
            return None
        return format_status_line(monitor.status())

    def report(self) -> None:
        """Write one status line. Display failures are logged, never raised."""
        try:
            line = self.render()
            if line is None:
                return
            self._output.write(line)
            self._output.flush()
            self._wrote_line = True
        except Exception as e:
            logger.warning(f"Failed to render progress: {e}")

    async def start(self) -> None:
        """Start the background reporting task."""
        if self.state is ReporterState.RUNNING:
            logger.debug("Progress reporter already running")
            return
        if self.state is ReporterState.STOPPED:
            logger.debug("Progress reporter already stopped, not restarting")
            return

        self._stop_event.clear()
        self._task = asyncio.create_task(self._run())
        self.state = ReporterState.RUNNING
        logger.debug(f"Started progress reporter (interval: {self._interval}s)")

    async def stop(self) -> None:
        """Stop reporting and write the final status line.

        Safe to call more than once and before start().
        """
        previous = self.state
        self.state = ReporterState.STOPPED
        if previous is not ReporterState.RUNNING or self._task is None:
            return

        self._stop_event.set()

        try:
            await asyncio.wait_for(self._task, timeout=self._interval)
        except asyncio.TimeoutError:
            logger.warning("Progress task did not stop in time, cancelling")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None

        self.report()
        if self._wrote_line:
            try:
                self._output.write("\n")
                self._output.flush()
            except Exception as e:
                logger.warning(f"Failed to finish progress line: {e}")

    async def _run(self) -> None:
        """Background task that renders a line every interval."""
        try:
            while not self._stop_event.is_set():
                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(),
                        timeout=self._interval,
                    )
                except asyncio.TimeoutError:
                    # Normal case: interval elapsed
                    self.report()
        finally:
            # Covers cancellation when the event loop shuts down under us
            self.state = ReporterState.STOPPED

    async def __aenter__(self) -> "ProgressReporter":
        await self.start()
        return self

    async def __aexit__(self, *_) -> None:
        await self.stop()
