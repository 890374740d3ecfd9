"""Core utilities for the uploader."""

from throttleup.app.core.config import Settings, get_settings, kbps_to_bytes_per_second
from throttleup.app.core.logging import get_logger, setup_logging
from throttleup.app.core.utils import format_duration, format_rate

__all__ = [
    "Settings",
    "kbps_to_bytes_per_second",
    "get_settings",
    "get_logger",
    "setup_logging",
    "format_duration",
    "format_rate",
]
