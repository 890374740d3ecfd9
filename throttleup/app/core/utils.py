"""Formatting helpers for transfer statistics."""

from typing import Optional

# 1 kbps = 125 bytes/second, 1 Mbps = 125,000 bytes/second
BYTES_PER_KBPS = 125
BYTES_PER_MBPS = 125_000


def format_rate(bytes_per_second: float) -> str:
    """Render a rate with an auto-selected unit.

    Rates below 1000 kbps are shown in kbps, anything faster in Mbps.

    Examples:
        >>> format_rate(12_500)
        '  100.00 kbps'
        >>> format_rate(250_000)
        '    2.00 Mbps'
    """
    if bytes_per_second >= BYTES_PER_MBPS:
        return f"{bytes_per_second / BYTES_PER_MBPS:8.2f} Mbps"
    return f"{bytes_per_second / BYTES_PER_KBPS:8.2f} kbps"


def format_duration(seconds: Optional[float]) -> str:
    """Render a duration rounded to whole seconds, e.g. ``1h2m3s``.

    Returns ``n/a`` when the duration is unknown.

    Examples:
        >>> format_duration(0)
        '0s'
        >>> format_duration(83.4)
        '1m23s'
        >>> format_duration(3605)
        '1h0m5s'
    """
    if seconds is None:
        return "n/a"

    total = int(round(max(seconds, 0.0)))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)

    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"


def format_percent(fraction: Optional[float]) -> str:
    """Render a completed fraction as a percentage, ``n/a`` when unknown."""
    if fraction is None:
        return "n/a"
    return f"{fraction * 100:.1f}%"
