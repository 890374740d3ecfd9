"""Rate limited, progress observable HTTP uploads."""

__version__ = "0.1.0"
