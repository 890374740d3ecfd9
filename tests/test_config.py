import pytest
from pydantic import ValidationError

from throttleup.app.core.config import (
    DEFAULT_UPLOAD_CHUNK_SIZE,
    Settings,
    align_chunk_size,
    kbps_to_bytes_per_second,
)


def test_defaults(monkeypatch) -> None:
    for name in ("THROTTLEUP_RATE_LIMIT_KBPS", "THROTTLEUP_QUIET", "THROTTLEUP_CHUNK_SIZE"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)
    assert settings.rate_limit_kbps == 0
    assert settings.rate_limit_bytes_per_second == 0
    assert settings.quiet is False
    assert settings.chunk_size == DEFAULT_UPLOAD_CHUNK_SIZE


def test_rate_limit_from_env(monkeypatch) -> None:
    monkeypatch.setenv("THROTTLEUP_RATE_LIMIT_KBPS", "1000")

    settings = Settings(_env_file=None)
    assert settings.rate_limit_kbps == 1000
    assert settings.rate_limit_bytes_per_second == 125_000


def test_negative_rate_limit_rejected(monkeypatch) -> None:
    monkeypatch.setenv("THROTTLEUP_RATE_LIMIT_KBPS", "-1")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_chunk_size_aligned_from_env(monkeypatch) -> None:
    monkeypatch.setenv("THROTTLEUP_CHUNK_SIZE", "1000000")

    settings = Settings(_env_file=None)
    assert settings.chunk_size == 4 * 256 * 1024


@pytest.mark.parametrize(
    ("field", "value"),
    [
        ("read_buffer_size", 0),
        ("progress_interval", 0),
        ("rate_window_seconds", -1.0),
        ("httpx_write_timeout", 0),
        ("chunk_size", 0),
        ("log_format", "xml"),
    ],
)
def test_invalid_values_rejected(field: str, value) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: value})


def test_log_format_normalised() -> None:
    settings = Settings(_env_file=None, log_format=" JSON ")
    assert settings.log_format == "json"


@pytest.mark.parametrize(
    ("kbps", "expected"),
    [(0, 0), (1, 125), (8, 1000), (1000, 125_000)],
)
def test_kbps_to_bytes_per_second(kbps: int, expected: int) -> None:
    assert kbps_to_bytes_per_second(kbps) == expected


@pytest.mark.parametrize(
    ("size", "expected"),
    [(1, 262144), (262144, 262144), (262145, 524288), (16 * 1024 * 1024, 16 * 1024 * 1024)],
)
def test_align_chunk_size(size: int, expected: int) -> None:
    assert align_chunk_size(size) == expected
