from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resumable upload chunks must be multiples of 256 KiB (except the last one)
UPLOAD_CHUNK_ALIGNMENT = 256 * 1024
DEFAULT_UPLOAD_CHUNK_SIZE = 16 * 1024 * 1024

DEFAULT_UPLOAD_URL = "https://www.googleapis.com/upload/youtube/v3/videos"

LOG_FORMATS = ("text", "structured", "json")


def align_chunk_size(size: int) -> int:
    """Round a chunk size up to the next multiple of 256 KiB.

    Examples:
        >>> align_chunk_size(1)
        262144
        >>> align_chunk_size(262144)
        262144
        >>> align_chunk_size(300000)
        524288
    """
    if size <= UPLOAD_CHUNK_ALIGNMENT:
        return UPLOAD_CHUNK_ALIGNMENT
    blocks = -(-size // UPLOAD_CHUNK_ALIGNMENT)
    return blocks * UPLOAD_CHUNK_ALIGNMENT


class Settings(BaseSettings):
    """Uploader settings loaded from environment variables.

    All settings can be configured via ``THROTTLEUP_*`` environment variables
    or a .env file. Command line flags override them at startup.
    """

    # Transfer shaping
    rate_limit_kbps: int = 0  # 0 disables throttling
    read_buffer_size: int = 32 * 1024  # Largest slice released by the limiter
    rate_window_seconds: float = 5.0  # Sliding window for the current rate

    # Progress display
    quiet: bool = False
    progress_interval: float = 1.0

    # Remote API
    upload_url: str = DEFAULT_UPLOAD_URL
    access_token: str = ""  # Bearer token, acquired outside this tool
    chunk_size: int = DEFAULT_UPLOAD_CHUNK_SIZE

    # HTTP client timeouts
    httpx_connect_timeout: float = 10.0  # Time to establish connection
    httpx_read_timeout: float = 60.0  # Time to read response data
    httpx_write_timeout: float = 60.0  # Time to send one body slice
    httpx_pool_timeout: float = 5.0  # Time to acquire connection from pool

    # Logging settings
    log_level: str = "WARNING"
    log_format: str = "text"  # text | structured | json

    @field_validator("rate_limit_kbps")
    @classmethod
    def validate_rate_limit_not_negative(cls, v: int) -> int:
        """Validate the ceiling rate; zero means unlimited."""
        if v < 0:
            raise ValueError("rate_limit_kbps must be 0 (unlimited) or positive")
        return v

    @field_validator("read_buffer_size")
    @classmethod
    def validate_buffer_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("read_buffer_size must be at least 1 byte")
        return v

    @field_validator(
        "rate_window_seconds",
        "progress_interval",
        "httpx_connect_timeout",
        "httpx_read_timeout",
        "httpx_write_timeout",
        "httpx_pool_timeout",
    )
    @classmethod
    def validate_seconds_positive(cls, v: float) -> float:
        """Validate interval and timeout values are positive."""
        if v <= 0:
            raise ValueError("Interval and timeout values must be positive")
        return v

    @field_validator("chunk_size")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        """Validate and align the resumable upload chunk size."""
        if v < 1:
            raise ValueError("chunk_size must be positive")
        return align_chunk_size(v)

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {', '.join(LOG_FORMATS)}")
        return v

    @property
    def rate_limit_bytes_per_second(self) -> int:
        """Ceiling rate converted from kilobits to bytes per second."""
        return kbps_to_bytes_per_second(self.rate_limit_kbps)

    model_config = SettingsConfigDict(
        env_prefix="THROTTLEUP_", env_file=".env", extra="ignore"
    )


def kbps_to_bytes_per_second(kbps: int) -> int:
    """Convert kilobits/second to bytes/second (1 kbps = 125 B/s)."""
    return kbps * 125


@lru_cache
def get_settings() -> Settings:
    """Settings read from the environment on first use.

    Built lazily so that invalid ``THROTTLEUP_*`` values surface as a
    ValidationError the command line can report, not as an import failure.
    """
    return Settings()
