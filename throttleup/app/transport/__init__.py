"""Rate limited, progress observable httpx transports."""

from throttleup.app.transport.interceptor import (
    PAYLOAD_EXTENSION,
    AsyncThrottlingTransport,
    ThrottlingTransport,
    is_payload_request,
    mark_payload,
)
from throttleup.app.transport.monitor import TransferMonitor, TransferStatus
from throttleup.app.transport.stream import (
    AsyncRateLimitedStream,
    Pacer,
    RateLimitedStream,
)

__all__ = [
    "PAYLOAD_EXTENSION",
    "AsyncThrottlingTransport",
    "ThrottlingTransport",
    "is_payload_request",
    "mark_payload",
    "TransferMonitor",
    "TransferStatus",
    "AsyncRateLimitedStream",
    "Pacer",
    "RateLimitedStream",
]
