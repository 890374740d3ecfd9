"""HTTP client construction for uploads.

The upload client is an ordinary ``httpx.AsyncClient`` whose transport is a
throttling transport wrapped around the default network transport.
"""

from typing import Optional, Tuple

import httpx

from throttleup.app.core.config import get_settings
from throttleup.app.transport.interceptor import AsyncThrottlingTransport


def build_timeout(**kwargs) -> httpx.Timeout:
    """Granular timeouts from settings, individually overridable.

    Args:
        **kwargs: connect_timeout, read_timeout, write_timeout, pool_timeout
    """
    settings = get_settings()
    return httpx.Timeout(
        connect=kwargs.get("connect_timeout", settings.httpx_connect_timeout),
        read=kwargs.get("read_timeout", settings.httpx_read_timeout),
        write=kwargs.get("write_timeout", settings.httpx_write_timeout),
        pool=kwargs.get("pool_timeout", settings.httpx_pool_timeout),
    )


def create_upload_client(
    total_bytes: int = 0,
    rate: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **kwargs,
) -> Tuple[httpx.AsyncClient, AsyncThrottlingTransport]:
    """Create an upload client and the throttling transport inside it.

    Note: The returned client should be closed when done:
        client, transport = create_upload_client(size)
        async with client:
            ...

    Args:
        total_bytes: Known or estimated size of the transfer, 0 if unknown
        rate: Ceiling in bytes/second; defaults to the configured kbps limit
        transport: Network transport to wrap (default: httpx.AsyncHTTPTransport)
        **kwargs: Timeout overrides accepted by build_timeout()

    Returns:
        The client and its throttling transport, whose ``monitor`` feeds
        the progress reporter.
    """
    settings = get_settings()
    if rate is None:
        rate = settings.rate_limit_bytes_per_second

    throttling = AsyncThrottlingTransport(
        transport or httpx.AsyncHTTPTransport(),
        total_bytes=total_bytes,
        rate=rate,
        buffer_size=settings.read_buffer_size,
        window_seconds=settings.rate_window_seconds,
    )
    client = httpx.AsyncClient(
        transport=throttling,
        timeout=build_timeout(**kwargs),
        follow_redirects=False,
    )
    return client, throttling
