"""Upload sources: local files and remote URLs.

Both kinds expose a best-effort total size (0 when unknown) and an async
``read(n)`` used by the uploader to cut chunks.
"""

import asyncio
import os
from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

import httpx

from throttleup.app.core.logging import get_log_context, get_logger
from throttleup.app.exceptions import SourceError

logger = get_logger(__name__)


class UploadSource(ABC):
    """Base class for a byte source with a best-effort known length."""

    def __init__(self, location: str, size: int = 0):
        self.location = location
        self.size = size

    @abstractmethod
    async def read(self, num_bytes: int) -> bytes:
        """Read up to ``num_bytes``; returns b"" once the source is exhausted."""

    @abstractmethod
    async def aclose(self) -> None:
        """Release the underlying file or connection."""

    async def __aenter__(self) -> "UploadSource":
        return self

    async def __aexit__(self, *_) -> None:
        await self.aclose()


class LocalFileSource(UploadSource):
    """A file on disk; its size comes from stat()."""

    def __init__(self, path: str):
        try:
            self._file = open(path, "rb")
        except OSError as e:
            raise SourceError(path, e.strerror or str(e)) from e

        try:
            size = os.fstat(self._file.fileno()).st_size
        except OSError as e:
            self._file.close()
            raise SourceError(path, f"cannot stat file: {e.strerror or e}") from e

        super().__init__(path, size)

    async def read(self, num_bytes: int) -> bytes:
        try:
            return await asyncio.to_thread(self._file.read, num_bytes)
        except OSError as e:
            raise SourceError(self.location, e.strerror or str(e)) from e

    async def aclose(self) -> None:
        self._file.close()


class RemoteSource(UploadSource):
    """A streamed HTTP(S) download.

    The body is consumed raw (no content decoding) so the number of bytes
    read matches the advertised Content-Length.
    """

    def __init__(
        self,
        location: str,
        response: httpx.Response,
        client: httpx.AsyncClient,
        size: int = 0,
        owns_client: bool = False,
    ):
        super().__init__(location, size)
        self._response = response
        self._client = client
        self._owns_client = owns_client
        self._chunks: AsyncIterator[bytes] = response.aiter_raw()
        self._buffer = bytearray()
        self._exhausted = False

    @classmethod
    async def open(
        cls, url: str, client: Optional[httpx.AsyncClient] = None
    ) -> "RemoteSource":
        """Probe the length with HEAD, then start a streamed GET.

        Raises:
            SourceError: If either request fails or the GET is not successful
        """
        owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(follow_redirects=True)

        headers = {"Accept-Encoding": "identity"}
        try:
            size = 0
            head = await client.head(url, headers=headers)
            if head.is_success:
                size = _content_length(head)
            else:
                logger.info(
                    "HEAD did not report a length",
                    extra=get_log_context(url=url, method="HEAD", status_code=head.status_code),
                )

            request = client.build_request("GET", url, headers=headers)
            response = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            if owns_client:
                await client.aclose()
            raise SourceError(url, str(e)) from e

        if not response.is_success:
            await response.aclose()
            if owns_client:
                await client.aclose()
            raise SourceError(url, f"HTTP {response.status_code}")

        # The GET's own length wins over the HEAD probe
        size = _content_length(response) or size
        logger.debug("Opened remote source", extra=get_log_context(url=url, total_bytes=size))
        return cls(url, response, client, size=size, owns_client=owns_client)

    async def read(self, num_bytes: int) -> bytes:
        while len(self._buffer) < num_bytes and not self._exhausted:
            try:
                chunk = await anext(self._chunks)
            except StopAsyncIteration:
                self._exhausted = True
                break
            except httpx.HTTPError as e:
                raise SourceError(self.location, str(e)) from e
            self._buffer.extend(chunk)

        data = bytes(self._buffer[:num_bytes])
        del self._buffer[:num_bytes]
        return data

    async def aclose(self) -> None:
        await self._response.aclose()
        if self._owns_client:
            await self._client.aclose()


def _content_length(response: httpx.Response) -> int:
    raw = response.headers.get("Content-Length")
    if not raw:
        return 0
    try:
        return max(int(raw), 0)
    except ValueError:
        return 0


def is_remote(location: str) -> bool:
    return location.startswith(("http://", "https://"))


async def open_source(
    location: str, client: Optional[httpx.AsyncClient] = None
) -> UploadSource:
    """Open a local path or an http(s) URL for upload.

    Args:
        location: File path or URL
        client: Optional client used for remote sources

    Raises:
        SourceError: If the source cannot be opened
    """
    if is_remote(location):
        return await RemoteSource.open(location, client=client)
    return LocalFileSource(location)
