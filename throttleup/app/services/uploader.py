"""Resumable video upload client.

Implements the calling side of a resumable upload: one metadata request
that opens an upload session, then one PUT per chunk. Every chunk PUT is
marked as a payload request so a throttling transport installed in the
client shapes and measures it; the metadata request is left alone.

No retries are attempted; any unexpected status raises UploadError.
"""

from typing import Any, Callable, Dict, Optional

import httpx

from throttleup.app.core.config import DEFAULT_UPLOAD_CHUNK_SIZE, align_chunk_size
from throttleup.app.core.logging import get_log_context, get_logger
from throttleup.app.exceptions import UploadError
from throttleup.app.services.metadata import VideoMetadata
from throttleup.app.services.source import UploadSource
from throttleup.app.transport.interceptor import PAYLOAD_EXTENSION

logger = get_logger(__name__)

# Sent by the server while a resumable upload is still incomplete
RESUME_INCOMPLETE = 308


def parse_range_end(header: Optional[str]) -> Optional[int]:
    """Return the last acknowledged byte offset from a ``Range`` header.

    Examples:
        >>> parse_range_end("bytes=0-262143")
        262143
        >>> parse_range_end(None) is None
        True
    """
    if not header or not header.startswith("bytes="):
        return None
    _, _, end = header[len("bytes="):].partition("-")
    try:
        return int(end)
    except ValueError:
        return None


def content_range(offset: int, length: int, total: Optional[int]) -> str:
    """Build the Content-Range header of a chunk.

    ``total`` is None while the full size is still unknown.

    Examples:
        >>> content_range(0, 100, 300)
        'bytes 0-99/300'
        >>> content_range(100, 100, None)
        'bytes 100-199/*'
        >>> content_range(300, 0, 300)
        'bytes */300'
    """
    total_str = "*" if total is None else str(total)
    if length == 0:
        return f"bytes */{total_str}"
    return f"bytes {offset}-{offset + length - 1}/{total_str}"


class ResumableUploader:
    """Uploads a source as a sequence of resumable-upload chunks.

    Usage:
        uploader = ResumableUploader(client, get_settings().upload_url, token)
        video = await uploader.upload(source, metadata)
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        upload_url: str,
        access_token: str = "",
        chunk_size: int = DEFAULT_UPLOAD_CHUNK_SIZE,
        on_total_known: Optional[Callable[[int], None]] = None,
    ):
        """Initialize the uploader.

        Args:
            client: HTTP client, normally built on a throttling transport
            upload_url: Media upload endpoint
            access_token: OAuth2 bearer token, sent when not empty
            chunk_size: Bytes per PUT, aligned to 256 KiB
            on_total_known: Called once the real size is known, if it was not up front
        """
        self._client = client
        self.upload_url = upload_url
        self.access_token = access_token
        self.chunk_size = align_chunk_size(chunk_size)
        self._on_total_known = on_total_known

    def _build_headers(self) -> Dict[str, str]:
        if not self.access_token:
            return {}
        return {"Authorization": f"Bearer {self.access_token}"}

    async def upload(self, source: UploadSource, metadata: VideoMetadata) -> Dict[str, Any]:
        """Upload the whole source and return the created video resource."""
        session_url = await self.start_session(source.size, metadata)
        return await self.send_chunks(session_url, source)

    async def start_session(self, size: int, metadata: VideoMetadata) -> str:
        """Open a resumable session and return its URL.

        Raises:
            UploadError: If the server does not answer 200 with a Location header
        """
        headers = self._build_headers()
        headers["X-Upload-Content-Type"] = "video/*"
        if size > 0:
            headers["X-Upload-Content-Length"] = str(size)

        response = await self._client.post(
            self.upload_url,
            params={"uploadType": "resumable", "part": metadata.parts},
            json=metadata.to_resource(),
            headers=headers,
        )
        if response.status_code != 200:
            raise UploadError(
                "Could not start upload session", response.status_code, response.text
            )

        location = response.headers.get("Location")
        if not location:
            raise UploadError(
                "Upload session response has no Location header", response.status_code
            )

        logger.info(
            "Opened upload session",
            extra=get_log_context(url=location, status_code=response.status_code, total_bytes=size),
        )
        return location

    async def send_chunks(self, session_url: str, source: UploadSource) -> Dict[str, Any]:
        """PUT the source chunk by chunk until the server returns the resource.

        Raises:
            UploadError: On an unexpected status or when the server stops
                accepting bytes
        """
        declared = source.size if source.size > 0 else None
        offset = 0
        pending = b""
        eof = False

        while True:
            # Read one byte past the chunk so the final chunk is recognised
            if not eof and len(pending) <= self.chunk_size:
                more = await _read_fully(source, self.chunk_size + 1 - len(pending))
                if len(more) < self.chunk_size + 1 - len(pending):
                    eof = True
                pending += more

            body = pending[:self.chunk_size]
            is_last = eof and len(pending) <= self.chunk_size
            total = offset + len(body) if is_last else declared

            if is_last and declared != total and self._on_total_known is not None:
                self._on_total_known(total)

            headers = self._build_headers()
            headers["Content-Range"] = content_range(offset, len(body), total)

            response = await self._client.put(
                session_url,
                content=body,
                headers=headers,
                extensions={PAYLOAD_EXTENSION: True},
            )

            if response.status_code in (200, 201):
                logger.info(
                    "Upload complete",
                    extra=get_log_context(url=session_url, status_code=response.status_code, bytes_so_far=offset + len(body)),
                )
                try:
                    return response.json()
                except ValueError as e:
                    raise UploadError(
                        "Upload response is not valid JSON", response.status_code, response.text
                    ) from e

            if response.status_code != RESUME_INCOMPLETE:
                raise UploadError("Chunk upload failed", response.status_code, response.text)

            range_end = parse_range_end(response.headers.get("Range"))
            acked = 0 if range_end is None else range_end + 1
            if acked <= offset:
                raise UploadError(
                    f"Server accepted no bytes past offset {offset}", response.status_code
                )

            pending = pending[acked - offset:]
            offset = acked
            logger.debug(
                "Chunk accepted",
                extra=get_log_context(url=session_url, status_code=response.status_code, bytes_so_far=offset),
            )


async def _read_fully(source: UploadSource, num_bytes: int) -> bytes:
    """Read exactly ``num_bytes`` unless the source ends first."""
    parts = []
    remaining = num_bytes
    while remaining > 0:
        data = await source.read(remaining)
        if not data:
            break
        parts.append(data)
        remaining -= len(data)
    return b"".join(parts)
