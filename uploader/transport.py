"""Chunk transmission over a resumable upload session (Content-Range PUT protocol)."""

import re
from typing import Optional

import httpx

from common.constants import CHUNK_TIMEOUT_SECONDS, RESUME_INCOMPLETE_STATUS
from common.logging_config import get_logger
from common.types import Chunk, ChunkAck
from uploader.exceptions import (
    ContiguityMismatchError,
    SessionError,
    SessionExpiredError,
    TransientNetworkError,
)

logger = get_logger(__name__)

_RANGE_PATTERN = re.compile(r'^\s*bytes=(\d+)-(\d+)\s*$')

_TRANSIENT_EXCEPTIONS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)


def parse_range_header(value: Optional[str]) -> int:
    """
    Convert a resumable-session Range header into the persisted byte count.

    Args:
        value: Header value such as 'bytes=0-10485759', or None

    Returns:
        Number of contiguous bytes the server holds (0 when absent)

    Raises:
        SessionError: If the header is present but malformed
    """
    if not value:
        return 0
    match = _RANGE_PATTERN.match(value)
    if not match or int(match.group(1)) != 0:
        raise SessionError(f"Unexpected Range header from upload session: {value!r}")
    return int(match.group(2)) + 1


def raise_for_session_status(response: httpx.Response, context: str) -> None:
    """
    Map a non-success session reply onto the error taxonomy.

    Raises:
        SessionExpiredError: 401, 403, 404, 410
        TransientNetworkError: 408, 429, 5xx
        SessionError: Any other non-success status
    """
    status = response.status_code
    if status in (401, 403, 404, 410):
        raise SessionExpiredError(f"{context}: upload session expired or not authorized (HTTP {status})")
    if status in (408, 429) or status >= 500:
        raise TransientNetworkError(f"{context}: server returned HTTP {status}")
    raise SessionError(f"{context}: server rejected request (HTTP {status})")


class ChunkTransport:
    """
    Sends chunks to a resumable session endpoint and probes its durable offset.
    """

    def __init__(self, client: httpx.AsyncClient, timeout: float = CHUNK_TIMEOUT_SECONDS):
        """
        Initialize chunk transport.

        Args:
            client: Async HTTP client (session URLs are absolute)
            timeout: Explicit timeout applied to every chunk request
        """
        self.client = client
        self.timeout = timeout

    async def _put(self, url: str, content: bytes, headers: dict, context: str) -> httpx.Response:
        try:
            return await self.client.put(
                url,
                content=content,
                headers=headers,
                timeout=httpx.Timeout(self.timeout),
            )
        except _TRANSIENT_EXCEPTIONS as e:
            raise TransientNetworkError(f"{context}: {type(e).__name__}") from e
        except httpx.HTTPError as e:
            raise SessionError(f"{context}: {type(e).__name__}: {e}") from e

    async def send_chunk(
        self,
        upload_url: str,
        chunk: Chunk,
        data: bytes,
        total_bytes: int,
        content_type: str = 'application/octet-stream',
    ) -> ChunkAck:
        """
        Transmit one chunk and validate the server's acknowledgment.

        Args:
            upload_url: Session endpoint
            chunk: Position of this chunk within the file
            data: Chunk bytes (exactly chunk.length long)
            total_bytes: Declared total size of the file
            content_type: Declared content type of the file

        Returns:
            ChunkAck with the server-reported persisted offset

        Raises:
            ContiguityMismatchError: Server state diverged from local offsets
            SessionExpiredError: Session gone or unauthorized
            TransientNetworkError: Timeout, reset or retryable reply
            SessionError: Any other rejection
        """
        context = f"Upload chunk {chunk.sequence_index} failed"
        headers = {
            'Content-Type': content_type or 'application/octet-stream',
            'Content-Range': chunk.content_range(total_bytes),
        }
        response = await self._put(upload_url, data, headers, context)
        status = response.status_code

        if status == RESUME_INCOMPLETE_STATUS:
            persisted = parse_range_header(response.headers.get('Range'))
            if persisted != chunk.next_offset:
                raise ContiguityMismatchError(
                    f"Upload session out of sync at chunk {chunk.sequence_index}: "
                    f"expected {chunk.next_offset} bytes persisted, server reports {persisted}"
                )
            return ChunkAck(chunk=chunk, persisted_offset=persisted, complete=False)

        if status in (200, 201):
            if chunk.next_offset != total_bytes:
                raise ContiguityMismatchError(
                    f"Upload session reported completion at chunk {chunk.sequence_index} "
                    f"with only {chunk.next_offset} of {total_bytes} bytes sent"
                )
            return ChunkAck(chunk=chunk, persisted_offset=total_bytes, complete=True)

        raise_for_session_status(response, context)

    async def query_offset(self, upload_url: str, total_bytes: int) -> int:
        """
        Ask the session how many contiguous bytes it has durably received.

        Args:
            upload_url: Session endpoint
            total_bytes: Declared total size of the file

        Returns:
            Durable byte offset (total_bytes if the session is already complete)
        """
        context = "Upload status probe failed"
        headers = {'Content-Range': f'bytes */{total_bytes}'}
        response = await self._put(upload_url, b'', headers, context)
        status = response.status_code

        if status == RESUME_INCOMPLETE_STATUS:
            offset = parse_range_header(response.headers.get('Range'))
            logger.debug(f"Session probe reports {offset}/{total_bytes} bytes persisted")
            return offset
        if status in (200, 201):
            return total_bytes

        raise_for_session_status(response, context)
