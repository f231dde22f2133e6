"""Partitions a file into fixed-size chunks and sends them strictly in order."""

import asyncio
import math
from typing import Awaitable, Callable, Iterator, Optional

from common.constants import CHUNK_SIZE_BYTES
from common.logging_config import get_logger
from common.types import Chunk, ChunkAck
from uploader.exceptions import ContiguityMismatchError, UploadError
from uploader.file_source import FileSource
from uploader.registry import CancelToken
from uploader.retry import RetryPolicy, run_with_retry
from uploader.transport import ChunkTransport

logger = get_logger(__name__)

AckCallback = Callable[[ChunkAck], Optional[Awaitable[None]]]


def calculate_chunk_count(file_size: int, chunk_size: int = CHUNK_SIZE_BYTES) -> int:
    """
    Number of chunks needed for a file.

    Args:
        file_size: File size in bytes
        chunk_size: Chunk size in bytes

    Returns:
        ceil(file_size / chunk_size); 0 for an empty file
    """
    if file_size <= 0:
        return 0
    return math.ceil(file_size / chunk_size)


def plan_chunks(
    total_bytes: int,
    start_offset: int = 0,
    chunk_size: int = CHUNK_SIZE_BYTES,
) -> Iterator[Chunk]:
    """
    Yield contiguous, non-overlapping chunks from start_offset to the end.

    Args:
        total_bytes: Declared total size
        start_offset: First byte to send
        chunk_size: Maximum chunk length

    Yields:
        Chunk objects in transmission order
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if not 0 <= start_offset <= total_bytes:
        raise ValueError(f"start_offset {start_offset} outside 0..{total_bytes}")

    offset = start_offset
    index = start_offset // chunk_size
    while offset < total_bytes:
        length = min(chunk_size, total_bytes - offset)
        yield Chunk(offset=offset, length=length, sequence_index=index)
        offset += length
        index += 1


class ChunkScheduler:
    """
    Drives sequential chunk transmission through one upload session.

    Chunk n+1 is never sent before chunk n is acknowledged, so the resume
    offset always lands on an acknowledged boundary.
    """

    def __init__(
        self,
        transport: ChunkTransport,
        retry_policy: Optional[RetryPolicy] = None,
        chunk_size: int = CHUNK_SIZE_BYTES,
        sleep: Callable = asyncio.sleep,
    ):
        """
        Initialize scheduler.

        Args:
            transport: Chunk transport bound to an HTTP client
            retry_policy: Policy for transient failures of a single chunk
            chunk_size: Chunk length in bytes
            sleep: Awaitable sleep used between retries
        """
        self.transport = transport
        self.retry_policy = retry_policy or RetryPolicy()
        self.chunk_size = chunk_size
        self.sleep = sleep

    async def run(
        self,
        upload_url: str,
        source: FileSource,
        total_bytes: int,
        content_type: str,
        start_offset: int = 0,
        cancel_token: Optional[CancelToken] = None,
        on_ack: Optional[AckCallback] = None,
    ) -> int:
        """
        Send the file from start_offset to the end.

        Args:
            upload_url: Session endpoint
            source: Byte source for the file
            total_bytes: Declared total size
            content_type: Declared content type
            start_offset: Byte offset to resume from
            cancel_token: Checked before every chunk dispatch
            on_ack: Called after every acknowledged chunk; a returned
                awaitable is awaited before the next chunk

        Returns:
            Final acknowledged offset (equals total_bytes on success)

        Raises:
            UploadCancelledError: If the cancel token fires
            ContiguityMismatchError: If the session does not track local offsets
            SessionError: If the session rejects a chunk
            RetryExhaustedError: If a chunk keeps failing transiently
        """
        offset = start_offset
        last_ack: Optional[ChunkAck] = None
        total_chunks = calculate_chunk_count(total_bytes, self.chunk_size)

        for chunk in plan_chunks(total_bytes, start_offset, self.chunk_size):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            data = await asyncio.to_thread(source.read, chunk.offset, chunk.length)
            if len(data) != chunk.length:
                raise UploadError(
                    f"File changed during upload: expected {chunk.length} bytes "
                    f"at offset {chunk.offset}, read {len(data)}"
                )

            logger.debug(
                f"Sending chunk {chunk.sequence_index + 1}/{total_chunks} "
                f"[range={chunk.offset}-{chunk.end}] [total={total_bytes}]"
            )

            async def send(chunk=chunk, data=data):
                return await self.transport.send_chunk(
                    upload_url, chunk, data, total_bytes, content_type
                )

            last_ack = await run_with_retry(
                send,
                self.retry_policy,
                description=f"Chunk {chunk.sequence_index}",
                sleep=self.sleep,
            )
            offset = last_ack.persisted_offset

            if on_ack is not None:
                pending = on_ack(last_ack)
                if pending is not None:
                    await pending

        if last_ack is not None and not last_ack.complete:
            raise ContiguityMismatchError(
                f"Upload session did not confirm completion after final byte {total_bytes - 1}"
            )

        return offset
