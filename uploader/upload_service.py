"""Upload orchestration: validation, session, chunk transfer, confirmation and cleanup."""

import asyncio
from typing import Awaitable, Callable, List, Optional, TypeVar

import httpx

from common.constants import (
    CHUNK_SIZE_BYTES,
    CHUNK_TIMEOUT_SECONDS,
    PROGRESS_THROTTLE_SECONDS,
    SESSION_TIMEOUT_SECONDS,
)
from common.logging_config import get_logger
from common.types import ChunkAck, UploadDescriptor, UploadState, UploadStatus
from uploader import file_validator
from uploader.chunk_scheduler import ChunkScheduler
from uploader.exceptions import (
    InvalidFileSizeError,
    InvalidTransitionError,
    NotResumableError,
    UploadCancelledError,
    UploadError,
    UploadNotFoundError,
)
from uploader.file_source import FileSource
from uploader.progress import ProgressCallback, ProgressReporter
from uploader.registry import UploadHandle, UploadRegistry
from uploader.resume_manager import CheckpointStore, ResumeManager
from uploader.retry import RetryPolicy
from uploader.session_negotiator import UploadSessionNegotiator
from uploader.state_machine import StateListener
from uploader.transport import ChunkTransport

logger = get_logger(__name__)

T = TypeVar('T')


class UploadService:
    """
    Runs resumable uploads against a signer and its storage sessions.

    One instance owns one UploadRegistry; any number of uploads may run
    concurrently, each as its own asyncio task.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        registry: Optional[UploadRegistry] = None,
        checkpoint_store: Optional[CheckpointStore] = None,
        retry_policy: Optional[RetryPolicy] = None,
        auth_token: Optional[str] = None,
        chunk_size: int = CHUNK_SIZE_BYTES,
        chunk_timeout: float = CHUNK_TIMEOUT_SECONDS,
        session_timeout: float = SESSION_TIMEOUT_SECONDS,
        progress_interval: float = PROGRESS_THROTTLE_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize upload service.

        Args:
            client: Async HTTP client; base_url must point at the signer
            registry: Registry to track uploads in (new one if omitted)
            checkpoint_store: Where resume checkpoints are kept (memory if omitted)
            retry_policy: Transient-failure policy for chunk transmission
            auth_token: Opaque bearer token forwarded to the signer
            chunk_size: Chunk length in bytes
            chunk_timeout: Timeout for each chunk request, in seconds
            session_timeout: Timeout for signer requests, in seconds
            progress_interval: Minimum seconds between progress callbacks
            sleep: Awaitable sleep used for retry backoff
        """
        self.client = client
        self.transport = ChunkTransport(client, timeout=chunk_timeout)
        self.negotiator = UploadSessionNegotiator(
            client, auth_token=auth_token, timeout=session_timeout
        )
        self.resume_manager = ResumeManager(self.transport, checkpoint_store)
        self.registry = registry or UploadRegistry()
        if self.registry.on_release is None:
            self.registry.on_release = self.resume_manager.release
        self.scheduler = ChunkScheduler(
            self.transport, retry_policy=retry_policy, chunk_size=chunk_size, sleep=sleep
        )
        self.progress_interval = progress_interval

    async def start_upload(
        self,
        descriptor: UploadDescriptor,
        source: FileSource,
        on_progress: Optional[ProgressCallback] = None,
        on_state_change: Optional[StateListener] = None,
    ) -> UploadState:
        """
        Validate, open a session and transfer a file to completion.

        Args:
            descriptor: Upload to perform
            source: Bytes of the file
            on_progress: Throttled callback receiving (percent, eta_seconds)
            on_state_change: Called with a state copy after every change

        Returns:
            Final UploadState (completed); the registry entry is removed

        Raises:
            ValidationError: Before any network activity; nothing is registered
            SessionError: Session negotiation or protocol failure (state -> error)
            TransientNetworkError: Retry budget exhausted (state -> error)
            UploadCancelledError: The upload was cancelled via the registry
        """
        file_validator.ensure_valid(descriptor)
        _ensure_source_matches(source, descriptor.declared_size)

        handle = self.registry.register(descriptor)
        if on_state_change is not None:
            handle.machine.subscribe(on_state_change)

        logger.info(
            f"Starting upload [upload_id={descriptor.upload_id}] [file={descriptor.file_name}] "
            f"[size={descriptor.declared_size}] [type={descriptor.declared_type}]"
        )

        async def operation() -> UploadState:
            session = await self.negotiator.open(descriptor)
            handle.cancel_token.raise_if_cancelled()
            handle.machine.attach_session(session.upload_url, session.resume_url)
            return await self._transfer(handle, source, session.resume_url, 0, on_progress)

        return await self._guard(handle, operation)

    async def resume_upload(
        self,
        upload_id: str,
        source: FileSource,
        on_progress: Optional[ProgressCallback] = None,
        on_state_change: Optional[StateListener] = None,
    ) -> UploadState:
        """
        Continue a failed or interrupted upload from its checkpoint.

        The offset is re-validated against the session first; the server's
        durable offset wins over the local checkpoint.

        Args:
            upload_id: Upload to resume (in the registry or recovered from disk)
            source: Bytes of the same file
            on_progress: Throttled callback receiving (percent, eta_seconds)
            on_state_change: Called with a state copy after every change

        Returns:
            Final UploadState (completed)

        Raises:
            UploadNotFoundError: No entry and no stored checkpoint
            InvalidTransitionError: Upload is not in a resumable error state
            NotResumableError: No valid checkpoint; restart the upload instead
        """
        handle = self.registry.handle(upload_id)
        checkpoint = self.resume_manager.get(upload_id)

        if handle is None:
            if checkpoint is None:
                raise UploadNotFoundError(f"Upload {upload_id} not found")
            handle = self.registry.register_checkpoint(checkpoint)
        elif handle.machine.status != UploadStatus.ERROR or handle.machine.is_terminal:
            raise InvalidTransitionError(
                f"Upload {upload_id} is {handle.machine.status.value} and cannot be resumed"
            )

        if checkpoint is None:
            raise NotResumableError(
                f"Upload {upload_id} has no resumable checkpoint; restart it instead"
            )
        _ensure_source_matches(source, checkpoint.total_bytes)

        if on_state_change is not None:
            handle.machine.subscribe(on_state_change)

        async def operation() -> UploadState:
            point = await self.resume_manager.resume(checkpoint)
            handle.cancel_token.raise_if_cancelled()
            return await self._transfer(handle, source, point.upload_url, point.offset, on_progress)

        return await self._guard(handle, operation)

    async def cancel_upload(self, upload_id: str) -> bool:
        """
        Cancel an upload and notify the signer (best effort).

        Returns:
            True if an upload was cancelled
        """
        if not self.registry.cancel(upload_id):
            return False
        await self.negotiator.release(upload_id)
        return True

    def acknowledge_error(self, upload_id: str) -> UploadState:
        """
        Accept an upload's failure: drop it and its checkpoint.

        Returns:
            Final state of the failed upload
        """
        handle = self._require(upload_id)
        handle.machine.acknowledge_error()
        state = handle.machine.state
        self.registry.remove(upload_id)
        self.resume_manager.release(upload_id)
        return state

    def recover_checkpoints(self) -> List[UploadState]:
        """
        Register uploads left behind in the checkpoint store (e.g. after a crash).

        Returns:
            States of the recovered uploads, all in error and resumable
        """
        recovered = []
        for checkpoint in self.resume_manager.pending():
            if checkpoint.upload_id in self.registry:
                continue
            handle = self.registry.register_checkpoint(checkpoint)
            recovered.append(handle.machine.state)
        if recovered:
            logger.info(f"Recovered {len(recovered)} interrupted upload(s) from checkpoints")
        return recovered

    def get_upload_status(self, upload_id: str) -> Optional[UploadState]:
        return self.registry.get(upload_id)

    def get_all_uploads(self) -> List[UploadState]:
        return self.registry.all()

    def get_active_uploads(self) -> List[UploadState]:
        return self.registry.active()

    def _require(self, upload_id: str) -> UploadHandle:
        handle = self.registry.handle(upload_id)
        if handle is None:
            raise UploadNotFoundError(f"Upload {upload_id} not found")
        return handle

    async def _transfer(
        self,
        handle: UploadHandle,
        source: FileSource,
        upload_url: str,
        offset: int,
        on_progress: Optional[ProgressCallback],
    ) -> UploadState:
        machine = handle.machine
        state = machine.state
        upload_id = handle.upload_id

        reporter = ProgressReporter(
            state.total_bytes, on_progress=on_progress, min_interval=self.progress_interval
        )
        reporter.start(offset)
        machine.begin_upload(offset)

        async def on_ack(ack: ChunkAck) -> None:
            if handle.cancel_token.cancelled:
                return
            machine.record_progress(ack.persisted_offset)
            # a state listener may have cancelled the upload
            if handle.cancel_token.cancelled:
                return
            self.resume_manager.capture(machine.state, persist=False)
            reporter.update(ack.persisted_offset)
            await self.resume_manager.flush()

        await self.scheduler.run(
            upload_url,
            source,
            state.total_bytes,
            state.content_type,
            start_offset=offset,
            cancel_token=handle.cancel_token,
            on_ack=on_ack,
        )
        handle.cancel_token.raise_if_cancelled()

        machine.mark_processing()
        reporter.flush()
        self.resume_manager.release(upload_id)

        await self.negotiator.confirm(upload_id)
        handle.cancel_token.raise_if_cancelled()

        machine.mark_completed()
        final_state = machine.state
        self.registry.remove(upload_id)
        logger.info(f"Upload completed [upload_id={upload_id}] [size={final_state.total_bytes}]")
        return final_state

    async def _guard(self, handle: UploadHandle, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run an upload operation in a child task owned by the handle.

        Registry cancellation cancels only that child and reaches the caller
        as UploadCancelledError. Cancelling the caller interrupts the upload,
        leaves it resumable and propagates unchanged.
        """
        upload_id = handle.upload_id
        task = asyncio.ensure_future(self._run(handle, operation))
        self.registry.attach_task(upload_id, task)
        try:
            return await task
        except asyncio.CancelledError:
            if handle.cancel_token.cancelled and not _cancelling(asyncio.current_task()):
                logger.info(f"Upload aborted mid-request [upload_id={upload_id}]")
                raise UploadCancelledError("Upload was cancelled") from None
            self._fail(handle, UploadError("Upload interrupted; resume to continue"))
            raise
        finally:
            self.registry.attach_task(upload_id, None)

    async def _run(self, handle: UploadHandle, operation: Callable[[], Awaitable[T]]) -> T:
        """Drive one upload operation, recording failures on its state machine."""
        try:
            return await operation()
        except UploadCancelledError:
            logger.info(f"Upload stopped after cancellation [upload_id={handle.upload_id}]")
            raise
        except UploadError as e:
            self._fail(handle, e)
            raise
        except Exception as e:
            logger.error(f"Unexpected upload failure [upload_id={handle.upload_id}]: {e}", exc_info=True)
            self._fail(handle, UploadError(f"Unexpected upload failure: {e}"))
            raise

    def _fail(self, handle: UploadHandle, error: UploadError) -> None:
        if handle.cancel_token.cancelled or handle.machine.is_terminal:
            return

        machine = handle.machine
        checkpoint = None
        if machine.status in (UploadStatus.UPLOADING, UploadStatus.PROCESSING, UploadStatus.ERROR):
            checkpoint = self.resume_manager.capture(machine.state)

        message = str(error) or error.code
        if checkpoint is not None:
            message = f"{message} (resumable from byte {checkpoint.offset})"
        machine.fail(message, code=error.code)


def _ensure_source_matches(source: FileSource, declared_size: int) -> None:
    if source.size != declared_size:
        raise InvalidFileSizeError(
            f"File size changed: declared {declared_size} bytes, found {source.size}"
        )


def _cancelling(task: Optional[asyncio.Task]) -> bool:
    """Whether task itself has a pending cancellation request (Python 3.11+)."""
    cancelling = getattr(task, 'cancelling', None)
    return bool(cancelling and cancelling())
