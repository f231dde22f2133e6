"""Authoritative per-upload status record and its legal transitions."""

import time
from typing import Callable, Dict, List, Optional

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from common.logging_config import get_logger
from common.types import UploadDescriptor, UploadState, UploadStatus
from uploader.exceptions import InvalidTransitionError, UploadError
from uploader.progress import calculate_progress

logger = get_logger(__name__)

StateListener = Callable[[UploadState], None]


class UploadLifecycle(StateMachine):
    """
    Legal status graph of one upload.

    Used only to validate transitions; UploadStateMachine owns the record.
    An unacknowledged error may go back to uploading on resume.
    """

    pending = State("pending", initial=True, value=UploadStatus.PENDING.value)
    uploading = State("uploading", value=UploadStatus.UPLOADING.value)
    processing = State("processing", value=UploadStatus.PROCESSING.value)
    completed = State("completed", final=True, value=UploadStatus.COMPLETED.value)
    error = State("error", value=UploadStatus.ERROR.value)

    begin_transfer = pending.to(uploading) | error.to(uploading)
    end_transfer = uploading.to(processing)
    confirm = processing.to(completed)
    fail = pending.to(error) | uploading.to(error) | processing.to(error)


# Event that moves the lifecycle into each target status
EVENTS: Dict[UploadStatus, str] = {
    UploadStatus.UPLOADING: "begin_transfer",
    UploadStatus.PROCESSING: "end_transfer",
    UploadStatus.COMPLETED: "confirm",
    UploadStatus.ERROR: "fail",
}


class UploadStateMachine:
    """
    Owns one UploadState and applies transitions to it.

    pending -> uploading -> processing -> completed, with error reachable
    from every non-terminal state. completed and an acknowledged error are
    terminal. Listeners receive a copy of the state after every change.
    """

    def __init__(
        self,
        descriptor: UploadDescriptor,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize state machine in pending.

        Args:
            descriptor: Upload this machine tracks
            clock: Wall clock for created_at/updated_at
        """
        self.descriptor = descriptor
        self.clock = clock
        now = clock()
        self._state = UploadState(
            upload_id=descriptor.upload_id,
            file_name=descriptor.file_name,
            total_bytes=descriptor.declared_size,
            content_type=descriptor.declared_type,
            created_at=now,
            updated_at=now,
        )
        self._listeners: List[StateListener] = []
        self._error_acknowledged = False
        self._lifecycle = UploadLifecycle()
        self._session_url: Optional[str] = None

    @property
    def state(self) -> UploadState:
        """Detached copy of the current state."""
        return self._state.snapshot()

    @property
    def status(self) -> UploadStatus:
        return self._state.status

    @property
    def is_terminal(self) -> bool:
        if self._state.status == UploadStatus.COMPLETED:
            return True
        return self._state.status == UploadStatus.ERROR and self._error_acknowledged

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Register a listener for state changes.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _transition(self, target: UploadStatus) -> None:
        current = self._state.status
        if current == target:
            return
        illegal = InvalidTransitionError(
            f"Illegal upload transition {current.value} -> {target.value} "
            f"[upload_id={self._state.upload_id}]"
        )
        if self.is_terminal or target not in EVENTS:
            raise illegal
        try:
            self._lifecycle.send(EVENTS[target])
        except TransitionNotAllowed as e:
            raise illegal from e
        logger.debug(
            f"Upload transition {current.value} -> {target.value} [upload_id={self._state.upload_id}]"
        )
        self._state.status = target

    def _sync_resume_url(self) -> None:
        state = self._state
        if self._session_url and 0 < state.bytes_transferred < state.total_bytes:
            state.resume_url = self._session_url
        else:
            state.resume_url = None

    def _changed(self) -> None:
        self._state.updated_at = self.clock()
        snapshot = self._state.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(
                    f"State listener failed [upload_id={snapshot.upload_id}]: {e}", exc_info=True
                )

    def attach_session(self, upload_url: str, resume_url: Optional[str] = None) -> None:
        """
        Record the negotiated session.

        Chunks and offset queries go to resume_url when the signer issues
        one; upload_url is kept as the URL the session was created under.

        Allowed in pending, and in an unacknowledged error when a fresh
        session replaces an expired one.
        """
        if self._state.status not in (UploadStatus.PENDING, UploadStatus.ERROR) or self.is_terminal:
            raise InvalidTransitionError(
                f"Cannot attach a session in state {self._state.status.value} "
                f"[upload_id={self._state.upload_id}]"
            )
        self._state.upload_url = upload_url
        self._session_url = resume_url or upload_url
        self._sync_resume_url()
        self._changed()

    def restore(self, resume_url: str, offset: int) -> None:
        """Rebuild a pending upload from a checkpoint taken at offset."""
        if self._state.status != UploadStatus.PENDING:
            raise InvalidTransitionError(
                f"Cannot restore a checkpoint in state {self._state.status.value} "
                f"[upload_id={self._state.upload_id}]"
            )
        if not 0 <= offset <= self._state.total_bytes:
            raise ValueError(f"Offset {offset} outside 0..{self._state.total_bytes}")
        if self._state.upload_url is None:
            self._state.upload_url = resume_url
        self._session_url = resume_url
        self._state.bytes_transferred = offset
        self._state.progress = calculate_progress(offset, self._state.total_bytes)
        self._sync_resume_url()
        self._changed()

    def begin_upload(self, offset: int = 0) -> None:
        """
        Enter uploading as the first chunk begins transmission.

        Args:
            offset: Byte offset the transfer starts (or resumes) from
        """
        if self._session_url is None:
            raise InvalidTransitionError(
                f"Cannot start uploading without a session [upload_id={self._state.upload_id}]"
            )
        if not 0 <= offset <= self._state.total_bytes:
            raise ValueError(f"Offset {offset} outside 0..{self._state.total_bytes}")

        self._transition(UploadStatus.UPLOADING)
        self._state.bytes_transferred = offset
        self._state.progress = calculate_progress(offset, self._state.total_bytes)
        self._state.error = None
        self._state.error_code = None
        self._sync_resume_url()
        self._changed()

    def record_progress(self, bytes_transferred: int) -> None:
        """
        Record newly acknowledged bytes while uploading.

        Raises:
            InvalidTransitionError: If not uploading
            ValueError: If bytes go backwards or past the total
        """
        if self._state.status != UploadStatus.UPLOADING:
            raise InvalidTransitionError(
                f"Cannot record progress in state {self._state.status.value} "
                f"[upload_id={self._state.upload_id}]"
            )
        if bytes_transferred < self._state.bytes_transferred:
            raise ValueError(
                f"bytes_transferred must not decrease ({self._state.bytes_transferred} -> {bytes_transferred})"
            )
        if bytes_transferred > self._state.total_bytes:
            raise ValueError(
                f"bytes_transferred {bytes_transferred} exceeds total {self._state.total_bytes}"
            )

        self._state.bytes_transferred = bytes_transferred
        self._state.progress = max(
            self._state.progress,
            calculate_progress(bytes_transferred, self._state.total_bytes),
        )
        self._sync_resume_url()
        self._changed()

    def mark_processing(self) -> None:
        """Enter processing once the final chunk is acknowledged."""
        if self._state.status == UploadStatus.UPLOADING and (
            self._state.bytes_transferred != self._state.total_bytes
        ):
            raise InvalidTransitionError(
                f"Cannot enter processing with {self._state.bytes_transferred}/"
                f"{self._state.total_bytes} bytes [upload_id={self._state.upload_id}]"
            )
        self._transition(UploadStatus.PROCESSING)
        self._state.progress = 100
        self._sync_resume_url()
        self._changed()

    def mark_completed(self) -> None:
        """Enter completed on remote confirmation."""
        self._transition(UploadStatus.COMPLETED)
        self._state.progress = 100
        self._state.resume_url = None
        self._changed()

    def fail(self, message: str, code: Optional[str] = None) -> None:
        """
        Enter error, keeping bytes_transferred and the session for diagnostics.

        Args:
            message: Short, actionable message for the user
            code: Stable error code
        """
        if self._state.status == UploadStatus.ERROR and not self.is_terminal:
            self._state.error = message
            self._state.error_code = code or UploadError.code
            self._changed()
            return

        self._transition(UploadStatus.ERROR)
        self._state.error = message
        self._state.error_code = code or UploadError.code
        self._sync_resume_url()
        self._changed()
        logger.warning(f"Upload failed [upload_id={self._state.upload_id}]: {message}")

    def acknowledge_error(self) -> None:
        """Make an error terminal; no resume is possible afterwards."""
        if self._state.status != UploadStatus.ERROR:
            raise InvalidTransitionError(
                f"No error to acknowledge in state {self._state.status.value} "
                f"[upload_id={self._state.upload_id}]"
            )
        self._error_acknowledged = True
        self._changed()
