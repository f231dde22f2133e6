"""Registry for tracking in-flight uploads by id."""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from common.logging_config import get_logger
from common.types import Checkpoint, UploadDescriptor, UploadState, UploadStatus
from uploader.exceptions import DuplicateUploadError, UploadCancelledError
from uploader.state_machine import UploadStateMachine

logger = get_logger(__name__)

ReleaseHook = Callable[[str], None]


class CancelToken:
    """Cooperative cancellation flag checked before every chunk dispatch."""

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise UploadCancelledError("Upload was cancelled")


@dataclass
class UploadHandle:
    """
    Per-upload handle given to the task that drives the upload.

    Attributes:
        upload_id: Registered upload id
        machine: State machine owned by this upload
        cancel_token: Token flipped by UploadRegistry.cancel
        task: Task currently driving the upload, if any
    """
    upload_id: str
    machine: UploadStateMachine
    cancel_token: CancelToken = field(default_factory=CancelToken)
    task: Optional[asyncio.Task] = None

    @property
    def state(self) -> UploadState:
        return self.machine.state


class UploadRegistry:
    """
    Constructor-scoped map of upload id to handle.

    Each entry is independent: progress, errors and cancellation of one
    upload never touch another. Methods contain no await points, so they are
    atomic with respect to the event loop.
    """

    def __init__(self, on_release: Optional[ReleaseHook] = None):
        """
        Initialize registry.

        Args:
            on_release: Called with the upload id when a cancelled upload's
                resume checkpoint must be released
        """
        self._entries: Dict[str, UploadHandle] = {}
        self.on_release = on_release

    def __contains__(self, upload_id: str) -> bool:
        return upload_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def register(self, descriptor: UploadDescriptor) -> UploadHandle:
        """
        Track a new upload in pending.

        Args:
            descriptor: Upload to track

        Returns:
            UploadHandle for the new upload

        Raises:
            DuplicateUploadError: If the id is already tracked
        """
        if descriptor.upload_id in self._entries:
            raise DuplicateUploadError(f"Upload {descriptor.upload_id} is already registered")

        handle = UploadHandle(
            upload_id=descriptor.upload_id,
            machine=UploadStateMachine(descriptor),
        )
        self._entries[descriptor.upload_id] = handle
        logger.info(
            f"Registered upload [upload_id={descriptor.upload_id}] [active={len(self._entries)}]"
        )
        return handle

    def register_checkpoint(self, checkpoint: Checkpoint) -> UploadHandle:
        """
        Rebuild an entry for a checkpoint recovered from disk.

        The entry starts in error with the checkpoint's session attached so
        it can be resumed but is not mistaken for a live transfer.
        """
        handle = self.register(checkpoint.to_descriptor())
        handle.machine.restore(checkpoint.resume_url, checkpoint.offset)
        handle.machine.fail(
            "Upload interrupted; resume to continue from the last checkpoint",
            code="INTERRUPTED",
        )
        return handle

    def handle(self, upload_id: str) -> Optional[UploadHandle]:
        return self._entries.get(upload_id)

    def get(self, upload_id: str) -> Optional[UploadState]:
        """
        Get a copy of an upload's state.

        Returns:
            UploadState copy, or None if not tracked
        """
        handle = self._entries.get(upload_id)
        if handle is None:
            return None
        return handle.machine.state

    def all(self) -> List[UploadState]:
        return [handle.machine.state for handle in self._entries.values()]

    def active(self) -> List[UploadState]:
        """States of uploads that are pending, uploading or processing."""
        live = (UploadStatus.PENDING, UploadStatus.UPLOADING, UploadStatus.PROCESSING)
        return [state for state in self.all() if state.status in live]

    def attach_task(self, upload_id: str, task: Optional[asyncio.Task]) -> None:
        handle = self._entries.get(upload_id)
        if handle is not None:
            handle.task = task

    def cancel(self, upload_id: str) -> bool:
        """
        Cancel an upload in any non-terminal state.

        Flips the cancel token, aborts the driving task's in-flight request,
        releases the resume checkpoint and removes the entry.

        Returns:
            True if an upload was cancelled, False if unknown or terminal
        """
        handle = self._entries.get(upload_id)
        if handle is None:
            return False
        if handle.machine.is_terminal:
            logger.debug(f"Ignoring cancel of terminal upload [upload_id={upload_id}]")
            return False

        handle.cancel_token.cancel()
        task = handle.task
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

        del self._entries[upload_id]

        if self.on_release is not None:
            self.on_release(upload_id)

        logger.info(f"Cancelled upload [upload_id={upload_id}]")
        return True

    def remove(self, upload_id: str) -> bool:
        """
        Drop an entry without cancelling (completed or acknowledged uploads).

        Returns:
            True if the entry existed
        """
        handle = self._entries.pop(upload_id, None)
        if handle is None:
            return False
        logger.debug(f"Removed upload [upload_id={upload_id}] [status={handle.machine.status.value}]")
        return True


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
