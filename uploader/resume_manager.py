"""
Resume checkpoints for interrupted transfers.

Checkpoints are kept in a CheckpointStore (JSON file, or memory only) so an
upload interrupted by a crash or a lost connection can continue from the last
acknowledged byte instead of restarting. The server is the system of record:
every resume re-validates the offset against the session before continuing.
"""

import asyncio
import json
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from common.logging_config import get_logger
from common.types import Checkpoint, UploadState
from uploader.exceptions import ContiguityMismatchError, NotResumableError
from uploader.transport import ChunkTransport

logger = get_logger(__name__)


class CheckpointStore:
    """
    Thread-safe checkpoint store, persisted to a JSON file when a path is given.

    A corrupted file is backed up to '<name>.json.bak' and replaced by an
    empty store.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        """
        Initialize checkpoint store.

        Args:
            path: JSON file path, or None for an in-memory store
        """
        self._path = Path(path) if path is not None else None
        self._lock = threading.RLock()
        self._checkpoints: Dict[str, Checkpoint] = {}
        self._dirty = False
        self._load_from_disk()

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def get(self, upload_id: str) -> Optional[Checkpoint]:
        with self._lock:
            return self._checkpoints.get(upload_id)

    def put(self, checkpoint: Checkpoint, persist: bool = True) -> None:
        """
        Store a checkpoint.

        With persist=False only memory is updated; the next flush() or
        persisting write puts it on disk.
        """
        with self._lock:
            self._checkpoints[checkpoint.upload_id] = checkpoint
            self._dirty = True
        if persist:
            self._save_to_disk()

    async def flush(self) -> None:
        """Write unsaved checkpoints from a worker thread, off the event loop."""
        if self._path is None or not self._dirty:
            return
        await asyncio.to_thread(self._save_to_disk)

    def discard(self, upload_id: str, persist: bool = True) -> bool:
        with self._lock:
            removed = self._checkpoints.pop(upload_id, None) is not None
            if removed:
                self._dirty = True
        if removed and persist:
            self._save_to_disk()
        return removed

    def all(self) -> List[Checkpoint]:
        with self._lock:
            return sorted(self._checkpoints.values(), key=lambda c: c.saved_at)

    def _load_from_disk(self) -> bool:
        """
        Load checkpoints from the JSON file.

        Returns:
            True if a file was loaded, False if missing, corrupted or in-memory
        """
        if self._path is None or not self._path.exists():
            return False

        try:
            with open(self._path, 'r') as f:
                data = json.load(f)
            checkpoints = {
                upload_id: Checkpoint.from_dict(entry)
                for upload_id, entry in data.get('checkpoints', {}).items()
            }
        except (json.JSONDecodeError, IOError, KeyError, TypeError, ValueError, AttributeError) as e:
            backup_path = self._path.with_suffix('.json.bak')
            logger.warning(
                f"Failed to load checkpoints from {self._path}: {e}, "
                f"backing up to {backup_path} and starting empty"
            )
            try:
                shutil.copy(self._path, backup_path)
            except OSError as copy_error:
                logger.warning(f"Failed to back up checkpoint file: {copy_error}")
            return False

        with self._lock:
            self._checkpoints = checkpoints
        logger.info(f"Loaded {len(checkpoints)} checkpoint(s) from {self._path}")
        return True

    def _save_to_disk(self) -> None:
        if self._path is None:
            return

        with self._lock:
            self._dirty = False
            data = {
                'checkpoints': {
                    upload_id: checkpoint.to_dict()
                    for upload_id, checkpoint in self._checkpoints.items()
                }
            }
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path = self._path.with_suffix('.json.tmp')
                with open(tmp_path, 'w') as f:
                    json.dump(data, f, indent=2)
                tmp_path.replace(self._path)
            except (IOError, OSError) as e:
                logger.warning(
                    f"Failed to save checkpoints to {self._path}: {e}, "
                    "continuing with in-memory checkpoints only"
                )


@dataclass(frozen=True)
class ResumePoint:
    """Where a resumed transfer continues."""
    upload_url: str
    offset: int


def is_resumable(checkpoint: Optional[Checkpoint]) -> bool:
    """
    A checkpoint is resumable only with a session handle and 0 < offset < total.
    """
    if checkpoint is None or not checkpoint.resume_url:
        return False
    return 0 < checkpoint.offset < checkpoint.total_bytes


class ResumeManager:
    """Captures, validates and releases resume checkpoints."""

    def __init__(self, transport: ChunkTransport, store: Optional[CheckpointStore] = None):
        """
        Initialize resume manager.

        Args:
            transport: Transport used to query the session's durable offset
            store: Checkpoint store (in-memory if omitted)
        """
        self.transport = transport
        self.store = store or CheckpointStore()

    def capture(self, state: UploadState, persist: bool = True) -> Optional[Checkpoint]:
        """
        Store a checkpoint for the state if it has a continuation point.

        States that never started (offset 0) or already finished hold no
        checkpoint; any stale one is discarded.

        Args:
            state: Current upload state
            persist: Write to disk now; otherwise wait for flush()

        Returns:
            The stored Checkpoint, or None
        """
        if not state.resume_url or not 0 < state.bytes_transferred < state.total_bytes:
            self.store.discard(state.upload_id, persist=persist)
            return None

        checkpoint = Checkpoint(
            upload_id=state.upload_id,
            file_name=state.file_name,
            declared_type=state.content_type or 'application/octet-stream',
            total_bytes=state.total_bytes,
            resume_url=state.resume_url,
            offset=state.bytes_transferred,
        )
        self.store.put(checkpoint, persist=persist)
        return checkpoint

    async def flush(self) -> None:
        await self.store.flush()

    def get(self, upload_id: str) -> Optional[Checkpoint]:
        return self.store.get(upload_id)

    def pending(self) -> List[Checkpoint]:
        """Checkpoints left behind by interrupted uploads."""
        return [checkpoint for checkpoint in self.store.all() if is_resumable(checkpoint)]

    def release(self, upload_id: str) -> None:
        if self.store.discard(upload_id):
            logger.debug(f"Released checkpoint [upload_id={upload_id}]")

    async def resume(self, checkpoint: Checkpoint) -> ResumePoint:
        """
        Validate a checkpoint against the server and return where to continue.

        Args:
            checkpoint: Checkpoint to resume

        Returns:
            ResumePoint at the server-reported durable offset

        Raises:
            NotResumableError: If the checkpoint has no continuation point
            ContiguityMismatchError: If the server lost the data the checkpoint claims
            SessionError: If the session cannot be probed
            TransientNetworkError: If the probe fails transiently
        """
        if not is_resumable(checkpoint):
            raise NotResumableError(
                f"Upload {checkpoint.upload_id} has no resumable checkpoint; restart it instead"
            )

        server_offset = await self.transport.query_offset(
            checkpoint.resume_url, checkpoint.total_bytes
        )

        if server_offset == 0:
            raise ContiguityMismatchError(
                f"Upload session for {checkpoint.upload_id} holds no data but checkpoint "
                f"claims {checkpoint.offset} bytes; start a new upload"
            )

        if server_offset != checkpoint.offset:
            logger.warning(
                f"Checkpoint offset differs from server [upload_id={checkpoint.upload_id}] "
                f"local={checkpoint.offset} server={server_offset}, using server offset"
            )

        offset = min(server_offset, checkpoint.total_bytes)
        logger.info(
            f"Resuming upload [upload_id={checkpoint.upload_id}] "
            f"from {offset}/{checkpoint.total_bytes} bytes"
        )
        return ResumePoint(upload_url=checkpoint.resume_url, offset=offset)
