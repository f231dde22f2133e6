"""Shared data type definitions (UploadDescriptor, UploadState, Chunk, Checkpoint, etc.)."""

import dataclasses
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class UploadStatus(str, Enum):
    """Lifecycle states of a single upload."""
    PENDING = "pending"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class UploadDescriptor:
    """
    Immutable description of a user-initiated upload.
    """
    upload_id: str
    file_name: str
    declared_size: int
    declared_type: str


@dataclass
class UploadState:
    """
    Canonical status record of one upload.

    Only UploadStateMachine mutates instances; everyone else works on
    copies returned by snapshot().
    """
    upload_id: str
    file_name: str
    total_bytes: int
    content_type: Optional[str] = None
    status: UploadStatus = UploadStatus.PENDING
    progress: int = 0
    bytes_transferred: int = 0
    upload_url: Optional[str] = None
    resume_url: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def snapshot(self) -> "UploadState":
        """Return a detached copy of this state."""
        return dataclasses.replace(self)


@dataclass(frozen=True)
class Chunk:
    """
    A contiguous byte range of the source file, sent as one request.
    """
    offset: int
    length: int
    sequence_index: int

    @property
    def end(self) -> int:
        """Inclusive index of the last byte in this chunk."""
        return self.offset + self.length - 1

    @property
    def next_offset(self) -> int:
        return self.offset + self.length

    def content_range(self, total_bytes: int) -> str:
        return f"bytes {self.offset}-{self.end}/{total_bytes}"


@dataclass(frozen=True)
class ChunkAck:
    """Server acknowledgment for one chunk."""
    chunk: Chunk
    persisted_offset: int
    complete: bool


@dataclass(frozen=True)
class Checkpoint:
    """
    Minimal state needed to continue an interrupted transfer.

    Attributes:
        upload_id: Upload this checkpoint belongs to
        file_name: Original file name (for re-selecting the source)
        declared_type: Declared content type
        total_bytes: Declared total size
        resume_url: Session endpoint to continue against
        offset: Last acknowledged byte offset
        saved_at: Unix timestamp when the checkpoint was captured
    """
    upload_id: str
    file_name: str
    declared_type: str
    total_bytes: int
    resume_url: str
    offset: int
    saved_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Checkpoint":
        return cls(
            upload_id=data["upload_id"],
            file_name=data["file_name"],
            declared_type=data["declared_type"],
            total_bytes=int(data["total_bytes"]),
            resume_url=data["resume_url"],
            offset=int(data["offset"]),
            saved_at=float(data.get("saved_at", time.time())),
        )

    def to_descriptor(self) -> UploadDescriptor:
        return UploadDescriptor(
            upload_id=self.upload_id,
            file_name=self.file_name,
            declared_size=self.total_bytes,
            declared_type=self.declared_type,
        )


@dataclass(frozen=True)
class ProgressSnapshot:
    """Derived progress telemetry for one upload."""
    percent: int
    eta_seconds: float
    bytes_transferred: int
    total_bytes: int
    speed: float
