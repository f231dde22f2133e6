"""Command request data types for CLI."""

from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True)
class UploadCommand:
    """Upload a local video file."""

    path: str
    content_type: str | None = None
    upload_id: str | None = None
    command: Literal["upload"] = "upload"


@dataclass(frozen=True)
class ResumeCommand:
    """Resume an interrupted upload."""

    upload_id: str
    path: str
    command: Literal["resume"] = "resume"


@dataclass(frozen=True)
class CancelCommand:
    """Cancel a running upload."""

    upload_id: str
    command: Literal["cancel"] = "cancel"


@dataclass(frozen=True)
class StatusCommand:
    """Show one upload, or all of them."""

    upload_id: str | None = None
    command: Literal["status"] = "status"


@dataclass(frozen=True)
class CheckpointsCommand:
    """List resumable checkpoints."""

    command: Literal["checkpoints"] = "checkpoints"


@dataclass(frozen=True)
class TokenCommand:
    """Store the bearer token sent to the signer."""

    token: str
    command: Literal["token"] = "token"


CommandRequest = (
    UploadCommand
    | ResumeCommand
    | CancelCommand
    | StatusCommand
    | CheckpointsCommand
    | TokenCommand
)
