"""Command handler functions for CLI operations."""

import asyncio
import mimetypes
import uuid
from pathlib import Path
from typing import Dict, Optional

import httpx

from common.constants import DEFAULT_CONFIG_DIR
from common.logging_config import get_logger
from common.types import UploadDescriptor, UploadState
from cli.config import Config
from cli.constants import CONTENT_TYPES_BY_EXTENSION
from cli.models import (
    CancelCommand,
    CheckpointsCommand,
    ResumeCommand,
    StatusCommand,
    TokenCommand,
    UploadCommand,
)
from cli.utils import estimate_upload_time, format_file_size, format_upload_state
from uploader import file_validator
from uploader.exceptions import UploadCancelledError, UploadError
from uploader.file_source import LocalFileSource
from uploader.resume_manager import CheckpointStore
from uploader.retry import RetryPolicy
from uploader.upload_service import UploadService

logger = get_logger(__name__)


_config: Optional[Config] = None
_service: Optional[UploadService] = None
_tasks: Dict[str, asyncio.Task] = {}
_etas: Dict[str, float] = {}


def build_service(config: Config) -> UploadService:
    """
    Build an UploadService wired from CLI configuration.

    Args:
        config: Loaded CLI configuration

    Returns:
        UploadService bound to a new httpx.AsyncClient
    """
    retry_config = config.get_retry_config()
    client = httpx.AsyncClient(base_url=config.get_base_url())
    return UploadService(
        client,
        checkpoint_store=CheckpointStore(config.get_checkpoint_path()),
        retry_policy=RetryPolicy(
            max_retries=retry_config['max_retries'],
            backoff_multiplier=retry_config['retry_backoff_multiplier'],
        ),
        auth_token=config.get_auth_token(),
        chunk_timeout=config.get_chunk_timeout(),
        session_timeout=config.get_timeout(),
        progress_interval=config.get_progress_interval(),
    )


def configure(config: Config) -> None:
    """Use an already loaded configuration instead of the default file."""
    global _config
    _config = config


def get_config() -> Config:
    """
    Get or load global CLI configuration.

    Returns:
        Config instance
    """
    global _config
    if _config is None:
        _config = Config(DEFAULT_CONFIG_DIR / 'config.json')
    return _config


def get_service() -> UploadService:
    """
    Get or create global UploadService instance.

    Checkpoints left by earlier sessions are registered on first use.

    Returns:
        UploadService instance
    """
    global _service
    if _service is None:
        logger.debug("Creating new UploadService instance")
        _service = build_service(get_config())
        _service.recover_checkpoints()
    return _service


def guess_content_type(path: Path) -> str:
    """
    Guess a video content type from the file extension.

    Returns:
        MIME type, or 'application/octet-stream' when unknown
    """
    content_type = CONTENT_TYPES_BY_EXTENSION.get(path.suffix.lower())
    if content_type is None:
        content_type, _ = mimetypes.guess_type(path.name)
    return content_type or 'application/octet-stream'


def _spawn(upload_id: str, coro) -> asyncio.Task:
    task = asyncio.create_task(_run_in_background(upload_id, coro))
    _tasks[upload_id] = task
    task.add_done_callback(lambda done: _forget(upload_id, done))
    return task


def _forget(upload_id: str, task: asyncio.Task) -> None:
    # the id may already belong to a newer task
    if _tasks.get(upload_id) is task:
        del _tasks[upload_id]


async def _run_in_background(upload_id: str, coro) -> Optional[UploadState]:
    try:
        state = await coro
    except UploadCancelledError:
        print(f"Upload {upload_id} cancelled")
        return None
    except UploadError as e:
        print(f"Upload {upload_id} failed: {e}")
        return None
    except Exception as e:
        logger.error(f"Background upload crashed [upload_id={upload_id}]: {e}", exc_info=True)
        print(f"Upload {upload_id} failed: {e}")
        return None
    finally:
        _etas.pop(upload_id, None)
    print(f"Upload {upload_id} completed ({format_file_size(state.total_bytes)})")
    return state


def _track_eta(upload_id: str):
    def on_progress(percent: int, eta_seconds: float) -> None:
        _etas[upload_id] = eta_seconds
        logger.debug(f"Progress [upload_id={upload_id}] {percent}% eta={eta_seconds}")
    return on_progress


async def handle_upload(cmd: UploadCommand, service: Optional[UploadService] = None) -> str:
    """
    Handle 'upload' command.

    Validates the file up front and starts the transfer as a background task.

    Args:
        cmd: UploadCommand with path and optional content type and id
        service: Optional UploadService for dependency injection (testing)

    Returns:
        Success or error message
    """
    if service is None:
        service = get_service()

    path = Path(cmd.path).expanduser()
    if not path.is_file():
        return f"Error: File not found: {cmd.path}"

    source = LocalFileSource(path)
    descriptor = UploadDescriptor(
        upload_id=cmd.upload_id or uuid.uuid4().hex,
        file_name=path.name,
        declared_size=source.size,
        declared_type=cmd.content_type or guess_content_type(path),
    )

    result = file_validator.validate(descriptor)
    if not result.valid:
        return f"Error: {result.error}"
    if descriptor.upload_id in service.registry:
        return f"Error: Upload {descriptor.upload_id} is already registered"

    _spawn(
        descriptor.upload_id,
        service.start_upload(
            descriptor, source, on_progress=_track_eta(descriptor.upload_id)
        ),
    )
    return (
        f"Upload started: {descriptor.file_name} (ID: {descriptor.upload_id}), "
        f"{format_file_size(descriptor.declared_size)}, "
        f"estimated {estimate_upload_time(descriptor.declared_size)}"
    )


async def handle_resume(cmd: ResumeCommand, service: Optional[UploadService] = None) -> str:
    """
    Handle 'resume' command.

    Args:
        cmd: ResumeCommand with upload id and path to the same file
        service: Optional UploadService for dependency injection (testing)

    Returns:
        Success or error message
    """
    if service is None:
        service = get_service()

    path = Path(cmd.path).expanduser()
    if not path.is_file():
        return f"Error: File not found: {cmd.path}"
    if cmd.upload_id in _tasks:
        return f"Error: Upload {cmd.upload_id} is still running"

    checkpoint = service.resume_manager.get(cmd.upload_id)
    if checkpoint is None and service.get_upload_status(cmd.upload_id) is None:
        return f"Error: Upload {cmd.upload_id} not found"

    _spawn(
        cmd.upload_id,
        service.resume_upload(
            cmd.upload_id, LocalFileSource(path), on_progress=_track_eta(cmd.upload_id)
        ),
    )
    if checkpoint is not None:
        return f"Resuming {cmd.upload_id} from byte {checkpoint.offset}/{checkpoint.total_bytes}"
    return f"Resuming {cmd.upload_id}"


async def handle_cancel(cmd: CancelCommand, service: Optional[UploadService] = None) -> str:
    """
    Handle 'cancel' command.

    Args:
        cmd: CancelCommand with upload id
        service: Optional UploadService for dependency injection (testing)

    Returns:
        Success or error message
    """
    if service is None:
        service = get_service()

    if await service.cancel_upload(cmd.upload_id):
        return f"Upload {cmd.upload_id} cancelled"
    return f"Error: Upload {cmd.upload_id} not found or already finished"


async def handle_status(cmd: StatusCommand, service: Optional[UploadService] = None) -> str:
    """
    Handle 'status' command.

    Args:
        cmd: StatusCommand with optional upload id
        service: Optional UploadService for dependency injection (testing)

    Returns:
        Formatted upload states
    """
    if service is None:
        service = get_service()

    if cmd.upload_id is not None:
        state = service.get_upload_status(cmd.upload_id)
        if state is None:
            return f"Error: Upload {cmd.upload_id} not found"
        return format_upload_state(state, _etas.get(cmd.upload_id))

    states = service.get_all_uploads()
    if not states:
        return "No uploads"

    lines = [f"Uploads ({len(states)}):"]
    for state in states:
        lines.append(format_upload_state(state, _etas.get(state.upload_id)))
    return '\n'.join(lines)


async def handle_checkpoints(
    cmd: CheckpointsCommand, service: Optional[UploadService] = None
) -> str:
    """
    Handle 'checkpoints' command.

    Args:
        cmd: CheckpointsCommand
        service: Optional UploadService for dependency injection (testing)

    Returns:
        Formatted list of resumable checkpoints
    """
    if service is None:
        service = get_service()

    checkpoints = service.resume_manager.pending()
    if not checkpoints:
        return "No resumable uploads"

    lines = [f"Resumable uploads ({len(checkpoints)}):"]
    for checkpoint in checkpoints:
        lines.append(
            f"  - {checkpoint.file_name} (ID: {checkpoint.upload_id}) "
            f"{format_file_size(checkpoint.offset)} / {format_file_size(checkpoint.total_bytes)}"
        )
    return '\n'.join(lines)


async def handle_token(
    cmd: TokenCommand,
    service: Optional[UploadService] = None,
    config: Optional[Config] = None,
) -> str:
    """
    Handle 'token' command.

    Saves the token to the config file and applies it to later signer calls.

    Args:
        cmd: TokenCommand with the bearer token
        service: Optional UploadService for dependency injection (testing)
        config: Optional Config for dependency injection (testing)

    Returns:
        Confirmation message
    """
    if config is None:
        config = get_config()
    if service is None:
        service = get_service()

    config.set_auth_token(cmd.token)
    service.negotiator.auth_token = cmd.token
    logger.info("Signer token updated")
    return "Token saved"


async def shutdown() -> None:
    """Interrupt running uploads and close the HTTP client."""
    global _service
    tasks = list(_tasks.values())
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
    if _service is not None:
        await _service.client.aclose()
        _service = None
