"""Formatting helpers for CLI output."""

import math

from common.types import UploadState, UploadStatus
from cli.constants import GREEN, RED, RESET, YELLOW

# Assumed average uplink for pre-upload estimates: 10 Mbps
AVERAGE_UPLOAD_SPEED_BYTES = (10 * 1024 * 1024) / 8


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in bytes to human-readable format with appropriate unit.

    Uses binary units (1024-based) and automatically selects the most
    appropriate unit (B, KiB, MiB, GiB, TiB).

    Args:
        size_bytes: File size in bytes

    Returns:
        Formatted string with size and unit (e.g., "1.50 MiB", "512 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"

    units = ['KiB', 'MiB', 'GiB', 'TiB']
    size = size_bytes / 1024.0

    for unit in units:
        if size < 1024.0:
            return f"{size:.2f} {unit}"
        size /= 1024.0

    return f"{size:.2f} PiB"


def format_duration(seconds: float) -> str:
    """
    Format a number of seconds as '45s', '12m' or '2h 5m'.

    Infinite durations (unknown speed) render as 'unknown'.
    """
    if seconds is None or math.isinf(seconds) or math.isnan(seconds):
        return "unknown"
    if seconds < 60:
        return f"{round(seconds)}s"
    if seconds < 3600:
        return f"{round(seconds / 60)}m"
    return f"{int(seconds // 3600)}h {round((seconds % 3600) / 60)}m"


def estimate_upload_time(file_size: int) -> str:
    """
    Rough pre-upload duration estimate assuming a 10 Mbps uplink.

    Args:
        file_size: File size in bytes

    Returns:
        Estimate such as '~40s', '~14m' or '~2h 17m'
    """
    return f"~{format_duration(file_size / AVERAGE_UPLOAD_SPEED_BYTES)}"


_STATUS_COLORS = {
    UploadStatus.PENDING: YELLOW,
    UploadStatus.UPLOADING: GREEN,
    UploadStatus.PROCESSING: GREEN,
    UploadStatus.COMPLETED: GREEN,
    UploadStatus.ERROR: RED,
}


def format_upload_state(state: UploadState, eta_seconds: float = None) -> str:
    """
    Render one upload as a two-line status block.

    Args:
        state: Upload state to render
        eta_seconds: Latest ETA for the upload, if known

    Returns:
        Formatted status text
    """
    color = _STATUS_COLORS.get(state.status, RESET)
    lines = [
        f"  - {state.file_name} (ID: {state.upload_id}) "
        f"{color}{state.status.value}{RESET} {state.progress}%",
        f"    {format_file_size(state.bytes_transferred)} / {format_file_size(state.total_bytes)}",
    ]
    if state.status == UploadStatus.UPLOADING and eta_seconds is not None:
        lines[-1] += f", ETA {format_duration(eta_seconds)}"
    if state.error:
        lines.append(f"    Error: {state.error}")
    return '\n'.join(lines)
