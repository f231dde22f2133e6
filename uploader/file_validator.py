"""Pre-network validation of candidate video files against type and size policy."""

from dataclasses import dataclass
from typing import Optional

from common.constants import ALLOWED_VIDEO_TYPES, MAX_FILE_SIZE_BYTES
from common.types import UploadDescriptor
from uploader.exceptions import (
    FileTooLargeError,
    InvalidFileSizeError,
    InvalidFileTypeError,
)

INVALID_TYPE_MESSAGE = "Invalid video file type"
TOO_LARGE_MESSAGE = "File size exceeds 10GB limit"
NEGATIVE_SIZE_MESSAGE = "File size must not be negative"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a validation check."""
    valid: bool
    error: Optional[str] = None
    code: Optional[str] = None


def is_valid_video_file(declared_type: str) -> bool:
    """
    Check a declared content type against the video allow-list.

    Args:
        declared_type: MIME-like type string (e.g. 'video/mp4')

    Returns:
        True if the type is allowed, False otherwise (including empty)
    """
    return declared_type in ALLOWED_VIDEO_TYPES


def validate_file_type(declared_type: str) -> ValidationResult:
    if is_valid_video_file(declared_type):
        return ValidationResult(valid=True)
    return ValidationResult(
        valid=False,
        error=INVALID_TYPE_MESSAGE,
        code=InvalidFileTypeError.code,
    )


def validate_file_size(size: int) -> ValidationResult:
    """
    Check a declared size against the inclusive 10 GiB ceiling.

    Args:
        size: Declared size in bytes

    Returns:
        ValidationResult with a stable error code on failure
    """
    if size < 0:
        return ValidationResult(
            valid=False,
            error=NEGATIVE_SIZE_MESSAGE,
            code=InvalidFileSizeError.code,
        )
    if size > MAX_FILE_SIZE_BYTES:
        return ValidationResult(
            valid=False,
            error=TOO_LARGE_MESSAGE,
            code=FileTooLargeError.code,
        )
    return ValidationResult(valid=True)


def validate(descriptor: UploadDescriptor) -> ValidationResult:
    """
    Run all checks for an upload descriptor, type first.

    Args:
        descriptor: Upload to validate

    Returns:
        First failing ValidationResult, or a valid result
    """
    type_result = validate_file_type(descriptor.declared_type)
    if not type_result.valid:
        return type_result
    return validate_file_size(descriptor.declared_size)


_ERRORS_BY_CODE = {
    InvalidFileTypeError.code: InvalidFileTypeError,
    FileTooLargeError.code: FileTooLargeError,
    InvalidFileSizeError.code: InvalidFileSizeError,
}


def ensure_valid(descriptor: UploadDescriptor) -> None:
    """
    Raise the matching ValidationError subclass if the descriptor is rejected.

    Raises:
        InvalidFileTypeError: Declared type is not an allowed video type
        FileTooLargeError: Declared size exceeds the ceiling
        InvalidFileSizeError: Declared size is negative
    """
    result = validate(descriptor)
    if not result.valid:
        raise _ERRORS_BY_CODE[result.code](result.error)
