"""Unit tests for pre-upload file validation."""

import pytest

from common.constants import ALLOWED_VIDEO_TYPES, MAX_FILE_SIZE_BYTES
from common.types import UploadDescriptor
from uploader import file_validator
from uploader.exceptions import (
    FileTooLargeError,
    InvalidFileSizeError,
    InvalidFileTypeError,
    ValidationError,
)


def _descriptor(size=1024, declared_type='video/mp4'):
    return UploadDescriptor(
        upload_id='v1', file_name='clip.mp4', declared_size=size, declared_type=declared_type
    )


class TestFileType:
    """Test content type allow-list."""

    @pytest.mark.parametrize('declared_type', sorted(ALLOWED_VIDEO_TYPES))
    def test_allowed_types_pass(self, declared_type):
        assert file_validator.is_valid_video_file(declared_type)
        assert file_validator.validate_file_type(declared_type).valid

    @pytest.mark.parametrize('declared_type', ['text/plain', 'image/png', 'application/pdf', '', 'VIDEO/MP4'])
    def test_other_types_rejected(self, declared_type):
        result = file_validator.validate_file_type(declared_type)

        assert not result.valid
        assert result.error == 'Invalid video file type'
        assert result.code == 'INVALID_FILE_TYPE'


class TestFileSize:
    """Test the inclusive 10 GiB ceiling."""

    def test_exact_limit_is_accepted(self):
        assert file_validator.validate_file_size(MAX_FILE_SIZE_BYTES).valid

    def test_one_byte_over_limit_is_rejected(self):
        result = file_validator.validate_file_size(MAX_FILE_SIZE_BYTES + 1)

        assert not result.valid
        assert result.error == 'File size exceeds 10GB limit'
        assert result.code == 'FILE_TOO_LARGE'

    def test_eleven_gib_is_rejected(self):
        result = file_validator.validate_file_size(11 * 1024 * 1024 * 1024)
        assert result.code == 'FILE_TOO_LARGE'

    def test_zero_bytes_is_accepted(self):
        assert file_validator.validate_file_size(0).valid

    def test_negative_size_is_rejected(self):
        result = file_validator.validate_file_size(-1)

        assert not result.valid
        assert result.code == 'INVALID_FILE_SIZE'


class TestValidateDescriptor:
    """Test combined validation and the raising variant."""

    def test_type_checked_before_size(self):
        result = file_validator.validate(_descriptor(size=MAX_FILE_SIZE_BYTES + 1, declared_type='text/plain'))
        assert result.code == 'INVALID_FILE_TYPE'

    def test_valid_descriptor(self):
        assert file_validator.validate(_descriptor()).valid

    @pytest.mark.parametrize('descriptor,error_class', [
        (_descriptor(declared_type='image/gif'), InvalidFileTypeError),
        (_descriptor(size=MAX_FILE_SIZE_BYTES + 1), FileTooLargeError),
        (_descriptor(size=-5), InvalidFileSizeError),
    ])
    def test_ensure_valid_raises_matching_error(self, descriptor, error_class):
        with pytest.raises(error_class) as exc_info:
            file_validator.ensure_valid(descriptor)

        assert isinstance(exc_info.value, ValidationError)
        assert exc_info.value.code == error_class.code

    def test_ensure_valid_passes_silently(self):
        assert file_validator.ensure_valid(_descriptor()) is None
