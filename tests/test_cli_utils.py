"""Tests for CLI formatting helpers."""

import math

import pytest

from common.types import UploadState, UploadStatus
from cli.utils import (
    estimate_upload_time,
    format_duration,
    format_file_size,
    format_upload_state,
)


@pytest.mark.parametrize('size,expected', [
    (0, '0 B'),
    (512, '512 B'),
    (1536, '1.50 KiB'),
    (25 * 1024 * 1024, '25.00 MiB'),
    (10 * 1024 ** 3, '10.00 GiB'),
])
def test_format_file_size(size, expected):
    assert format_file_size(size) == expected


@pytest.mark.parametrize('seconds,expected', [
    (0, '0s'),
    (45, '45s'),
    (90, '2m'),
    (3599, '60m'),
    (3600, '1h 0m'),
    (7500, '2h 5m'),
    (math.inf, 'unknown'),
])
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def test_estimate_upload_time():
    # 10 Mbps is 1.25 MiB/s
    assert estimate_upload_time(25 * 1024 * 1024) == '~20s'
    assert estimate_upload_time(1024 ** 3) == '~14m'


def test_format_upload_state():
    state = UploadState(
        upload_id='v1', file_name='clip.mp4', total_bytes=2048,
        status=UploadStatus.UPLOADING, progress=50, bytes_transferred=1024,
    )

    text = format_upload_state(state, eta_seconds=75)

    assert 'clip.mp4 (ID: v1)' in text
    assert 'uploading' in text
    assert '50%' in text
    assert '1.00 KiB / 2.00 KiB' in text
    assert 'ETA 1m' in text


def test_format_upload_state_with_error():
    state = UploadState(
        upload_id='v1', file_name='clip.mp4', total_bytes=2048,
        status=UploadStatus.ERROR, error='Upload chunk 1 failed (resumable from byte 1024)',
    )

    text = format_upload_state(state)

    assert 'Error: Upload chunk 1 failed (resumable from byte 1024)' in text
    assert 'ETA' not in text
