"""Tests for CLI command handlers."""

import asyncio
from pathlib import Path

import pytest

from cli import commands
from cli.commands import (
    build_service,
    guess_content_type,
    handle_cancel,
    handle_checkpoints,
    handle_resume,
    handle_status,
    handle_token,
    handle_upload,
)
from cli.models import (
    CancelCommand,
    CheckpointsCommand,
    ResumeCommand,
    StatusCommand,
    TokenCommand,
    UploadCommand,
)
from common.types import UploadStatus
from uploader.exceptions import UploadCancelledError


@pytest.mark.parametrize('name,expected', [
    ('clip.mp4', 'video/mp4'),
    ('CLIP.MP4', 'video/mp4'),
    ('trip.mov', 'video/quicktime'),
    ('old.avi', 'video/avi'),
    ('film.mkv', 'video/mkv'),
    ('talk.webm', 'video/webm'),
    ('blob.unknownext', 'application/octet-stream'),
])
def test_guess_content_type(name, expected):
    assert guess_content_type(Path(name)) == expected


@pytest.mark.asyncio
async def test_build_service_from_config(temp_config, tmp_path):
    temp_config.data['auth_token'] = 'tok_1'
    temp_config.data['max_retries'] = 5
    temp_config.data['checkpoint_path'] = str(tmp_path / 'cp.json')

    service = build_service(temp_config)
    try:
        assert service.negotiator.auth_token == 'tok_1'
        assert service.scheduler.retry_policy.max_retries == 5
        assert service.resume_manager.store.path == tmp_path / 'cp.json'
        assert str(service.client.base_url).rstrip('/') == 'http://localhost:3000'
    finally:
        await service.client.aclose()


@pytest.mark.asyncio
async def test_handle_upload_runs_in_background(backend, make_service, sample_video, capsys):
    service = make_service()

    result = await handle_upload(UploadCommand(path=str(sample_video), upload_id='clip-1'), service=service)

    assert 'Upload started: clip.mp4 (ID: clip-1)' in result
    assert '5.00 KiB' in result
    state = await commands._tasks['clip-1']

    assert state.status == UploadStatus.COMPLETED
    assert backend.received('clip-1') == sample_video.read_bytes()
    assert 'Upload clip-1 completed' in capsys.readouterr().out


@pytest.mark.asyncio
async def test_handle_upload_missing_file(backend, make_service, tmp_path):
    result = await handle_upload(UploadCommand(path=str(tmp_path / 'nope.mp4')), service=make_service())

    assert result.startswith('Error: File not found')
    assert backend.requests == []


@pytest.mark.asyncio
async def test_handle_upload_rejects_non_video(backend, make_service, tmp_path):
    text_file = tmp_path / 'notes.txt'
    text_file.write_text('not a video')

    result = await handle_upload(UploadCommand(path=str(text_file)), service=make_service())

    assert result == 'Error: Invalid video file type'
    assert backend.requests == []


@pytest.mark.asyncio
async def test_handle_upload_type_override(backend, make_service, tmp_path):
    raw = tmp_path / 'capture.bin'
    raw.write_bytes(b'\x01' * 1500)

    await handle_upload(
        UploadCommand(path=str(raw), content_type='video/webm', upload_id='raw-1'), service=make_service()
    )
    await commands._tasks['raw-1']

    assert backend.chunk_puts[0].headers['Content-Type'] == 'video/webm'


@pytest.mark.asyncio
async def test_failed_upload_status_checkpoints_and_resume(backend, make_service, sample_video, capsys):
    backend.mismatch_on_put = 2
    service = make_service()

    await handle_upload(UploadCommand(path=str(sample_video), upload_id='clip-2'), service=service)
    assert await commands._tasks['clip-2'] is None
    assert 'Upload clip-2 failed' in capsys.readouterr().out

    status = await handle_status(StatusCommand(upload_id='clip-2'), service=service)
    assert 'error' in status
    assert 'resumable from byte 1024' in status

    listing = await handle_checkpoints(CheckpointsCommand(), service=service)
    assert 'Resumable uploads (1)' in listing
    assert 'clip.mp4 (ID: clip-2)' in listing

    result = await handle_resume(ResumeCommand(upload_id='clip-2', path=str(sample_video)), service=service)
    assert result == 'Resuming clip-2 from byte 1024/5120'
    state = await commands._tasks['clip-2']

    assert state.status == UploadStatus.COMPLETED
    assert backend.received('clip-2') == sample_video.read_bytes()
    assert await handle_checkpoints(CheckpointsCommand(), service=service) == 'No resumable uploads'


@pytest.mark.asyncio
async def test_handle_resume_unknown(make_service, sample_video):
    result = await handle_resume(ResumeCommand(upload_id='ghost', path=str(sample_video)), service=make_service())
    assert result == 'Error: Upload ghost not found'


@pytest.mark.asyncio
async def test_handle_status_empty(make_service):
    assert await handle_status(StatusCommand(), service=make_service()) == 'No uploads'


@pytest.mark.asyncio
async def test_handle_cancel_unknown(backend, make_service):
    result = await handle_cancel(CancelCommand(upload_id='ghost'), service=make_service())

    assert 'not found' in result
    assert backend.cancelled == []


@pytest.mark.asyncio
async def test_handle_token_saves_and_applies(backend, make_service, temp_config, sample_video):
    service = make_service()

    result = await handle_token(TokenCommand(token='tok_new'), service=service, config=temp_config)

    assert result == 'Token saved'
    assert temp_config.get_auth_token() == 'tok_new'

    await handle_upload(UploadCommand(path=str(sample_video), upload_id='clip-3'), service=service)
    await commands._tasks['clip-3']

    init_request = backend.requests[0]
    assert init_request.headers['Authorization'] == 'Bearer tok_new'


@pytest.mark.asyncio
async def test_finished_task_keeps_newer_task_with_same_id(capsys):
    release = asyncio.Event()

    async def cancelled_upload():
        raise UploadCancelledError('Upload was cancelled')

    async def restarted_upload():
        await release.wait()
        raise UploadCancelledError('Upload was cancelled')

    old = commands._spawn('clip-9', cancelled_upload())
    new = commands._spawn('clip-9', restarted_upload())
    await old
    await asyncio.sleep(0)

    assert commands._tasks['clip-9'] is new

    release.set()
    await new
    await asyncio.sleep(0)

    assert 'clip-9' not in commands._tasks
    assert capsys.readouterr().out.count('Upload clip-9 cancelled') == 2
