"""Shared pytest fixtures for all tests."""

import json
import re
from typing import Awaitable, Callable, Dict, List, Optional, Set, Union

import httpx
import pytest

from cli.config import Config
from common.types import UploadDescriptor
from uploader.resume_manager import CheckpointStore
from uploader.retry import RetryPolicy
from uploader.upload_service import UploadService

SIGNER_URL = 'http://signer.test'
STORAGE_URL = 'https://storage.test'

_CONTENT_RANGE = re.compile(r'^bytes (\d+)-(\d+)/(\d+)$')
_PROBE_RANGE = re.compile(r'^bytes \*/(\d+)$')


class FakeUploadBackend:
    """
    In-memory signer plus resumable storage sessions, served through
    httpx.MockTransport. Chunk PUTs are only accepted on the resumeUrl;
    the uploadUrl has no storage route behind it.

    Failure knobs are keyed by the 1-based number of the chunk PUT
    (probes are not counted).
    """

    def __init__(self):
        self.sessions: Dict[str, bytearray] = {}
        self.totals: Dict[str, int] = {}
        self.requests: List[httpx.Request] = []
        self.completed: List[str] = []
        self.cancelled: List[str] = []
        self.put_failures: Dict[int, Union[int, Exception]] = {}
        self.mismatch_on_put: Optional[int] = None
        self.rejected_ids: Set[str] = set()
        self.before_put: Optional[Callable[[int], Awaitable[None]]] = None
        self.init_status = 200
        self.complete_status = 200
        self.chunk_put_count = 0

    def upload_url(self, video_id: str) -> str:
        return f'{STORAGE_URL}/session/{video_id}'

    def resume_url(self, video_id: str) -> str:
        return f'{STORAGE_URL}/upload/{video_id}?upload_id=session-{video_id}'

    @property
    def chunk_puts(self) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == 'PUT' and not r.headers.get('Content-Range', '').startswith('bytes */')
        ]

    @property
    def probes(self) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == 'PUT' and r.headers.get('Content-Range', '').startswith('bytes */')
        ]

    def received(self, video_id: str) -> bytes:
        return bytes(self.sessions.get(video_id, b''))

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == 'POST' and path == '/api/video/upload/init':
            if self.init_status != 200:
                return httpx.Response(self.init_status, json={'error': 'Failed to initialize upload'})
            body = json.loads(request.content)
            video_id = body['videoId']
            self.sessions[video_id] = bytearray()
            self.totals[video_id] = body['size']
            return httpx.Response(200, json={
                'videoId': video_id,
                'uploadUrl': self.upload_url(video_id),
                'resumeUrl': self.resume_url(video_id),
                'expiresAt': '2026-10-26T00:00:00Z',
            })

        if request.method == 'POST' and path == '/api/video/upload/complete':
            if self.complete_status != 200:
                return httpx.Response(self.complete_status, json={'error': 'Failed to complete upload'})
            video_id = json.loads(request.content)["videoId"]
            self.completed.append(video_id)
            return httpx.Response(200, json={'success': True, 'videoId': video_id, 'status': 'processing'})

        if request.method == 'DELETE' and path.startswith('/api/video/'):
            self.cancelled.append(path.rsplit('/', 1)[-1])
            return httpx.Response(200, json={'success': True})

        if request.method == 'PUT' and path.startswith('/upload/'):
            return await self._handle_put(path.rsplit('/', 1)[-1], request)

        return httpx.Response(404)

    async def _handle_put(self, video_id: str, request: httpx.Request) -> httpx.Response:
        if video_id not in self.sessions:
            return httpx.Response(404)
        if video_id in self.rejected_ids:
            return httpx.Response(403)
        received = self.sessions[video_id]
        total = self.totals[video_id]
        content_range = request.headers.get('Content-Range', '')

        if _PROBE_RANGE.match(content_range):
            return self._session_reply(len(received), total)

        match = _CONTENT_RANGE.match(content_range)
        if not match:
            return httpx.Response(400)

        self.chunk_put_count += 1
        number = self.chunk_put_count
        if self.before_put is not None:
            await self.before_put(number)

        failure = self.put_failures.pop(number, None)
        if isinstance(failure, Exception):
            raise failure
        if failure is not None:
            return httpx.Response(failure)

        start, end = int(match.group(1)), int(match.group(2))
        if start != len(received):
            return self._session_reply(len(received), total)
        received.extend(request.content)

        if number == self.mismatch_on_put:
            return self._session_reply(start, total, force_incomplete=True)
        return self._session_reply(end + 1, total)

    @staticmethod
    def _session_reply(persisted: int, total: int, force_incomplete: bool = False) -> httpx.Response:
        if persisted >= total and not force_incomplete:
            return httpx.Response(200, json={'size': str(total)})
        headers = {'Range': f'bytes=0-{persisted - 1}'} if persisted > 0 else {}
        return httpx.Response(308, headers=headers)


@pytest.fixture
def backend():
    """Fresh fake signer and storage backend."""
    return FakeUploadBackend()


@pytest.fixture
def sleeps():
    """Delays requested by retry backoff (no real sleeping)."""
    return []


@pytest.fixture
def make_service(backend, sleeps):
    """
    Factory for UploadService instances wired to the fake backend.

    Uses 1 KiB chunks and no progress throttling so tests stay small.
    """
    async def fake_sleep(delay):
        sleeps.append(delay)

    def factory(**kwargs) -> UploadService:
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(backend.handler), base_url=SIGNER_URL
        )
        kwargs.setdefault('chunk_size', 1024)
        kwargs.setdefault('progress_interval', 0)
        kwargs.setdefault('retry_policy', RetryPolicy(max_retries=3, base_delay=1.0))
        kwargs.setdefault('checkpoint_store', CheckpointStore())
        return UploadService(client, sleep=fake_sleep, **kwargs)

    return factory


@pytest.fixture
def make_descriptor():
    """Factory for valid video descriptors."""
    def factory(upload_id='video-1', size=5 * 1024, declared_type='video/mp4', file_name=None):
        return UploadDescriptor(
            upload_id=upload_id,
            file_name=file_name or f'{upload_id}.mp4',
            declared_size=size,
            declared_type=declared_type,
        )

    return factory


@pytest.fixture
def temp_config_dir(tmp_path):
    """
    Create temporary config directory.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        Path to temporary .reelup directory
    """
    config_dir = tmp_path / '.reelup'
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def temp_config(temp_config_dir):
    """
    Create temporary config instance.

    Args:
        temp_config_dir: Temporary config directory fixture

    Returns:
        Config instance with temp config file
    """
    return Config(temp_config_dir / 'config.json')


@pytest.fixture
def sample_video(tmp_path):
    """
    Create a small fake video file.

    Returns:
        Path to a 5 KiB .mp4 file with non-repeating content
    """
    file_path = tmp_path / 'clip.mp4'
    file_path.write_bytes(bytes(i % 251 for i in range(5 * 1024)))
    return file_path
