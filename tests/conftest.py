"""Shared pytest fixtures for all tests."""

import struct
import threading
import zlib
from datetime import datetime, timezone

import httpx
import pytest
from pathlib import Path

from cli.config import Config
from common.kv_store import JsonKeyValueStore
from common.types import AssetDescriptor
from syncer.progress import UPLOADS, ProgressTracker
from syncer.settings import SyncSettings
from uploader.session_store import SessionStore
from uploader.tus_protocol import decode_upload_metadata


@pytest.fixture
def temp_config_dir(tmp_path):
    """
    Create temporary config directory.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        Path to temporary .photosync directory
    """
    config_dir = tmp_path / '.photosync'
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def temp_config(temp_config_dir):
    """
    Create temporary config instance whose data directory lives under tmp_path.

    Returns:
        Config instance with temp config file
    """
    config = Config(temp_config_dir / 'config.json')
    config.data['data_dir'] = str(temp_config_dir / 'data')
    config.data['server_host'] = ''
    config.data['api_key'] = ''
    config.save()
    return config


@pytest.fixture
def kv_store(tmp_path):
    return JsonKeyValueStore(tmp_path / 'state' / 'progress.json')


@pytest.fixture
def progress(kv_store):
    """Uploads tracker backed by a temporary store."""
    return ProgressTracker(kv_store, UPLOADS)


@pytest.fixture
def settings(tmp_path):
    """Sync settings with syncing enabled."""
    sync_settings = SyncSettings(JsonKeyValueStore(tmp_path / 'state' / 'settings.json'))
    sync_settings.set_enabled(True)
    return sync_settings


@pytest.fixture
def session_store(tmp_path):
    return SessionStore(tmp_path / 'uploads')


@pytest.fixture
def sample_file(tmp_path):
    """
    Create a sample media file for upload tests.

    Returns:
        Path to a 10-byte file
    """
    file_path = tmp_path / 'media' / 'IMG_0001.jpg'
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_bytes(b'0123456789')
    return file_path


def make_asset(stable_id: str, day: int, filename: str = None) -> AssetDescriptor:
    """Descriptor created at midnight UTC on the given day of January 2024."""
    return AssetDescriptor(
        stable_id=stable_id,
        created_at=datetime(2024, 1, day, tzinfo=timezone.utc),
        filename=filename or f'{stable_id}.jpg',
    )


def _png_chunk(kind: bytes, data: bytes) -> bytes:
    body = kind + data
    return struct.pack('>I', len(data)) + body + struct.pack('>I', zlib.crc32(body))


def write_oversized_png(path: Path, width: int = 20000, height: int = 10000) -> Path:
    """Write a PNG whose header declares more pixels than Pillow agrees to decode."""
    header = struct.pack('>IIBBBBB', width, height, 8, 2, 0, 0, 0)
    path.write_bytes(
        b'\x89PNG\r\n\x1a\n'
        + _png_chunk(b'IHDR', header)
        + _png_chunk(b'IDAT', b'\x00' * 16)
        + _png_chunk(b'IEND', b'')
    )
    return path


class FakeTusServer:
    """
    In-memory tus 1.0.0 server for httpx.MockTransport.

    ``fail_statuses`` holds status codes returned (in order) before any
    request is served normally; ``fail_patch_statuses`` does the same for
    PATCH requests only.
    """

    def __init__(self):
        self.uploads = {}
        self.requests = []
        self.fail_statuses = []
        self.fail_patch_statuses = []
        self._counter = 0
        self._lock = threading.Lock()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
            if self.fail_statuses:
                return httpx.Response(self.fail_statuses.pop(0))

            path = request.url.path
            if request.method == 'POST' and path == '/tus':
                self._counter += 1
                upload_id = str(self._counter)
                self.uploads[upload_id] = {
                    'length': int(request.headers['Upload-Length']),
                    'data': b'',
                    'metadata': decode_upload_metadata(request.headers.get('Upload-Metadata', '')),
                    'authorization': request.headers.get('Authorization'),
                }
                return httpx.Response(201, headers={'Location': f'/tus/{upload_id}'})

            upload = self.uploads.get(path.rsplit('/', 1)[-1])
            if upload is None:
                return httpx.Response(404)

            if request.method == 'HEAD':
                return httpx.Response(200, headers={
                    'Upload-Offset': str(len(upload['data'])),
                    'Upload-Length': str(upload['length']),
                })

            if request.method == 'PATCH':
                if self.fail_patch_statuses:
                    return httpx.Response(self.fail_patch_statuses.pop(0))
                if int(request.headers['Upload-Offset']) != len(upload['data']):
                    return httpx.Response(409)
                upload['data'] += request.content
                return httpx.Response(204, headers={'Upload-Offset': str(len(upload['data']))})

            return httpx.Response(405)

    def methods(self):
        return [request.method for request in self.requests]


@pytest.fixture
def tus_server():
    return FakeTusServer()


@pytest.fixture
def tus_session(tus_server):
    """HTTP session routed to the in-memory tus server."""
    session = httpx.Client(transport=httpx.MockTransport(tus_server))
    yield session
    session.close()
