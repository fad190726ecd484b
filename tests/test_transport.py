"""Tests for ChunkedUploadTransport against an in-memory tus server."""

import json
import threading
from datetime import datetime, timezone
from unittest.mock import Mock, patch

import pytest

from common.types import UploadItem
from syncer.progress import ProgressTracker
from uploader.exceptions import SessionNotFoundError
from uploader.session_store import SessionStatus, UploadSession
from uploader.transport import ChunkedUploadTransport

HOST = 'http://test'
API_KEY = 'key-123'


@pytest.fixture
def make_transport(session_store, progress, tus_session):
    """Factory for transports sharing the store, tracker and mock server."""
    created = []

    def factory(host=HOST, api_key=API_KEY, tracker=None, **kwargs):
        options = dict(chunk_size=4, max_retries=2, retry_base_delay=0, session=tus_session)
        options.update(kwargs)
        transport = ChunkedUploadTransport(host, api_key, session_store, tracker or progress, **options)
        created.append(transport)
        return transport

    yield factory
    for transport in created:
        transport.close()


def make_item(path, stable_id='asset-1'):
    return UploadItem(
        stable_id=stable_id,
        source_path=path,
        filename=path.name,
        created_at=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        derived_labels=('beach', 'sunset'),
    )


def write_session(store, host, api_key, status=SessionStatus.FAILED, session_id='s-1', data=b'abcdef'):
    session = UploadSession(
        session_id=session_id,
        stable_id=f'item-{session_id}',
        server_url=f'{host}/tus',
        total_bytes=len(data),
        filename='a.jpg',
        custom_headers={'Authorization': f'Bearer {api_key}', 'Upload-Metadata': ''},
        status=status,
    )
    store.save(session)
    store.cache_path(session_id).write_bytes(data)
    return session


class TestEnqueue:
    """Tests for enqueue and the chunked transfer."""

    def test_uploads_file_in_chunks(self, make_transport, sample_file, tus_server, progress, session_store):
        transport = make_transport()

        session = transport.enqueue(make_item(sample_file))
        assert transport.wait_until_idle(timeout=5)

        upload = tus_server.uploads['1']
        assert upload['data'] == b'0123456789'
        assert upload['length'] == 10
        assert tus_server.methods() == ['POST', 'PATCH', 'PATCH', 'PATCH']
        assert progress.get_rate('asset-1') == 1.0
        assert transport.remaining_uploads() == 0
        assert transport.sessions() == []
        assert not session_store.cache_path(session.session_id).exists()
        assert session_store.load_all() == []

    def test_sends_bearer_and_upload_metadata(self, make_transport, sample_file, tus_server):
        transport = make_transport()

        transport.enqueue(make_item(sample_file))
        transport.wait_until_idle(timeout=5)

        upload = tus_server.uploads['1']
        assert upload['authorization'] == f'Bearer {API_KEY}'
        assert upload['metadata'] == {
            'itemId': 'asset-1',
            'filename': 'IMG_0001.jpg',
            'created': '2024-01-02T03:04:05Z',
            'labels': 'beach,sunset',
        }
        assert tus_server.requests[0].headers['Tus-Resumable'] == '1.0.0'
        assert tus_server.requests[1].headers['Content-Type'] == 'application/offset+octet-stream'

    def test_progress_reported_after_each_chunk(self, make_transport, sample_file):
        tracker = Mock(spec=ProgressTracker)
        transport = make_transport(tracker=tracker)

        transport.enqueue(make_item(sample_file))
        transport.wait_until_idle(timeout=5)

        tracker.start.assert_called_once_with('asset-1')
        rates = [c.args[1] for c in tracker.update.call_args_list]
        assert rates == sorted(rates)
        assert rates[-1] == 1.0
        assert all(0.0 <= rate <= 1.0 for rate in rates)
        tracker.complete.assert_called_once_with('asset-1')
        tracker.remove.assert_not_called()

    def test_upload_survives_source_deletion(self, make_transport, sample_file, tus_server):
        tus_server.fail_statuses = [503]
        transport = make_transport()

        transport.enqueue(make_item(sample_file))
        sample_file.unlink()
        transport.wait_until_idle(timeout=5)

        assert tus_server.uploads['1']['data'] == b'0123456789'

    def test_missing_source_raises_and_leaves_nothing(self, make_transport, tmp_path, session_store, progress):
        transport = make_transport()

        with pytest.raises(OSError):
            transport.enqueue(make_item(tmp_path / 'missing.jpg'))

        assert transport.sessions() == []
        assert session_store.load_all() == []
        assert list(session_store.cache_dir.iterdir()) == []
        assert progress.get('asset-1') is None

    def test_empty_file_completes_with_creation_only(self, make_transport, tmp_path, tus_server, progress):
        empty = tmp_path / 'empty.png'
        empty.write_bytes(b'')
        transport = make_transport()

        transport.enqueue(make_item(empty))
        transport.wait_until_idle(timeout=5)

        assert tus_server.methods() == ['POST']
        assert progress.get_rate('asset-1') == 1.0


class TestRetryPolicy:
    """Tests for the internal retry policy."""

    def test_transient_failure_is_retried(self, make_transport, sample_file, tus_server, progress):
        tus_server.fail_statuses = [503, 429]
        transport = make_transport()

        transport.enqueue(make_item(sample_file))
        transport.wait_until_idle(timeout=5)

        assert tus_server.uploads['1']['data'] == b'0123456789'
        assert progress.get_rate('asset-1') == 1.0

    def test_exhausted_retries_fail_session(self, make_transport, sample_file, tus_server, progress, session_store):
        tus_server.fail_statuses = [500, 500, 500]
        transport = make_transport(max_retries=2)

        session = transport.enqueue(make_item(sample_file))
        transport.wait_until_idle(timeout=5)

        assert progress.get('asset-1') is None
        assert transport.remaining_uploads() == 0
        failed = transport.failed_sessions()
        assert [s.session_id for s in failed] == [session.session_id]
        assert '500' in failed[0].error
        assert session_store.load(session.session_id).status is SessionStatus.FAILED
        assert session_store.cache_path(session.session_id).exists()

    def test_client_error_is_not_retried(self, make_transport, sample_file, tus_server):
        tus_server.fail_statuses = [403]
        transport = make_transport()

        transport.enqueue(make_item(sample_file))
        transport.wait_until_idle(timeout=5)

        assert tus_server.methods() == ['POST']
        assert len(transport.failed_sessions()) == 1

    def test_offset_conflict_resyncs_with_head(self, make_transport, sample_file, tus_server):
        tus_server.fail_patch_statuses = [409]
        transport = make_transport()

        transport.enqueue(make_item(sample_file))
        transport.wait_until_idle(timeout=5)

        assert tus_server.methods()[:3] == ['POST', 'PATCH', 'HEAD']
        assert tus_server.uploads['1']['data'] == b"0123456789"


class TestFailedSessions:
    """Tests for restart recovery and retry_failed_uploads."""

    def test_interrupted_sessions_become_failed(self, session_store, make_transport):
        write_session(session_store, HOST, API_KEY, status=SessionStatus.UPLOADING)

        transport = make_transport()

        assert transport.remaining_uploads() == 0
        assert [s.session_id for s in transport.failed_sessions()] == ['s-1']
        assert session_store.load('s-1').status is SessionStatus.FAILED

    def test_malformed_session_file_is_ignored(self, session_store, make_transport):
        (session_store.root / 'broken.json').write_text('{not json')
        (session_store.root / 'partial.json').write_text(json.dumps({'session_id': 'x'}))
        write_session(session_store, HOST, API_KEY)

        transport = make_transport()

        assert [s.session_id for s in transport.sessions()] == ['s-1']

    def test_validation_retries_match_and_cancels_mismatch(self, session_store, make_transport):
        write_session(session_store, HOST, API_KEY, session_id='match')
        write_session(session_store, 'http://other-host', API_KEY, session_id='other-host')
        write_session(session_store, HOST, 'old-key', session_id='other-key')
        write_session(session_store, 'https://test', API_KEY, session_id='other-scheme')
        transport = make_transport()

        with patch.object(transport, 'retry') as mock_retry, \
                patch.object(transport, 'cancel') as mock_cancel, \
                patch.object(transport, 'remove_cache') as mock_remove_cache:
            retried, cancelled = transport.retry_failed_uploads()

        assert retried == ['match']
        assert sorted(cancelled) == ['other-host', 'other-key', 'other-scheme']
        mock_retry.assert_called_once_with('match')
        assert sorted(c.args[0] for c in mock_cancel.call_args_list) == sorted(cancelled)
        assert sorted(c.args[0] for c in mock_remove_cache.call_args_list) == sorted(cancelled)

    def test_mismatched_session_removed_from_store(self, session_store, make_transport, tus_server):
        write_session(session_store, 'http://other-host', API_KEY, session_id='stale')
        transport = make_transport()

        retried, cancelled = transport.retry_failed_uploads()

        assert (retried, cancelled) == ([], ['stale'])
        assert session_store.load_all() == []
        assert not session_store.cache_path('stale').exists()
        assert tus_server.requests == []

    def test_retry_resumes_from_server_offset(self, session_store, make_transport, tus_server, progress):
        tus_server.uploads['7'] = {'length': 6, 'data': b'abc', 'metadata': {}, 'authorization': None}
        session = write_session(session_store, HOST, API_KEY, session_id='resume', data=b'abcdef')
        session.upload_url = f'{HOST}/tus/7'
        session.bytes_uploaded = 3
        session_store.save(session)
        transport = make_transport()

        retried, _ = transport.retry_failed_uploads()
        transport.wait_until_idle(timeout=5)

        assert retried == ['resume']
        assert tus_server.uploads['7']['data'] == b'abcdef'
        assert tus_server.methods()[0] == 'HEAD'
        assert 'POST' not in tus_server.methods()
        assert progress.get_rate('item-resume') == 1.0

    def test_retry_recreates_expired_upload(self, session_store, make_transport, tus_server):
        session = write_session(session_store, HOST, API_KEY, session_id='gone', data=b'abcdef')
        session.upload_url = f'{HOST}/tus/404'
        session_store.save(session)
        transport = make_transport()

        transport.retry('gone')
        transport.wait_until_idle(timeout=5)

        assert tus_server.methods()[:2] == ['HEAD', 'POST']
        assert tus_server.uploads['1']['data'] == b'abcdef'

    def test_retry_unknown_session_raises(self, make_transport):
        transport = make_transport()

        with pytest.raises(SessionNotFoundError):
            transport.retry('nope')

    def test_cancel_forgets_session(self, session_store, make_transport):
        write_session(session_store, HOST, API_KEY, session_id='c')
        transport = make_transport()

        assert transport.cancel('c') is True
        assert transport.cancel('c') is False
        assert transport.sessions() == []
        assert session_store.load_all() == []
        assert transport._cancelled == set()
        assert session_store.cache_path('c').exists()
        assert transport.remove_cache('c') is True

    def test_cancel_running_upload_stops_worker_and_forgets_id(self, make_transport, sample_file, tus_server):
        started = threading.Event()
        release = threading.Event()
        tracker = Mock(spec=ProgressTracker)

        def block_on_first_update(stable_id, rate):
            if not started.is_set():
                started.set()
                release.wait(5)

        tracker.update.side_effect = block_on_first_update
        transport = make_transport(tracker=tracker)
        session = transport.enqueue(make_item(sample_file))
        assert started.wait(5)
        future = transport._futures[session.session_id]

        assert transport.cancel(session.session_id) is True
        assert session.session_id in transport._cancelled
        release.set()
        future.result(timeout=5)

        assert transport._cancelled == set()
        assert tus_server.methods() == ['POST']
        tracker.complete.assert_not_called()
