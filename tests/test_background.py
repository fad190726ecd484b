"""Tests for background sync runs and temporary file cleanup."""

import os
import threading
import time
from unittest.mock import Mock

import pytest

from syncer.background import (
    PeriodicSyncRunner,
    clean_temporary_directory,
    run_background_sync,
)
from syncer.coordinator import SyncCoordinator, SyncOutcome, SyncReport

THREE_DAYS = 3 * 24 * 60 * 60


def age_file(path, seconds):
    stamp = time.time() - seconds
    os.utime(path, (stamp, stamp))


@pytest.fixture
def coordinator():
    mock = Mock(spec=SyncCoordinator)
    mock.start.return_value = SyncReport(outcome=SyncOutcome.COMPLETED)
    return mock


class TestCleanTemporaryDirectory:

    def test_removes_only_stale_files(self, tmp_path):
        stale = tmp_path / 'nested' / 'old.jpg'
        stale.parent.mkdir()
        stale.write_bytes(b'old')
        age_file(stale, THREE_DAYS)
        fresh = tmp_path / 'new.jpg'
        fresh.write_bytes(b'new')

        assert clean_temporary_directory(tmp_path) == 1
        assert not stale.exists()
        assert fresh.exists()

    def test_missing_directory(self, tmp_path):
        assert clean_temporary_directory(tmp_path / 'missing') == 0


class TestRunBackgroundSync:

    def test_expires_long_running_sync(self, coordinator):
        expired = threading.Event()
        coordinator.expire.side_effect = expired.set

        def slow_start():
            expired.wait(timeout=5)
            return SyncReport(outcome=SyncOutcome.EXPIRED)

        coordinator.start.side_effect = slow_start

        report = run_background_sync(coordinator, expires_in=0.05)

        assert report.outcome is SyncOutcome.EXPIRED
        coordinator.expire.assert_called_once()

    def test_timer_disarmed_after_quick_run(self, coordinator):
        report = run_background_sync(coordinator, expires_in=0.05)
        time.sleep(0.1)

        assert report.outcome is SyncOutcome.COMPLETED
        coordinator.expire.assert_not_called()

    def test_cleans_temp_dir_first(self, coordinator, tmp_path):
        stale = tmp_path / 'old.jpg'
        stale.write_bytes(b'old')
        age_file(stale, THREE_DAYS)

        run_background_sync(coordinator, expires_in=5, temp_dir=tmp_path)

        assert not stale.exists()


class TestPeriodicSyncRunner:

    def test_run_once_prunes_orphans_and_records_report(self, coordinator, session_store):
        session_store.cache_path('orphan').write_bytes(b'stale')
        runner = PeriodicSyncRunner(coordinator, interval=60, expires_in=5, session_store=session_store)

        report = runner.run_once()

        assert runner.last_report is report
        assert not session_store.cache_path('orphan').exists()

    def test_loop_runs_until_stopped(self, coordinator):
        ran = threading.Event()

        def start():
            ran.set()
            return SyncReport(outcome=SyncOutcome.COMPLETED)

        coordinator.start.side_effect = start
        runner = PeriodicSyncRunner(coordinator, interval=0.01, expires_in=5)

        runner.start()
        runner.start()
        assert ran.wait(timeout=5)
        runner.stop()
        runner.stop()

        assert not runner.is_running
        coordinator.expire.assert_called_once()

    def test_loop_survives_failing_run(self, coordinator):
        calls = []

        def start():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError('boom')
            return SyncReport(outcome=SyncOutcome.COMPLETED)

        coordinator.start.side_effect = start
        runner = PeriodicSyncRunner(coordinator, interval=0.01, expires_in=5)

        runner.start()
        deadline = time.monotonic() + 5
        while len(calls) < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
        runner.stop()

        assert len(calls) >= 2
        assert runner.last_report.outcome is SyncOutcome.COMPLETED
