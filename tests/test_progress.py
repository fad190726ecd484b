"""Tests for ProgressTracker."""

from unittest.mock import patch

import pytest

from common.kv_store import JsonKeyValueStore
from syncer.progress import DOWNLOADS, UPLOADS, ProgressTracker


class TestTracking:
    """Tests for record lifecycle and bounds."""

    def test_start_then_update(self, progress):
        progress.start('a')
        progress.update('a', 0.4)

        record = progress.get('a')
        assert record.rate == 0.4
        assert record.start_time.tzinfo is not None

    def test_update_without_start_is_ignored(self, progress):
        progress.update('x', 0.5)

        assert progress.get('x') is None
        assert progress.size() == 0

    def test_complete_without_start_is_ignored(self, progress):
        progress.complete('x')
        assert progress.is_empty()

    @pytest.mark.parametrize('rate,expected', [
        (-0.5, 0.0),
        (1.7, 1.0),
        (float('nan'), 0.0),
        (0.25, 0.25),
    ])
    def test_rate_is_clamped(self, progress, rate, expected):
        progress.start('a')
        progress.update('a', rate)
        assert progress.get_rate('a') == expected

    def test_restart_resets_rate(self, progress):
        progress.start('a')
        progress.update('a', 0.9)
        progress.start('a')
        assert progress.get_rate('a') == 0.0

    def test_remove_and_clear(self, progress):
        progress.start('a')
        progress.start('b')

        progress.remove('a')
        assert progress.keys() == ['b']

        progress.clear()
        assert progress.is_empty()

    def test_missing_record_accessors(self, progress):
        assert progress.get_rate('nope') == 0.0
        assert progress.get_start_time('nope') is None


class TestAggregates:
    """Tests for the aggregate rates and summary."""

    def test_empty_tracker(self, progress):
        assert progress.completed_rate() == 0.0
        assert progress.partially_completed_rate() == 0.0
        assert progress.overall_rate() == 1.0
        assert progress.summary() == '0'

    def test_mixed_records(self, progress):
        for item_id in ('a', 'b', 'c', 'd'):
            progress.start(item_id)
        progress.complete('a')
        progress.complete('b')
        progress.update('c', 0.5)

        assert progress.completed_rate() == 0.5
        assert progress.partially_completed_rate() == pytest.approx(0.125)
        assert progress.overall_rate() == pytest.approx(0.625)
        assert progress.summary() == '2 / 4'

    def test_all_done_summary(self, progress):
        progress.start('a')
        progress.complete('a')
        assert progress.summary() == '1'


class TestPersistence:
    """Tests for persisting and restoring progress."""

    def test_state_survives_restart(self, kv_store):
        tracker = ProgressTracker(kv_store, UPLOADS)
        tracker.start('a')
        tracker.update('a', 0.3)
        start_time = tracker.get_start_time('a')

        restored = ProgressTracker(JsonKeyValueStore(kv_store.path), UPLOADS)

        assert restored.get_rate('a') == 0.3
        assert restored.get_start_time('a') == start_time

    def test_trackers_are_namespaced(self, kv_store):
        ProgressTracker(kv_store, UPLOADS).start('a')

        downloads = ProgressTracker(kv_store, DOWNLOADS)

        assert downloads.is_empty()
        assert set(kv_store.keys()) == {'progress_uploads'}

    def test_corrupted_state_yields_empty_tracker(self, kv_store):
        kv_store.set('progress_uploads', ['not', 'a', 'map'])
        assert ProgressTracker(kv_store, UPLOADS).is_empty()

    def test_corrupted_entries_are_skipped(self, kv_store):
        kv_store.set('progress_uploads', {
            'good': {'rate': 0.5, 'start_time': '2024-01-01T00:00:00+00:00'},
            'no-time': {'rate': 0.5},
            'bad-rate': {'rate': 'fast', 'start_time': '2024-01-01T00:00:00+00:00'},
            'not-a-dict': 3,
        })

        tracker = ProgressTracker(kv_store, UPLOADS)

        assert tracker.keys() == ['good']

    def test_debounced_updates_flushed_by_save(self, kv_store):
        tracker = ProgressTracker(kv_store, UPLOADS, persist_interval=60)
        tracker.start('a')

        with patch.object(kv_store, 'set', wraps=kv_store.set) as mock_set:
            tracker.update('a', 0.2)
            tracker.update('a', 0.4)
            mock_set.assert_not_called()

            tracker.save()
            mock_set.assert_called_once()

        assert kv_store.get('progress_uploads')['a']['rate'] == 0.4

    def test_completion_is_never_debounced(self, kv_store):
        tracker = ProgressTracker(kv_store, UPLOADS, persist_interval=60)
        tracker.start('a')
        tracker.update('a', 0.2)

        tracker.complete('a')

        assert kv_store.get('progress_uploads')['a']['rate'] == 1.0
