"""Tests for JsonKeyValueStore."""

import json

from common.kv_store import JsonKeyValueStore


class TestJsonKeyValueStore:
    """Tests for persistence and corruption handling."""

    def test_missing_file_starts_empty(self, tmp_path):
        store = JsonKeyValueStore(tmp_path / 'state.json')

        assert store.keys() == []
        assert store.get('anything', 'default') == 'default'
        assert not (tmp_path / 'state.json').exists()

    def test_values_persist_across_instances(self, tmp_path):
        path = tmp_path / 'nested' / 'state.json'
        JsonKeyValueStore(path).set('answer', {'value': 42})

        assert JsonKeyValueStore(path).get('answer') == {'value': 42}
        assert json.loads(path.read_text()) == {'answer': {'value': 42}}

    def test_delete(self, tmp_path):
        store = JsonKeyValueStore(tmp_path / 'state.json')
        store.set('a', 1)

        assert store.delete('a') is True
        assert store.delete('a') is False
        assert JsonKeyValueStore(tmp_path / 'state.json').keys() == []

    def test_corrupted_file_is_backed_up(self, tmp_path):
        path = tmp_path / 'state.json'
        path.write_text('{"a": 1')

        store = JsonKeyValueStore(path)

        assert store.keys() == []
        assert (tmp_path / 'state.json.bak').read_text() == '{"a": 1'

    def test_non_object_document_is_ignored(self, tmp_path):
        path = tmp_path / 'state.json'
        path.write_text('[1, 2, 3]')

        assert JsonKeyValueStore(path).keys() == []

    def test_unserializable_value_keeps_memory_state(self, tmp_path):
        path = tmp_path / 'state.json'
        store = JsonKeyValueStore(path)
        store.set('ok', 1)

        store.set('bad', object())

        assert store.get('ok') == 1
        assert json.loads(path.read_text()) == {'ok': 1}
        assert list(tmp_path.glob('*.tmp')) == []
