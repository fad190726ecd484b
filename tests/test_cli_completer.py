"""Tests for PhotoSyncCompleter."""

import pytest
from pathlib import Path
from unittest.mock import patch

from prompt_toolkit.document import Document

from cli.completer import PhotoSyncCompleter
from cli.constants import COMMANDS


@pytest.fixture
def completer():
    """Create a PhotoSyncCompleter instance."""
    return PhotoSyncCompleter()


@pytest.fixture
def media_root(tmp_path):
    """
    Create a temporary working directory with media folders.

    Returns:
        Path used as the working directory
    """
    (tmp_path / "photos" / "summer").mkdir(parents=True)
    (tmp_path / "photos" / "winter").mkdir()
    (tmp_path / "pictures").mkdir()
    (tmp_path / ".cache").mkdir()
    (tmp_path / "notes.txt").write_text("content")
    return tmp_path


def get_completions_list(completer, text):
    """Helper to get list of completion texts from completer."""
    doc = Document(text, len(text))
    return [c.text for c in completer.get_completions(doc, None)]


class TestCommandCompletion:
    """Tests for command name completion."""

    def test_empty_input_shows_all_commands(self, completer):
        """Empty input should suggest all commands."""
        completions = get_completions_list(completer, "")
        for cmd in COMMANDS:
            assert cmd in completions

    def test_partial_command_filters(self, completer):
        """Partial command should filter to matching commands."""
        completions = get_completions_list(completer, "sy")
        assert completions == ["sync", "sync-again"]

    def test_command_completion_case_insensitive(self, completer):
        """Command completion should be case insensitive."""
        completions = get_completions_list(completer, "UN")
        assert completions == ["unwatch"]


class TestDirectoryCompletion:
    """Tests for directory completion in the source command."""

    def test_source_lists_directories_only(self, completer, media_root):
        """After 'source ', should show visible directories of the working directory."""
        with patch.object(Path, "cwd", return_value=media_root):
            completions = get_completions_list(completer, "source ")
        assert completions == ["photos/", "pictures/"]

    def test_partial_name_filters(self, completer, media_root):
        """Partial name should filter matching directories."""
        with patch.object(Path, "cwd", return_value=media_root):
            completions = get_completions_list(completer, "source pho")
        assert completions == ["photos/"]

    def test_descends_into_typed_directory(self, completer, media_root):
        """Trailing slash should list subdirectories."""
        with patch.object(Path, "cwd", return_value=media_root):
            completions = get_completions_list(completer, "source photos/")
        assert completions == ["photos/summer/", "photos/winter/"]

    def test_hidden_directories_need_dot(self, completer, media_root):
        """Hidden directories are only offered once a '.' is typed."""
        with patch.object(Path, "cwd", return_value=media_root):
            assert ".cache/" not in get_completions_list(completer, "source ")
            assert get_completions_list(completer, "source .") == [".cache/"]

    def test_absolute_path(self, completer, media_root):
        """Absolute paths are completed from the filesystem root."""
        completions = get_completions_list(completer, f"source {media_root}/photos/s")
        assert completions == [f"{media_root}/photos/summer/"]

    def test_missing_directory(self, completer, media_root):
        """Unknown directories yield no completions."""
        with patch.object(Path, "cwd", return_value=media_root):
            assert get_completions_list(completer, "source nowhere/") == []

    def test_other_commands_no_directory_completion(self, completer, media_root):
        """Non-source commands should not trigger directory completion."""
        with patch.object(Path, "cwd", return_value=media_root):
            assert get_completions_list(completer, "delete ") == []
            assert get_completions_list(completer, "source photos ") == []
