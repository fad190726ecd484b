"""Custom completer for the photosync CLI with directory autocompletion."""

from pathlib import Path
from typing import Iterable

from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from cli.constants import COMMANDS


class PhotoSyncCompleter(Completer):
    """
    Custom completer that provides:
    - Command name completion for the first token
    - Directory completion for the 'source' command
    """

    def get_completions(
        self, document: Document, complete_event
    ) -> Iterable[Completion]:
        text = document.text_before_cursor
        tokens = text.split()

        is_typing_new_token = text.endswith(" ") or not tokens

        if not tokens or (len(tokens) == 1 and not is_typing_new_token):
            yield from self._complete_commands(tokens[0] if tokens else "")
            return

        if tokens[0].lower() != "source" or len(tokens) > 2 or (len(tokens) == 2 and is_typing_new_token):
            return

        current_word = "" if is_typing_new_token else tokens[-1]
        yield from self._complete_directories(current_word)

    def _complete_commands(self, partial: str) -> Iterable[Completion]:
        """Complete command names matching the partial input."""
        partial_lower = partial.lower()
        for cmd in COMMANDS:
            if cmd.startswith(partial_lower):
                yield Completion(cmd, start_position=-len(partial))

    def _complete_directories(self, partial: str) -> Iterable[Completion]:
        """
        Complete directory paths, relative to the working directory unless
        the partial input is absolute or starts with '~'.

        Hidden directories are only offered once a '.' has been typed.
        """
        typed_dir, _, name_prefix = partial.rpartition("/")
        if partial.endswith("/"):
            typed_dir, name_prefix = partial.rstrip("/") or "/", ""

        if not typed_dir and partial.startswith("/"):
            typed_dir = "/"
        base = Path.cwd() / Path(typed_dir).expanduser()
        if not base.is_dir():
            return

        try:
            entries = sorted(base.iterdir())
        except OSError:
            return

        for entry in entries:
            if not entry.is_dir() or not entry.name.startswith(name_prefix):
                continue
            if entry.name.startswith(".") and not name_prefix.startswith("."):
                continue
            prefix = "" if not typed_dir else ("/" if typed_dir == "/" else typed_dir + "/")
            yield Completion(f"{prefix}{entry.name}/", start_position=-len(partial))
