"""REPL with prompt_toolkit for user interaction."""

import os
import sys
from prompt_toolkit import PromptSession
from prompt_toolkit.history import InMemoryHistory

from cli.app import SyncApp
from cli.commands import (
    handle_configure,
    handle_delete,
    handle_download,
    handle_health,
    handle_list,
    handle_pending,
    handle_retry,
    handle_source,
    handle_status,
    handle_sync,
    handle_toggle,
    handle_unwatch,
    handle_watch,
)
from cli.completer import PhotoSyncCompleter
from cli.constants import (
    HELP_TEXT,
    LOGO,
    PROMPT_TEXT,
    SETUP_HINT,
    STYLE,
    TOOLBAR_REFRESH_SECONDS,
    WELCOME_HELP,
    WELCOME_TITLE,
)
from cli.models import (
    ConfigureCommand,
    DeleteCommand,
    DownloadCommand,
    HealthCommand,
    ListCommand,
    PendingCommand,
    RetryCommand,
    SourceCommand,
    StatusCommand,
    SyncCommand,
    ToggleSyncCommand,
    UnwatchCommand,
    WatchCommand,
)
from cli.parser import ParseError, parse_command


def clear_screen() -> None:
    """Clear the terminal screen (cross-platform)."""
    if sys.platform == "win32":
        os.system("cls")
    else:
        os.system("clear")


def show_logo() -> None:
    """Display photosync logo with ANSI colors."""
    print(LOGO)


HANDLERS = {
    ConfigureCommand: handle_configure,
    SourceCommand: handle_source,
    HealthCommand: handle_health,
    SyncCommand: handle_sync,
    ToggleSyncCommand: handle_toggle,
    StatusCommand: handle_status,
    RetryCommand: handle_retry,
    DeleteCommand: handle_delete,
    ListCommand: handle_list,
    PendingCommand: handle_pending,
    DownloadCommand: handle_download,
    WatchCommand: handle_watch,
    UnwatchCommand: handle_unwatch,
}


def dispatch_command(cmd_obj, app: SyncApp) -> str:
    """Dispatch parsed command to appropriate handler."""
    handler = HANDLERS.get(type(cmd_obj))
    if handler is None:
        return f"Unknown command type: {type(cmd_obj)}"
    return handler(cmd_obj, app)


def show_welcome(app: SyncApp) -> None:
    clear_screen()
    show_logo()
    print(WELCOME_TITLE)
    if not app.is_configured:
        print(SETUP_HINT)
    print(WELCOME_HELP)


def bottom_toolbar(app: SyncApp) -> str:
    """One-line transfer summary shown under the prompt."""
    state = app.coordinator.state.value if app.coordinator is not None else "idle"
    parts = [state]
    if app.uploads.is_empty():
        parts.append("no uploads")
    else:
        parts.append(f"uploads {app.uploads.summary()} ({app.uploads.overall_rate() * 100:.0f}%)")
    if not app.downloads.is_empty():
        parts.append(f"downloads {app.downloads.summary()} ({app.downloads.overall_rate() * 100:.0f}%)")
    return " " + " | ".join(parts)


def repl_loop(app: SyncApp) -> None:
    """Run the interactive prompt until 'exit' or EOF."""
    session: PromptSession = PromptSession(
        completer=PhotoSyncCompleter(),
        history=InMemoryHistory(),
        style=STYLE,
        bottom_toolbar=lambda: bottom_toolbar(app),
        refresh_interval=TOOLBAR_REFRESH_SECONDS,
    )

    show_welcome(app)

    while True:
        try:
            line = session.prompt([("class:prompt", PROMPT_TEXT)]).strip()
        except KeyboardInterrupt:
            continue
        except EOFError:
            print("\nGoodbye!")
            break

        if not line:
            continue
        if line == "exit":
            print("Goodbye!")
            break
        if line == "help":
            print(HELP_TEXT)
            continue
        if line == "clear":
            show_welcome(app)
            continue

        try:
            print(dispatch_command(parse_command(line), app))
        except ParseError as e:
            print(f"Error: {e}")
