"""Command request data types for CLI."""

from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True)
class ConfigureCommand:
    """Point the app at a server and API key."""

    host: str
    api_key: str
    command: Literal["configure"] = "configure"


@dataclass(frozen=True)
class SourceCommand:
    """Choose the local media folder."""

    path: str
    command: Literal["source"] = "source"


@dataclass(frozen=True)
class HealthCommand:
    command: Literal["health"] = "health"


@dataclass(frozen=True)
class SyncCommand:
    """Run a sync now; ``again`` rescans from the epoch."""

    again: bool = False
    command: Literal["sync"] = "sync"


@dataclass(frozen=True)
class ToggleSyncCommand:
    """Enable or disable syncing."""

    enabled: bool
    command: Literal["toggle"] = "toggle"


@dataclass(frozen=True)
class StatusCommand:
    command: Literal["status"] = "status"


@dataclass(frozen=True)
class RetryCommand:
    """Resume failed uploads for the current server."""

    command: Literal["retry"] = "retry"


@dataclass(frozen=True)
class DeleteCommand:
    """Delete a stored file by record id."""

    record_id: int
    command: Literal["delete"] = "delete"


@dataclass(frozen=True)
class ListCommand:
    """List the files stored on the server."""

    command: Literal["list"] = "list"


@dataclass(frozen=True)
class PendingCommand:
    """Show local media not yet synced."""

    command: Literal["pending"] = "pending"


@dataclass(frozen=True)
class DownloadCommand:
    """Fetch a stored file, or its preview when ``thumbnail`` is set."""

    filekey: str
    destination: str
    thumbnail: bool = False
    command: Literal["download"] = "download"


@dataclass(frozen=True)
class WatchCommand:
    """Start periodic background syncs."""

    interval: float | None = None
    command: Literal["watch"] = "watch"


@dataclass(frozen=True)
class UnwatchCommand:
    command: Literal["unwatch"] = "unwatch"


CommandRequest = (
    ConfigureCommand
    | SourceCommand
    | HealthCommand
    | SyncCommand
    | ToggleSyncCommand
    | StatusCommand
    | RetryCommand
    | DeleteCommand
    | ListCommand
    | PendingCommand
    | DownloadCommand
    | WatchCommand
    | UnwatchCommand
)
