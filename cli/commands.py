"""Command handler functions for CLI operations."""

from common.logging_config import get_logger
from cli.app import SyncApp
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
from cli.constants import PENDING_LIST_LIMIT
from cli.utils import format_file_size, format_progress_bar
from syncer.coordinator import SyncOutcome, SyncReport

logger = get_logger(__name__)

NOT_CONFIGURED = "Error: Server not configured. Use 'configure <host> <api_key>' first."
NO_SOURCE = "Error: Media folder not set. Use 'source <dir>' first."


def handle_configure(cmd: ConfigureCommand, app: SyncApp) -> str:
    """
    Handle 'configure' command.

    Args:
        cmd: ConfigureCommand with host and api_key
        app: Running application services

    Returns:
        Success or error message
    """
    try:
        retried, cancelled = app.configure(cmd.host, cmd.api_key)
    except ValueError as e:
        return f"Error: {e}"

    lines = [f"Configured server {app.config.get_server_host()}"]
    if retried:
        lines.append(f"Resumed {len(retried)} failed upload(s)")
    if cancelled:
        lines.append(f"Dropped {len(cancelled)} upload(s) created for another server or key")
    return "\n".join(lines)


def handle_source(cmd: SourceCommand, app: SyncApp) -> str:
    try:
        folder = app.set_source(cmd.path)
    except ValueError as e:
        return f"Error: {e}"
    return f"Media folder set to {folder}"


def handle_health(cmd: HealthCommand, app: SyncApp) -> str:
    if app.catalog is None:
        return NOT_CONFIGURED
    if app.catalog.health_check():
        return f"Server {app.catalog.server_host} is reachable"
    return f"Error: Server {app.catalog.server_host} is unreachable or rejected the API key"


def format_report(report: SyncReport) -> str:
    """
    Summarize a sync run for the terminal.

    Args:
        report: Report returned by the coordinator

    Returns:
        Multi-line summary
    """
    if report.outcome is SyncOutcome.ALREADY_RUNNING:
        return "A sync is already running"
    if report.outcome is SyncOutcome.DISABLED and not report.batches:
        return "Sync is disabled. Use 'enable' first."
    if report.outcome is SyncOutcome.UNAUTHORIZED:
        return "Error: Media folder is missing or unreadable"

    lines = [
        f"Sync {report.outcome.value}: {len(report.enqueued)} queued, "
        f"{len(report.skipped)} already on server, {len(report.unresolved)} unreadable"
    ]
    if report.deferred:
        lines.append(f"Stopped at {report.deferred[:12]}: server lookup failed, will retry next sync")
    if report.watermark is not None:
        lines.append(f"Synced up to {report.watermark.isoformat()}")
    return "\n".join(lines)


def handle_sync(cmd: SyncCommand, app: SyncApp) -> str:
    """
    Handle 'sync' and 'sync-again' commands.

    Args:
        cmd: SyncCommand; ``again`` rescans from the epoch
        app: Running application services

    Returns:
        Run summary or error message
    """
    if app.transport is None:
        return NOT_CONFIGURED
    if app.coordinator is None:
        return NO_SOURCE

    logger.info(f"Executing sync command (again={cmd.again})")
    report = app.coordinator.start_again() if cmd.again else app.coordinator.start()
    return format_report(report)


def handle_toggle(cmd: ToggleSyncCommand, app: SyncApp) -> str:
    app.settings.set_enabled(cmd.enabled)
    return "Sync enabled" if cmd.enabled else "Sync disabled"


def handle_status(cmd: StatusCommand, app: SyncApp) -> str:
    """
    Handle 'status' command.

    Returns:
        Multi-line status report
    """
    lines = [
        f"Server:      {app.config.get_server_host() or '(not configured)'}",
        f"Media:       {app.config.get_source_dir() or '(not set)'}",
        f"Sync:        {'enabled' if app.settings.is_enabled() else 'disabled'}",
        f"Synced to:   {app.settings.get_watermark().isoformat()}",
    ]
    if app.coordinator is not None:
        lines.append(f"State:       {app.coordinator.state.value}")
    lines.append(f"Watching:    {'yes' if app.runner is not None and app.runner.is_running else 'no'}")
    lines.append(f"Uploads:     {app.uploads.summary()} {format_progress_bar(app.uploads.overall_rate())}")
    if not app.downloads.is_empty():
        lines.append(f"Downloads:   {app.downloads.summary()} {format_progress_bar(app.downloads.overall_rate())}")

    if app.transport is not None:
        lines.append(
            f"Remaining:   {app.transport.remaining_uploads()} "
            f"(failed: {len(app.transport.failed_sessions())})"
        )
        for session in app.transport.sessions():
            lines.append(
                f"  {session.status.value:<9} {session.filename} "
                f"{format_file_size(session.bytes_uploaded)} / {format_file_size(session.total_bytes)}"
            )
    return "\n".join(lines)


def handle_retry(cmd: RetryCommand, app: SyncApp) -> str:
    if app.transport is None:
        return NOT_CONFIGURED
    retried, cancelled = app.transport.retry_failed_uploads()
    if not retried and not cancelled:
        return "No failed uploads"
    return f"Retried {len(retried)} upload(s), dropped {len(cancelled)}"


def handle_delete(cmd: DeleteCommand, app: SyncApp) -> str:
    """
    Handle 'delete' command.

    Args:
        cmd: DeleteCommand with record_id
        app: Running application services

    Returns:
        Success or error message
    """
    if app.catalog is None:
        return NOT_CONFIGURED

    status_code, message = app.catalog.delete_record(cmd.record_id)
    if 200 <= status_code < 300:
        return f"Deleted record {cmd.record_id}: {message}"
    if status_code == 0:
        return f"Error: Could not reach server: {message}"
    return f"Error: Delete failed ({status_code}): {message}"


def handle_list(cmd: ListCommand, app: SyncApp) -> str:
    """
    Handle 'list' command.

    Returns:
        One line per stored file, with its labels when it has any
    """
    if app.catalog is None:
        return NOT_CONFIGURED

    records = app.catalog.list_records()
    if not records:
        return "No files on the server"

    labels = app.catalog.list_labels()
    lines = []
    for record in records:
        line = (
            f"{record.id:>6}  {record.filekey or '-':<16} {record.filename} "
            f"({record.mime_type}, {format_file_size(record.filesize)})"
        )
        if labels.get(record.id):
            line += f" [{', '.join(labels[record.id])}]"
        lines.append(line)
    lines.append(f"{len(records)} file(s)")
    return "\n".join(lines)


def handle_pending(cmd: PendingCommand, app: SyncApp) -> str:
    try:
        items = app.pending_items(PENDING_LIST_LIMIT)
    except ValueError as e:
        return f"Error: {e}"
    if not items:
        return "Everything is synced"

    lines = [f"{len(items)} item(s) waiting to sync (oldest first):"]
    for item in items:
        lines.append(f"  {item.descriptor.created_at.isoformat()}  {item.filename} ({item.mime_type})")
    return "\n".join(lines)


def handle_download(cmd: DownloadCommand, app: SyncApp) -> str:
    if app.catalog is None:
        return NOT_CONFIGURED
    try:
        target = app.download(cmd.filekey, cmd.destination, thumbnail=cmd.thumbnail)
    except (ValueError, OSError) as e:
        return f"Error: {e}"
    return f"Saved {'preview' if cmd.thumbnail else 'file'} to {target}"


def handle_watch(cmd: WatchCommand, app: SyncApp) -> str:
    try:
        runner = app.start_watch(cmd.interval)
    except ValueError as e:
        return f"Error: {e}"
    return f"Syncing every {runner.interval:g}s in the background"


def handle_unwatch(cmd: UnwatchCommand, app: SyncApp) -> str:
    if app.stop_watch():
        return "Background sync stopped"
    return "Background sync is not running"
