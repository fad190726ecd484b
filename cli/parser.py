"""Command parser for CLI input."""

import shlex

from cli.models import (
    CommandRequest,
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


class ParseError(Exception):
    """Raised when command parsing fails."""

    pass


NO_ARGUMENT_COMMANDS = {
    "health": HealthCommand,
    "status": StatusCommand,
    "retry": RetryCommand,
    "unwatch": UnwatchCommand,
    "list": ListCommand,
    "pending": PendingCommand,
}


def parse_command(input_line: str) -> CommandRequest:
    """Parse user input into a CommandRequest object.

    Args:
        input_line: Raw user input from REPL

    Returns:
        CommandRequest object

    Raises:
        ParseError: If command syntax is invalid
    """
    if not input_line.strip():
        raise ParseError("Empty command")

    try:
        tokens = shlex.split(input_line)
    except ValueError as e:
        raise ParseError(f"Invalid syntax: {e}")

    if not tokens:
        raise ParseError("Empty command")

    command_name = tokens[0]
    args = tokens[1:]

    if command_name in NO_ARGUMENT_COMMANDS:
        if args:
            raise ParseError(f"{command_name} takes no arguments")
        return NO_ARGUMENT_COMMANDS[command_name]()
    elif command_name == "configure":
        return _parse_configure(args)
    elif command_name == "source":
        return _parse_source(args)
    elif command_name in ("sync", "sync-again"):
        if args:
            raise ParseError(f"{command_name} takes no arguments")
        return SyncCommand(again=command_name == "sync-again")
    elif command_name in ("enable", "disable"):
        if args:
            raise ParseError(f"{command_name} takes no arguments")
        return ToggleSyncCommand(enabled=command_name == "enable")
    elif command_name == "delete":
        return _parse_delete(args)
    elif command_name in ("download", "thumbnail"):
        return _parse_download(command_name, args)
    elif command_name == "watch":
        return _parse_watch(args)
    else:
        raise ParseError(f"Unknown command: {command_name}")


def _parse_configure(args: list[str]) -> ConfigureCommand:
    """Parse 'configure <host> <api_key>' command."""
    if len(args) != 2:
        raise ParseError("configure requires exactly 2 arguments: <host> <api_key>")

    host, api_key = args
    return ConfigureCommand(host=host, api_key=api_key)


def _parse_source(args: list[str]) -> SourceCommand:
    """Parse 'source <dir>' command."""
    if len(args) != 1:
        raise ParseError("source requires exactly 1 argument: <dir>")

    return SourceCommand(path=args[0])


def _parse_delete(args: list[str]) -> DeleteCommand:
    """Parse 'delete <id>' command."""
    if len(args) != 1:
        raise ParseError("delete requires exactly 1 argument: <id>")

    try:
        record_id = int(args[0])
    except ValueError:
        raise ParseError(f"Record id must be an integer, got '{args[0]}'")

    return DeleteCommand(record_id=record_id)


def _parse_watch(args: list[str]) -> WatchCommand:
    """Parse 'watch [seconds]' command."""
    if len(args) > 1:
        raise ParseError("watch takes at most 1 argument: [seconds]")
    if not args:
        return WatchCommand()

    try:
        interval = float(args[0])
    except ValueError:
        raise ParseError(f"Interval must be a number of seconds, got '{args[0]}'")
    if interval <= 0:
        raise ParseError("Interval must be positive")

    return WatchCommand(interval=interval)


def _parse_download(command_name: str, args: list[str]) -> DownloadCommand:
    """Parse 'download <filekey> <dest>' and 'thumbnail <filekey> <dest>' commands."""
    if len(args) != 2:
        raise ParseError(f"{command_name} requires exactly 2 arguments: <filekey> <dest>")

    filekey, destination = args
    return DownloadCommand(filekey=filekey, destination=destination, thumbnail=command_name == "thumbnail")
