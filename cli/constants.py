"""CLI constants and configuration."""

from prompt_toolkit.styles import Style

COMMANDS = [
    "configure", "source", "health", "sync", "sync-again", "enable", "disable",
    "status", "retry", "list", "pending", "download", "thumbnail", "delete",
    "watch", "unwatch", "clear", "exit", "help",
]

STYLE = Style.from_dict(
    {
        "prompt": "#2FA84F bold",
        "command": "#0088ff bold",
    }
)

GREEN = "\033[38;2;47;168;79m"
RESET = "\033[0m"

LOGO = f"""{GREEN}
 ██████╗ ██╗  ██╗ ██████╗ ████████╗ ██████╗ ███████╗██╗   ██╗███╗   ██╗ ██████╗
 ██╔══██╗██║  ██║██╔═══██╗╚══██╔══╝██╔═══██╗██╔════╝╚██╗ ██╔╝████╗  ██║██╔════╝
 ██████╔╝███████║██║   ██║   ██║   ██║   ██║███████╗ ╚████╔╝ ██╔██╗ ██║██║
 ██╔═══╝ ██╔══██║██║   ██║   ██║   ██║   ██║╚════██║  ╚██╔╝  ██║╚██╗██║██║
 ██║     ██║  ██║╚██████╔╝   ██║   ╚██████╔╝███████║   ██║   ██║ ╚████║╚██████╗
 ╚═╝     ╚═╝  ╚═╝ ╚═════╝    ╚═╝    ╚═════╝ ╚══════╝   ╚═╝   ╚═╝  ╚═══╝ ╚═════╝
{RESET}"""

WELCOME_TITLE = "photosync - background photo backup"
WELCOME_HELP = "Type 'help' for commands or 'exit' to quit.\n"

PROMPT_TEXT = "photosync> "

SETUP_HINT = "No server configured yet. Start with: configure <host> <api_key>, then source <dir> and enable."

TOOLBAR_REFRESH_SECONDS = 1.0

PENDING_LIST_LIMIT = 20

HELP_TEXT = """Available commands:
  configure <host> <api_key>    Set server URL and API key (failed uploads for the old server are dropped)
  source <dir>                  Set the local media folder to back up
  health                        Check that the server is reachable and accepts the key
  sync                          Upload media newer than the last synced date
  sync-again                    Rescan everything from the beginning (server copies are skipped)
  enable                        Enable syncing
  disable                       Disable syncing (stops a running sync after the current item)
  status                        Show sync state, watermark and upload progress
  retry                         Resume failed uploads for the current server
  list                          List files stored on the server with their labels
  pending                       Show local media that has not been synced yet
  download <filekey> <dest>     Download a stored file to a file or folder
  thumbnail <filekey> <dest>    Download the preview of a stored file
  delete <id>                   Delete a stored file by its record id
  watch [seconds]               Sync periodically in the background
  unwatch                       Stop periodic syncing
  clear                         Clear screen and redisplay welcome message
  help                          Show this help
  exit                          Exit REPL

Examples:
  configure https://photos.example.com 3f1c0e8a-key
  source ~/Pictures
  enable
  sync
  download 9b2f0c ~/Downloads
  watch 600"""
