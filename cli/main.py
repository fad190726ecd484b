"""CLI entry point."""

import sys
import os
from pathlib import Path

from common.logging_config import setup_logging
from cli.app import SyncApp
from cli.config import Config
from cli.repl import repl_loop

CONFIG_PATH = Path.home() / '.photosync' / 'config.json'


def main() -> None:
    """Entry point for CLI."""
    log_level = 'DEBUG' if '--debug' in sys.argv else os.getenv('LOG_LEVEL', 'INFO')

    logger = setup_logging('cli', log_level=log_level)

    if '--debug' in sys.argv:
        logger.info("Debug logging enabled")
        sys.argv.remove('--debug')

    logger.info("CLI starting...")
    app = SyncApp(Config(CONFIG_PATH))
    try:
        repl_loop(app)
    except Exception as e:
        logger.error(f"CLI error: {e}", exc_info=True)
        raise
    finally:
        app.close()
        logger.info("CLI exiting")


if __name__ == "__main__":
    main()
