"""
Background wake-ups: time-boxed sync runs and temporary file cleanup.
"""

import threading
import time
from pathlib import Path
from typing import Optional

from common.constants import (
    DEFAULT_BACKGROUND_EXPIRES_IN_SECONDS,
    DEFAULT_BACKGROUND_INTERVAL_SECONDS,
    TEMP_FILE_MAX_AGE_DAYS,
)
from common.logging_config import get_logger
from syncer.coordinator import SyncCoordinator, SyncReport
from uploader.session_store import SessionStore

logger = get_logger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def clean_temporary_directory(path: Path, older_than_days: float = TEMP_FILE_MAX_AGE_DAYS) -> int:
    """
    Delete files in ``path`` (recursively) not modified for ``older_than_days``.

    Args:
        path: Temporary directory; a missing directory is not an error
        older_than_days: Minimum age of deleted files

    Returns:
        Number of files removed
    """
    root = Path(path)
    if not root.is_dir():
        return 0

    cutoff = time.time() - older_than_days * SECONDS_PER_DAY
    removed = 0
    for entry in root.rglob("*"):
        try:
            if entry.is_file() and entry.stat().st_mtime < cutoff:
                entry.unlink()
                removed += 1
        except OSError as e:
            logger.warning(f"Could not remove temporary file {entry}: {e}")

    if removed:
        logger.info(f"Removed {removed} stale temporary file(s) from {root}")
    return removed


def run_background_sync(
    coordinator: SyncCoordinator,
    expires_in: float = DEFAULT_BACKGROUND_EXPIRES_IN_SECONDS,
    temp_dir: Optional[Path] = None,
) -> SyncReport:
    """
    Run one sync bounded by an execution budget.

    A timer calls ``coordinator.expire()`` when the budget runs out; the run
    then stops before its next asset or batch.

    Args:
        coordinator: Coordinator to run
        expires_in: Budget in seconds
        temp_dir: Temporary directory to clean before syncing

    Returns:
        Report of the run
    """
    if temp_dir is not None:
        clean_temporary_directory(temp_dir)

    timer = threading.Timer(expires_in, coordinator.expire)
    timer.daemon = True
    timer.start()
    try:
        return coordinator.start()
    finally:
        timer.cancel()


class PeriodicSyncRunner:
    """
    Daemon thread that triggers a background sync every ``interval`` seconds.

    start() and stop() are idempotent.
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        interval: float = DEFAULT_BACKGROUND_INTERVAL_SECONDS,
        expires_in: float = DEFAULT_BACKGROUND_EXPIRES_IN_SECONDS,
        temp_dir: Optional[Path] = None,
        session_store: Optional[SessionStore] = None,
    ):
        self.coordinator = coordinator
        self.interval = interval
        self.expires_in = expires_in
        self.temp_dir = temp_dir
        self.session_store = session_store
        self.last_report: Optional[SyncReport] = None

        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._thread_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._thread_lock:
            if self.is_running:
                return
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._loop, daemon=True, name="PeriodicSync")
            self._thread.start()
        logger.info(f"Periodic sync started [interval={self.interval}s]")

    def stop(self) -> None:
        """Stop the loop and cut short a run in progress."""
        with self._thread_lock:
            if not self.is_running:
                return
            self._stop_event.set()
            self.coordinator.expire()
            self._thread.join(timeout=5.0)
        logger.info("Periodic sync stopped")

    def run_once(self) -> SyncReport:
        if self.session_store is not None:
            self.session_store.prune_orphans()
        self.last_report = run_background_sync(self.coordinator, self.expires_in, self.temp_dir)
        return self.last_report

    def _loop(self) -> None:
        while not self._stop_event.wait(timeout=self.interval):
            try:
                self.run_once()
            except Exception as e:
                logger.error(f"Error in periodic sync: {e}", exc_info=True)
