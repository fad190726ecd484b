"""Persisted sync settings: the enabled flag and the creation-time watermark."""

import threading
from datetime import datetime

from common.constants import EPOCH
from common.kv_store import JsonKeyValueStore
from common.logging_config import get_logger
from common.utils import ensure_utc, parse_iso, to_iso

logger = get_logger(__name__)

SYNC_ENABLED_KEY = "sync_enabled"
WATERMARK_KEY = "last_synced_at"


class SyncSettings:
    """
    Single-writer settings shared between the coordinator and the CLI.

    Only user actions call ``set_enabled``; only the coordinator moves the
    watermark. Watermark writes never go backwards except through
    ``reset_watermark``.
    """

    def __init__(self, store: JsonKeyValueStore):
        self._store = store
        self._lock = threading.Lock()

    def is_enabled(self) -> bool:
        return self._store.get(SYNC_ENABLED_KEY, False) is True

    def set_enabled(self, enabled: bool) -> None:
        self._store.set(SYNC_ENABLED_KEY, bool(enabled))
        logger.info(f"Sync {'enabled' if enabled else 'disabled'}")

    def get_watermark(self) -> datetime:
        """Persisted watermark, or the epoch when unset or unreadable."""
        raw = self._store.get(WATERMARK_KEY)
        if raw is None:
            return EPOCH
        value = parse_iso(raw)
        if value is None:
            logger.warning(f"Ignoring unreadable watermark {raw!r}, falling back to epoch")
            return EPOCH
        return value

    def set_watermark(self, value: datetime) -> datetime:
        """
        Advance the watermark.

        Args:
            value: Candidate watermark

        Returns:
            The watermark actually stored (never lower than before)
        """
        with self._lock:
            current = self.get_watermark()
            new_value = max(current, ensure_utc(value))
            if new_value != current or self._store.get(WATERMARK_KEY) is None:
                self._store.set(WATERMARK_KEY, to_iso(new_value))
            return new_value

    def reset_watermark(self) -> None:
        with self._lock:
            self._store.set(WATERMARK_KEY, to_iso(EPOCH))
        logger.info("Watermark reset to epoch")
