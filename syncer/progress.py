"""
Per-item progress tracking (uploads and downloads).

A tracker maps an item id to ``(rate, start_time)``. Records are created
only by ``start``; updates and completions for unknown ids are ignored so
late callbacks from cancelled transfers never resurrect an entry.
"""

import math
import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, List, Optional

from common.kv_store import JsonKeyValueStore
from common.logging_config import get_logger
from common.utils import parse_iso, to_iso, utcnow

logger = get_logger(__name__)

UPLOADS = "uploads"
DOWNLOADS = "downloads"


@dataclass(frozen=True)
class ProgressRecord:
    """
    Progress of one item.

    Attributes:
        id: Item id (stable id for uploads, filekey for downloads)
        rate: Completion fraction in [0, 1]
        start_time: When tracking started, timezone-aware UTC
    """
    id: str
    rate: float
    start_time: datetime


def _clamp(rate: float) -> float:
    value = float(rate)
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


class ProgressTracker:
    """
    Thread-safe, persisted progress map.

    State lives in a ``JsonKeyValueStore`` under ``progress_<name>``. Every
    mutation is written through; ``update`` can be debounced with
    ``persist_interval`` because transports call it once per chunk.
    """

    def __init__(self, store: JsonKeyValueStore, name: str, persist_interval: float = 0.0):
        """
        Initialize tracker and restore any persisted records.

        Args:
            store: Backing key-value store
            name: Tracker name ("uploads", "downloads")
            persist_interval: Minimum seconds between writes caused by update()
        """
        self.name = name
        self._store = store
        self._key = f"progress_{name}"
        self._persist_interval = persist_interval
        self._lock = threading.RLock()
        self._last_persist = 0.0
        self._dirty = False
        self._records: Dict[str, ProgressRecord] = self._restore()

    def _restore(self) -> Dict[str, ProgressRecord]:
        raw = self._store.get(self._key)
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            logger.warning(f"Discarding corrupted {self.name} progress state ({type(raw).__name__})")
            return {}

        records = {}
        for item_id, entry in raw.items():
            start_time = parse_iso(entry.get("start_time")) if isinstance(entry, dict) else None
            if start_time is None:
                logger.warning(f"Discarding corrupted {self.name} progress entry for {item_id}")
                continue
            try:
                rate = _clamp(entry.get("rate", 0.0))
            except (TypeError, ValueError):
                logger.warning(f"Discarding {self.name} progress entry for {item_id}: bad rate")
                continue
            records[item_id] = ProgressRecord(item_id, rate, start_time)

        logger.debug(f"Restored {len(records)} {self.name} progress record(s)")
        return records

    def _persist(self, force: bool = True) -> None:
        now = time.monotonic()
        if not force and self._persist_interval > 0 and now - self._last_persist < self._persist_interval:
            self._dirty = True
            return
        snapshot = {
            item_id: {"rate": record.rate, "start_time": to_iso(record.start_time)}
            for item_id, record in self._records.items()
        }
        self._store.set(self._key, snapshot)
        self._last_persist = now
        self._dirty = False

    def save(self) -> None:
        """Force pending debounced updates to disk."""
        with self._lock:
            self._persist()

    def start(self, item_id: str) -> None:
        """Begin tracking an item at rate 0 (restarts an existing record)."""
        with self._lock:
            self._records[item_id] = ProgressRecord(item_id, 0.0, utcnow())
            self._persist()

    def update(self, item_id: str, rate: float) -> None:
        """Set the rate of a tracked item, clamped to [0, 1]. Unknown ids are ignored."""
        with self._lock:
            record = self._records.get(item_id)
            if record is None:
                return
            self._records[item_id] = replace(record, rate=_clamp(rate))
            self._persist(force=False)

    def complete(self, item_id: str) -> None:
        with self._lock:
            record = self._records.get(item_id)
            if record is None:
                return
            self._records[item_id] = replace(record, rate=1.0)
            self._persist()

    def remove(self, item_id: str) -> None:
        with self._lock:
            if self._records.pop(item_id, None) is not None:
                self._persist()

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._persist()

    def get(self, item_id: str) -> Optional[ProgressRecord]:
        with self._lock:
            return self._records.get(item_id)

    def get_rate(self, item_id: str) -> float:
        record = self.get(item_id)
        return record.rate if record is not None else 0.0

    def get_start_time(self, item_id: str) -> Optional[datetime]:
        record = self.get(item_id)
        return record.start_time if record is not None else None

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._records.keys())

    def size(self) -> int:
        with self._lock:
            return len(self._records)

    def is_empty(self) -> bool:
        return self.size() == 0

    def completed_rate(self) -> float:
        """Fraction of tracked items that are done; 0.0 when nothing is tracked."""
        with self._lock:
            if not self._records:
                return 0.0
            done = sum(1 for record in self._records.values() if record.rate >= 1.0)
            return done / len(self._records)

    def partially_completed_rate(self) -> float:
        """Contribution of unfinished items to the overall rate; 0.0 when empty."""
        with self._lock:
            if not self._records:
                return 0.0
            partial = sum(record.rate for record in self._records.values() if record.rate < 1.0)
            return partial / len(self._records)

    def overall_rate(self) -> float:
        """Mean rate of all tracked items; 1.0 when nothing is tracked."""
        with self._lock:
            if not self._records:
                return 1.0
            return sum(record.rate for record in self._records.values()) / len(self._records)

    def summary(self) -> str:
        """
        Short progress label.

        Returns:
            "0" when empty, "n" when everything is done, else "done / n"
        """
        with self._lock:
            total = len(self._records)
            if total == 0:
                return "0"
            overall = self.overall_rate()
            if overall >= 1.0:
                return str(total)
            return f"{int(overall * total)} / {total}"
