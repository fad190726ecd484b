"""
Durable JSON key-value store.

Backs the sync settings (watermark, enabled flag) and the progress maps.
Every write serializes the full document to disk; a missing or corrupted
file degrades to an empty store instead of failing construction.
"""

import json
import os
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from common.logging_config import get_logger

logger = get_logger(__name__)


class JsonKeyValueStore:
    """
    Thread-safe key-value store persisted to a single JSON file.

    Values must be JSON-serializable. Reads are served from memory; each
    mutation rewrites the file through a temporary file and ``os.replace``
    so a crash mid-write never leaves a half-written document behind.
    """

    def __init__(self, path: Path):
        """
        Initialize the store and load any existing document.

        Args:
            path: Path to the JSON file (created on first write)
        """
        self._path = Path(path).expanduser()
        self._lock = threading.RLock()
        self._data: Dict[str, Any] = {}
        self._load_from_disk()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value
            self._save_to_disk()

    def delete(self, key: str) -> bool:
        """
        Remove a key.

        Returns:
            True if the key existed
        """
        with self._lock:
            if key not in self._data:
                return False
            del self._data[key]
            self._save_to_disk()
            return True

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data.keys())

    def _load_from_disk(self) -> bool:
        """
        Load the document from disk.

        Returns:
            True if load succeeded, False if the file was missing or corrupted
        """
        if not self._path.exists():
            logger.debug(f"Store file not found at {self._path}, starting empty")
            return False

        try:
            with open(self._path, 'r') as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        except (json.JSONDecodeError, ValueError, OSError) as e:
            logger.warning(f"Failed to load store from {self._path}: {e}, starting empty")
            self._backup_corrupted_file()
            return False

        with self._lock:
            self._data = data
        logger.debug(f"Store loaded from {self._path} ({len(data)} key(s))")
        return True

    def _backup_corrupted_file(self) -> None:
        backup_path = self._path.with_suffix(self._path.suffix + '.bak')
        try:
            shutil.copy(self._path, backup_path)
        except OSError as e:
            logger.debug(f"Could not back up corrupted store {self._path}: {e}")

    def _save_to_disk(self) -> None:
        """
        Persist the document. A failed write is logged and the in-memory
        state is kept.
        """
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=str(self._path.parent), prefix=f".{self._path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, 'w') as f:
                    json.dump(self._data, f, indent=2)
                os.replace(tmp_name, self._path)
            except BaseException:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
                raise
        except (OSError, TypeError, ValueError) as e:
            logger.warning(
                f"Failed to save store to {self._path}: {e}, "
                "continuing with in-memory state only"
            )
