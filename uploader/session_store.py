"""
On-disk store of resumable upload sessions.

Layout under the store root::

    <root>/<session_id>.json      session state
    <root>/cache/<session_id>     private copy of the file being uploaded

The store is shared by every transport regardless of server or key; each
session remembers the server URL and headers it was created with so stale
sessions can be recognised at retry time.
"""

import json
import os
import shutil
import tempfile
import threading
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from common.logging_config import get_logger
from common.utils import to_iso, utcnow
from uploader.exceptions import SessionNotFoundError

logger = get_logger(__name__)

CACHE_DIR_NAME = "cache"


class SessionStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class UploadSession:
    """
    Persisted state of one chunked upload.

    Attributes:
        session_id: Client-generated UUID, unique per enqueue
        stable_id: Item id of the asset being uploaded
        server_url: Creation endpoint the session belongs to
        upload_url: Server-assigned upload URL (None until created)
        custom_headers: Headers sent with every request (Authorization, Upload-Metadata)
        bytes_uploaded: Bytes acknowledged by the server
        total_bytes: Size of the cached file
        status: Lifecycle state
        filename: Original file name
        created_at: ISO8601 UTC creation time
        updated_at: ISO8601 UTC time of the last change
        error: Last error message for failed sessions
    """
    session_id: str
    stable_id: str
    server_url: str
    total_bytes: int
    filename: str
    custom_headers: Dict[str, str] = field(default_factory=dict)
    upload_url: Optional[str] = None
    bytes_uploaded: int = 0
    status: SessionStatus = SessionStatus.PENDING
    created_at: str = field(default_factory=lambda: to_iso(utcnow()))
    updated_at: str = field(default_factory=lambda: to_iso(utcnow()))
    error: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status in (SessionStatus.PENDING, SessionStatus.UPLOADING)

    @property
    def rate(self) -> float:
        if self.total_bytes <= 0:
            return 1.0 if self.status is SessionStatus.COMPLETED else 0.0
        return min(1.0, self.bytes_uploaded / self.total_bytes)

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "UploadSession":
        """
        Build a session from its JSON form.

        Raises:
            ValueError: If required fields are missing or have the wrong type
        """
        try:
            headers = data.get("custom_headers") or {}
            if not isinstance(headers, dict):
                raise ValueError("custom_headers must be an object")
            return cls(
                session_id=str(data["session_id"]),
                stable_id=str(data["stable_id"]),
                server_url=str(data["server_url"]),
                total_bytes=int(data["total_bytes"]),
                filename=str(data.get("filename") or ""),
                custom_headers={str(k): str(v) for k, v in headers.items()},
                upload_url=data.get("upload_url"),
                bytes_uploaded=int(data.get("bytes_uploaded", 0)),
                status=SessionStatus(data.get("status", SessionStatus.PENDING.value)),
                created_at=str(data.get("created_at") or to_iso(utcnow())),
                updated_at=str(data.get("updated_at") or to_iso(utcnow())),
                error=data.get("error"),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed session: {e}") from e


class SessionStore:
    """Thread-safe directory of session JSON files and cached upload copies."""

    def __init__(self, root: Path):
        self.root = Path(root).expanduser()
        self.cache_dir = self.root / CACHE_DIR_NAME
        self._lock = threading.RLock()
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Session store initialized [path={self.root}]")

    def _session_path(self, session_id: str) -> Path:
        return self.root / f"{session_id}.json"

    def cache_path(self, session_id: str) -> Path:
        return self.cache_dir / session_id

    def add(self, session: UploadSession, source: Path) -> Path:
        """
        Register a new session together with a private copy of its file.

        ``session.total_bytes`` is set from the copy. Either both the cache
        file and the session file exist afterwards, or neither does.

        Raises:
            OSError: If the source cannot be read or the session cannot be written
        """
        destination = self.cache_path(session.session_id)
        with self._lock:
            try:
                shutil.copyfile(source, destination)
                session.total_bytes = destination.stat().st_size
                self.save(session)
            except OSError:
                destination.unlink(missing_ok=True)
                raise
        return destination

    def save(self, session: UploadSession) -> None:
        """
        Persist a session atomically.

        Raises:
            OSError: If the session file cannot be written
        """
        session.updated_at = to_iso(utcnow())
        path = self._session_path(session.session_id)
        with self._lock:
            fd, tmp_name = tempfile.mkstemp(dir=str(self.root), prefix=".session.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w") as f:
                    json.dump(session.to_dict(), f, indent=2)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise

    def load(self, session_id: str) -> UploadSession:
        path = self._session_path(session_id)
        with self._lock:
            if not path.exists():
                raise SessionNotFoundError(f"Session not found: {session_id}")
            try:
                with open(path, "r") as f:
                    return UploadSession.from_dict(json.load(f))
            except (json.JSONDecodeError, ValueError, OSError) as e:
                raise SessionNotFoundError(f"Session {session_id} is unreadable: {e}") from e

    def load_all(self) -> List[UploadSession]:
        """
        Load every readable session.

        Malformed files are logged and skipped; they never abort the scan.
        """
        sessions = []
        with self._lock:
            for path in sorted(self.root.glob("*.json")):
                try:
                    with open(path, "r") as f:
                        sessions.append(UploadSession.from_dict(json.load(f)))
                except (json.JSONDecodeError, ValueError, OSError) as e:
                    logger.warning(f"Ignoring malformed session file {path.name}: {e}")
        return sessions

    def remove(self, session_id: str) -> bool:
        """
        Delete a session's state file.

        Returns:
            True if a file was removed
        """
        with self._lock:
            path = self._session_path(session_id)
            if not path.exists():
                return False
            path.unlink()
            return True

    def remove_cache(self, session_id: str) -> bool:
        """Delete the cached upload copy of a session, if present."""
        with self._lock:
            path = self.cache_path(session_id)
            if not path.exists():
                return False
            path.unlink()
            return True

    def prune_orphans(self) -> int:
        """
        Delete cached copies that no session file refers to.

        Returns:
            Number of cache files removed
        """
        removed = 0
        with self._lock:
            known = {path.stem for path in self.root.glob("*.json")}
            for cached in self.cache_dir.iterdir():
                if cached.is_file() and cached.name not in known:
                    try:
                        cached.unlink()
                        removed += 1
                    except OSError as e:
                        logger.warning(f"Could not remove orphaned cache file {cached}: {e}")
        if removed:
            logger.info(f"Pruned {removed} orphaned upload cache file(s)")
        return removed
