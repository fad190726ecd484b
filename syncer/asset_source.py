"""
Local media sources.

``AssetSource`` is the collaborator the coordinator enumerates media from.
``DirectoryAssetSource`` implements it over a folder tree: assets are
identified by content hash and dated by EXIF capture time (file mtime when
there is none).
"""

import hashlib
import io
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from PIL import ExifTags, Image, ImageOps

from common.constants import THUMBNAIL_MAX_SIZE
from common.logging_config import get_logger
from common.types import AssetDescriptor, AuthorizationStatus, MediaKind
from common.utils import ensure_utc

logger = get_logger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".heic", ".heif", ".webp", ".tif", ".tiff", ".bmp"}
VIDEO_EXTENSIONS = {".mp4", ".mov", ".m4v", ".avi", ".mkv"}

EXIF_DATE_FORMAT = "%Y:%m:%d %H:%M:%S"
EXIF_TAG_IDS = {name: tag_id for tag_id, name in ExifTags.TAGS.items()}


class AssetSource(ABC):
    """
    Interface to the local media library.

    Implementations may block (a consent prompt, a network-backed library);
    the coordinator calls them from its own thread.
    """

    @abstractmethod
    def request_authorization(self) -> AuthorizationStatus:
        """Ask for access to the library."""
        raise NotImplementedError

    @abstractmethod
    def fetch_since(self, timestamp: datetime, limit: int) -> List[AssetDescriptor]:
        """
        Enumerate assets created strictly after ``timestamp``.

        Args:
            timestamp: Exclusive lower bound on creation time
            limit: Maximum number of assets to return

        Returns:
            Descriptors ordered ascending by creation time
        """
        raise NotImplementedError

    @abstractmethod
    def resolve_url(self, stable_id: str) -> Optional[Path]:
        """Readable file for an asset, or None if it cannot be resolved."""
        raise NotImplementedError

    def load_thumbnail(self, stable_id: str) -> Optional[bytes]:
        return None

    def load_full_media(self, stable_id: str) -> Optional[bytes]:
        path = self.resolve_url(stable_id)
        if path is None:
            return None
        try:
            return path.read_bytes()
        except OSError as e:
            logger.warning(f"Could not read {path}: {e}")
            return None


def sha256_file(path: Path, chunk_size: int = 1024 * 1024) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(chunk_size), b""):
            digest.update(block)
    return digest.hexdigest()


def media_kind_for(path: Path) -> MediaKind:
    suffix = path.suffix.lower()
    if suffix in IMAGE_EXTENSIONS:
        return MediaKind.IMAGE
    if suffix in VIDEO_EXTENSIONS:
        return MediaKind.VIDEO
    return MediaKind.OTHER


def read_capture_time(path: Path) -> Optional[datetime]:
    """
    EXIF capture time of an image (DateTimeOriginal, then DateTime).

    EXIF times carry no zone; they are interpreted as UTC.

    Returns:
        Capture time, or None if the file has no usable EXIF date
    """
    try:
        with Image.open(path) as img:
            exif = img.getexif()
            if not exif:
                return None
            value = exif.get_ifd(ExifTags.IFD.Exif).get(EXIF_TAG_IDS["DateTimeOriginal"])
            if not value:
                value = exif.get(EXIF_TAG_IDS["DateTime"])
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as e:
        logger.debug(f"No EXIF for {path.name}: {e}")
        return None

    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    if not isinstance(value, str):
        return None
    try:
        return ensure_utc(datetime.strptime(value.strip().rstrip("\x00"), EXIF_DATE_FORMAT))
    except ValueError:
        logger.debug(f"Unparseable EXIF date {value!r} in {path.name}")
        return None


def render_thumbnail(path: Path, max_size: Tuple[int, int] = THUMBNAIL_MAX_SIZE) -> bytes:
    """
    Render a bounded JPEG preview of an image.

    Raises:
        OSError: If the file is missing or not a decodable image
        Image.DecompressionBombError: If the image exceeds Pillow's pixel limit
    """
    with Image.open(path) as img:
        img = ImageOps.exif_transpose(img)
        img.thumbnail(max_size, Image.Resampling.LANCZOS)
        if img.mode != "RGB":
            img = img.convert("RGB")
        buffer = io.BytesIO()
        img.save(buffer, format="JPEG", quality=85)
        return buffer.getvalue()


class DirectoryAssetSource(AssetSource):
    """
    Asset source backed by a folder tree.

    Hidden files and folders are skipped. Content hashes are cached per
    (path, mtime, size) so rescans only hash new or changed files.
    """

    def __init__(self, root: Path):
        self.root = Path(root).expanduser()
        self._lock = threading.Lock()
        self._hash_cache: Dict[Path, Tuple[float, int, str, datetime]] = {}
        self._index: Dict[str, Tuple[Path, AssetDescriptor]] = {}

    def request_authorization(self) -> AuthorizationStatus:
        if self.root.is_dir() and os.access(self.root, os.R_OK | os.X_OK):
            return AuthorizationStatus.GRANTED
        logger.warning(f"Media folder {self.root} is missing or unreadable")
        return AuthorizationStatus.DENIED

    def _iter_media_files(self):
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = [d for d in dirnames if not d.startswith(".")]
            for filename in filenames:
                if filename.startswith("."):
                    continue
                path = Path(dirpath) / filename
                if media_kind_for(path) in (MediaKind.IMAGE, MediaKind.VIDEO):
                    yield path

    def _describe(self, path: Path) -> Optional[AssetDescriptor]:
        try:
            stat = path.stat()
            cached = self._hash_cache.get(path)
            if cached and cached[0] == stat.st_mtime and cached[1] == stat.st_size:
                stable_id, created_at = cached[2], cached[3]
            else:
                stable_id = sha256_file(path)
                created_at = None
                if media_kind_for(path) is MediaKind.IMAGE:
                    created_at = read_capture_time(path)
                if created_at is None:
                    created_at = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
                self._hash_cache[path] = (stat.st_mtime, stat.st_size, stable_id, created_at)
        except OSError as e:
            logger.warning(f"Skipping unreadable file {path}: {e}")
            return None

        return AssetDescriptor(
            stable_id=stable_id,
            created_at=created_at,
            media_kind=media_kind_for(path),
            filename=path.name,
        )

    def scan(self) -> List[AssetDescriptor]:
        """Re-index the folder and return every asset, oldest first."""
        with self._lock:
            index: Dict[str, Tuple[Path, AssetDescriptor]] = {}
            for path in self._iter_media_files():
                descriptor = self._describe(path)
                if descriptor is not None and descriptor.stable_id not in index:
                    index[descriptor.stable_id] = (path, descriptor)
            self._index = index
            return sorted(
                (descriptor for _, descriptor in index.values()),
                key=lambda d: (d.created_at, d.stable_id),
            )

    def fetch_since(self, timestamp: datetime, limit: int) -> List[AssetDescriptor]:
        """
        Assets created after ``timestamp``, oldest first.

        A batch never ends part-way through a group of assets sharing one
        creation time: the trailing group is left for the next fetch. A
        group larger than ``limit`` is returned whole.
        """
        since = ensure_utc(timestamp)
        newer = [d for d in self.scan() if d.created_at > since]
        if limit < 1:
            return []
        if len(newer) <= limit:
            return newer

        boundary = newer[limit - 1].created_at
        if newer[limit].created_at != boundary:
            return newer[:limit]

        batch = [d for d in newer[:limit] if d.created_at < boundary]
        if batch:
            return batch
        group = [d for d in newer if d.created_at == boundary]
        logger.info(f"{len(group)} assets share {boundary.isoformat()}, exceeding batch limit {limit}")
        return group

    def resolve_url(self, stable_id: str) -> Optional[Path]:
        with self._lock:
            entry = self._index.get(stable_id)
        if entry is None:
            return None
        path = entry[0]
        if not path.is_file():
            logger.warning(f"Asset {stable_id[:12]} disappeared from {path}")
            return None
        return path

    def descriptor(self, stable_id: str) -> Optional[AssetDescriptor]:
        with self._lock:
            entry = self._index.get(stable_id)
        return entry[1] if entry else None

    def load_thumbnail(self, stable_id: str) -> Optional[bytes]:
        path = self.resolve_url(stable_id)
        if path is None or media_kind_for(path) is not MediaKind.IMAGE:
            return None
        try:
            return render_thumbnail(path)
        except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as e:
            logger.warning(f"Could not render thumbnail for {path.name}: {e}")
            return None
