"""
Uniform access to media whether it lives locally or on the server.

``MediaItem`` is a structural interface; ``LocalAssetItem`` and
``RemoteRecordItem`` implement it without sharing a base class.
"""

from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from catalog.catalog_client import RemoteCatalogClient
from catalog.schemas import RemoteMetadataRecord
from common.logging_config import get_logger
from common.types import AssetDescriptor, MediaKind
from syncer.asset_source import AssetSource
from syncer.progress import ProgressTracker

logger = get_logger(__name__)

MIME_TYPES_BY_EXTENSION = {
    ".png": "image/png",
    ".gif": "image/gif",
    ".heic": "image/heic",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}


def guess_mime_type(filename: str, kind: MediaKind) -> str:
    """
    MIME type sent to and expected from the server.

    Videos are always reported as video/mp4 and audio as audio/mp4; images
    with an unknown extension map to image/unknown.
    """
    if kind is MediaKind.VIDEO:
        return "video/mp4"
    if kind is MediaKind.AUDIO:
        return "audio/mp4"
    if kind is MediaKind.IMAGE:
        return MIME_TYPES_BY_EXTENSION.get(Path(filename).suffix.lower(), "image/unknown")
    return "application/octet-stream"


@runtime_checkable
class MediaItem(Protocol):
    id: str
    filename: str
    mime_type: str

    def get_thumbnail(self) -> Optional[bytes]: ...

    def get_full_media(self) -> Optional[bytes]: ...

    def get_video_url(self) -> Optional[str]: ...


class LocalAssetItem:
    """A not-yet-uploaded asset read through the asset source."""

    def __init__(self, descriptor: AssetDescriptor, source: AssetSource):
        self.descriptor = descriptor
        self.source = source
        self.id = descriptor.stable_id
        self.filename = descriptor.filename or descriptor.stable_id
        self.mime_type = guess_mime_type(self.filename, descriptor.media_kind)

    def get_thumbnail(self) -> Optional[bytes]:
        return self.source.load_thumbnail(self.id)

    def get_full_media(self) -> Optional[bytes]:
        return self.source.load_full_media(self.id)

    def get_video_url(self) -> Optional[str]:
        if self.descriptor.media_kind is not MediaKind.VIDEO:
            return None
        path = self.source.resolve_url(self.id)
        return path.resolve().as_uri() if path is not None else None


class RemoteRecordItem:
    """
    An item stored on the server.

    Full-media downloads are tracked in the downloads progress tracker under
    the record's filekey.
    """

    def __init__(
        self,
        record: RemoteMetadataRecord,
        catalog: RemoteCatalogClient,
        downloads: Optional[ProgressTracker] = None,
    ):
        self.record = record
        self.catalog = catalog
        self.downloads = downloads
        self.id = record.item_id
        self.filename = record.filename
        self.mime_type = record.mime_type

    @property
    def is_video(self) -> bool:
        return self.mime_type.startswith("video/")

    def get_thumbnail(self) -> Optional[bytes]:
        if not self.record.filekey:
            return None
        return self.catalog.get_thumbnail(self.record.filekey)

    def get_full_media(self) -> Optional[bytes]:
        filekey = self.record.filekey
        if not filekey:
            return None

        def on_progress(received: int, total: int) -> None:
            if self.downloads is not None and total > 0:
                self.downloads.update(filekey, received / total)

        if self.downloads is not None:
            self.downloads.start(filekey)
        data = self.catalog.get_file_data(filekey, on_progress=on_progress)
        if self.downloads is not None:
            if data is None:
                self.downloads.remove(filekey)
            else:
                self.downloads.complete(filekey)
        return data

    def get_video_url(self) -> Optional[str]:
        if not self.is_video or not self.record.filekey:
            return None
        return self.catalog.file_url(self.record.filekey)
