"""Shared data type definitions (AssetDescriptor, UploadItem, etc.)."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Tuple

from common.utils import format_upload_timestamp


class MediaKind(str, Enum):
    """Kind of a local media asset."""
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    OTHER = "other"


class AuthorizationStatus(str, Enum):
    """Answer of an asset source to an access request."""
    GRANTED = "granted"
    LIMITED = "limited"
    DENIED = "denied"

    @property
    def allows_access(self) -> bool:
        return self is not AuthorizationStatus.DENIED


@dataclass(frozen=True)
class AssetDescriptor:
    """
    A local media asset as enumerated by an asset source.

    Attributes:
        stable_id: Identifier stable across restarts (content hash or local id)
        created_at: Capture/creation time, timezone-aware UTC
        media_kind: Image, video, audio or other
        filename: Original file name when the source knows it
        labels: Classifier labels derived locally, if any
    """
    stable_id: str
    created_at: datetime
    media_kind: MediaKind = MediaKind.IMAGE
    filename: Optional[str] = None
    labels: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class UploadItem:
    """
    One pending transfer handed from the coordinator to the upload transport.
    """
    stable_id: str
    source_path: Path
    filename: str
    created_at: Optional[datetime] = None
    derived_labels: Optional[Tuple[str, ...]] = None

    def upload_metadata(self) -> Dict[str, str]:
        """Key/value pairs sent in the Upload-Metadata header, in wire order."""
        metadata = {
            "itemId": self.stable_id,
            "filename": self.filename,
        }
        if self.created_at is not None:
            metadata["created"] = format_upload_timestamp(self.created_at)
        if self.derived_labels:
            metadata["labels"] = ",".join(self.derived_labels)
        return metadata
