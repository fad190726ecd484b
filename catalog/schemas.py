"""Pydantic schemas for the metadata server's JSON responses."""

from typing import List, Optional
from pydantic import BaseModel


class RemoteMetadataRecord(BaseModel):
    """Server's canonical record for an uploaded item."""
    id: int
    item_id: str
    filekey: Optional[str] = None
    filename: str
    filesize: int = 0
    mime_type: str = "application/octet-stream"
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[float] = None
    altitude: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    created: Optional[str] = None
    uploaded: Optional[str] = None


class MessageResponse(BaseModel):
    """Response carrying only a status message (health, delete, labels)."""
    message: Optional[str] = None


class MetadataResponse(BaseModel):
    """Response model for metadata lookups and listings."""
    message: Optional[str] = None
    body: Optional[List[RemoteMetadataRecord]] = None


class MetadataLabel(BaseModel):
    """A classifier label attached to a metadata record."""
    id: int
    metadata_id: int
    user_id: int
    labelname: str


class LabelsResponse(BaseModel):
    """Response model for label listings."""
    message: Optional[str] = None
    body: Optional[List[MetadataLabel]] = None
