"""Tagged result of a catalog existence check."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from catalog.schemas import RemoteMetadataRecord


class LookupStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class CatalogLookup:
    """
    Outcome of looking up a record by item id.

    ``ERROR`` means the server could not answer (network failure, bad status,
    undecodable body). It must not be read as "absent": callers retry later.
    """
    status: LookupStatus
    record: Optional[RemoteMetadataRecord] = None
    detail: str = ""

    @classmethod
    def found(cls, record: RemoteMetadataRecord) -> "CatalogLookup":
        return cls(LookupStatus.FOUND, record=record)

    @classmethod
    def not_found(cls, detail: str = "") -> "CatalogLookup":
        return cls(LookupStatus.NOT_FOUND, detail=detail)

    @classmethod
    def error(cls, detail: str) -> "CatalogLookup":
        return cls(LookupStatus.ERROR, detail=detail)

    @property
    def exists(self) -> bool:
        return self.status is LookupStatus.FOUND

    @property
    def is_error(self) -> bool:
        return self.status is LookupStatus.ERROR
