"""Time helpers shared by the sync components."""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to timezone-aware UTC.

    Naive datetimes are assumed to already be in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    return ensure_utc(value).isoformat()


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp, returning None for missing or malformed input.

    Accepts the trailing 'Z' form produced by the server and the upload metadata.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def format_upload_timestamp(value: datetime) -> str:
    """Internet date-time with second precision, e.g. 2025-04-10T08:30:00Z."""
    return ensure_utc(value).strftime('%Y-%m-%dT%H:%M:%SZ')
