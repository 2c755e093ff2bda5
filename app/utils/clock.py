"""UTC time helpers shared by the workflow services."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """
    Attach UTC to a naive datetime.

    SQLite hands back naive values even for timezone-aware columns; everything
    this service writes is UTC, so a naive value read back is UTC too.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
