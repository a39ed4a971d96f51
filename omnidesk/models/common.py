"""Helpers shared by the data models."""

from datetime import datetime, timezone
from uuid import uuid4


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


def ensure_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC so they compare with ``utcnow()``."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
