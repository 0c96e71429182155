"""Base model classes for database models."""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.orm import declarative_base

Base: Any = declarative_base()


def to_db_datetime(value: Optional[datetime]) -> Optional[datetime]:
    """Store datetimes as naive UTC so every backend compares them alike."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def from_db_datetime(value: Optional[datetime]) -> Optional[datetime]:
    """Re-attach UTC to a datetime loaded from the database."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
