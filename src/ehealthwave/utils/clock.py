"""Time sources.

All grant expiry decisions read the time through a ``Clock`` so tests can
drive expiry deterministically.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone


class Clock(ABC):
    """Source of the current time."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current time as a timezone-aware UTC datetime."""


class SystemClock(Clock):
    """Wall-clock time."""

    def now(self) -> datetime:
        """Return the current UTC time."""
        return datetime.now(timezone.utc)


def to_epoch_millis(moment: datetime) -> int:
    """Convert a datetime to integer epoch milliseconds."""
    return int(moment.timestamp() * 1000)
