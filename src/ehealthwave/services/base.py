"""Base service class for common functionality."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional, Type, TypeVar

from ehealthwave.core.exceptions import ValidationError
from ehealthwave.models.ledger import LedgerEntry, LedgerEventType
from ehealthwave.services.ledger_service import LedgerService
from ehealthwave.storage.base import GrantStore
from ehealthwave.utils.clock import Clock, SystemClock
from ehealthwave.utils.logging import get_logger

E = TypeVar("E", bound=Enum)

logger = get_logger(__name__)


def require_text(value: Optional[str], field_name: str) -> str:
    """Reject missing or blank identifiers and secrets."""
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} must be a non-empty string")
    return value.strip()


def require_positive(value: Any, field_name: str) -> int:
    """Reject non-integer or non-positive durations."""
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field_name} must be a positive integer")
    return value


def coerce_enum(enum_class: Type[E], value: Any, field_name: str) -> E:
    """Accept an enum member or its string value."""
    if isinstance(value, enum_class):
        return value
    try:
        return enum_class(value)
    except ValueError as e:
        allowed = ", ".join(str(member.value) for member in enum_class)
        raise ValidationError(f"{field_name} must be one of: {allowed}") from e


class BaseService:
    """Shared wiring for the grant services: store, ledger and clock."""

    def __init__(
        self,
        grant_store: GrantStore,
        ledger: LedgerService,
        clock: Optional[Clock] = None,
    ):
        """Initialize service with its collaborators."""
        self.grant_store = grant_store
        self.ledger = ledger
        self.clock = clock or SystemClock()

    def now(self) -> datetime:
        """Current time from the injected clock."""
        return self.clock.now()

    def record_event(self, event_type: LedgerEventType, **details: Any) -> LedgerEntry:
        """Append an audit event to the ledger."""
        payload = {"type": event_type.value, **details}
        return self.ledger.append(payload)
