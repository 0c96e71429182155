"""Test configuration for eHealthWave.

Provides a manually driven clock, deterministic secrets, stub collaborators
and an in-memory emergency access service.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from ehealthwave.config import Settings
from ehealthwave.core.exceptions import NotificationError
from ehealthwave.models.grant import GrantKind
from ehealthwave.services.emergency_access_service import EmergencyAccessService
from ehealthwave.services.ledger_service import LedgerService
from ehealthwave.services.notification_service import NotificationSender
from ehealthwave.services.record_service import RecordStore
from ehealthwave.storage.memory import InMemoryGrantStore, InMemoryLedgerStore
from ehealthwave.utils.clock import Clock
from ehealthwave.utils.crypto import RandomSource

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

START_TIME = datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)

PATIENT_RECORDS = [
    {"id": "rec-001", "type": "allergy", "value": "penicillin"},
    {"id": "rec-002", "type": "blood_type", "value": "O-"},
]


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "emergency_access: mark test as handling emergency access"
    )
    config.addinivalue_line(
        "markers", "audit_required: mark test as checking the audit ledger"
    )
    config.addinivalue_line("markers", "sql: mark test as using a SQL database")


class ManualClock(Clock):
    """Clock that only moves when a test advances it."""

    def __init__(self, start: datetime = START_TIME):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: Any) -> None:
        """Move time forward by ``timedelta(**kwargs)``."""
        self.current += timedelta(**kwargs)


class SequenceRandomSource(RandomSource):
    """Hands out queued secrets first, then unique counter-based ones."""

    def __init__(
        self, pins: Optional[List[str]] = None, tokens: Optional[List[str]] = None
    ):
        self.queues = {
            GrantKind.EMERGENCY_PIN: list(pins or []),
            GrantKind.SHARING_TOKEN: list(tokens or []),
        }
        self.counter = 0

    def secret(self, kind: GrantKind) -> str:
        queue = self.queues[kind]
        if queue:
            return queue.pop(0)
        self.counter += 1
        if kind is GrantKind.EMERGENCY_PIN:
            return str(500000 + self.counter)
        return f"TOKEN{self.counter:07d}"


class StubRecordStore(RecordStore):
    """Returns the same fixed records for every subject."""

    def __init__(self, records: Optional[List[Dict[str, Any]]] = None):
        self.records = PATIENT_RECORDS if records is None else records
        self.requests: List[str] = []

    def records_for(self, subject_id: str) -> List[Dict[str, Any]]:
        self.requests.append(subject_id)
        return [dict(r) for r in self.records]


class RecordingNotificationSender(NotificationSender):
    """Keeps every message instead of delivering it."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    def send(self, contacts: List[str], message: str) -> None:
        self.sent.append({"contacts": list(contacts), "message": message})


class FailingNotificationSender(NotificationSender):
    """Fails every delivery."""

    def send(self, contacts: List[str], message: str) -> None:
        raise NotificationError("SMS gateway unreachable")


@pytest.fixture
def clock():
    """Manual clock starting at a fixed instant."""
    return ManualClock()


@pytest.fixture
def random_source():
    """Deterministic secret source."""
    return SequenceRandomSource()


@pytest.fixture
def record_store():
    """Stub record store returning a fixed, non-empty list."""
    return StubRecordStore()


@pytest.fixture
def notification_sender():
    """Recording notification sender."""
    return RecordingNotificationSender()


@pytest.fixture
def settings():
    """Default settings, isolated from any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def grant_store():
    """Empty in-memory grant store."""
    return InMemoryGrantStore()


@pytest.fixture
def ledger_store():
    """Empty in-memory ledger store."""
    return InMemoryLedgerStore()


@pytest.fixture
def ledger(ledger_store, clock):
    """Ledger holding only its genesis entry."""
    return LedgerService(ledger_store, clock=clock)


@pytest.fixture
def service(
    grant_store, ledger, record_store, notification_sender, clock, random_source, settings
):
    """In-memory emergency access service with deterministic collaborators."""
    return EmergencyAccessService(
        grant_store,
        ledger,
        record_store=record_store,
        notification_sender=notification_sender,
        clock=clock,
        random_source=random_source,
        settings=settings,
    )
