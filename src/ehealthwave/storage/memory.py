"""In-memory storage backends.

Used for tests and single-process deployments. Both stores hand out copies so
callers can only change stored state through the store methods.
"""

import copy
import threading
from datetime import datetime
from typing import Dict, List, Optional

from ehealthwave.models.grant import (
    AccessGrant,
    EmergencyPinGrant,
    GeoLocation,
    SharingTokenGrant,
)
from ehealthwave.models.ledger import LedgerEntry
from ehealthwave.storage.base import GrantStore, LedgerStore


class InMemoryLedgerStore(LedgerStore):
    """Ledger entries held in a process-local list."""

    def __init__(self) -> None:
        """Initialize an empty ledger store."""
        self._entries: List[LedgerEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: LedgerEntry) -> None:
        """Append an entry."""
        with self._lock:
            self._entries.append(entry)

    def entries(self) -> List[LedgerEntry]:
        """Return a snapshot of the chain."""
        with self._lock:
            return list(self._entries)

    def last(self) -> Optional[LedgerEntry]:
        """Return the newest entry."""
        with self._lock:
            return self._entries[-1] if self._entries else None

    def count(self) -> int:
        """Return the number of entries."""
        with self._lock:
            return len(self._entries)


class InMemoryGrantStore(GrantStore):
    """Grants held in a dictionary keyed by secret."""

    def __init__(self) -> None:
        """Initialize an empty grant store."""
        self._grants: Dict[str, AccessGrant] = {}
        self._lock = threading.RLock()

    def put(self, grant: AccessGrant) -> None:
        """Store a new grant."""
        with self._lock:
            if grant.secret in self._grants:
                raise KeyError("secret already stored")
            self._grants[grant.secret] = copy.deepcopy(grant)

    def get(self, secret: str) -> Optional[AccessGrant]:
        """Return a copy of the grant holding ``secret``."""
        with self._lock:
            grant = self._grants.get(secret)
            return copy.deepcopy(grant) if grant is not None else None

    def list_all(self) -> List[AccessGrant]:
        """Return copies of every grant, in issue order."""
        with self._lock:
            return [copy.deepcopy(g) for g in self._grants.values()]

    def consume_pin(
        self, secret: str, subject_id: str, redeemer_id: str, now: datetime
    ) -> Optional[EmergencyPinGrant]:
        """Find and mark a live PIN as used while holding the store lock."""
        with self._lock:
            grant = self._grants.get(secret)
            if (
                not isinstance(grant, EmergencyPinGrant)
                or grant.subject_id != subject_id
                or not grant.is_live(now)
            ):
                return None
            grant.used_by = redeemer_id
            grant.used_at = now
            return copy.deepcopy(grant)

    def deactivate(self, secret: str) -> Optional[AccessGrant]:
        """Clear ``is_active`` while holding the store lock."""
        with self._lock:
            grant = self._grants.get(secret)
            if grant is None or not grant.is_active:
                return None
            grant.is_active = False
            return copy.deepcopy(grant)

    def stamp_use(
        self, secret: str, redeemer_id: str, now: datetime
    ) -> Optional[SharingTokenGrant]:
        """Stamp a live token's user while holding the store lock."""
        with self._lock:
            grant = self._grants.get(secret)
            if not isinstance(grant, SharingTokenGrant) or not grant.is_live(now):
                return None
            grant.used_by = redeemer_id
            grant.used_at = now
            return copy.deepcopy(grant)

    def mark_notified(self, secret: str, now: datetime) -> Optional[EmergencyPinGrant]:
        """Flag a live PIN as notified while holding the store lock."""
        with self._lock:
            grant = self._grants.get(secret)
            if (
                not isinstance(grant, EmergencyPinGrant)
                or grant.notification_sent
                or not grant.is_live(now)
            ):
                return None
            grant.notification_sent = True
            return copy.deepcopy(grant)

    def record_sms(
        self, secret: str, contacts: List[str], sent: bool
    ) -> Optional[EmergencyPinGrant]:
        """Store contacts and delivery flag while holding the store lock."""
        with self._lock:
            grant = self._grants.get(secret)
            if not isinstance(grant, EmergencyPinGrant):
                return None
            grant.emergency_contacts = list(contacts)
            grant.sms_sent = sent
            return copy.deepcopy(grant)

    def set_location(
        self, secret: str, location: GeoLocation
    ) -> Optional[EmergencyPinGrant]:
        """Replace the location while holding the store lock."""
        with self._lock:
            grant = self._grants.get(secret)
            if not isinstance(grant, EmergencyPinGrant):
                return None
            grant.location_at_issue = copy.deepcopy(location)
            return copy.deepcopy(grant)
