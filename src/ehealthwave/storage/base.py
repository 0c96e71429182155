"""Base storage abstraction layer.

The ledger and the grant store are injected into the services, so the same
service code runs over process memory or a SQL database.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import List, Optional

from ehealthwave.models.grant import (
    AccessGrant,
    EmergencyPinGrant,
    GeoLocation,
    SharingTokenGrant,
)
from ehealthwave.models.ledger import LedgerEntry


class StorageType(str, Enum):
    """Types of storage backends."""

    MEMORY = "memory"
    SQL = "sql"


class LedgerStore(ABC):
    """Append-only storage for ledger entries, in chain order."""

    @abstractmethod
    def append(self, entry: LedgerEntry) -> None:
        """Persist ``entry`` after every entry already stored.

        Raises:
            StorageUnavailableError: If the backend cannot be written
        """

    @abstractmethod
    def entries(self) -> List[LedgerEntry]:
        """Return every stored entry, oldest first."""

    @abstractmethod
    def last(self) -> Optional[LedgerEntry]:
        """Return the newest entry, or None if the store is empty."""

    @abstractmethod
    def count(self) -> int:
        """Return the number of stored entries."""


class GrantStore(ABC):
    """Keyed storage of access grants.

    Secrets are unique across every stored grant. Grants are never deleted;
    revoked, expired and spent grants stay for audit.
    """

    @abstractmethod
    def put(self, grant: AccessGrant) -> None:
        """Store a new grant.

        Raises:
            StorageUnavailableError: If the backend cannot be written
        """

    @abstractmethod
    def get(self, secret: str) -> Optional[AccessGrant]:
        """Return the grant holding ``secret``, if any."""

    @abstractmethod
    def list_all(self) -> List[AccessGrant]:
        """Return every stored grant."""

    def exists(self, secret: str) -> bool:
        """Whether any grant, live or not, already holds ``secret``."""
        return self.get(secret) is not None

    def list_by_subject(self, subject_id: str) -> List[AccessGrant]:
        """Return every grant issued for ``subject_id``."""
        return [g for g in self.list_all() if g.subject_id == subject_id]

    def list_active_by_subject(
        self, subject_id: str, now: datetime
    ) -> List[AccessGrant]:
        """Return the grants for ``subject_id`` that currently authorize access."""
        return [g for g in self.list_by_subject(subject_id) if g.is_live(now)]

    @abstractmethod
    def consume_pin(
        self, secret: str, subject_id: str, redeemer_id: str, now: datetime
    ) -> Optional[EmergencyPinGrant]:
        """Atomically find a live PIN for the subject and mark it used.

        The lookup and the write happen as one step, so two redeemers racing
        on the same PIN cannot both succeed.

        Returns:
            The updated grant, or None if no live PIN matched
        """

    @abstractmethod
    def deactivate(self, secret: str) -> Optional[AccessGrant]:
        """Atomically clear ``is_active`` on a grant that is still active.

        Returns:
            The updated grant, or None if no active grant holds ``secret``
        """

    # Field-targeted mutators. Each changes only the fields it names, so a
    # concurrent redemption or revocation is never overwritten.

    @abstractmethod
    def stamp_use(
        self, secret: str, redeemer_id: str, now: datetime
    ) -> Optional[SharingTokenGrant]:
        """Atomically set ``used_by``/``used_at`` on a live sharing token.

        Returns:
            The updated token, or None if no live token holds ``secret``
        """

    @abstractmethod
    def mark_notified(self, secret: str, now: datetime) -> Optional[EmergencyPinGrant]:
        """Atomically flag a live, not yet notified PIN as notified.

        Returns:
            The updated grant, or None if the PIN is dead or already notified
        """

    @abstractmethod
    def record_sms(
        self, secret: str, contacts: List[str], sent: bool
    ) -> Optional[EmergencyPinGrant]:
        """Store the emergency contacts and delivery flag of a PIN.

        Returns:
            The updated grant, or None if no PIN holds ``secret``
        """

    @abstractmethod
    def set_location(
        self, secret: str, location: GeoLocation
    ) -> Optional[EmergencyPinGrant]:
        """Replace the location snapshot of a PIN.

        Returns:
            The updated grant, or None if no PIN holds ``secret``
        """
