"""Audit ledger models.

A ledger entry commits to its payload, its timestamp and the digest of the
entry before it, so any edit to a stored entry breaks the chain.
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Dict

from sqlalchemy import BigInteger, Column, Integer, String
from sqlalchemy.types import JSON

from ehealthwave.models.base import Base

GENESIS_ID = "genesis"
GENESIS_PREVIOUS_HASH = "0" * 16


class LedgerEventType(str, enum.Enum):
    """Event types written to the ledger payload's ``type`` field."""

    EMERGENCY_PIN_GENERATED = "EMERGENCY_PIN_GENERATED"
    BLUETOOTH_TOKEN_GENERATED = "BLUETOOTH_TOKEN_GENERATED"
    EMERGENCY_ACCESS_GRANTED = "EMERGENCY_ACCESS_GRANTED"
    EMERGENCY_ACCESS_DENIED = "EMERGENCY_ACCESS_DENIED"
    TOKEN_USED = "TOKEN_USED"
    GRANT_REVOKED = "GRANT_REVOKED"
    EMERGENCY_PIN_REVOKED = "EMERGENCY_PIN_REVOKED"
    TOKEN_REVOKED = "TOKEN_REVOKED"
    GRANTS_REVOKED = "GRANTS_REVOKED"
    EMERGENCY_NOTIFICATION_SENT = "EMERGENCY_NOTIFICATION_SENT"
    EMERGENCY_SMS_SENT = "EMERGENCY_SMS_SENT"
    EMERGENCY_LOCATION_UPDATED = "EMERGENCY_LOCATION_UPDATED"
    EMERGENCY_REQUEST_ACCEPTED = "EMERGENCY_REQUEST_ACCEPTED"
    EMERGENCY_REQUEST_REJECTED = "EMERGENCY_REQUEST_REJECTED"
    MEDICAL_RECORD = "MEDICAL_RECORD"


def entry_id_for(position: int) -> str:
    """Return the id of the entry at ``position`` in the chain."""
    return GENESIS_ID if position == 0 else f"block_{position}"


@dataclass(frozen=True)
class LedgerEntry:
    """One immutable link of the audit chain."""

    id: str
    timestamp: int
    payload: Dict[str, Any] = field(hash=False)
    previous_hash: str
    hash: str

    @property
    def type(self) -> Any:
        """Event type recorded in the payload, if any."""
        return self.payload.get("type")

    def to_dict(self) -> Dict[str, Any]:
        """Convert entry to dictionary."""
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "payload": self.payload,
            "previous_hash": self.previous_hash,
            "hash": self.hash,
        }


class LedgerEntryRecord(Base):
    """Durable row for a ledger entry."""

    __tablename__ = "ledger_entries"

    # Monotonic sequence preserves the append order of the chain
    sequence = Column(Integer, primary_key=True, autoincrement=False)

    entry_id = Column(String(64), nullable=False, unique=True)
    timestamp = Column(BigInteger, nullable=False, comment="Epoch milliseconds")
    payload = Column(JSON, nullable=False)
    previous_hash = Column(String(64), nullable=False)
    hash = Column(String(64), nullable=False)

    def to_entry(self) -> LedgerEntry:
        """Convert the row into a domain entry."""
        return LedgerEntry(
            id=self.entry_id,
            timestamp=self.timestamp,
            payload=self.payload,
            previous_hash=self.previous_hash,
            hash=self.hash,
        )
