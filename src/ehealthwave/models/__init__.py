"""Domain and database models for eHealthWave."""

from .base import Base
from .grant import (
    AccessGrant,
    AccessGrantRecord,
    AccessLevel,
    DataScope,
    DenialReason,
    EmergencyPinGrant,
    GeoLocation,
    GrantKind,
    GrantStatus,
    GrantStatusReport,
    RedemptionResult,
    SharingTokenGrant,
    format_token_for_display,
)
from .ledger import LedgerEntry, LedgerEntryRecord, LedgerEventType

__all__ = [
    "Base",
    "AccessGrant",
    "AccessGrantRecord",
    "AccessLevel",
    "DataScope",
    "DenialReason",
    "EmergencyPinGrant",
    "GeoLocation",
    "GrantKind",
    "GrantStatus",
    "GrantStatusReport",
    "RedemptionResult",
    "SharingTokenGrant",
    "format_token_for_display",
    "LedgerEntry",
    "LedgerEntryRecord",
    "LedgerEventType",
]
