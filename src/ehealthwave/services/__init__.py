"""Service layer for grant issuance, redemption, revocation and audit."""

from .base import BaseService
from .emergency_access_service import EmergencyAccessService
from .factory import create_emergency_access_service
from .issuance_service import GrantIssuanceService
from .ledger_service import LedgerService
from .notification_service import LoggingNotificationSender, NotificationSender
from .record_service import LedgerRecordStore, RecordStore
from .redemption_service import GrantRedemptionService
from .revocation_service import GrantRevocationService

__all__ = [
    "BaseService",
    "EmergencyAccessService",
    "create_emergency_access_service",
    "GrantIssuanceService",
    "LedgerService",
    "LoggingNotificationSender",
    "NotificationSender",
    "LedgerRecordStore",
    "RecordStore",
    "GrantRedemptionService",
    "GrantRevocationService",
]
