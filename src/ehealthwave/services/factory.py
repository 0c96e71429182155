"""Factory for wiring the emergency access service from configuration."""

from typing import Optional, Tuple

from sqlalchemy.exc import ArgumentError

from ehealthwave.config import Settings, get_settings
from ehealthwave.core.exceptions import ConfigurationError
from ehealthwave.services.emergency_access_service import EmergencyAccessService
from ehealthwave.services.ledger_service import LedgerService
from ehealthwave.services.notification_service import NotificationSender
from ehealthwave.services.record_service import RecordStore
from ehealthwave.storage.base import GrantStore, LedgerStore, StorageType
from ehealthwave.storage.memory import InMemoryGrantStore, InMemoryLedgerStore
from ehealthwave.storage.sql import SqlDatabase, SqlGrantStore, SqlLedgerStore
from ehealthwave.utils.clock import Clock
from ehealthwave.utils.crypto import RandomSource
from ehealthwave.utils.logging import get_logger

logger = get_logger(__name__)


def create_stores(settings: Settings) -> Tuple[GrantStore, LedgerStore]:
    """Build grant and ledger stores for the configured backend."""
    if not settings.database_url:
        logger.info("storage_selected", backend=StorageType.MEMORY.value)
        return InMemoryGrantStore(), InMemoryLedgerStore()

    try:
        database = SqlDatabase(
            settings.database_url, echo=settings.log_level.upper() == "DEBUG"
        )
    except ArgumentError as e:
        raise ConfigurationError(f"Unusable database_url: {e}") from e
    database.create_all()
    logger.info("storage_selected", backend=StorageType.SQL.value)
    return SqlGrantStore(database), SqlLedgerStore(database)


def create_emergency_access_service(
    settings: Optional[Settings] = None,
    record_store: Optional[RecordStore] = None,
    notification_sender: Optional[NotificationSender] = None,
    clock: Optional[Clock] = None,
    random_source: Optional[RandomSource] = None,
) -> EmergencyAccessService:
    """Create an ``EmergencyAccessService`` over the configured storage.

    Args:
        settings: Application settings; loaded from the environment if omitted
        record_store: Record source for PIN redemptions
        notification_sender: Transport for emergency alerts
        clock: Time source
        random_source: Secret generator

    Returns:
        A ready-to-use service whose ledger holds at least the genesis entry
    """
    settings = settings or get_settings()
    grant_store, ledger_store = create_stores(settings)
    ledger = LedgerService(
        ledger_store, clock=clock, genesis_message=settings.genesis_message
    )
    return EmergencyAccessService(
        grant_store,
        ledger,
        record_store=record_store,
        notification_sender=notification_sender,
        clock=clock,
        random_source=random_source,
        settings=settings,
    )
