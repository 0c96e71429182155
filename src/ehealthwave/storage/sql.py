"""SQL storage backends built on SQLAlchemy.

Any SQLAlchemy URL works; tests run against in-memory SQLite. Every
SQLAlchemy failure surfaces as ``StorageUnavailableError``.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Generator, List, Optional

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ehealthwave.core.exceptions import StorageUnavailableError
from ehealthwave.models.base import Base, to_db_datetime
from ehealthwave.models.grant import (
    AccessGrant,
    AccessGrantRecord,
    EmergencyPinGrant,
    GeoLocation,
    GrantKind,
    SharingTokenGrant,
)
from ehealthwave.models.ledger import LedgerEntry, LedgerEntryRecord
from ehealthwave.storage.base import GrantStore, LedgerStore
from ehealthwave.utils.logging import get_logger

logger = get_logger(__name__)


class SqlDatabase:
    """Engine and session factory shared by the SQL stores."""

    def __init__(self, database_url: str, echo: bool = False):
        """Create the engine.

        Args:
            database_url: SQLAlchemy database URL
            echo: Whether to log emitted SQL
        """
        self.database_url = database_url
        is_sqlite = database_url.startswith("sqlite")
        in_memory = database_url == "sqlite://" or ":memory:" in database_url

        if is_sqlite and in_memory:
            # One shared connection, otherwise each session sees an empty database
            self.engine = create_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        elif is_sqlite:
            self.engine = create_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
            )
        else:
            self.engine = create_engine(
                database_url,
                pool_pre_ping=True,
                pool_recycle=3600,
                echo=echo,
            )

        self.session_factory = sessionmaker(
            bind=self.engine,
            class_=Session,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )

    def create_all(self) -> None:
        """Create the ledger and grant tables if missing."""
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Could not create tables: {e}") from e

    def drop_all(self) -> None:
        """Drop all tables (use with caution)."""
        try:
            Base.metadata.drop_all(bind=self.engine)
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Could not drop tables: {e}") from e

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Yield a transactional session."""
        db = self.session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("storage_failure", error=str(e))
            raise StorageUnavailableError(str(e)) from e
        finally:
            db.close()


class SqlLedgerStore(LedgerStore):
    """Ledger entries in the ``ledger_entries`` table, ordered by sequence."""

    def __init__(self, database: SqlDatabase):
        """Initialize with a shared database."""
        self.database = database

    def append(self, entry: LedgerEntry) -> None:
        """Insert ``entry`` at the next sequence number."""
        with self.database.session() as db:
            sequence = db.query(LedgerEntryRecord).count()
            db.add(
                LedgerEntryRecord(
                    sequence=sequence,
                    entry_id=entry.id,
                    timestamp=entry.timestamp,
                    payload=entry.payload,
                    previous_hash=entry.previous_hash,
                    hash=entry.hash,
                )
            )

    def entries(self) -> List[LedgerEntry]:
        """Return the chain, oldest first."""
        with self.database.session() as db:
            rows = db.query(LedgerEntryRecord).order_by(LedgerEntryRecord.sequence).all()
            return [row.to_entry() for row in rows]

    def last(self) -> Optional[LedgerEntry]:
        """Return the newest entry."""
        with self.database.session() as db:
            row = (
                db.query(LedgerEntryRecord)
                .order_by(LedgerEntryRecord.sequence.desc())
                .first()
            )
            return row.to_entry() if row else None

    def count(self) -> int:
        """Return the number of entries."""
        with self.database.session() as db:
            return db.query(LedgerEntryRecord).count()


class SqlGrantStore(GrantStore):
    """Grants in the ``access_grants`` table."""

    def __init__(self, database: SqlDatabase):
        """Initialize with a shared database."""
        self.database = database

    def put(self, grant: AccessGrant) -> None:
        """Insert a new grant."""
        with self.database.session() as db:
            db.add(AccessGrantRecord.from_grant(grant))

    def get(self, secret: str) -> Optional[AccessGrant]:
        """Return the grant holding ``secret``."""
        with self.database.session() as db:
            row = db.query(AccessGrantRecord).filter_by(secret=secret).first()
            return row.to_grant() if row else None

    def list_all(self) -> List[AccessGrant]:
        """Return every grant, in issue order."""
        with self.database.session() as db:
            rows = db.query(AccessGrantRecord).order_by(AccessGrantRecord.id).all()
            return [row.to_grant() for row in rows]

    def list_by_subject(self, subject_id: str) -> List[AccessGrant]:
        """Return every grant for ``subject_id``."""
        with self.database.session() as db:
            rows = (
                db.query(AccessGrantRecord)
                .filter_by(subject_id=subject_id)
                .order_by(AccessGrantRecord.id)
                .all()
            )
            return [row.to_grant() for row in rows]

    def _update_where(
        self, secret: str, conditions: List[Any], values: Dict[Any, Any]
    ) -> Optional[AccessGrant]:
        """Apply ``values`` to the grant holding ``secret`` if ``conditions`` hold.

        Returns:
            The updated grant, or None unless exactly one row matched
        """
        with self.database.session() as db:
            changed = (
                db.query(AccessGrantRecord)
                .filter(AccessGrantRecord.secret == secret, *conditions)
                .update(values, synchronize_session=False)
            )
            if changed != 1:
                return None
            row = db.query(AccessGrantRecord).filter_by(secret=secret).one()
            return row.to_grant()

    @staticmethod
    def _live(kind: GrantKind, db_now: datetime) -> List[Any]:
        return [
            AccessGrantRecord.kind == kind.value,
            AccessGrantRecord.is_active.is_(True),
            AccessGrantRecord.expires_at > db_now,
        ]

    def consume_pin(
        self, secret: str, subject_id: str, redeemer_id: str, now: datetime
    ) -> Optional[EmergencyPinGrant]:
        """Mark a live PIN used with a single conditional UPDATE."""
        db_now = to_db_datetime(now)
        grant = self._update_where(
            secret,
            self._live(GrantKind.EMERGENCY_PIN, db_now)
            + [
                AccessGrantRecord.subject_id == subject_id,
                AccessGrantRecord.used_by.is_(None),
            ],
            {AccessGrantRecord.used_by: redeemer_id, AccessGrantRecord.used_at: db_now},
        )
        return grant if isinstance(grant, EmergencyPinGrant) else None

    def deactivate(self, secret: str) -> Optional[AccessGrant]:
        """Clear ``is_active`` with a single conditional UPDATE."""
        return self._update_where(
            secret,
            [AccessGrantRecord.is_active.is_(True)],
            {AccessGrantRecord.is_active: False},
        )

    def stamp_use(
        self, secret: str, redeemer_id: str, now: datetime
    ) -> Optional[SharingTokenGrant]:
        """Stamp a live token's user with a single conditional UPDATE."""
        db_now = to_db_datetime(now)
        grant = self._update_where(
            secret,
            self._live(GrantKind.SHARING_TOKEN, db_now),
            {AccessGrantRecord.used_by: redeemer_id, AccessGrantRecord.used_at: db_now},
        )
        return grant if isinstance(grant, SharingTokenGrant) else None

    def mark_notified(self, secret: str, now: datetime) -> Optional[EmergencyPinGrant]:
        """Flag a live, unnotified PIN with a single conditional UPDATE."""
        grant = self._update_where(
            secret,
            self._live(GrantKind.EMERGENCY_PIN, to_db_datetime(now))
            + [
                AccessGrantRecord.used_by.is_(None),
                AccessGrantRecord.notification_sent.is_(False),
            ],
            {AccessGrantRecord.notification_sent: True},
        )
        return grant if isinstance(grant, EmergencyPinGrant) else None

    def record_sms(
        self, secret: str, contacts: List[str], sent: bool
    ) -> Optional[EmergencyPinGrant]:
        """Write only the contact and delivery columns of a PIN."""
        grant = self._update_where(
            secret,
            [AccessGrantRecord.kind == GrantKind.EMERGENCY_PIN.value],
            {
                AccessGrantRecord.emergency_contacts: list(contacts),
                AccessGrantRecord.sms_sent: sent,
            },
        )
        return grant if isinstance(grant, EmergencyPinGrant) else None

    def set_location(
        self, secret: str, location: GeoLocation
    ) -> Optional[EmergencyPinGrant]:
        """Write only the location column of a PIN."""
        grant = self._update_where(
            secret,
            [AccessGrantRecord.kind == GrantKind.EMERGENCY_PIN.value],
            {AccessGrantRecord.location: location.to_dict()},
        )
        return grant if isinstance(grant, EmergencyPinGrant) else None
