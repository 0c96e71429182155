"""Access grant models.

Two grant kinds share one lifecycle: emergency PINs, redeemed once by a
provider to read a patient's records, and sharing tokens, scoped by access
level and data scope and reusable until they expire or are revoked.
"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String
from sqlalchemy.types import JSON

from ehealthwave.models.base import Base, from_db_datetime, to_db_datetime


def new_grant_id() -> str:
    """Opaque audit handle for a grant, unrelated to its secret."""
    return f"grant_{uuid.uuid4().hex}"


class GrantKind(str, enum.Enum):
    """Kind of access grant."""

    EMERGENCY_PIN = "emergency_pin"
    SHARING_TOKEN = "sharing_token"


class AccessLevel(str, enum.Enum):
    """Operations a sharing token permits."""

    READ = "read"
    WRITE = "write"


class DataScope(str, enum.Enum):
    """Breadth of records a sharing token exposes."""

    FULL = "full"
    LIMITED = "limited"
    EMERGENCY = "emergency"


class GrantStatus(str, enum.Enum):
    """Externally reported state of a secret."""

    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    INACTIVE = "inactive"
    ACTIVE = "active"


class DenialReason(str, enum.Enum):
    """Why a presented secret did not grant access.

    Kept for logs and the audit ledger only; callers always see the collapsed
    ``invalid_or_expired`` reason.
    """

    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ALREADY_USED = "already_used"
    REVOKED = "revoked"
    LOCKED_OUT = "locked_out"


@dataclass
class GeoLocation:
    """Location snapshot attached to an emergency PIN."""

    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    timestamp: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert location to dictionary."""
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "accuracy": self.accuracy,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GeoLocation":
        """Build a location from its dictionary form."""
        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        return cls(
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            accuracy=data.get("accuracy"),
            timestamp=timestamp or None,
        )


@dataclass
class AccessGrant:
    """Fields and lifecycle shared by every grant kind."""

    kind: ClassVar[GrantKind]
    single_use: ClassVar[bool] = False

    subject_id: str
    secret: str
    created_at: datetime
    expires_at: datetime
    is_active: bool = True
    used_by: Optional[str] = None
    used_at: Optional[datetime] = None
    # Audit handle; ledger entries reference grants by id, never by secret
    grant_id: str = field(default_factory=new_grant_id)

    @property
    def is_used(self) -> bool:
        """Whether the grant has been redeemed at least once."""
        return self.used_by is not None

    @property
    def is_spent(self) -> bool:
        """Whether a single-use grant has already been redeemed."""
        return self.single_use and self.is_used

    def is_expired(self, now: datetime) -> bool:
        """Whether the validity window has closed."""
        return self.expires_at <= now

    def is_live(self, now: datetime) -> bool:
        """Whether the grant currently authorizes access."""
        return self.is_active and not self.is_spent and not self.is_expired(now)

    def denial_reason(self, now: datetime) -> Optional[DenialReason]:
        """Return why the grant does not authorize access, or None if it does."""
        if self.is_spent:
            return DenialReason.ALREADY_USED
        if not self.is_active:
            return DenialReason.REVOKED
        if self.is_expired(now):
            return DenialReason.EXPIRED
        return None

    def status(self, now: datetime) -> GrantStatus:
        """Externally visible status; expiry wins over deactivation."""
        if self.is_expired(now):
            return GrantStatus.EXPIRED
        if not self.is_active or self.is_spent:
            return GrantStatus.INACTIVE
        return GrantStatus.ACTIVE

    def to_dict(self, include_secret: bool = True) -> Dict[str, Any]:
        """Convert grant to dictionary."""
        result: Dict[str, Any] = {
            "grant_id": self.grant_id,
            "kind": self.kind.value,
            "subject_id": self.subject_id,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "is_active": self.is_active,
            "used_by": self.used_by,
            "used_at": self.used_at.isoformat() if self.used_at else None,
        }
        if include_secret:
            result["secret"] = self.secret
        return result


@dataclass
class EmergencyPinGrant(AccessGrant):
    """Six-digit, single-use PIN a provider redeems for a patient's records."""

    kind: ClassVar[GrantKind] = GrantKind.EMERGENCY_PIN
    single_use: ClassVar[bool] = True

    location_at_issue: Optional[GeoLocation] = None
    notification_sent: bool = False
    sms_sent: bool = False
    emergency_contacts: List[str] = field(default_factory=list)

    def to_dict(self, include_secret: bool = True) -> Dict[str, Any]:
        """Convert grant to dictionary."""
        result = super().to_dict(include_secret=include_secret)
        result.update(
            {
                "location": (
                    self.location_at_issue.to_dict() if self.location_at_issue else None
                ),
                "notification_sent": self.notification_sent,
                "sms_sent": self.sms_sent,
                "emergency_contacts": list(self.emergency_contacts),
            }
        )
        return result


@dataclass
class SharingTokenGrant(AccessGrant):
    """Alphanumeric device-to-device sharing token."""

    kind: ClassVar[GrantKind] = GrantKind.SHARING_TOKEN

    access_level: AccessLevel = AccessLevel.READ
    data_scope: DataScope = DataScope.LIMITED

    @property
    def display_secret(self) -> str:
        """Token formatted for manual transcription."""
        return format_token_for_display(self.secret)

    def to_dict(self, include_secret: bool = True) -> Dict[str, Any]:
        """Convert grant to dictionary."""
        result = super().to_dict(include_secret=include_secret)
        result.update(
            {
                "access_level": self.access_level.value,
                "data_scope": self.data_scope.value,
            }
        )
        return result


def format_token_for_display(secret: str) -> str:
    """Split a token into dash-separated groups of four, e.g. ``AB12-CD34-EF56``."""
    groups = [secret[i : i + 4] for i in range(0, len(secret), 4)]
    return "-".join(groups).upper()


@dataclass
class RedemptionResult:
    """Outcome of presenting an emergency PIN."""

    INVALID_OR_EXPIRED: ClassVar[str] = "invalid_or_expired"

    granted: bool
    records: Optional[List[Dict[str, Any]]] = None
    reason: Optional[str] = None
    denial: Optional[DenialReason] = None

    @classmethod
    def denied(cls, denial: DenialReason) -> "RedemptionResult":
        """Build a denial that does not disclose why access was refused."""
        return cls(granted=False, reason=cls.INVALID_OR_EXPIRED, denial=denial)

    def to_dict(self) -> Dict[str, Any]:
        """Caller-facing dictionary; the internal denial reason is omitted."""
        result: Dict[str, Any] = {"granted": self.granted}
        if self.records is not None:
            result["records"] = self.records
        if self.reason is not None:
            result["reason"] = self.reason
        return result


@dataclass
class GrantStatusReport:
    """Result of a status lookup."""

    status: GrantStatus
    expires_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert report to dictionary."""
        result: Dict[str, Any] = {"status": self.status.value}
        if self.expires_at is not None:
            result["expires_at"] = self.expires_at.isoformat()
        return result


class AccessGrantRecord(Base):
    """Durable row for either grant kind."""

    __tablename__ = "access_grants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    grant_id = Column(String(64), nullable=False, unique=True)
    kind = Column(String(32), nullable=False)
    secret = Column(String(64), nullable=False, unique=True)
    subject_id = Column(String(255), nullable=False, index=True)

    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    used_by = Column(String(255), nullable=True)
    used_at = Column(DateTime, nullable=True)

    # Emergency PIN fields
    location = Column(JSON, nullable=True)
    notification_sent = Column(Boolean, nullable=False, default=False)
    sms_sent = Column(Boolean, nullable=False, default=False)
    emergency_contacts = Column(JSON, nullable=True)

    # Sharing token fields
    access_level = Column(String(16), nullable=True)
    data_scope = Column(String(16), nullable=True)

    __table_args__ = (Index("idx_access_grants_subject_kind", "subject_id", "kind"),)

    @classmethod
    def from_grant(cls, grant: AccessGrant) -> "AccessGrantRecord":
        """Build a row from a domain grant."""
        record = cls(
            grant_id=grant.grant_id, kind=grant.kind.value, secret=grant.secret
        )
        record.apply(grant)
        return record

    def apply(self, grant: AccessGrant) -> None:
        """Copy the mutable state of ``grant`` onto this row."""
        self.subject_id = grant.subject_id
        self.created_at = to_db_datetime(grant.created_at)
        self.expires_at = to_db_datetime(grant.expires_at)
        self.is_active = grant.is_active
        self.used_by = grant.used_by
        self.used_at = to_db_datetime(grant.used_at)
        if isinstance(grant, EmergencyPinGrant):
            self.location = (
                grant.location_at_issue.to_dict() if grant.location_at_issue else None
            )
            self.notification_sent = grant.notification_sent
            self.sms_sent = grant.sms_sent
            self.emergency_contacts = list(grant.emergency_contacts)
        elif isinstance(grant, SharingTokenGrant):
            self.access_level = grant.access_level.value
            self.data_scope = grant.data_scope.value

    def to_grant(self) -> AccessGrant:
        """Convert the row into a domain grant."""
        common: Dict[str, Any] = {
            "grant_id": self.grant_id,
            "subject_id": self.subject_id,
            "secret": self.secret,
            "created_at": from_db_datetime(self.created_at),
            "expires_at": from_db_datetime(self.expires_at),
            "is_active": self.is_active,
            "used_by": self.used_by,
            "used_at": from_db_datetime(self.used_at),
        }
        if self.kind == GrantKind.EMERGENCY_PIN.value:
            return EmergencyPinGrant(
                location_at_issue=(
                    GeoLocation.from_dict(self.location) if self.location else None
                ),
                notification_sent=bool(self.notification_sent),
                sms_sent=bool(self.sms_sent),
                emergency_contacts=list(self.emergency_contacts or []),
                **common,
            )
        return SharingTokenGrant(
            access_level=AccessLevel(self.access_level),
            data_scope=DataScope(self.data_scope),
            **common,
        )
