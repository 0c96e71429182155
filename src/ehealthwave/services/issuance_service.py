"""Grant issuance.

Creates emergency PINs and sharing tokens, stores them and records the
issuance on the ledger. Secrets never reach the ledger or the log.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from ehealthwave.core.exceptions import SecretGenerationError, ValidationError
from ehealthwave.models.grant import (
    AccessLevel,
    DataScope,
    EmergencyPinGrant,
    GeoLocation,
    GrantKind,
    SharingTokenGrant,
)
from ehealthwave.models.ledger import LedgerEventType
from ehealthwave.services.base import (
    BaseService,
    coerce_enum,
    require_positive,
    require_text,
)
from ehealthwave.services.ledger_service import LedgerService
from ehealthwave.storage.base import GrantStore
from ehealthwave.utils.clock import Clock
from ehealthwave.utils.crypto import RandomSource, SecureRandomSource
from ehealthwave.utils.logging import get_logger

logger = get_logger(__name__)

LocationInput = Union[GeoLocation, Dict[str, Any]]


class GrantIssuanceService(BaseService):
    """Issues emergency PINs and sharing tokens."""

    def __init__(
        self,
        grant_store: GrantStore,
        ledger: LedgerService,
        clock: Optional[Clock] = None,
        random_source: Optional[RandomSource] = None,
        max_attempts: int = 32,
    ):
        """Initialize the issuance service.

        Args:
            grant_store: Where new grants are stored
            ledger: Audit ledger
            clock: Time source
            random_source: Secret generator, CSPRNG-backed by default
            max_attempts: Candidate secrets tried before giving up
        """
        super().__init__(grant_store, ledger, clock)
        self.random_source = random_source or SecureRandomSource()
        self.max_attempts = max_attempts

    def generate_secret(self, kind: GrantKind) -> str:
        """Draw candidate secrets until one is not held by any stored grant.

        Raises:
            SecretGenerationError: If every attempt collided
        """
        for _ in range(self.max_attempts):
            candidate = self.random_source.secret(kind)
            if not self.grant_store.exists(candidate):
                return candidate
        logger.error("secret_generation_exhausted", kind=kind.value)
        raise SecretGenerationError(
            f"No unused {kind.value} secret after {self.max_attempts} attempts"
        )

    def issue_emergency_pin(
        self,
        subject_id: str,
        validity_minutes: int,
        location: Optional[LocationInput] = None,
        emergency_contacts: Optional[List[str]] = None,
    ) -> str:
        """Create a single-use emergency PIN for a patient.

        The PIN is returned to the patient for manual sharing; it is never
        sent to the redeemer by the system.

        Args:
            subject_id: Patient identifier
            validity_minutes: Minutes until the PIN expires
            location: Optional location snapshot at issue time
            emergency_contacts: Optional contacts to alert later

        Returns:
            The 6-digit PIN
        """
        subject_id = require_text(subject_id, "subject_id")
        validity_minutes = require_positive(validity_minutes, "validity_minutes")
        now = self.now()
        snapshot = build_location(location, now) if location else None

        grant = EmergencyPinGrant(
            subject_id=subject_id,
            secret=self.generate_secret(GrantKind.EMERGENCY_PIN),
            created_at=now,
            expires_at=now + timedelta(minutes=validity_minutes),
            location_at_issue=snapshot,
            emergency_contacts=list(emergency_contacts or []),
        )
        self.grant_store.put(grant)

        self.record_event(
            LedgerEventType.EMERGENCY_PIN_GENERATED,
            grant_id=grant.grant_id,
            subject_id=subject_id,
            expires_at=grant.expires_at.isoformat(),
            location=snapshot.to_dict() if snapshot else None,
        )
        logger.info(
            "emergency_pin_issued",
            subject_id=subject_id,
            grant_id=grant.grant_id,
            validity_minutes=validity_minutes,
        )
        return grant.secret

    def issue_sharing_token(
        self,
        subject_id: str,
        validity_minutes: int,
        access_level: Union[AccessLevel, str],
        data_scope: Union[DataScope, str],
    ) -> SharingTokenGrant:
        """Create a reusable sharing token for device-to-device sharing.

        Args:
            subject_id: Patient identifier
            validity_minutes: Minutes until the token expires
            access_level: ``read`` or ``write``
            data_scope: ``full``, ``limited`` or ``emergency``

        Returns:
            The stored grant; ``display_secret`` gives the grouped form
        """
        subject_id = require_text(subject_id, "subject_id")
        validity_minutes = require_positive(validity_minutes, "validity_minutes")
        level = coerce_enum(AccessLevel, access_level, "access_level")
        scope = coerce_enum(DataScope, data_scope, "data_scope")
        now = self.now()

        grant = SharingTokenGrant(
            subject_id=subject_id,
            secret=self.generate_secret(GrantKind.SHARING_TOKEN),
            created_at=now,
            expires_at=now + timedelta(minutes=validity_minutes),
            access_level=level,
            data_scope=scope,
        )
        self.grant_store.put(grant)

        self.record_event(
            LedgerEventType.BLUETOOTH_TOKEN_GENERATED,
            grant_id=grant.grant_id,
            subject_id=subject_id,
            expires_at=grant.expires_at.isoformat(),
            access_level=level.value,
            data_scope=scope.value,
        )
        logger.info(
            "sharing_token_issued",
            subject_id=subject_id,
            grant_id=grant.grant_id,
            access_level=level.value,
            data_scope=scope.value,
        )
        return grant


def build_location(location: LocationInput, now: datetime) -> GeoLocation:
    """Copy a location input into a snapshot stamped with ``now`` if undated."""
    if isinstance(location, GeoLocation):
        snapshot = GeoLocation(
            latitude=location.latitude,
            longitude=location.longitude,
            accuracy=location.accuracy,
            timestamp=location.timestamp,
        )
    else:
        try:
            snapshot = GeoLocation.from_dict(location)
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError("location needs numeric latitude and longitude") from e
    if snapshot.timestamp is None:
        snapshot.timestamp = now
    return snapshot
