"""Emergency Access Service for eHealthWave.

Application-facing entry point for temporary access grants. It wires the
issuance, redemption and revocation services over one grant store and one
audit ledger, and adds the emergency workflow around PINs: provider
notification, SMS to emergency contacts, location updates and provider
responses to emergency requests.
"""

from typing import Any, Dict, List, Optional, Union

from ehealthwave.config import Settings, get_settings
from ehealthwave.core.exceptions import NotificationError, ValidationError
from ehealthwave.models.grant import (
    AccessLevel,
    DataScope,
    EmergencyPinGrant,
    GrantKind,
    GrantStatusReport,
    RedemptionResult,
    SharingTokenGrant,
)
from ehealthwave.models.ledger import LedgerEventType
from ehealthwave.services.base import BaseService, require_text
from ehealthwave.services.issuance_service import (
    GrantIssuanceService,
    LocationInput,
    build_location,
)
from ehealthwave.services.ledger_service import LedgerService
from ehealthwave.services.notification_service import (
    LoggingNotificationSender,
    NotificationSender,
)
from ehealthwave.services.record_service import LedgerRecordStore, RecordStore
from ehealthwave.services.redemption_service import GrantRedemptionService
from ehealthwave.services.revocation_service import GrantRevocationService
from ehealthwave.storage.base import GrantStore
from ehealthwave.utils.clock import Clock, SystemClock
from ehealthwave.utils.crypto import RandomSource, SecureRandomSource
from ehealthwave.utils.logging import get_logger
from ehealthwave.utils.rate_limiter import GuessLimiter

logger = get_logger(__name__)

REQUEST_ACTIONS = {
    "accept": LedgerEventType.EMERGENCY_REQUEST_ACCEPTED,
    "reject": LedgerEventType.EMERGENCY_REQUEST_REJECTED,
}


class EmergencyAccessService(BaseService):
    """Issue, redeem, inspect and revoke emergency PINs and sharing tokens."""

    def __init__(
        self,
        grant_store: GrantStore,
        ledger: LedgerService,
        record_store: Optional[RecordStore] = None,
        notification_sender: Optional[NotificationSender] = None,
        clock: Optional[Clock] = None,
        random_source: Optional[RandomSource] = None,
        guess_limiter: Optional[GuessLimiter] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize the service and its collaborators.

        Args:
            grant_store: Grant storage shared by every operation
            ledger: Audit ledger shared by every operation
            record_store: Records returned on PIN redemption; defaults to
                medical records kept on the ledger
            notification_sender: Transport for provider and contact alerts
            clock: Time source
            random_source: Secret generator
            guess_limiter: PIN guess lockout; built from settings if omitted
                and guess limiting is enabled
            settings: Application settings
        """
        self.settings = settings or get_settings()
        clock = clock or SystemClock()
        super().__init__(grant_store, ledger, clock)

        self.record_store = record_store or LedgerRecordStore(ledger)
        self.notification_sender = notification_sender or LoggingNotificationSender()

        if guess_limiter is None and self.settings.pin_guess_limit_enabled:
            guess_limiter = GuessLimiter(
                max_failures=self.settings.pin_max_failed_attempts,
                window_minutes=self.settings.pin_lockout_minutes,
            )

        self.issuance = GrantIssuanceService(
            grant_store,
            ledger,
            clock=clock,
            random_source=random_source
            or SecureRandomSource(token_length=self.settings.token_length),
            max_attempts=self.settings.secret_generation_max_attempts,
        )
        self.redemption = GrantRedemptionService(
            grant_store,
            ledger,
            self.record_store,
            clock=clock,
            guess_limiter=guess_limiter,
        )
        self.revocation = GrantRevocationService(grant_store, ledger, clock)

    # Issuance

    def issue_emergency_pin(
        self,
        subject_id: str,
        validity_minutes: Optional[int] = None,
        location: Optional[LocationInput] = None,
        emergency_contacts: Optional[List[str]] = None,
    ) -> str:
        """Create a single-use emergency PIN; see ``GrantIssuanceService``."""
        return self.issuance.issue_emergency_pin(
            subject_id,
            (
                self.settings.default_pin_validity_minutes
                if validity_minutes is None
                else validity_minutes
            ),
            location=location,
            emergency_contacts=emergency_contacts,
        )

    def issue_sharing_token(
        self,
        subject_id: str,
        validity_minutes: Optional[int] = None,
        access_level: Union[AccessLevel, str] = AccessLevel.READ,
        data_scope: Union[DataScope, str] = DataScope.LIMITED,
    ) -> SharingTokenGrant:
        """Create a reusable sharing token; see ``GrantIssuanceService``."""
        return self.issuance.issue_sharing_token(
            subject_id,
            (
                self.settings.default_token_validity_minutes
                if validity_minutes is None
                else validity_minutes
            ),
            access_level,
            data_scope,
        )

    # Validation and redemption

    def redeem_emergency_pin(
        self, secret: str, subject_id: str, redeemer_id: str
    ) -> RedemptionResult:
        """Redeem a PIN for the subject's records."""
        return self.redemption.redeem_emergency_pin(secret, subject_id, redeemer_id)

    def check_pin_validity(self, secret: str, subject_id: str) -> bool:
        """Check a PIN without consuming it."""
        return self.redemption.check_pin_validity(secret, subject_id)

    def validate_sharing_token(self, secret: str, subject_id: str) -> bool:
        """Check a token without consuming it."""
        return self.redemption.validate_sharing_token(secret, subject_id)

    def use_token(self, secret: str, redeemer_id: str) -> bool:
        """Mark a token used; tokens remain reusable."""
        return self.redemption.use_token(secret, redeemer_id)

    def status_of(self, secret: str) -> GrantStatusReport:
        """Report a secret's status."""
        return self.redemption.status_of(secret)

    # Revocation

    def revoke_one(self, secret: str) -> bool:
        """Revoke a single grant."""
        return self.revocation.revoke_one(secret)

    def revoke_all_for_subject(
        self, subject_id: str, kind: Optional[Union[GrantKind, str]] = None
    ) -> int:
        """Revoke every live grant of a subject."""
        return self.revocation.revoke_all_for_subject(subject_id, kind)

    def revoke_emergency_pins(self, subject_id: str) -> int:
        """Revoke every live emergency PIN of a subject."""
        return self.revocation.revoke_all_for_subject(
            subject_id, GrantKind.EMERGENCY_PIN
        )

    def revoke_all_tokens(self, subject_id: str) -> int:
        """Revoke every live sharing token of a subject."""
        return self.revocation.revoke_all_for_subject(
            subject_id, GrantKind.SHARING_TOKEN
        )

    # Queries

    def get_token(self, secret: str) -> Optional[SharingTokenGrant]:
        """Return the sharing token holding ``secret``."""
        grant = self.grant_store.get(require_text(secret, "secret"))
        return grant if isinstance(grant, SharingTokenGrant) else None

    def get_active_tokens(self, subject_id: str) -> List[SharingTokenGrant]:
        """Return the subject's live sharing tokens."""
        subject_id = require_text(subject_id, "subject_id")
        return [
            g
            for g in self.grant_store.list_active_by_subject(subject_id, self.now())
            if isinstance(g, SharingTokenGrant)
        ]

    def get_active_emergency_access(self, subject_id: str) -> List[Dict[str, Any]]:
        """Return the subject's live emergency PINs with the PIN itself omitted."""
        subject_id = require_text(subject_id, "subject_id")
        return [
            g.to_dict(include_secret=False)
            for g in self.grant_store.list_active_by_subject(subject_id, self.now())
            if isinstance(g, EmergencyPinGrant)
        ]

    def get_emergency_access_activity(self, provider_id: str) -> List[Dict[str, Any]]:
        """Return the PIN redemptions made by a provider."""
        provider_id = require_text(provider_id, "provider_id")
        return [
            {
                "grant_id": g.grant_id,
                "subject_id": g.subject_id,
                "access_time": g.used_at.isoformat() if g.used_at else None,
                "expires_at": g.expires_at.isoformat(),
            }
            for g in self.grant_store.list_all()
            if isinstance(g, EmergencyPinGrant) and g.used_by == provider_id
        ]

    def verify_ledger(self) -> bool:
        """Verify the audit ledger's hash chain."""
        return self.ledger.verify_integrity()

    # Emergency workflow

    def notify_emergency_providers(
        self, subject_id: str, emergency_details: Dict[str, Any]
    ) -> bool:
        """Alert providers about the subject's first live, unannounced PIN.

        Returns:
            True if a PIN was found and marked as notified
        """
        subject_id = require_text(subject_id, "subject_id")
        now = self.now()
        candidates = [
            g
            for g in self.grant_store.list_active_by_subject(subject_id, now)
            if isinstance(g, EmergencyPinGrant) and not g.notification_sent
        ]
        grant = next(
            (
                marked
                for marked in (
                    self.grant_store.mark_notified(g.secret, now) for g in candidates
                )
                if marked is not None
            ),
            None,
        )
        if grant is None:
            return False

        self.record_event(
            LedgerEventType.EMERGENCY_NOTIFICATION_SENT,
            grant_id=grant.grant_id,
            subject_id=subject_id,
            details=emergency_details,
        )
        logger.info(
            "emergency_providers_notified", subject_id=subject_id, grant_id=grant.grant_id
        )
        return True

    def send_emergency_sms(
        self, subject_id: str, pin: str, emergency_contacts: List[str]
    ) -> bool:
        """Send a live PIN to the subject's emergency contacts.

        Delivery is best effort: the contacts are recorded even if sending
        fails, and ``sms_sent`` only becomes True on a successful send.
        Spent, revoked and expired PINs are not sent.

        Returns:
            True if the message was delivered
        """
        subject_id = require_text(subject_id, "subject_id")
        pin = require_text(pin, "pin")
        if not emergency_contacts:
            raise ValidationError("emergency_contacts must not be empty")

        grant = self._pin_for_subject(pin, subject_id)
        if grant is None or not grant.is_live(self.now()):
            return False

        contacts = list(emergency_contacts)
        message = (
            f"Emergency access PIN for patient {subject_id}: {pin}. "
            f"Valid until {grant.expires_at.strftime('%Y-%m-%d %H:%M UTC')}."
        )
        delivered = False
        try:
            self.notification_sender.send(contacts, message)
            delivered = True
        except NotificationError as e:
            logger.warning(
                "emergency_sms_failed",
                subject_id=subject_id,
                grant_id=grant.grant_id,
                error=str(e),
            )
        # Writes only the SMS columns, never the redemption state
        self.grant_store.record_sms(pin, contacts, delivered)

        self.record_event(
            LedgerEventType.EMERGENCY_SMS_SENT,
            grant_id=grant.grant_id,
            subject_id=subject_id,
            contacts=contacts,
            delivered=delivered,
        )
        return delivered

    def update_emergency_location(
        self, subject_id: str, pin: str, location: LocationInput
    ) -> bool:
        """Replace the location snapshot of a PIN.

        Returns:
            True if the PIN was found for the subject
        """
        subject_id = require_text(subject_id, "subject_id")
        pin = require_text(pin, "pin")
        snapshot = build_location(location, self.now())

        grant = self._pin_for_subject(pin, subject_id)
        if grant is None or self.grant_store.set_location(pin, snapshot) is None:
            return False

        self.record_event(
            LedgerEventType.EMERGENCY_LOCATION_UPDATED,
            grant_id=grant.grant_id,
            subject_id=subject_id,
            location=snapshot.to_dict(),
        )
        return True

    def respond_to_emergency_request(
        self,
        request_id: str,
        provider_id: str,
        action: str,
        reason: Optional[str] = None,
    ) -> bool:
        """Record a provider accepting or rejecting an emergency request."""
        request_id = require_text(request_id, "request_id")
        provider_id = require_text(provider_id, "provider_id")
        event_type = REQUEST_ACTIONS.get(action)
        if event_type is None:
            raise ValidationError("action must be 'accept' or 'reject'")

        self.record_event(
            event_type,
            request_id=request_id,
            provider_id=provider_id,
            reason=reason,
        )
        logger.info(
            "emergency_request_answered",
            request_id=request_id,
            provider_id=provider_id,
            action=action,
        )
        return True

    def _pin_for_subject(self, pin: str, subject_id: str) -> Optional[EmergencyPinGrant]:
        grant = self.grant_store.get(pin)
        if isinstance(grant, EmergencyPinGrant) and grant.subject_id == subject_id:
            return grant
        return None
