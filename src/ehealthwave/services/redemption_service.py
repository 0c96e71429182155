"""Grant validation and redemption.

Emergency PINs are single-use: redemption finds a live PIN and marks it used
in one atomic store operation. Sharing tokens are reusable: validation is a
pure read, and ``use_token`` only stamps the last user.

Denials are ordinary results, not exceptions. Callers only ever see
``invalid_or_expired``; the precise reason goes to the log and the ledger.
"""

from typing import Optional

from ehealthwave.models.grant import (
    DenialReason,
    EmergencyPinGrant,
    GrantStatus,
    GrantStatusReport,
    RedemptionResult,
    SharingTokenGrant,
)
from ehealthwave.models.ledger import LedgerEventType
from ehealthwave.services.base import BaseService, require_text
from ehealthwave.services.ledger_service import LedgerService
from ehealthwave.services.record_service import RecordStore
from ehealthwave.storage.base import GrantStore
from ehealthwave.utils.clock import Clock
from ehealthwave.utils.logging import get_logger
from ehealthwave.utils.rate_limiter import GuessLimiter

logger = get_logger(__name__)


class GrantRedemptionService(BaseService):
    """Decides whether a presented secret currently grants access."""

    def __init__(
        self,
        grant_store: GrantStore,
        ledger: LedgerService,
        record_store: RecordStore,
        clock: Optional[Clock] = None,
        guess_limiter: Optional[GuessLimiter] = None,
    ):
        """Initialize the redemption service.

        Args:
            grant_store: Grant storage
            ledger: Audit ledger
            record_store: Source of records returned on PIN redemption
            clock: Time source
            guess_limiter: Optional lockout for repeated failed PIN guesses
        """
        super().__init__(grant_store, ledger, clock)
        self.record_store = record_store
        self.guess_limiter = guess_limiter

    def redeem_emergency_pin(
        self, secret: str, subject_id: str, redeemer_id: str
    ) -> RedemptionResult:
        """Redeem a PIN and return the subject's records.

        Args:
            secret: The 6-digit PIN presented by the provider
            subject_id: Patient the provider claims the PIN is for
            redeemer_id: Provider identity recorded as the PIN's user

        Returns:
            ``granted=True`` with records, or ``granted=False`` with
            ``reason="invalid_or_expired"``
        """
        secret = require_text(secret, "secret")
        subject_id = require_text(subject_id, "subject_id")
        redeemer_id = require_text(redeemer_id, "redeemer_id")
        now = self.now()
        # Failures count per caller, not per patient
        guess_key = (subject_id, redeemer_id)

        if self.guess_limiter and self.guess_limiter.is_locked(guess_key, now):
            return self._deny(subject_id, redeemer_id, DenialReason.LOCKED_OUT)

        grant = self.grant_store.consume_pin(secret, subject_id, redeemer_id, now)
        if grant is None:
            if self.guess_limiter:
                self.guess_limiter.record_failure(guess_key, now)
            return self._deny(
                subject_id, redeemer_id, self._diagnose_pin(secret, subject_id)
            )

        if self.guess_limiter:
            self.guess_limiter.reset(guess_key)

        records = self.record_store.records_for(subject_id)
        self.record_event(
            LedgerEventType.EMERGENCY_ACCESS_GRANTED,
            grant_id=grant.grant_id,
            subject_id=subject_id,
            redeemer_id=redeemer_id,
            used_at=now.isoformat(),
        )
        logger.info(
            "emergency_access_granted",
            subject_id=subject_id,
            redeemer_id=redeemer_id,
            grant_id=grant.grant_id,
            records=len(records),
        )
        return RedemptionResult(granted=True, records=records)

    def check_pin_validity(self, secret: str, subject_id: str) -> bool:
        """Whether a PIN would currently redeem, without consuming it."""
        secret = require_text(secret, "secret")
        subject_id = require_text(subject_id, "subject_id")
        grant = self.grant_store.get(secret)
        return (
            isinstance(grant, EmergencyPinGrant)
            and grant.subject_id == subject_id
            and grant.is_live(self.now())
        )

    def validate_sharing_token(self, secret: str, subject_id: str) -> bool:
        """Whether a token is active, unexpired and issued for the subject.

        Pure read: no ledger entry, no consumption. Used for status polling
        while a share is in progress.
        """
        secret = require_text(secret, "secret")
        subject_id = require_text(subject_id, "subject_id")
        grant = self.grant_store.get(secret)
        return (
            isinstance(grant, SharingTokenGrant)
            and grant.subject_id == subject_id
            and grant.is_live(self.now())
        )

    def use_token(self, secret: str, redeemer_id: str) -> bool:
        """Stamp a live token with its user.

        Tokens stay active after use and may be used again until they expire
        or are revoked; only emergency PINs are single-use.

        Returns:
            True if the token was live and has been marked used
        """
        secret = require_text(secret, "secret")
        redeemer_id = require_text(redeemer_id, "redeemer_id")
        now = self.now()

        grant = self.grant_store.stamp_use(secret, redeemer_id, now)
        if grant is None:
            logger.info("token_use_rejected", redeemer_id=redeemer_id)
            return False

        self.record_event(
            LedgerEventType.TOKEN_USED,
            grant_id=grant.grant_id,
            subject_id=grant.subject_id,
            redeemer_id=redeemer_id,
            used_at=now.isoformat(),
        )
        logger.info(
            "sharing_token_used",
            subject_id=grant.subject_id,
            redeemer_id=redeemer_id,
            grant_id=grant.grant_id,
        )
        return True

    def status_of(self, secret: str) -> GrantStatusReport:
        """Report not_found, expired, inactive or active, in that precedence."""
        secret = require_text(secret, "secret")
        grant = self.grant_store.get(secret)
        if grant is None:
            return GrantStatusReport(status=GrantStatus.NOT_FOUND)

        status = grant.status(self.now())
        if status is GrantStatus.ACTIVE:
            return GrantStatusReport(status=status, expires_at=grant.expires_at)
        return GrantStatusReport(status=status)

    def _diagnose_pin(self, secret: str, subject_id: str) -> DenialReason:
        """Work out why a PIN failed, for the audit trail only.

        A PIN belonging to another subject reports as not found, so the
        ledger never records a near miss against someone else's grant.
        """
        grant = self.grant_store.get(secret)
        if not isinstance(grant, EmergencyPinGrant) or grant.subject_id != subject_id:
            return DenialReason.NOT_FOUND
        return grant.denial_reason(self.now()) or DenialReason.ALREADY_USED

    def _deny(
        self, subject_id: str, redeemer_id: str, denial: DenialReason
    ) -> RedemptionResult:
        self.record_event(
            LedgerEventType.EMERGENCY_ACCESS_DENIED,
            subject_id=subject_id,
            redeemer_id=redeemer_id,
            denial=denial.value,
        )
        logger.warning(
            "emergency_access_denied",
            subject_id=subject_id,
            redeemer_id=redeemer_id,
            denial=denial.value,
        )
        return RedemptionResult.denied(denial)
