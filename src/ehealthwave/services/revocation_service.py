"""Grant revocation.

Revoked grants stay in the store for audit but never validate again.
"""

from typing import Optional, Union

from ehealthwave.models.grant import GrantKind
from ehealthwave.models.ledger import LedgerEventType
from ehealthwave.services.base import BaseService, coerce_enum, require_text
from ehealthwave.utils.logging import get_logger

logger = get_logger(__name__)

_BULK_EVENTS = {
    GrantKind.EMERGENCY_PIN: LedgerEventType.EMERGENCY_PIN_REVOKED,
    GrantKind.SHARING_TOKEN: LedgerEventType.TOKEN_REVOKED,
    None: LedgerEventType.GRANTS_REVOKED,
}


class GrantRevocationService(BaseService):
    """Invalidates grants before their natural expiry."""

    def revoke_one(self, secret: str) -> bool:
        """Deactivate the grant holding ``secret``.

        Returns:
            True if an active grant was found and deactivated, False if the
            secret is unknown or already inactive
        """
        secret = require_text(secret, "secret")
        grant = self.grant_store.deactivate(secret)
        if grant is None:
            return False

        self.record_event(
            LedgerEventType.GRANT_REVOKED,
            grant_id=grant.grant_id,
            kind=grant.kind.value,
            subject_id=grant.subject_id,
        )
        logger.info(
            "grant_revoked",
            subject_id=grant.subject_id,
            grant_id=grant.grant_id,
            kind=grant.kind.value,
        )
        return True

    def revoke_all_for_subject(
        self, subject_id: str, kind: Optional[Union[GrantKind, str]] = None
    ) -> int:
        """Deactivate every live grant of a subject.

        Args:
            subject_id: Patient identifier
            kind: Restrict to emergency PINs or sharing tokens; both if None

        Returns:
            Number of grants revoked; 0 when nothing was live, which is not
            an error
        """
        subject_id = require_text(subject_id, "subject_id")
        grant_kind = coerce_enum(GrantKind, kind, "kind") if kind is not None else None

        live = [
            g
            for g in self.grant_store.list_active_by_subject(subject_id, self.now())
            if grant_kind is None or g.kind is grant_kind
        ]
        revoked = [g for g in live if self.grant_store.deactivate(g.secret)]

        if revoked:
            self.record_event(
                _BULK_EVENTS[grant_kind],
                subject_id=subject_id,
                count=len(revoked),
                grant_ids=[g.grant_id for g in revoked],
            )
        logger.info(
            "grants_revoked_for_subject",
            subject_id=subject_id,
            kind=grant_kind.value if grant_kind else "all",
            count=len(revoked),
        )
        return len(revoked)
