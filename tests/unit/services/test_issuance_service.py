"""Tests for emergency PIN and sharing token issuance."""

import re
from datetime import timedelta

import pytest

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
from ehealthwave.services.issuance_service import GrantIssuanceService
from ehealthwave.utils.crypto import RandomSource, SecureRandomSource, canonical_json
from tests.conftest import SequenceRandomSource


class ConstantRandomSource(RandomSource):
    """Always returns the same secret."""

    def secret(self, kind: GrantKind) -> str:
        return "123456" if kind is GrantKind.EMERGENCY_PIN else "AAAAAAAAAAAA"


@pytest.fixture
def issuance(grant_store, ledger, clock, random_source):
    """Issuance service over in-memory stores."""
    return GrantIssuanceService(
        grant_store, ledger, clock=clock, random_source=random_source
    )


class TestIssueEmergencyPin:
    """Test emergency PIN issuance."""

    def test_pin_is_stored_with_expiry(self, issuance, grant_store, clock):
        """A new PIN is stored active, unused and expiring after the window."""
        pin = issuance.issue_emergency_pin("PAT001", 60)

        grant = grant_store.get(pin)
        assert isinstance(grant, EmergencyPinGrant)
        assert grant.subject_id == "PAT001"
        assert grant.created_at == clock.now()
        assert grant.expires_at == clock.now() + timedelta(minutes=60)
        assert grant.is_active is True
        assert grant.used_by is None
        assert grant.used_at is None

    def test_pin_is_six_digits_from_secure_source(self, grant_store, ledger, clock):
        """The default source yields PINs in 100000..999999."""
        issuance = GrantIssuanceService(grant_store, ledger, clock=clock)

        for _ in range(50):
            pin = issuance.issue_emergency_pin("PAT001", 5)
            assert re.fullmatch(r"\d{6}", pin)
            assert 100000 <= int(pin) <= 999999

    def test_issuance_is_recorded_without_secret(self, issuance, ledger, grant_store):
        """The ledger records the grant id, never the PIN."""
        pin = issuance.issue_emergency_pin("PAT001", 60)
        grant = grant_store.get(pin)

        entry = ledger.latest()
        assert entry.type == LedgerEventType.EMERGENCY_PIN_GENERATED.value
        assert entry.payload["grant_id"] == grant.grant_id
        assert entry.payload["subject_id"] == "PAT001"
        assert entry.payload["expires_at"] == grant.expires_at.isoformat()
        assert pin not in canonical_json(entry.payload)

    def test_location_snapshot_is_stamped(self, issuance, grant_store, clock):
        """A location without a timestamp is stamped with the issue time."""
        pin = issuance.issue_emergency_pin(
            "PAT001", 60, location={"latitude": 1.29, "longitude": 36.82}
        )

        location = grant_store.get(pin).location_at_issue
        assert location == GeoLocation(
            latitude=1.29, longitude=36.82, accuracy=None, timestamp=clock.now()
        )

    def test_emergency_contacts_are_kept(self, issuance, grant_store):
        """Contacts given at issue are stored on the grant."""
        pin = issuance.issue_emergency_pin(
            "PAT001", 60, emergency_contacts=["+254700000001"]
        )

        assert grant_store.get(pin).emergency_contacts == ["+254700000001"]

    def test_invalid_location_rejected(self, issuance, ledger):
        """A location without coordinates is a validation failure."""
        with pytest.raises(ValidationError):
            issuance.issue_emergency_pin("PAT001", 60, location={"latitude": 1.0})

        assert len(ledger) == 1

    @pytest.mark.parametrize("subject_id", ["", "   ", None])
    def test_empty_subject_rejected(self, issuance, ledger, subject_id):
        """A missing subject is rejected before anything is stored."""
        with pytest.raises(ValidationError):
            issuance.issue_emergency_pin(subject_id, 60)

        assert len(ledger) == 1

    @pytest.mark.parametrize("validity", [0, -5, True, 1.5, "60"])
    def test_non_positive_validity_rejected(self, issuance, grant_store, validity):
        """Validity must be a positive integer number of minutes."""
        with pytest.raises(ValidationError):
            issuance.issue_emergency_pin("PAT001", validity)

        assert grant_store.list_all() == []


class TestSecretGeneration:
    """Test secret uniqueness."""

    def test_colliding_candidate_is_redrawn(self, grant_store, ledger, clock):
        """A candidate held by a stored grant is skipped."""
        source = SequenceRandomSource(pins=["111111", "111111", "222222"])
        issuance = GrantIssuanceService(
            grant_store, ledger, clock=clock, random_source=source
        )

        first = issuance.issue_emergency_pin("PAT001", 60)
        second = issuance.issue_emergency_pin("PAT002", 60)

        assert first == "111111"
        assert second == "222222"

    def test_inactive_grants_still_reserve_their_secret(
        self, grant_store, ledger, clock
    ):
        """A revoked grant's secret is not handed out again."""
        source = SequenceRandomSource(pins=["111111", "111111", "333333"])
        issuance = GrantIssuanceService(
            grant_store, ledger, clock=clock, random_source=source
        )
        first = issuance.issue_emergency_pin("PAT001", 60)
        grant_store.deactivate(first)

        assert issuance.issue_emergency_pin("PAT001", 60) == "333333"

    def test_exhausted_attempts_raise(self, grant_store, ledger, clock):
        """Generation gives up after max_attempts collisions."""
        issuance = GrantIssuanceService(
            grant_store,
            ledger,
            clock=clock,
            random_source=ConstantRandomSource(),
            max_attempts=3,
        )
        issuance.issue_emergency_pin("PAT001", 60)

        with pytest.raises(SecretGenerationError):
            issuance.issue_emergency_pin("PAT002", 60)

    def test_secure_source_token_alphabet(self):
        """Tokens use only upper-case letters and digits."""
        source = SecureRandomSource(token_length=16)

        for _ in range(50):
            assert re.fullmatch(r"[A-Z0-9]{16}", source.secret(GrantKind.SHARING_TOKEN))


class TestIssueSharingToken:
    """Test sharing token issuance."""

    def test_token_is_stored_with_scope(self, issuance, grant_store, clock):
        """A token keeps its access level and data scope."""
        token = issuance.issue_sharing_token("PAT001", 30, "read", "emergency")

        stored = grant_store.get(token.secret)
        assert isinstance(stored, SharingTokenGrant)
        assert stored.access_level is AccessLevel.READ
        assert stored.data_scope is DataScope.EMERGENCY
        assert stored.expires_at == clock.now() + timedelta(minutes=30)

    def test_default_token_has_twelve_characters(self, grant_store, ledger, clock):
        """The default source yields 12-character alphanumeric tokens."""
        issuance = GrantIssuanceService(grant_store, ledger, clock=clock)

        token = issuance.issue_sharing_token(
            "PAT001", 30, AccessLevel.WRITE, DataScope.FULL
        )

        assert re.fullmatch(r"[A-Z0-9]{12}", token.secret)
        assert token.display_secret.replace("-", "") == token.secret
        assert len(token.display_secret.split("-")) == 3

    def test_issuance_is_recorded(self, issuance, ledger):
        """The ledger records scope and grant id but not the token."""
        token = issuance.issue_sharing_token("PAT001", 30, "write", "limited")

        entry = ledger.latest()
        assert entry.type == LedgerEventType.BLUETOOTH_TOKEN_GENERATED.value
        assert entry.payload["grant_id"] == token.grant_id
        assert entry.payload["access_level"] == "write"
        assert entry.payload["data_scope"] == "limited"
        assert token.secret not in canonical_json(entry.payload)

    @pytest.mark.parametrize(
        "access_level,data_scope", [("admin", "full"), ("read", "everything")]
    )
    def test_unknown_scope_rejected(self, issuance, ledger, access_level, data_scope):
        """Unknown access levels and data scopes are validation failures."""
        with pytest.raises(ValidationError):
            issuance.issue_sharing_token("PAT001", 30, access_level, data_scope)

        assert len(ledger) == 1
