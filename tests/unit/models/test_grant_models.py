"""Tests for grant lifecycle rules and result models."""

from datetime import timedelta

import pytest

from ehealthwave.models.grant import (
    DenialReason,
    EmergencyPinGrant,
    GeoLocation,
    GrantStatus,
    GrantStatusReport,
    RedemptionResult,
    SharingTokenGrant,
    format_token_for_display,
)
from tests.conftest import START_TIME


@pytest.fixture
def pin():
    """Live PIN expiring one hour after START_TIME."""
    return EmergencyPinGrant(
        subject_id="PAT001",
        secret="123456",
        created_at=START_TIME,
        expires_at=START_TIME + timedelta(hours=1),
    )


@pytest.fixture
def token():
    """Live token expiring thirty minutes after START_TIME."""
    return SharingTokenGrant(
        subject_id="PAT001",
        secret="ABCD1234EFGH",
        created_at=START_TIME,
        expires_at=START_TIME + timedelta(minutes=30),
    )


class TestGrantLifecycle:
    """Test liveness, status and denial reasons."""

    def test_live_grant(self, pin):
        """A fresh grant is live and active."""
        assert pin.is_live(START_TIME) is True
        assert pin.status(START_TIME) is GrantStatus.ACTIVE
        assert pin.denial_reason(START_TIME) is None

    def test_expiry_boundary(self, pin):
        """A grant expires at exactly its expiry instant."""
        assert pin.is_expired(pin.expires_at - timedelta(microseconds=1)) is False
        assert pin.is_expired(pin.expires_at) is True

    def test_used_pin_is_spent(self, pin):
        """A PIN with a redeemer is inactive."""
        pin.used_by = "provider_1"

        assert pin.is_spent is True
        assert pin.is_live(START_TIME) is False
        assert pin.status(START_TIME) is GrantStatus.INACTIVE
        assert pin.denial_reason(START_TIME) is DenialReason.ALREADY_USED

    def test_used_token_stays_live(self, token):
        """Tokens are not single-use."""
        token.used_by = "device_a"

        assert token.is_spent is False
        assert token.is_live(START_TIME) is True

    def test_status_precedence(self, token):
        """Expiry is reported ahead of deactivation."""
        token.is_active = False
        after_expiry = token.expires_at + timedelta(minutes=1)

        assert token.status(START_TIME) is GrantStatus.INACTIVE
        assert token.denial_reason(START_TIME) is DenialReason.REVOKED
        assert token.status(after_expiry) is GrantStatus.EXPIRED

    def test_to_dict_can_omit_secret(self, pin, token):
        """Secrets are only included on request."""
        assert pin.to_dict()["secret"] == "123456"
        assert "secret" not in pin.to_dict(include_secret=False)
        assert token.to_dict()["data_scope"] == "limited"
        assert token.to_dict()["access_level"] == "read"

    def test_grant_ids_are_unique(self, pin, token):
        """Each grant carries its own audit id."""
        assert pin.grant_id.startswith("grant_")
        assert pin.grant_id != token.grant_id


class TestResultModels:
    """Test caller-facing result shapes."""

    def test_denied_result_hides_reason(self):
        """Denials expose only the collapsed reason."""
        result = RedemptionResult.denied(DenialReason.EXPIRED)

        assert result.denial is DenialReason.EXPIRED
        assert result.to_dict() == {"granted": False, "reason": "invalid_or_expired"}

    def test_granted_result(self):
        """Grants carry records."""
        result = RedemptionResult(granted=True, records=[{"id": "r1"}])

        assert result.to_dict() == {"granted": True, "records": [{"id": "r1"}]}

    def test_status_report(self):
        """Expiry is only reported when present."""
        report = GrantStatusReport(status=GrantStatus.ACTIVE, expires_at=START_TIME)

        assert report.to_dict() == {
            "status": "active",
            "expires_at": START_TIME.isoformat(),
        }

    @pytest.mark.parametrize(
        "secret,expected",
        [("ab12cd34ef56", "AB12-CD34-EF56"), ("ABCDEFGHJKLMNP", "ABCD-EFGH-JKLM-NP")],
    )
    def test_token_display_format(self, secret, expected):
        """Tokens are grouped in fours for reading aloud."""
        assert format_token_for_display(secret) == expected


class TestGeoLocation:
    """Test location parsing."""

    def test_from_dict_parses_timestamp(self):
        """ISO timestamps are parsed."""
        location = GeoLocation.from_dict(
            {"latitude": "1.5", "longitude": 2, "timestamp": START_TIME.isoformat()}
        )

        assert location.latitude == 1.5
        assert location.longitude == 2.0
        assert location.timestamp == START_TIME
        assert GeoLocation.from_dict(location.to_dict()) == location

    def test_from_dict_requires_coordinates(self):
        """Missing coordinates fail."""
        with pytest.raises(KeyError):
            GeoLocation.from_dict({"latitude": 1.0})
