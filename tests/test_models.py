"""
Tests for budgetkeep models

Test strategy:
1. Unit tests for individual components (models, codec, keys)
2. Store tests against in-memory and temp-dir backends
3. No real API calls in tests (use mocks)
"""

import pytest
from datetime import datetime, timezone

from budgetkeep.models.identity import (
    Identity,
    IdentityKind,
    classify_identity,
    is_valid_uuid,
)
from budgetkeep.models.records import (
    NavigationMarker,
    NotificationSettings,
    TutorialStatus,
)
from budgetkeep.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


DURABLE_ID = "3f2b8c1e-9d4a-4b6e-8f21-7c5d3e9a1b04"


class TestIdentity:
    """Tests for identity classification."""

    def test_uuid_is_durable(self):
        """Test that a v4 UUID classifies as durable."""
        assert classify_identity(DURABLE_ID) == IdentityKind.DURABLE
        assert Identity.of(DURABLE_ID).is_durable

    def test_uppercase_uuid_is_durable(self):
        """Test that classification is case-insensitive."""
        assert is_valid_uuid(DURABLE_ID.upper())

    def test_test_account_is_ephemeral(self):
        """Test that non-UUID identifiers classify as ephemeral."""
        assert classify_identity("abc-not-a-uuid") == IdentityKind.EPHEMERAL
        assert not Identity.of("test-user-1").is_durable

    def test_wrong_variant_is_ephemeral(self):
        """Test that a UUID-shaped string with bad variant bits is rejected."""
        assert not is_valid_uuid("3f2b8c1e-9d4a-4b6e-1f21-7c5d3e9a1b04")

    def test_classification_is_stable(self):
        """Test that the same identifier always gets the same kind."""
        kinds = {classify_identity("guest") for _ in range(5)}
        assert kinds == {IdentityKind.EPHEMERAL}

    def test_empty_user_id_rejected(self):
        """Test that an empty identifier is not a valid identity."""
        with pytest.raises(ValueError):
            Identity(user_id="")

    def test_identity_is_frozen(self):
        """Test that identities are immutable."""
        identity = Identity.of("guest")
        with pytest.raises(ValueError):
            identity.user_id = "other"

    def test_kind_follows_raw_identifier(self):
        """Test that an identity's kind matches classifying its exact string."""
        for user_id in (" " + DURABLE_ID, DURABLE_ID + "\n", DURABLE_ID, "bob "):
            assert Identity.of(user_id).kind == classify_identity(user_id)
        assert Identity.of(" " + DURABLE_ID).kind == IdentityKind.EPHEMERAL
        assert not is_valid_uuid(DURABLE_ID + "\n")

    def test_whitespace_is_preserved(self):
        """Test that identifiers differing only in whitespace stay distinct."""
        assert Identity.of("bob ").user_id == "bob "
        assert Identity.of("bob") != Identity.of("bob ")

    def test_str_is_user_id(self):
        """Test string conversion."""
        assert str(Identity.of("guest")) == "guest"


class TestRecordModels:
    """Tests for persisted record models."""

    def test_tutorial_status_defaults(self):
        """Test that a new status asks for the tutorial."""
        status = TutorialStatus(user_id="guest")
        assert status.needs_tutorial is True
        assert status.tutorial_completed is False
        assert status.completed_at is None
        assert status.should_start

    def test_completed_status_does_not_start(self):
        """Test should_start once the tutorial is done."""
        status = TutorialStatus(
            user_id="guest",
            needs_tutorial=False,
            tutorial_completed=True,
            completed_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        assert not status.should_start

    def test_tutorial_status_from_sheet_cells(self):
        """Test that text cells coerce into typed fields."""
        status = TutorialStatus.model_validate({
            "user_id": DURABLE_ID,
            "needs_tutorial": "false",
            "tutorial_completed": "true",
            "completed_at": "2024-03-01T10:00:00+00:00",
            "updated_at": None,
        })
        assert status.tutorial_completed is True
        assert status.completed_at.year == 2024

    def test_navigation_marker_wire_names(self):
        """Test that the marker serializes with its camelCase wire name."""
        marker = NavigationMarker(last_screen="budget", timestamp=1000)
        dumped = marker.model_dump(by_alias=True)
        assert dumped == {"lastScreen": "budget", "timestamp": 1000}

    def test_navigation_marker_accepts_alias(self):
        """Test loading from the wire shape."""
        marker = NavigationMarker.model_validate({"lastScreen": "insights", "timestamp": 5})
        assert marker.last_screen == "insights"

    def test_navigation_marker_rejects_negative_timestamp(self):
        """Test that timestamps must be non-negative."""
        with pytest.raises(ValueError):
            NavigationMarker(last_screen="budget", timestamp=-1)


class TestNotificationSettingsModel:
    """Tests for notification preferences."""

    def test_defaults(self):
        """Test the default preferences."""
        settings = NotificationSettings()
        assert settings.expense_reminders is True
        assert settings.reminder_time == "09:00"
        assert settings.weekly_insight_day == "sunday"

    def test_time_is_normalized(self):
        """Test that H:MM is zero-padded."""
        settings = NotificationSettings(reminder_time="7:05")
        assert settings.reminder_time == "07:05"

    def test_time_out_of_range_rejected(self):
        """Test that impossible clock times are rejected."""
        with pytest.raises(ValueError):
            NotificationSettings(weekly_insight_time="25:00")

    def test_malformed_time_rejected(self):
        """Test that non HH:MM text is rejected."""
        with pytest.raises(ValueError):
            NotificationSettings(reminder_time="noon")

    def test_weekday_is_lowercased(self):
        """Test weekday normalization."""
        assert NotificationSettings(weekly_insight_day="Friday").weekly_insight_day == "friday"

    def test_unknown_weekday_rejected(self):
        """Test that unknown weekdays are rejected."""
        with pytest.raises(ValueError):
            NotificationSettings(weekly_insight_day="someday")


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent creation."""
        event = AuditEvent(
            event_type=AuditEventType.RECORD_WRITTEN,
            description="Record written",
        )
        assert event.event_id is not None
        assert event.timestamp.tzinfo is not None
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.REMOTE_FALLBACK,
            severity=AuditSeverity.WARNING,
            user_id=DURABLE_ID,
            description="Remote read failed",
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "remote_fallback"
        assert log_dict["severity"] == "warning"
        assert log_dict["user_id"] == DURABLE_ID

    def test_builder_write_failed(self):
        """Test the write-failed builder."""
        event = AuditEventBuilder.write_failed(DURABLE_ID, "user_tutorial_status", "remote", "timeout")
        assert event.event_type == AuditEventType.WRITE_FAILED
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "timeout"

    def test_builder_data_reset_is_user_action(self):
        """Test that resets are recorded as user actions."""
        event = AuditEventBuilder.data_reset(keys_removed=4, user_id="guest")
        assert event.is_user_action is True
        assert event.details["keys_removed"] == 4
        assert "guest" in event.description

    def test_builder_marker_expired(self):
        """Test the marker-expired builder."""
        event = AuditEventBuilder.marker_expired("@budgetkeep:navigation_state", 31000, 30000)
        assert event.details == {"age_ms": 31000, "ttl_ms": 30000}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
