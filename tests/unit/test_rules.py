"""Tests for the pure tracking rules."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from visit_tracker.core.enums import (
    NotificationSeverity,
    PanicAlertLevel,
    PanicAlertStatus,
    TrackingEventType,
)
from visit_tracker.domain.errors import InvalidAlertOutcomeError
from visit_tracker.domain.events import LastKnownLocation, PatientAddress
from visit_tracker.domain.rules import (
    active_alerts,
    advance_check_in_deadline,
    build_public_view,
    build_tracking_url,
    compute_next_check_in_due,
    decide_share,
    earliest_active_alert,
    find_usable_contact,
    is_check_in_overdue,
    is_share_usable,
    minutes_overdue,
    normalize_phone,
    panic_event_type,
    panic_fan_out,
    panic_severity,
    requires_police,
    usable_contacts,
    validate_alert_outcome,
)

pytestmark = pytest.mark.unit

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@dataclass
class Contact:
    phone: str
    is_active: bool = True
    expires_at: Optional[datetime] = None


@dataclass
class Alert:
    position: int
    status: str = PanicAlertStatus.ACTIVE.value


class TestCheckInCadence:
    def test_next_due_is_one_interval_ahead(self):
        assert compute_next_check_in_due(NOW, 30) == NOW + timedelta(minutes=30)

    def test_interval_below_one_minute_rejected(self):
        with pytest.raises(ValueError):
            compute_next_check_in_due(NOW, 0)

    def test_deadline_moves_forward(self):
        current = NOW + timedelta(minutes=30)
        later = NOW + timedelta(minutes=20)
        assert advance_check_in_deadline(current, later, 30) == later + timedelta(minutes=30)

    def test_deadline_never_moves_backward(self):
        """A check-in stamped before the previous one keeps the stored deadline."""
        current = NOW + timedelta(minutes=60)
        assert advance_check_in_deadline(current, NOW, 30) == current

    def test_overdue_is_strict(self):
        due = NOW
        assert not is_check_in_overdue(True, due, NOW)
        assert is_check_in_overdue(True, due, NOW + timedelta(seconds=1))

    def test_inactive_session_never_overdue(self):
        assert not is_check_in_overdue(False, NOW, NOW + timedelta(hours=5))

    def test_minutes_overdue_rounds_down_and_floors_at_zero(self):
        assert minutes_overdue(NOW, NOW + timedelta(minutes=15, seconds=59)) == 15
        assert minutes_overdue(NOW, NOW - timedelta(minutes=5)) == 0


class TestPanicRules:
    def test_emergency_requires_police(self):
        assert requires_police(PanicAlertLevel.EMERGENCY)
        assert not requires_police(PanicAlertLevel.HELP_NEEDED)

    def test_event_type_follows_level(self):
        assert panic_event_type(PanicAlertLevel.EMERGENCY) == TrackingEventType.PANIC_BUTTON_EMERGENCY
        assert panic_event_type("help_needed") == TrackingEventType.PANIC_BUTTON_HELP

    def test_severity_follows_level(self):
        assert panic_severity(PanicAlertLevel.EMERGENCY) == NotificationSeverity.CRITICAL
        assert panic_severity(PanicAlertLevel.HELP_NEEDED) == NotificationSeverity.WARNING

    def test_earliest_active_alert_skips_closed(self):
        alerts = [
            Alert(1, PanicAlertStatus.RESPONDED.value),
            Alert(3),
            Alert(2),
        ]
        assert earliest_active_alert(alerts).position == 2

    def test_no_active_alert(self):
        assert earliest_active_alert([Alert(1, PanicAlertStatus.FALSE_ALARM.value)]) is None
        assert earliest_active_alert([]) is None

    def test_active_alerts_in_raise_order(self):
        alerts = [Alert(3), Alert(1, PanicAlertStatus.RESOLVED.value), Alert(2)]
        assert [a.position for a in active_alerts(alerts)] == [2, 3]

    @pytest.mark.parametrize("outcome", ["responded", "resolved", "false_alarm"])
    def test_terminal_outcomes_accepted(self, outcome):
        assert validate_alert_outcome(outcome) == PanicAlertStatus(outcome)

    @pytest.mark.parametrize("outcome", ["active", "escalated", ""])
    def test_non_terminal_outcomes_rejected(self, outcome):
        with pytest.raises(InvalidAlertOutcomeError):
            validate_alert_outcome(outcome)


class TestSharingRules:
    def test_normalize_phone(self):
        assert normalize_phone(" +55 (11) 98765-4321 ") == "+5511987654321"
        assert normalize_phone("11.9876.5432") == "1198765432"

    def test_usable_requires_active_and_unexpired(self):
        assert is_share_usable(True, None, NOW)
        assert is_share_usable(True, NOW + timedelta(seconds=1), NOW)
        assert not is_share_usable(True, NOW, NOW)
        assert not is_share_usable(False, None, NOW)

    def test_usable_contacts_filters(self):
        contacts = [
            Contact("+1"),
            Contact("+2", is_active=False),
            Contact("+3", expires_at=NOW - timedelta(minutes=1)),
        ]
        assert [c.phone for c in usable_contacts(contacts, NOW)] == ["+1"]

    def test_find_usable_contact_matches_normalized_phone(self):
        contacts = [Contact("+5511987654321")]
        assert find_usable_contact(contacts, "+55 11 98765-4321", NOW) is contacts[0]
        assert find_usable_contact(contacts, "+5511000000000", NOW) is None

    def test_decide_share_reuses_existing(self):
        contacts = [Contact("+1"), Contact("+2"), Contact("+3")]
        decision = decide_share(contacts, "+2", NOW, 3)
        assert decision.reuses_existing
        assert decision.existing is contacts[1]

    def test_decide_share_refuses_fourth(self):
        contacts = [Contact("+1"), Contact("+2"), Contact("+3")]
        decision = decide_share(contacts, "+4", NOW, 3)
        assert not decision.reuses_existing
        assert not decision.allowed

    def test_revoked_contacts_do_not_count(self):
        contacts = [Contact("+1"), Contact("+2"), Contact("+3", is_active=False)]
        assert decide_share(contacts, "+4", NOW, 3).allowed

    def test_fan_out_is_usable_contacts_plus_monitoring(self):
        contacts = [
            Contact("+1"),
            Contact("+2", is_active=False),
            Contact("+1"),
        ]
        assert panic_fan_out(contacts, "monitoring-center", NOW) == ["+1", "monitoring-center"]

    def test_tracking_url(self):
        assert build_tracking_url("https://care.example.com/track/", "abc") == (
            "https://care.example.com/track/abc"
        )


class TestPublicView:
    def test_only_district_is_exposed(self):
        address = PatientAddress(
            address_line="Rua das Flores 12",
            district="Centro",
            latitude=-23.55,
            longitude=-46.63,
        )
        view = build_public_view(
            is_active=True,
            started_at=NOW,
            patient_address=address,
            last_known_location=LastKnownLocation(
                latitude=-23.551, longitude=-46.634, timestamp=NOW
            ),
            alerts=[Alert(1, PanicAlertStatus.RESOLVED.value), Alert(2)],
            professional_first_name="Maria",
            service_category="Wound care",
        )

        dumped = view.model_dump()
        assert dumped["patient_district"] == "Centro"
        assert view.panic_active is True
        assert "Rua das Flores" not in str(dumped)
        assert set(dumped) == {
            "professional_first_name",
            "service_category",
            "last_known_location",
            "is_active",
            "started_at",
            "patient_district",
            "panic_active",
        }
