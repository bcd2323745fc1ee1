"""Integration tests for share tokens and the public tracking view."""

import pytest

from visit_tracker.core.enums import NotificationKind, PanicAlertLevel
from visit_tracker.db.models import NotificationOutboxEntry
from visit_tracker.domain.errors import (
    InvalidOrExpiredLinkError,
    SessionNotActiveError,
    TooManyContactsError,
    UnauthorizedError,
)
from visit_tracker.services.sharing import ContactDetails

pytestmark = pytest.mark.integration

ANA = ContactDetails("Ana", "+55 11 98765-4321", "sister")


def _contact(n: int) -> ContactDetails:
    return ContactDetails(f"Contact {n}", f"+55 11 90000-000{n}", "friend")


class TestShare:
    def test_share_issues_link(self, sharing, started, app_config):
        contact = sharing.share("visit-1", "pro-1", ANA)

        assert contact.phone == "+5511987654321"
        assert contact.relationship_label == "sister"
        assert contact.is_active is True
        assert contact.expires_at is None
        assert contact.tracking_url == f"https://care.example.com/track/{contact.token}"

    def test_share_is_idempotent_by_phone(self, sharing, started):
        first = sharing.share("visit-1", "pro-1", ANA)
        again = sharing.share(
            "visit-1", "pro-1", ContactDetails("Ana S.", "+5511987654321", "sister")
        )

        assert again.id == first.id
        assert again.token == first.token

    def test_fourth_contact_is_rejected(self, sharing, started):
        for n in range(1, 4):
            sharing.share("visit-1", "pro-1", _contact(n))

        with pytest.raises(TooManyContactsError):
            sharing.share("visit-1", "pro-1", _contact(4))

    def test_revoked_slot_can_be_reused(self, sharing, started):
        for n in range(1, 4):
            sharing.share("visit-1", "pro-1", _contact(n))

        sharing.revoke("visit-1", "pro-1", _contact(2).phone)
        replacement = sharing.share("visit-1", "pro-1", _contact(4))

        assert replacement.is_active is True

    def test_expired_contacts_do_not_count(self, sharing, started, clock):
        for n in range(1, 4):
            sharing.share("visit-1", "pro-1", _contact(n), expires_in_minutes=10)

        clock.advance(minutes=11)

        assert sharing.share("visit-1", "pro-1", _contact(4)).is_active is True

    def test_share_queues_invite(self, sharing, started, db_session):
        contact = sharing.share("visit-1", "pro-1", ANA)

        db_session.expire_all()
        [invite] = (
            db_session.query(NotificationOutboxEntry)
            .filter(NotificationOutboxEntry.kind == NotificationKind.SHARE_INVITE.value)
            .all()
        )
        assert invite.recipients == ["+5511987654321"]
        assert contact.tracking_url in invite.message

    def test_share_requires_active_session_owner(self, sharing, lifecycle, started, here):
        with pytest.raises(UnauthorizedError):
            sharing.share("visit-1", "pro-2", ANA)
        lifecycle.check_out("visit-1", "pro-1", here)
        with pytest.raises(SessionNotActiveError):
            sharing.share("visit-1", "pro-1", ANA)


class TestRevoke:
    def test_revoke_unknown_phone_is_noop(self, sharing, started):
        assert sharing.revoke("visit-1", "pro-1", "+5511000000000") is None

    def test_revoke_allowed_after_check_out(self, sharing, lifecycle, started, here):
        contact = sharing.share("visit-1", "pro-1", ANA)
        token = contact.token
        lifecycle.check_out("visit-1", "pro-1", here)

        revoked = sharing.revoke("visit-1", "pro-1", "+55 (11) 98765-4321")

        assert revoked.is_active is False
        with pytest.raises(InvalidOrExpiredLinkError):
            sharing.resolve_public(token)


class TestPublicView:
    def test_view_shows_only_need_to_know_fields(self, sharing, started):
        token = sharing.share("visit-1", "pro-1", ANA).token

        view = sharing.resolve_public(token)

        assert view.professional_first_name == "Maria"
        assert view.service_category == "Wound care"
        assert view.patient_district == "Centro"
        assert view.is_active is True
        assert view.panic_active is False
        dumped = view.model_dump_json()
        for secret in ("Rua das Flores", "patient-1", "pro-1", "Silva", "98765"):
            assert secret not in dumped

    def test_position_is_destination_until_first_fix(
        self, sharing, lifecycle, started, address, here, clock
    ):
        token = sharing.share("visit-1", "pro-1", ANA).token

        before = sharing.resolve_public(token).last_known_location
        assert (before.latitude, before.longitude) == (address.latitude, address.longitude)

        clock.advance(minutes=2)
        lifecycle.update_location("visit-1", "pro-1", here)

        after = sharing.resolve_public(token).last_known_location
        assert (after.latitude, after.longitude) == (here.latitude, here.longitude)
        assert after.timestamp == clock()

    def test_view_reports_panic(self, sharing, panic, started, here):
        token = sharing.share("visit-1", "pro-1", ANA).token
        panic.activate("visit-1", "pro-1", PanicAlertLevel.EMERGENCY, here)

        assert sharing.resolve_public(token).panic_active is True

    def test_view_after_check_out_shows_inactive(self, sharing, lifecycle, started, here):
        token = sharing.share("visit-1", "pro-1", ANA).token
        lifecycle.check_out("visit-1", "pro-1", here)

        assert sharing.resolve_public(token).is_active is False

    def test_bad_tokens_fail_identically(self, sharing, started, clock):
        revoked = sharing.share("visit-1", "pro-1", _contact(1)).token
        sharing.revoke("visit-1", "pro-1", _contact(1).phone)
        expiring = sharing.share("visit-1", "pro-1", _contact(2), expires_in_minutes=5).token
        clock.advance(minutes=6)

        details = []
        for token in ("A" * 43, revoked, expiring, "nope"):
            with pytest.raises(InvalidOrExpiredLinkError) as exc_info:
                sharing.resolve_public(token)
            details.append(str(exc_info.value))

        assert len(set(details)) == 1
