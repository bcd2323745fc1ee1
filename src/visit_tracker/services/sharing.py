"""Share-token manager: bounded, revocable read-only access for external contacts."""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from ..auth.security import generate_share_token, is_plausible_share_token
from ..config import AppConfig
from ..core.enums import NotificationKind, NotificationSeverity
from ..db.models import SharedContact
from ..domain.errors import InvalidOrExpiredLinkError, TooManyContactsError
from ..domain.events import PublicTrackingView
from ..domain.rules import (
    build_public_view,
    build_tracking_url,
    decide_share,
    find_usable_contact,
    is_share_usable,
    normalize_phone,
)
from ..repositories.interfaces import VisitDirectory
from ..repositories.memory_impl import visit_directory
from ..store.locking import VisitLockRegistry
from ..utils.logging_config import get_logger
from .base import Clock, TrackingServiceBase

logger = get_logger("tracking")


@dataclass(frozen=True)
class ContactDetails:
    """Who a session is being shared with."""

    name: str
    phone: str
    relationship: str


class ShareTokenManager(TrackingServiceBase):
    """Issues, revokes and resolves share tokens."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        config: Optional[AppConfig] = None,
        locks: Optional[VisitLockRegistry] = None,
        directory: Optional[VisitDirectory] = None,
    ):
        super().__init__(db, clock=clock, config=config, locks=locks)
        self.directory = directory or visit_directory

    def share(
        self,
        visit_id: str,
        professional_id: str,
        contact: ContactDetails,
        expires_in_minutes: Optional[int] = None,
    ) -> SharedContact:
        """
        Share the session with a contact, idempotently by phone number.

        Raises:
            TooManyContactsError: The usable-contact limit is already reached
        """
        now = self.clock()
        phone = normalize_phone(contact.phone)

        with self._unit_of_work(visit_id, "share"):
            tracking = self._load_owned_active(visit_id, professional_id)
            decision = decide_share(
                tracking.shared_with, phone, now, self.config.max_shared_contacts
            )
            if decision.reuses_existing:
                shared = decision.existing
                logger.info(f"Visit {visit_id} already shared with this contact, reusing token")
            elif not decision.allowed:
                raise TooManyContactsError(
                    f"A session can be shared with at most "
                    f"{self.config.max_shared_contacts} contacts"
                )
            else:
                token = generate_share_token(self.config.share_token_bytes)
                tracking_url = build_tracking_url(
                    self.config.public_tracking_base_url, token
                )
                shared = SharedContact(
                    id=uuid4(),
                    position=len(tracking.shared_with) + 1,
                    name=contact.name,
                    phone=phone,
                    relationship_label=contact.relationship,
                    token=token,
                    tracking_url=tracking_url,
                    notified_at=now,
                    is_active=True,
                    expires_at=(
                        now + timedelta(minutes=expires_in_minutes)
                        if expires_in_minutes
                        else None
                    ),
                    created_at=now,
                )
                tracking.shared_with.append(shared)
                self._touch(tracking, now)

                self.outbox.enqueue(
                    kind=NotificationKind.SHARE_INVITE,
                    severity=NotificationSeverity.INFO,
                    recipients=[phone],
                    message=(
                        f"{contact.name}, you can follow this care visit live: {tracking_url}"
                    ),
                    payload={"visit_id": visit_id, "tracking_url": tracking_url},
                    visit_id=visit_id,
                    session_id=tracking.id,
                    now=now,
                )
                logger.info(
                    f"Visit {visit_id} shared with contact #{shared.position} "
                    f"({contact.relationship})"
                )

        return shared

    def revoke(
        self, visit_id: str, professional_id: str, phone: str
    ) -> Optional[SharedContact]:
        """
        Deactivate the usable contact with ``phone``. No-op when there is none.

        Allowed after check-out, so access can still be withdrawn.
        """
        now = self.clock()
        with self._unit_of_work(visit_id, "revoke"):
            tracking = self._load_owned(visit_id, professional_id)
            contact = find_usable_contact(tracking.shared_with, phone, now)
            if contact is not None:
                contact.is_active = False
                contact.revoked_at = now
                self._touch(tracking, now)

        if contact is not None:
            logger.info(f"Revoked shared contact #{contact.position} on visit {visit_id}")
        return contact

    def resolve_public(self, token: str) -> PublicTrackingView:
        """
        Resolve a share token to the public projection of its session.

        Raises:
            InvalidOrExpiredLinkError: Unknown, revoked or expired token, all alike
        """
        now = self.clock()
        if not is_plausible_share_token(token):
            raise InvalidOrExpiredLinkError()

        found = self.sessions.get_by_share_token(token)
        if found is None:
            raise InvalidOrExpiredLinkError()

        tracking, contact = found
        if not is_share_usable(contact.is_active, contact.expires_at, now):
            raise InvalidOrExpiredLinkError()

        return build_public_view(
            is_active=tracking.is_active,
            started_at=tracking.started_at,
            patient_address=tracking.patient_address,
            last_known_location=tracking.last_known_location,
            alerts=tracking.panic_alerts,
            professional_first_name=self.directory.professional_first_name(
                tracking.professional_id
            ),
            service_category=self.directory.service_category(tracking.visit_id),
        )
