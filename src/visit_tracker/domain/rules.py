"""
Pure function rules for visit tracking.

This module contains the tracking decisions as pure functions with no side
effects. Loading, locking and persisting sessions is handled by the services
layer; these functions only look at the values they are given.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Protocol, Sequence, TypeVar

from ..core.enums import (
    NotificationSeverity,
    PanicAlertLevel,
    PanicAlertStatus,
    TrackingEventType,
)
from .errors import InvalidAlertOutcomeError
from .events import LastKnownLocation, PatientAddress, PublicTrackingView

_PHONE_NOISE = re.compile(r"[\s\-().]")


class ContactLike(Protocol):
    phone: str
    is_active: bool
    expires_at: Optional[datetime]


class AlertLike(Protocol):
    status: str
    position: int


C = TypeVar("C", bound=ContactLike)
A = TypeVar("A", bound=AlertLike)


@dataclass(frozen=True)
class ShareDecision:
    """Outcome of a share request against the current contact list."""

    existing: Optional[ContactLike] = None
    allowed: bool = True

    @property
    def reuses_existing(self) -> bool:
        return self.existing is not None


# Check-in cadence


def compute_next_check_in_due(now: datetime, interval_minutes: int) -> datetime:
    """Deadline for the next mandatory check-in."""
    if interval_minutes < 1:
        raise ValueError("check-in interval must be at least one minute")
    return now + timedelta(minutes=interval_minutes)


def advance_check_in_deadline(
    current_due: Optional[datetime], now: datetime, interval_minutes: int
) -> datetime:
    """
    Move the deadline forward after a check-in.

    The deadline never moves backward: if ``now + interval`` is earlier than
    the stored deadline (a clock that stepped back), the stored value wins.
    """
    proposed = compute_next_check_in_due(now, interval_minutes)
    if current_due is not None and proposed < current_due:
        return current_due
    return proposed


def is_check_in_overdue(
    is_active: bool, next_check_in_due: Optional[datetime], now: datetime
) -> bool:
    """A session is overdue when it is active and its deadline lies strictly in the past."""
    return bool(is_active and next_check_in_due is not None and next_check_in_due < now)


def minutes_overdue(next_check_in_due: datetime, now: datetime) -> int:
    return max(0, int((now - next_check_in_due).total_seconds() // 60))


# Panic escalation


def panic_event_type(level: PanicAlertLevel) -> TrackingEventType:
    if PanicAlertLevel(level) == PanicAlertLevel.EMERGENCY:
        return TrackingEventType.PANIC_BUTTON_EMERGENCY
    return TrackingEventType.PANIC_BUTTON_HELP


def requires_police(level: PanicAlertLevel) -> bool:
    """Police are flagged for emergencies only."""
    return PanicAlertLevel(level) == PanicAlertLevel.EMERGENCY


def panic_severity(level: PanicAlertLevel) -> NotificationSeverity:
    if requires_police(level):
        return NotificationSeverity.CRITICAL
    return NotificationSeverity.WARNING


def earliest_active_alert(alerts: Iterable[A]) -> Optional[A]:
    """The alert a response applies to: the first one still active, by position."""
    active = [a for a in alerts if a.status == PanicAlertStatus.ACTIVE.value]
    if not active:
        return None
    return min(active, key=lambda a: a.position)


def active_alerts(alerts: Iterable[A]) -> List[A]:
    """Every alert still active, oldest first."""
    return sorted(
        (a for a in alerts if a.status == PanicAlertStatus.ACTIVE.value),
        key=lambda a: a.position,
    )


def has_active_alert(alerts: Iterable[AlertLike]) -> bool:
    return any(a.status == PanicAlertStatus.ACTIVE.value for a in alerts)


def validate_alert_outcome(outcome) -> PanicAlertStatus:
    """Accept only terminal alert states as a response outcome."""
    try:
        status = PanicAlertStatus(outcome)
    except ValueError as e:
        raise InvalidAlertOutcomeError() from e
    if status == PanicAlertStatus.ACTIVE:
        raise InvalidAlertOutcomeError()
    return status


# Sharing


def normalize_phone(phone: str) -> str:
    """Strip formatting so the same number always compares equal."""
    return _PHONE_NOISE.sub("", phone.strip())


def is_share_usable(
    is_active: bool, expires_at: Optional[datetime], now: datetime
) -> bool:
    """A shared contact grants access while active and not yet expired."""
    return bool(is_active and (expires_at is None or expires_at > now))


def usable_contacts(contacts: Iterable[C], now: datetime) -> List[C]:
    return [c for c in contacts if is_share_usable(c.is_active, c.expires_at, now)]


def find_usable_contact(
    contacts: Iterable[C], phone: str, now: datetime
) -> Optional[C]:
    wanted = normalize_phone(phone)
    for contact in usable_contacts(contacts, now):
        if normalize_phone(contact.phone) == wanted:
            return contact
    return None


def decide_share(
    contacts: Sequence[ContactLike], phone: str, now: datetime, max_contacts: int
) -> ShareDecision:
    """
    Decide what a share request does.

    Rules:
    1. A usable contact with the same phone is returned unchanged
    2. Otherwise a new contact is allowed while fewer than ``max_contacts``
       usable contacts exist
    """
    existing = find_usable_contact(contacts, phone, now)
    if existing is not None:
        return ShareDecision(existing=existing)
    return ShareDecision(allowed=len(usable_contacts(contacts, now)) < max_contacts)


def panic_fan_out(
    contacts: Iterable[ContactLike], monitoring_recipient: str, now: datetime
) -> List[str]:
    """Recipients of a panic alert: usable shared contacts plus the monitoring center."""
    recipients: List[str] = []
    for contact in usable_contacts(contacts, now):
        if contact.phone not in recipients:
            recipients.append(contact.phone)
    if monitoring_recipient and monitoring_recipient not in recipients:
        recipients.append(monitoring_recipient)
    return recipients


def build_tracking_url(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/{token}"


def build_public_view(
    *,
    is_active: bool,
    started_at: datetime,
    patient_address: PatientAddress,
    last_known_location: Optional[LastKnownLocation],
    alerts: Iterable[AlertLike],
    professional_first_name: Optional[str],
    service_category: Optional[str],
) -> PublicTrackingView:
    """Project a session down to what a shared contact may see.

    Only the patient's district leaves this function; the street address,
    phone numbers and identifiers never do.
    """
    return PublicTrackingView(
        professional_first_name=professional_first_name,
        service_category=service_category,
        last_known_location=last_known_location,
        is_active=is_active,
        started_at=started_at,
        patient_district=patient_address.district,
        panic_active=has_active_alert(alerts),
    )
