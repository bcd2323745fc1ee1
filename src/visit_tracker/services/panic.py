"""Panic escalation workflow.

Alerts are independent of each other: a professional may raise several, and
each one is resolved on its own. Responses always apply to the earliest alert
that is still active.
"""

from typing import List, Optional
from uuid import uuid4

from ..core.enums import (
    NotificationKind,
    NotificationSeverity,
    PanicAlertLevel,
    PanicAlertStatus,
    TrackingEventType,
)
from ..db.models import PanicAlert, TrackingSession
from ..domain.errors import NoActiveAlertError, SessionNotFoundError
from ..domain.events import Location, TrackingEvent
from ..domain.rules import (
    earliest_active_alert,
    panic_event_type,
    panic_fan_out,
    panic_severity,
    requires_police,
    validate_alert_outcome,
)
from ..utils.logging_config import get_logger
from .base import TrackingServiceBase

logger = get_logger("tracking")


class PanicWorkflow(TrackingServiceBase):
    """Raises, answers and withdraws panic alerts."""

    def activate(
        self,
        visit_id: str,
        professional_id: str,
        level: PanicAlertLevel,
        location: Location,
        audio_recording_url: Optional[str] = None,
    ) -> PanicAlert:
        """
        Raise a new alert on an active session owned by the professional.

        Emergencies are flagged for police. The alert's fan-out (usable
        shared contacts plus the monitoring center) is stored on the alert
        and a single notification is queued for it.
        """
        level = PanicAlertLevel(level)
        now = self.clock()

        with self._unit_of_work(visit_id, "panic_activate"):
            tracking = self._load_owned_active(visit_id, professional_id)
            self._record(
                tracking,
                TrackingEvent.at(
                    panic_event_type(level),
                    location,
                    now,
                    level=level.value,
                    audio_recording_url=audio_recording_url,
                ),
            )

            police = requires_police(level)
            recipients = panic_fan_out(
                tracking.shared_with, self.config.monitoring_center_recipient, now
            )
            alert = PanicAlert(
                id=uuid4(),
                position=len(tracking.panic_alerts) + 1,
                level=level.value,
                status=PanicAlertStatus.ACTIVE.value,
                activated_at=now,
                latitude=location.latitude,
                longitude=location.longitude,
                notified_contacts=recipients,
                police_notified=police,
                police_notified_at=now if police else None,
                audio_recording_url=audio_recording_url,
            )
            tracking.panic_alerts.append(alert)
            if audio_recording_url:
                tracking.audio_recording_urls = [
                    *(tracking.audio_recording_urls or []),
                    audio_recording_url,
                ]

            self.outbox.enqueue(
                kind=NotificationKind.PANIC_ALERT,
                severity=panic_severity(level),
                recipients=recipients,
                message=self._alert_message(tracking, level),
                payload={
                    "visit_id": visit_id,
                    "level": level.value,
                    "latitude": location.latitude,
                    "longitude": location.longitude,
                    "police_notified": police,
                    "audio_recording_url": audio_recording_url,
                },
                visit_id=visit_id,
                session_id=tracking.id,
                now=now,
            )

        logger.warning(
            f"Panic alert #{alert.position} ({level.value}) raised on visit {visit_id}, "
            f"notifying {len(recipients)} recipient(s), police={police}"
        )
        return alert

    def respond(
        self,
        visit_id: str,
        responded_by: str,
        resolution: str,
        outcome: PanicAlertStatus = PanicAlertStatus.RESPONDED,
        police_response_time: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> PanicAlert:
        """
        Close the earliest active alert with a terminal ``outcome``.

        Allowed on completed sessions too, since alerts can outlive check-out.

        Raises:
            InvalidAlertOutcomeError: ``outcome`` is not terminal
            NoActiveAlertError: Nothing to respond to
        """
        status = validate_alert_outcome(outcome)
        now = self.clock()

        with self._unit_of_work(visit_id, "panic_respond"):
            tracking = self.sessions.get_for_update(visit_id)
            if tracking is None:
                raise SessionNotFoundError()
            alert = earliest_active_alert(tracking.panic_alerts)
            if alert is None:
                raise NoActiveAlertError()

            alert.status = status.value
            alert.responded_at = now
            alert.responded_by = responded_by
            alert.resolution = resolution
            alert.police_response_time = police_response_time
            alert.notes = notes
            self._touch(tracking, now)
            self._queue_resolution(tracking, alert, now)

        logger.info(
            f"Panic alert #{alert.position} on visit {visit_id} marked {status.value} "
            f"by {responded_by}"
        )
        return alert

    def cancel(
        self,
        visit_id: str,
        professional_id: str,
        location: Location,
        reason: Optional[str] = None,
    ) -> PanicAlert:
        """The owning professional withdraws the earliest active alert as a false alarm."""
        now = self.clock()

        with self._unit_of_work(visit_id, "panic_cancel"):
            tracking = self._load_owned_active(visit_id, professional_id)
            alert = earliest_active_alert(tracking.panic_alerts)
            if alert is None:
                raise NoActiveAlertError()

            alert.status = PanicAlertStatus.FALSE_ALARM.value
            alert.responded_at = now
            alert.responded_by = professional_id
            alert.resolution = reason or "Cancelled by professional"
            self._record(
                tracking,
                TrackingEvent.at(
                    TrackingEventType.PANIC_CANCELLED,
                    location,
                    now,
                    alert_position=alert.position,
                    reason=reason,
                ),
            )
            self._queue_resolution(tracking, alert, now)

        logger.info(f"Panic alert #{alert.position} on visit {visit_id} cancelled")
        return alert

    def list_active_alerts(self) -> List[TrackingSession]:
        """Sessions with at least one alert still active."""
        return self.sessions.list_with_active_alerts()

    def _queue_resolution(self, tracking: TrackingSession, alert: PanicAlert, now) -> None:
        self.outbox.enqueue(
            kind=NotificationKind.PANIC_RESOLVED,
            severity=NotificationSeverity.INFO,
            recipients=list(alert.notified_contacts or []),
            message=(
                f"Alert for visit {tracking.visit_id} closed: "
                f"{alert.status.replace('_', ' ')}"
            ),
            payload={
                "visit_id": tracking.visit_id,
                "alert_position": alert.position,
                "status": alert.status,
            },
            visit_id=tracking.visit_id,
            session_id=tracking.id,
            now=now,
        )

    @staticmethod
    def _alert_message(tracking: TrackingSession, level: PanicAlertLevel) -> str:
        district = tracking.patient_address.district
        if level == PanicAlertLevel.EMERGENCY:
            return f"EMERGENCY during visit {tracking.visit_id} in {district}"
        return f"Help requested during visit {tracking.visit_id} in {district}"
