"""Tracking session lifecycle: start, check-in, location updates, check-out."""

from typing import List, Optional
from uuid import uuid4

from ..core.enums import TrackingEventType
from ..db.models import TrackingSession
from ..domain.actors import Actor
from ..domain.errors import (
    AlreadyActiveError,
    SessionCompletedError,
    SessionNotFoundError,
    UnauthorizedError,
)
from ..domain.events import EventEnvelope, Location, PatientAddress, TrackingEvent
from ..domain.rules import advance_check_in_deadline, compute_next_check_in_due
from ..utils.logging_config import get_logger
from .base import TrackingServiceBase

logger = get_logger("tracking")


class TrackingLifecycle(TrackingServiceBase):
    """Owns the active/completed lifecycle of a visit's tracking session."""

    def start(
        self,
        visit_id: str,
        professional_id: str,
        patient_id: str,
        destination: PatientAddress,
        interval_minutes: Optional[int] = None,
        audio_recording_enabled: bool = False,
    ) -> TrackingSession:
        """
        Begin tracking a visit.

        The first event is ``service_started`` at the patient's address, and
        the first check-in falls due one interval from now.

        Raises:
            AlreadyActiveError: The visit is already being tracked
            SessionCompletedError: The visit's tracking already ended
        """
        interval = interval_minutes or self.config.default_check_in_interval_minutes
        now = self.clock()
        due = compute_next_check_in_due(now, interval)

        with self._unit_of_work(visit_id, "start"):
            existing = self.sessions.get_for_update(visit_id)
            if existing is not None:
                if existing.is_active:
                    raise AlreadyActiveError()
                raise SessionCompletedError()

            tracking = TrackingSession(
                id=uuid4(),
                visit_id=visit_id,
                professional_id=professional_id,
                patient_id=patient_id,
                is_active=True,
                started_at=now,
                check_in_interval_minutes=interval,
                next_check_in_due=due,
                missed_check_ins=0,
                patient_address_json=destination.model_dump(),
                audio_recording_enabled=audio_recording_enabled,
                audio_recording_urls=[],
                created_at=now,
                updated_at=now,
            )
            self.sessions.save(tracking)
            self._record(
                tracking,
                TrackingEvent(
                    type=TrackingEventType.SERVICE_STARTED,
                    latitude=destination.latitude,
                    longitude=destination.longitude,
                    metadata={"message": "Service started"},
                    timestamp=now,
                ),
            )

        logger.info(
            f"Tracking started for visit {visit_id} by professional {professional_id}, "
            f"check-in every {interval} min"
        )
        return tracking

    def check_in(
        self,
        visit_id: str,
        professional_id: str,
        location: Location,
        message: Optional[str] = None,
    ) -> TrackingSession:
        """Record a check-in: resets the missed counter and pushes the deadline out."""
        now = self.clock()
        with self._unit_of_work(visit_id, "check_in"):
            tracking = self._load_owned_active(visit_id, professional_id)
            self._record(
                tracking,
                TrackingEvent.at(
                    TrackingEventType.CHECK_IN,
                    location,
                    now,
                    message=message or "Check-in recorded",
                ),
            )

            interval = tracking.check_in_interval_minutes
            current_due = tracking.next_check_in_due
            if compute_next_check_in_due(now, interval) < current_due:
                logger.warning(
                    f"Check-in for visit {visit_id} at {now.isoformat()} would move the "
                    f"deadline back from {current_due.isoformat()}; keeping it"
                )
            tracking.next_check_in_due = advance_check_in_deadline(
                current_due, now, interval
            )
            tracking.missed_check_ins = 0

        logger.info(f"Check-in recorded for visit {visit_id}")
        return tracking

    def update_location(
        self, visit_id: str, professional_id: str, location: Location
    ) -> TrackingSession:
        """Append a location fix. Leaves the check-in deadline and counter alone."""
        now = self.clock()
        with self._unit_of_work(visit_id, "update_location"):
            tracking = self._load_owned_active(visit_id, professional_id)
            self._record(
                tracking,
                TrackingEvent.at(TrackingEventType.LOCATION_UPDATE, location, now),
            )

        logger.debug(f"Location updated for visit {visit_id}")
        return tracking

    def check_out(
        self, visit_id: str, professional_id: str, location: Location
    ) -> TrackingSession:
        """
        End the visit. Appends ``check_out`` then ``service_completed``.

        Raises:
            SessionNotActiveError: The session already ended
        """
        now = self.clock()
        with self._unit_of_work(visit_id, "check_out"):
            tracking = self._load_owned_active(visit_id, professional_id)
            self._record(
                tracking,
                TrackingEvent.at(
                    TrackingEventType.CHECK_OUT, location, now, message="Check-out recorded"
                ),
            )
            self._record(
                tracking,
                TrackingEvent.at(
                    TrackingEventType.SERVICE_COMPLETED,
                    location,
                    now,
                    message="Service completed",
                ),
            )
            tracking.is_active = False
            tracking.completed_at = now

        logger.info(f"Tracking completed for visit {visit_id}")
        return tracking

    def get_session(self, visit_id: str, actor: Actor) -> TrackingSession:
        """Full session detail for its professional or for monitoring staff."""
        tracking = self.sessions.get_by_visit(visit_id)
        if tracking is None:
            raise SessionNotFoundError()
        if not (actor.is_monitoring or actor.actor_id == tracking.professional_id):
            raise UnauthorizedError()
        return tracking

    def get_active_for_professional(self, professional_id: str) -> Optional[TrackingSession]:
        return self.sessions.get_active_for_professional(professional_id)

    def get_events(
        self,
        visit_id: str,
        actor: Actor,
        since_seq: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[EventEnvelope]:
        """Catch-up read of the event log after ``since_seq``."""
        tracking = self.get_session(visit_id, actor)
        return self.event_store.get_events(tracking.id, since_seq=since_seq, limit=limit)
