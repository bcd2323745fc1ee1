"""Check-in scheduler: detects and records missed check-ins."""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from ..core.enums import NotificationKind, NotificationSeverity, TrackingEventType
from ..db.models import TrackingSession
from ..domain.errors import SessionNotActiveError, SessionNotFoundError, TrackingError
from ..domain.events import TrackingEvent
from ..domain.rules import is_check_in_overdue, minutes_overdue
from ..utils.logging_config import get_logger
from .base import TrackingServiceBase

logger = get_logger("scheduler")


@dataclass(frozen=True)
class MissedCheckIn:
    """One visit recorded as overdue by a sweep."""

    visit_id: str
    professional_id: str
    missed_check_ins: int
    next_check_in_due: datetime
    minutes_overdue: int


class CheckInScheduler(TrackingServiceBase):
    """Periodic detection of sessions whose check-in deadline has passed."""

    def list_overdue(self, now: Optional[datetime] = None) -> List[TrackingSession]:
        """Active sessions with ``next_check_in_due`` strictly before ``now``."""
        return self.sessions.list_overdue(now or self.clock())

    def increment_missed(self, visit_id: str) -> int:
        """
        Count one more missed check-in. The deadline is not changed.

        Returns:
            The new missed check-in count
        """
        now = self.clock()
        with self._unit_of_work(visit_id, "increment_missed"):
            tracking = self.sessions.get_for_update(visit_id)
            if tracking is None:
                raise SessionNotFoundError()
            if not tracking.is_active:
                raise SessionNotActiveError()
            tracking.missed_check_ins += 1
            self._touch(tracking, now)
            missed = tracking.missed_check_ins

        return missed

    def sweep(self, now: Optional[datetime] = None) -> List[MissedCheckIn]:
        """
        Record a miss for every overdue session.

        Each candidate is re-checked under its visit lock, so a check-in or
        check-out that lands between listing and locking wins. Every recorded
        miss increments the counter, appends an ``auto_check`` event at the
        last known position and queues a notification for the monitoring
        center. Running the sweep twice records two misses.
        """
        now = now or self.clock()
        candidates = [t.visit_id for t in self.list_overdue(now)]
        # Release the read transaction before taking per-visit locks
        self.sessions.rollback()

        results: List[MissedCheckIn] = []
        for visit_id in candidates:
            try:
                missed = self._record_miss(visit_id, now)
            except TrackingError as e:
                logger.info(f"Skipping visit {visit_id} in sweep: {e.detail}")
                continue
            if missed is not None:
                results.append(missed)

        if results:
            logger.warning(
                f"Sweep at {now.isoformat()} recorded {len(results)} missed check-in(s): "
                f"{', '.join(r.visit_id for r in results)}"
            )
        else:
            logger.debug(f"Sweep at {now.isoformat()} found no overdue sessions")
        return results

    def _record_miss(self, visit_id: str, now: datetime) -> Optional[MissedCheckIn]:
        result = None
        with self._unit_of_work(visit_id, "sweep"):
            tracking = self.sessions.get_for_update(visit_id)
            if tracking is None or not is_check_in_overdue(
                tracking.is_active, tracking.next_check_in_due, now
            ):
                return None

            tracking.missed_check_ins += 1
            overdue = minutes_overdue(tracking.next_check_in_due, now)
            last = tracking.last_known_location
            latitude = last.latitude if last else tracking.patient_address.latitude
            longitude = last.longitude if last else tracking.patient_address.longitude

            self._record(
                tracking,
                TrackingEvent(
                    type=TrackingEventType.AUTO_CHECK,
                    latitude=latitude,
                    longitude=longitude,
                    accuracy=last.accuracy if last else None,
                    metadata={
                        "message": "Missed check-in",
                        "missed_check_ins": tracking.missed_check_ins,
                        "next_check_in_due": tracking.next_check_in_due.isoformat(),
                    },
                    timestamp=now,
                ),
            )

            severity = (
                NotificationSeverity.CRITICAL
                if tracking.missed_check_ins > 1
                else NotificationSeverity.WARNING
            )
            self.outbox.enqueue(
                kind=NotificationKind.MISSED_CHECK_IN,
                severity=severity,
                recipients=[self.config.monitoring_center_recipient],
                message=(
                    f"Visit {visit_id}: check-in overdue by {overdue} min "
                    f"({tracking.missed_check_ins} missed)"
                ),
                payload={
                    "visit_id": visit_id,
                    "professional_id": tracking.professional_id,
                    "missed_check_ins": tracking.missed_check_ins,
                    "next_check_in_due": tracking.next_check_in_due.isoformat(),
                    "latitude": latitude,
                    "longitude": longitude,
                },
                visit_id=visit_id,
                session_id=tracking.id,
                now=now,
            )

            result = MissedCheckIn(
                visit_id=visit_id,
                professional_id=tracking.professional_id,
                missed_check_ins=tracking.missed_check_ins,
                next_check_in_due=tracking.next_check_in_due,
                minutes_overdue=overdue,
            )
        return result
