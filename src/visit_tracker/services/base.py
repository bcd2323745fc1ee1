"""Shared plumbing for the tracking services.

Every mutating operation follows the same unit of work:

1. take the per-visit lock
2. load the session row fresh (``SELECT ... FOR UPDATE``)
3. apply the change, append events, enqueue notifications
4. commit; the ``version`` column rejects writes based on a stale row

Lost races surface as ``ConcurrentModificationError`` (or ``AlreadyActiveError``
for a duplicate start); any other failure rolls the transaction back and
propagates unchanged.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from ..config import AppConfig, get_config
from ..db.models import TrackingSession
from ..domain.errors import (
    ConcurrentModificationError,
    SessionNotActiveError,
    SessionNotFoundError,
    UnauthorizedError,
)
from ..domain.events import EventEnvelope, TrackingEvent
from ..notifications.outbox import NotificationOutbox
from ..repositories.sqlalchemy_impl import SQLAlchemyTrackingSessionRepository
from ..store.event_store import EventStore
from ..store.integrity_policy import to_tracking_error
from ..store.locking import VisitLockRegistry, visit_locks
from ..store.projections import apply_location
from ..utils.logging_config import get_logger

Clock = Callable[[], datetime]

logger = get_logger("tracking")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TrackingServiceBase:
    """Common constructor and unit-of-work helpers."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        config: Optional[AppConfig] = None,
        locks: Optional[VisitLockRegistry] = None,
    ):
        self.db = db
        self.clock = clock or utcnow
        self.config = config or get_config().app
        self.locks = locks or visit_locks
        self.sessions = SQLAlchemyTrackingSessionRepository(db)
        self.event_store = EventStore(db)
        self.outbox = NotificationOutbox(db)

    @contextmanager
    def _unit_of_work(self, visit_id: str, operation: str) -> Iterator[None]:
        """Run the body under the visit lock and commit it as one transaction."""
        with self.locks.hold(visit_id):
            try:
                yield
                self.sessions.commit()
            except StaleDataError as e:
                self.sessions.rollback()
                logger.warning(
                    f"{operation} on visit {visit_id} lost a concurrent update: {e}"
                )
                raise ConcurrentModificationError() from e
            except IntegrityError as e:
                self.sessions.rollback()
                translated = to_tracking_error(
                    e, {"operation": operation, "visit_id": visit_id}
                )
                if translated is None:
                    raise
                raise translated from e
            except Exception:
                self.sessions.rollback()
                raise

    def _load_owned_active(self, visit_id: str, professional_id: str) -> TrackingSession:
        """Load for update and check ownership, then liveness, in that order."""
        tracking = self._load_owned(visit_id, professional_id)
        if not tracking.is_active:
            raise SessionNotActiveError()
        return tracking

    def _load_owned(self, visit_id: str, professional_id: str) -> TrackingSession:
        tracking = self.sessions.get_for_update(visit_id)
        if tracking is None:
            raise SessionNotFoundError()
        if tracking.professional_id != professional_id:
            logger.warning(
                f"Professional {professional_id} tried to modify visit {visit_id} "
                f"owned by {tracking.professional_id}"
            )
            raise UnauthorizedError()
        return tracking

    def _record(self, tracking: TrackingSession, event: TrackingEvent) -> EventEnvelope:
        """Append to the log and keep the location cache in step with it."""
        envelope = self.event_store.append(tracking, event)
        apply_location(tracking, envelope)
        self._touch(tracking, event.timestamp)
        return envelope

    def _touch(self, tracking: TrackingSession, now: datetime) -> None:
        """Mark the aggregate dirty so the version check covers child-only changes."""
        tracking.updated_at = now
        flag_modified(tracking, "updated_at")
