"""SQLAlchemy concrete implementations of repository interfaces."""

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import and_, desc, select
from sqlalchemy.orm import Session

from ..core.enums import PanicAlertStatus
from ..db.models import PanicAlert, SharedContact, TrackingSession
from .interfaces import TrackingSessionRepository


class BaseSQLAlchemyRepository:
    """Base SQLAlchemy repository implementation."""

    def __init__(self, session: Session):
        self._session = session

    def save(self, entity) -> None:
        """Save an entity to the repository."""
        self._session.add(entity)

    def commit(self) -> None:
        """Commit the current transaction."""
        self._session.commit()

    def rollback(self) -> None:
        """Rollback the current transaction."""
        self._session.rollback()


class SQLAlchemyTrackingSessionRepository(
    BaseSQLAlchemyRepository, TrackingSessionRepository
):
    """SQLAlchemy implementation of TrackingSessionRepository."""

    def get_by_visit(self, visit_id: str) -> Optional[TrackingSession]:
        return self._session.execute(
            select(TrackingSession).where(TrackingSession.visit_id == visit_id)
        ).scalar_one_or_none()

    def get_for_update(self, visit_id: str) -> Optional[TrackingSession]:
        # FOR UPDATE is a no-op on SQLite; the per-visit lock and the version
        # column cover that backend.
        stmt = (
            select(TrackingSession)
            .where(TrackingSession.visit_id == visit_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def get_active_for_professional(
        self, professional_id: str
    ) -> Optional[TrackingSession]:
        return (
            self._session.execute(
                select(TrackingSession)
                .where(
                    and_(
                        TrackingSession.professional_id == professional_id,
                        TrackingSession.is_active.is_(True),
                    )
                )
                .order_by(desc(TrackingSession.started_at))
                .limit(1)
            )
            .scalars()
            .first()
        )

    def list_overdue(self, now: datetime) -> List[TrackingSession]:
        return list(
            self._session.execute(
                select(TrackingSession)
                .where(
                    and_(
                        TrackingSession.is_active.is_(True),
                        TrackingSession.next_check_in_due < now,
                    )
                )
                .order_by(TrackingSession.next_check_in_due)
            )
            .scalars()
            .all()
        )

    def get_by_share_token(
        self, token: str
    ) -> Optional[Tuple[TrackingSession, SharedContact]]:
        contact = self._session.execute(
            select(SharedContact).where(
                and_(SharedContact.token == token, SharedContact.is_active.is_(True))
            )
        ).scalar_one_or_none()
        if contact is None:
            return None
        return contact.session, contact

    def list_with_active_alerts(self) -> List[TrackingSession]:
        active_sessions = (
            select(PanicAlert.session_id)
            .where(PanicAlert.status == PanicAlertStatus.ACTIVE.value)
            .distinct()
        )
        return list(
            self._session.execute(
                select(TrackingSession)
                .where(TrackingSession.id.in_(active_sessions))
                .order_by(TrackingSession.started_at)
            )
            .scalars()
            .all()
        )
