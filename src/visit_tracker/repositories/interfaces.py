"""Abstract repository interfaces for data access layer."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Tuple

from ..db.models import SharedContact, TrackingSession


class BaseRepository(ABC):
    """Base repository interface with common operations."""

    @abstractmethod
    def save(self, entity) -> None:
        """Save an entity to the repository."""
        pass

    @abstractmethod
    def commit(self) -> None:
        """Commit the current transaction."""
        pass

    @abstractmethod
    def rollback(self) -> None:
        """Rollback the current transaction."""
        pass


class TrackingSessionRepository(BaseRepository):
    """Repository interface for TrackingSession aggregates."""

    @abstractmethod
    def get_by_visit(self, visit_id: str) -> Optional[TrackingSession]:
        """Get the session for a visit without locking it."""
        pass

    @abstractmethod
    def get_for_update(self, visit_id: str) -> Optional[TrackingSession]:
        """Get the session for a visit, freshly loaded and row-locked."""
        pass

    @abstractmethod
    def get_active_for_professional(
        self, professional_id: str
    ) -> Optional[TrackingSession]:
        """Get a professional's most recently started active session."""
        pass

    @abstractmethod
    def list_overdue(self, now: datetime) -> List[TrackingSession]:
        """Active sessions whose check-in deadline is before ``now``, oldest deadline first."""
        pass

    @abstractmethod
    def get_by_share_token(
        self, token: str
    ) -> Optional[Tuple[TrackingSession, SharedContact]]:
        """Find the session and active contact holding ``token``."""
        pass

    @abstractmethod
    def list_with_active_alerts(self) -> List[TrackingSession]:
        """Sessions holding at least one active panic alert."""
        pass


class VisitDirectory(ABC):
    """Read-only view of scheduling data owned by other services."""

    @abstractmethod
    def professional_first_name(self, professional_id: str) -> Optional[str]:
        pass

    @abstractmethod
    def service_category(self, visit_id: str) -> Optional[str]:
        pass
