"""Event store implementation for the append-only tracking event log.

This module provides the core event store functionality including:
- Appending events with per-session sequence numbering
- Querying events by session, sequence range, or event type
- Event replay for rebuilding the location cache
"""

from typing import Optional, List, Iterator
from uuid import UUID, uuid4

from sqlalchemy import select, func, and_
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..core.enums import TrackingEventType
from ..domain.events import EventEnvelope, TrackingEvent
from ..db.models import TrackingEventRecord, TrackingSession


class EventStoreError(Exception):
    """Base exception for event store operations."""

    pass


class EventStore:
    """Append-only event store with sequence numbering and replay capabilities."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def append(self, tracking: TrackingSession, event: TrackingEvent) -> EventEnvelope:
        """
        Append a new event to a session's log with the next sequence number.

        Must be called while the caller holds the session's per-visit lock.

        Args:
            tracking: The session that owns the log
            event: The tracking event to store

        Returns:
            EventEnvelope with the assigned sequence number

        Raises:
            EventStoreError: If the event could not be stored
        """
        try:
            next_seq = self.get_latest_sequence(tracking.id) + 1

            record = TrackingEventRecord(
                id=uuid4(),
                session_id=tracking.id,
                seq=next_seq,
                type=TrackingEventType(event.type).value,
                latitude=event.latitude,
                longitude=event.longitude,
                accuracy=event.accuracy,
                battery_level=event.battery_level,
                event_metadata=dict(event.metadata),
                occurred_at=event.timestamp,
                stored_at=event.timestamp,
            )

            tracking.events.append(record)
            self.db.flush()  # Ensure sequence number is assigned

            return EventEnvelope(
                sequence_number=next_seq, stored_at=record.stored_at, event=event
            )

        except (IntegrityError, StaleDataError):
            # Lost races are translated by the caller's unit of work
            raise
        except SQLAlchemyError as e:
            raise EventStoreError(f"Failed to append event: {e}") from e

    def get_events(
        self,
        session_id: UUID,
        since_seq: Optional[int] = None,
        until_seq: Optional[int] = None,
        event_types: Optional[List[str]] = None,
        limit: Optional[int] = None,
    ) -> List[EventEnvelope]:
        """
        Query events from the store with filtering options.

        Args:
            session_id: Tracking session to read
            since_seq: Include events after this sequence number (exclusive)
            until_seq: Include events up to this sequence number (inclusive)
            event_types: Filter by specific event types
            limit: Maximum number of events to return

        Returns:
            List of event envelopes ordered by sequence number
        """
        try:
            query = select(TrackingEventRecord).where(
                TrackingEventRecord.session_id == session_id
            )

            if since_seq is not None:
                query = query.where(TrackingEventRecord.seq > since_seq)
            if until_seq is not None:
                query = query.where(TrackingEventRecord.seq <= until_seq)

            if event_types:
                query = query.where(TrackingEventRecord.type.in_(event_types))

            query = query.order_by(TrackingEventRecord.seq)
            if limit:
                query = query.limit(limit)

            results = self.db.execute(query).scalars().all()
            return [self.to_envelope(record) for record in results]

        except SQLAlchemyError as e:
            raise EventStoreError(f"Failed to query events: {e}") from e

    def get_latest_sequence(self, session_id: UUID) -> int:
        """
        Get the latest sequence number for a session.

        Returns:
            Latest sequence number, or 0 if no events exist
        """
        try:
            result = self.db.execute(
                select(func.coalesce(func.max(TrackingEventRecord.seq), 0)).where(
                    TrackingEventRecord.session_id == session_id
                )
            ).scalar()

            return result or 0

        except SQLAlchemyError as e:
            raise EventStoreError(f"Failed to get latest sequence: {e}") from e

    def replay_events(
        self, session_id: UUID, from_sequence: int = 1
    ) -> Iterator[EventEnvelope]:
        """
        Replay events from a specific sequence number.

        Args:
            session_id: Tracking session to replay
            from_sequence: Starting sequence number (inclusive)

        Yields:
            Event envelopes in sequence order
        """
        try:
            batch_size = 500
            current_seq = from_sequence

            while True:
                query = (
                    select(TrackingEventRecord)
                    .where(
                        and_(
                            TrackingEventRecord.session_id == session_id,
                            TrackingEventRecord.seq >= current_seq,
                        )
                    )
                    .order_by(TrackingEventRecord.seq)
                    .limit(batch_size)
                )

                batch = self.db.execute(query).scalars().all()

                if not batch:
                    break

                for record in batch:
                    yield self.to_envelope(record)
                    current_seq = record.seq + 1

                if len(batch) < batch_size:
                    break

        except SQLAlchemyError as e:
            raise EventStoreError(f"Failed to replay events: {e}") from e

    @staticmethod
    def to_envelope(record: TrackingEventRecord) -> EventEnvelope:
        """
        Wrap a stored record in an envelope.

        Raises:
            EventStoreError: If the record does not form a valid event
        """
        try:
            event = TrackingEvent(
                type=TrackingEventType(record.type),
                latitude=record.latitude,
                longitude=record.longitude,
                accuracy=record.accuracy,
                battery_level=record.battery_level,
                metadata=record.event_metadata or {},
                timestamp=record.occurred_at,
            )
        except ValueError as e:
            raise EventStoreError(f"Failed to deserialize event {record.id}: {e}") from e

        return EventEnvelope(
            sequence_number=record.seq, stored_at=record.stored_at, event=event
        )
