"""SQLAlchemy models for the visit tracker."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    Column,
    String,
    Integer,
    Float,
    Text,
    DateTime,
    Boolean,
    JSON,
    ForeignKey,
    UniqueConstraint,
    Index,
    event,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator, CHAR

from ..core.enums import NotificationStatus, PanicAlertStatus
from ..domain.errors import EventLogImmutableError
from ..domain.events import LastKnownLocation, PatientAddress
from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GUID(TypeDecorator):
    """Platform-independent GUID type using String for SQLite."""

    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID())
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, UUID):
            return value
        return UUID(value)


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes on every backend.

    SQLite drops tzinfo on the way out, so results are re-tagged as UTC.
    Naive values are taken to be UTC already.
    """

    impl = DateTime
    cache_ok = True

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("timezone", True)
        super().__init__(*args, **kwargs)

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class TrackingSession(Base):
    """Live tracking record for one field visit (aggregate root)."""

    __tablename__ = "tracking_sessions"

    id = Column(GUID(), primary_key=True, default=uuid4)
    visit_id = Column(String(64), nullable=False)
    professional_id = Column(String(64), nullable=False)
    patient_id = Column(String(64), nullable=False)

    is_active = Column(Boolean, nullable=False, default=True)
    started_at = Column(UTCDateTime(), nullable=False)
    completed_at = Column(UTCDateTime(), nullable=True)

    # Location cache, always equal to the newest event's coordinates
    last_latitude = Column(Float, nullable=True)
    last_longitude = Column(Float, nullable=True)
    last_accuracy = Column(Float, nullable=True)
    last_location_at = Column(UTCDateTime(), nullable=True)

    check_in_interval_minutes = Column(Integer, nullable=False, default=30)
    next_check_in_due = Column(UTCDateTime(), nullable=False)
    missed_check_ins = Column(Integer, nullable=False, default=0)

    patient_address_json = Column(JSON, nullable=False)
    audio_recording_enabled = Column(Boolean, nullable=False, default=False)
    audio_recording_urls = Column(JSON, nullable=False, default=list)

    created_at = Column(UTCDateTime(), nullable=False, default=_utcnow)
    updated_at = Column(UTCDateTime(), nullable=False, default=_utcnow)
    version = Column(Integer, nullable=False)

    events = relationship(
        "TrackingEventRecord",
        back_populates="session",
        order_by="TrackingEventRecord.seq",
        cascade="save-update, merge",
        lazy="selectin",
    )
    panic_alerts = relationship(
        "PanicAlert",
        back_populates="session",
        order_by="PanicAlert.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    shared_with = relationship(
        "SharedContact",
        back_populates="session",
        order_by="SharedContact.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("visit_id", name="uq_tracking_session_visit"),
        Index("ix_tracking_session_professional", "professional_id", "is_active"),
        Index("ix_tracking_session_due", "is_active", "next_check_in_due"),
    )

    @property
    def patient_address(self) -> PatientAddress:
        return PatientAddress.model_validate(self.patient_address_json)

    @property
    def last_known_location(self) -> Optional[LastKnownLocation]:
        if self.last_latitude is None or self.last_longitude is None:
            return None
        return LastKnownLocation(
            latitude=self.last_latitude,
            longitude=self.last_longitude,
            accuracy=self.last_accuracy,
            timestamp=self.last_location_at,
        )

    @property
    def last_location_update(self) -> Optional[datetime]:
        return self.last_location_at

    def __repr__(self):
        return f"<TrackingSession(visit_id='{self.visit_id}', active={self.is_active})>"


class TrackingEventRecord(Base):
    """One stored entry of a session's append-only event log."""

    __tablename__ = "tracking_events"

    id = Column(GUID(), primary_key=True, default=uuid4)
    session_id = Column(GUID(), ForeignKey("tracking_sessions.id"), nullable=False)
    seq = Column(Integer, nullable=False)
    type = Column(String(32), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    accuracy = Column(Float, nullable=True)
    battery_level = Column(Integer, nullable=True)
    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSON, nullable=False, default=dict)
    occurred_at = Column(UTCDateTime(), nullable=False)
    stored_at = Column(UTCDateTime(), nullable=False, default=_utcnow)

    session = relationship("TrackingSession", back_populates="events")

    __table_args__ = (
        UniqueConstraint("session_id", "seq", name="uq_tracking_event_session_seq"),
        Index("ix_tracking_event_type", "type"),
    )

    def __repr__(self):
        return f"<TrackingEventRecord(seq={self.seq}, type='{self.type}')>"


@event.listens_for(TrackingEventRecord, "before_update")
def _reject_event_update(mapper, connection, target):
    raise EventLogImmutableError(
        f"Tracking event {target.id} (seq {target.seq}) cannot be modified"
    )


@event.listens_for(TrackingEventRecord, "before_delete")
def _reject_event_delete(mapper, connection, target):
    raise EventLogImmutableError(
        f"Tracking event {target.id} (seq {target.seq}) cannot be deleted"
    )


class PanicAlert(Base):
    """Distress signal raised during a visit."""

    __tablename__ = "panic_alerts"

    id = Column(GUID(), primary_key=True, default=uuid4)
    session_id = Column(GUID(), ForeignKey("tracking_sessions.id"), nullable=False)
    position = Column(Integer, nullable=False)
    level = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=PanicAlertStatus.ACTIVE.value)
    activated_at = Column(UTCDateTime(), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)

    responded_at = Column(UTCDateTime(), nullable=True)
    responded_by = Column(String(64), nullable=True)
    resolution = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    notified_contacts = Column(JSON, nullable=False, default=list)

    police_notified = Column(Boolean, nullable=False, default=False)
    police_notified_at = Column(UTCDateTime(), nullable=True)
    police_response_time = Column(Integer, nullable=True)  # Minutes
    audio_recording_url = Column(String(500), nullable=True)

    session = relationship("TrackingSession", back_populates="panic_alerts")

    __table_args__ = (
        UniqueConstraint("session_id", "position", name="uq_panic_alert_position"),
        Index("ix_panic_alert_status", "status"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == PanicAlertStatus.ACTIVE.value


class SharedContact(Base):
    """External contact holding a capability token to the public view."""

    __tablename__ = "shared_contacts"

    id = Column(GUID(), primary_key=True, default=uuid4)
    session_id = Column(GUID(), ForeignKey("tracking_sessions.id"), nullable=False)
    position = Column(Integer, nullable=False)
    name = Column(String(120), nullable=False)
    phone = Column(String(32), nullable=False)
    relationship_label = Column("relationship", String(60), nullable=False)
    token = Column(String(128), nullable=False)
    tracking_url = Column(String(500), nullable=False)
    notified_at = Column(UTCDateTime(), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(UTCDateTime(), nullable=True)
    revoked_at = Column(UTCDateTime(), nullable=True)
    created_at = Column(UTCDateTime(), nullable=False, default=_utcnow)

    session = relationship("TrackingSession", back_populates="shared_with")

    __table_args__ = (
        UniqueConstraint("token", name="uq_shared_contact_token"),
        UniqueConstraint("session_id", "position", name="uq_shared_contact_position"),
        Index("ix_shared_contact_session_phone", "session_id", "phone"),
    )


class NotificationOutboxEntry(Base):
    """A notification decided by the core, waiting for delivery."""

    __tablename__ = "notification_outbox"

    id = Column(GUID(), primary_key=True, default=uuid4)
    session_id = Column(GUID(), ForeignKey("tracking_sessions.id"), nullable=True)
    visit_id = Column(String(64), nullable=True)
    kind = Column(String(32), nullable=False)
    severity = Column(String(16), nullable=False)
    recipients = Column(JSON, nullable=False, default=list)
    message = Column(Text, nullable=False)
    payload = Column(JSON, nullable=False, default=dict)

    status = Column(
        String(16), nullable=False, default=NotificationStatus.PENDING.value
    )
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(UTCDateTime(), nullable=False, default=_utcnow)
    next_attempt_at = Column(UTCDateTime(), nullable=False, default=_utcnow)
    delivered_at = Column(UTCDateTime(), nullable=True)

    __table_args__ = (
        Index("ix_notification_outbox_pending", "status", "next_attempt_at"),
    )
