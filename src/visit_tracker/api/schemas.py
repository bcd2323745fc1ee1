"""Pydantic models for API request/response validation."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict  # type: ignore

from ..core.enums import PanicAlertLevel, PanicAlertStatus, TrackingEventType
from ..db.models import PanicAlert, SharedContact, TrackingSession
from ..domain.events import (
    EventEnvelope,
    LastKnownLocation,
    Location,
    PatientAddress,
    PublicTrackingView,
)


class ProblemDetails(BaseModel):
    """RFC 9457 Problem Details for HTTP APIs."""

    type: str = Field(description="A URI reference that identifies the problem type")
    title: str = Field(
        description="A short, human-readable summary of the problem type"
    )
    status: int = Field(description="The HTTP status code")
    detail: Optional[str] = Field(
        None, description="A human-readable explanation specific to this occurrence"
    )
    instance: Optional[str] = Field(
        None, description="A URI reference that identifies the specific occurrence"
    )


# Request schemas
class StartTrackingRequest(BaseModel):
    """Schema for starting to track a visit."""

    visit_id: str = Field(description="Visit identifier", min_length=1, max_length=64)
    patient_id: str = Field(description="Patient identifier", min_length=1, max_length=64)
    patient_address: PatientAddress = Field(description="Destination of the visit")
    check_in_interval_minutes: Optional[int] = Field(
        None, ge=1, le=720, description="Minutes between check-ins"
    )
    audio_recording_enabled: bool = Field(False)


class CheckInRequest(BaseModel):
    """Schema for a check-in."""

    location: Location
    message: Optional[str] = Field(None, max_length=500)


class LocationUpdateRequest(BaseModel):
    """Schema for a location fix or check-out position."""

    location: Location


class PanicRequest(BaseModel):
    """Schema for raising a panic alert."""

    level: PanicAlertLevel = Field(description="Escalation level")
    location: Location
    audio_recording_url: Optional[str] = Field(None, max_length=500)


class PanicCancelRequest(BaseModel):
    """Schema for withdrawing a panic alert as a false alarm."""

    location: Location
    reason: Optional[str] = Field(None, max_length=500)


class PanicRespondRequest(BaseModel):
    """Schema for a monitoring-center response to the earliest active alert."""

    resolution: str = Field(min_length=1, max_length=1000)
    outcome: PanicAlertStatus = Field(PanicAlertStatus.RESPONDED)
    police_response_time: Optional[int] = Field(None, ge=0, description="Minutes")
    notes: Optional[str] = Field(None, max_length=2000)


class ShareRequest(BaseModel):
    """Schema for sharing a session with a contact."""

    name: str = Field(min_length=1, max_length=120)
    phone: str = Field(min_length=3, max_length=32)
    relationship: str = Field(min_length=1, max_length=60)
    expires_in_minutes: Optional[int] = Field(None, ge=1, le=7 * 24 * 60)


# Response schemas
class TrackingEventResponse(BaseModel):
    """One entry of the event log."""

    seq: int
    type: TrackingEventType
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    battery_level: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
    stored_at: datetime

    @classmethod
    def from_envelope(cls, envelope: EventEnvelope) -> "TrackingEventResponse":
        event = envelope.event
        return cls(
            seq=envelope.sequence_number,
            type=event.type,
            latitude=event.latitude,
            longitude=event.longitude,
            accuracy=event.accuracy,
            battery_level=event.battery_level,
            metadata=event.metadata,
            timestamp=event.timestamp,
            stored_at=envelope.stored_at,
        )


class PanicAlertResponse(BaseModel):
    """Schema for panic alert response."""

    model_config = ConfigDict(from_attributes=True)

    position: int
    level: PanicAlertLevel
    status: PanicAlertStatus
    activated_at: datetime
    latitude: float
    longitude: float
    responded_at: Optional[datetime] = None
    responded_by: Optional[str] = None
    resolution: Optional[str] = None
    notes: Optional[str] = None
    notified_contacts: List[str] = Field(default_factory=list)
    police_notified: bool
    police_notified_at: Optional[datetime] = None
    police_response_time: Optional[int] = None
    audio_recording_url: Optional[str] = None


class SharedContactResponse(BaseModel):
    """A contact the session is shared with. The token is only in the URL."""

    position: int
    name: str
    phone: str
    relationship: str
    tracking_url: str
    notified_at: datetime
    is_active: bool
    expires_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, contact: SharedContact) -> "SharedContactResponse":
        return cls(
            position=contact.position,
            name=contact.name,
            phone=contact.phone,
            relationship=contact.relationship_label,
            tracking_url=contact.tracking_url,
            notified_at=contact.notified_at,
            is_active=contact.is_active,
            expires_at=contact.expires_at,
            revoked_at=contact.revoked_at,
        )


class TrackingSessionResponse(BaseModel):
    """Full session detail for its professional and for monitoring staff."""

    id: UUID
    visit_id: str
    professional_id: str
    patient_id: str
    is_active: bool
    started_at: datetime
    completed_at: Optional[datetime] = None
    patient_address: PatientAddress
    last_known_location: Optional[LastKnownLocation] = None
    check_in_interval_minutes: int
    next_check_in_due: datetime
    missed_check_ins: int
    audio_recording_enabled: bool
    audio_recording_urls: List[str] = Field(default_factory=list)
    panic_alerts: List[PanicAlertResponse] = Field(default_factory=list)
    shared_with: List[SharedContactResponse] = Field(default_factory=list)

    @classmethod
    def from_model(cls, tracking: TrackingSession) -> "TrackingSessionResponse":
        return cls(
            id=tracking.id,
            visit_id=tracking.visit_id,
            professional_id=tracking.professional_id,
            patient_id=tracking.patient_id,
            is_active=tracking.is_active,
            started_at=tracking.started_at,
            completed_at=tracking.completed_at,
            patient_address=tracking.patient_address,
            last_known_location=tracking.last_known_location,
            check_in_interval_minutes=tracking.check_in_interval_minutes,
            next_check_in_due=tracking.next_check_in_due,
            missed_check_ins=tracking.missed_check_ins,
            audio_recording_enabled=tracking.audio_recording_enabled,
            audio_recording_urls=list(tracking.audio_recording_urls or []),
            panic_alerts=[
                PanicAlertResponse.model_validate(a) for a in tracking.panic_alerts
            ],
            shared_with=[SharedContactResponse.from_model(c) for c in tracking.shared_with],
        )


class EventCatchUpResponse(BaseModel):
    """Events after a given sequence number, for reconnecting clients."""

    visit_id: str
    events: List[TrackingEventResponse]
    total: int
    latest_seq: int


class MissedCheckInResponse(BaseModel):
    """Schema for an overdue session."""

    visit_id: str
    professional_id: str
    missed_check_ins: int
    next_check_in_due: datetime
    minutes_overdue: int


class SweepResponse(BaseModel):
    """Misses recorded by one scheduler sweep."""

    swept_at: datetime
    recorded: List[MissedCheckInResponse]


class ActiveAlertResponse(BaseModel):
    """A session with alerts awaiting response.

    ``alert`` is the earliest one, which a response closes; ``alerts`` lists
    every active alert in the order they were raised.
    """

    visit_id: str
    professional_id: str
    patient_district: str
    last_known_location: Optional[LastKnownLocation] = None
    alert: PanicAlertResponse
    alerts: List[PanicAlertResponse]


class ActiveAlertsResponse(BaseModel):
    alerts: List[ActiveAlertResponse]


class PublicTrackingResponse(PublicTrackingView):
    """Need-to-know view behind a share link."""

    @classmethod
    def from_view(cls, view: PublicTrackingView) -> "PublicTrackingResponse":
        return cls(**view.model_dump())
