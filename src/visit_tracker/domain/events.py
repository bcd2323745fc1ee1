"""Value objects and event contracts for visit tracking.

Tracking events are immutable and append-only; every one of them carries
coordinates so the session's location cache can always be derived from the
latest entry of the log.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, ConfigDict  # type: ignore

from ..core.enums import TrackingEventType


class Location(BaseModel):
    """A position fix reported by the professional's device."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(None, ge=0, description="Meters")
    battery_level: Optional[int] = Field(None, ge=0, le=100)


class PatientAddress(BaseModel):
    """Destination of the visit. Set at start and never changed."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    address_line: str = Field(..., min_length=1, max_length=255)
    district: str = Field(..., min_length=1, max_length=120)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    safety_zone: Optional[str] = Field(None, max_length=50)


class LastKnownLocation(BaseModel):
    """Cached copy of the coordinates of the newest event."""

    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    timestamp: datetime


class TrackingEvent(BaseModel):
    """A single entry of a session's event log."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: TrackingEventType
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = None
    battery_level: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def at(
        cls,
        event_type: TrackingEventType,
        location: Location,
        timestamp: datetime,
        **metadata: Any,
    ) -> "TrackingEvent":
        """Build an event at a reported location, dropping empty metadata."""
        return cls(
            type=event_type,
            latitude=location.latitude,
            longitude=location.longitude,
            accuracy=location.accuracy,
            battery_level=location.battery_level,
            metadata={k: v for k, v in metadata.items() if v is not None},
            timestamp=timestamp,
        )


class EventEnvelope(BaseModel):
    """Event store envelope containing event with metadata."""

    model_config = ConfigDict(frozen=True)

    sequence_number: int = Field(..., ge=1, description="Per-session sequence number")
    stored_at: datetime
    event: TrackingEvent

    @property
    def event_type(self) -> TrackingEventType:
        """Return the event type for the wrapped event."""
        return self.event.type

    @property
    def timestamp(self) -> datetime:
        return self.event.timestamp


class PublicTrackingView(BaseModel):
    """Need-to-know projection of a session shown to shared contacts."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    professional_first_name: Optional[str] = None
    service_category: Optional[str] = None
    last_known_location: Optional[LastKnownLocation] = None
    is_active: bool
    started_at: datetime
    patient_district: str
    panic_active: bool
