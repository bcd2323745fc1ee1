"""Location cache projection.

The session row caches the coordinates of its newest event so readers do not
have to scan the log. The cache is maintained by applying each appended
envelope and can be rebuilt from the log by replay.
"""

from typing import Iterable, Optional

from ..core.enums import TrackingEventType
from ..db.models import TrackingSession
from ..domain.events import EventEnvelope, LastKnownLocation

# Auto-check events repeat the cached coordinates instead of reporting a fix,
# so they leave the cache (and its timestamp) untouched.
NON_FIX_EVENT_TYPES = frozenset({TrackingEventType.AUTO_CHECK})


def apply_location(tracking: TrackingSession, envelope: EventEnvelope) -> None:
    """Refresh the session's location cache from an appended event."""
    event = envelope.event
    if TrackingEventType(event.type) in NON_FIX_EVENT_TYPES:
        return

    tracking.last_latitude = event.latitude
    tracking.last_longitude = event.longitude
    tracking.last_accuracy = event.accuracy
    tracking.last_location_at = event.timestamp


def rebuild_last_known_location(
    envelopes: Iterable[EventEnvelope],
) -> Optional[LastKnownLocation]:
    """Derive the location cache from a full replay of the log."""
    latest = None
    for envelope in envelopes:
        if TrackingEventType(envelope.event.type) not in NON_FIX_EVENT_TYPES:
            latest = envelope.event

    if latest is None:
        return None
    return LastKnownLocation(
        latitude=latest.latitude,
        longitude=latest.longitude,
        accuracy=latest.accuracy,
        timestamp=latest.timestamp,
    )
