"""Error taxonomy for tracking operations.

The API layer maps each class to an HTTP status and a Problem Details title;
see ``api/middleware.py``.
"""

from typing import Optional


class TrackingError(Exception):
    """Base class for all tracking domain errors."""

    default_detail = "Tracking operation failed"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class AlreadyActiveError(TrackingError):
    default_detail = "An active tracking session already exists for this visit"


class SessionCompletedError(TrackingError):
    default_detail = "Tracking for this visit has already been completed"


class SessionNotFoundError(TrackingError):
    default_detail = "No tracking session exists for this visit"


class SessionNotActiveError(TrackingError):
    default_detail = "Tracking session is not active"


class NoActiveAlertError(TrackingError):
    default_detail = "There is no active panic alert for this visit"


class TooManyContactsError(TrackingError):
    default_detail = "Maximum number of shared contacts reached"


class InvalidOrExpiredLinkError(TrackingError):
    """Raised for unknown, revoked and expired share tokens alike."""

    default_detail = "Tracking link is invalid or has expired"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(None)


class UnauthorizedError(TrackingError):
    default_detail = "Not authorized to access this tracking session"


class ConcurrentModificationError(TrackingError):
    default_detail = "Tracking session was modified concurrently, retry the request"


class InvalidAlertOutcomeError(TrackingError):
    default_detail = "Alert outcome must be responded, resolved or false_alarm"


class EventLogImmutableError(Exception):
    """Raised when something tries to update or delete a stored event."""
