"""Enums for the visit tracker application."""

from enum import Enum


class TrackingEventType(str, Enum):
    """Kinds of entries in a session's event log."""

    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"
    LOCATION_UPDATE = "location_update"
    AUTO_CHECK = "auto_check"
    PANIC_BUTTON_HELP = "panic_button_help"
    PANIC_BUTTON_EMERGENCY = "panic_button_emergency"
    PANIC_CANCELLED = "panic_cancelled"
    SERVICE_STARTED = "service_started"
    SERVICE_PAUSED = "service_paused"
    SERVICE_RESUMED = "service_resumed"
    SERVICE_COMPLETED = "service_completed"


class PanicAlertLevel(str, Enum):
    """Severity of a panic alert."""

    HELP_NEEDED = "help_needed"
    EMERGENCY = "emergency"


class PanicAlertStatus(str, Enum):
    """Panic alert states. Everything but ACTIVE is terminal."""

    ACTIVE = "active"
    RESPONDED = "responded"
    RESOLVED = "resolved"
    FALSE_ALARM = "false_alarm"


class ActorRole(str, Enum):
    """Roles carried in access tokens."""

    PROFESSIONAL = "professional"
    MONITORING = "monitoring"
    PATIENT = "patient"


class NotificationKind(str, Enum):
    """What a queued notification is about."""

    PANIC_ALERT = "panic_alert"
    PANIC_RESOLVED = "panic_resolved"
    MISSED_CHECK_IN = "missed_check_in"
    SHARE_INVITE = "share_invite"


class NotificationSeverity(str, Enum):
    """Notification severity."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class NotificationStatus(str, Enum):
    """Delivery state of an outbox entry."""

    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"
