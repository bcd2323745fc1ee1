"""
Integrity policy for classifying IntegrityError exceptions.

Unique constraints back the per-visit invariants (one session per visit,
gap-free event sequence numbers, one alert/contact per ordinal position).
A violation of one of those means a concurrent writer won the race; anything
else is a real failure.
"""

from enum import Enum
from typing import Optional, Dict, Any
from sqlalchemy.exc import IntegrityError  # type: ignore

from ..domain.errors import (
    AlreadyActiveError,
    ConcurrentModificationError,
    TrackingError,
)
from ..utils.logging_config import get_logger


logger = get_logger("database")


class ExpectedIntegrityTag(Enum):
    """Tags for expected integrity constraint violations."""

    VISIT_ALREADY_TRACKED = "visit_already_tracked"
    EVENT_SEQUENCE_CONFLICT = "event_sequence_conflict"
    ALERT_POSITION_CONFLICT = "alert_position_conflict"
    CONTACT_POSITION_CONFLICT = "contact_position_conflict"
    SHARE_TOKEN_COLLISION = "share_token_collision"


# SQLite reports the columns, PostgreSQL reports the constraint name
CONSTRAINT_TAG_MAP: Dict[str, ExpectedIntegrityTag] = {
    "tracking_sessions.visit_id": ExpectedIntegrityTag.VISIT_ALREADY_TRACKED,
    "uq_tracking_session_visit": ExpectedIntegrityTag.VISIT_ALREADY_TRACKED,
    "tracking_events.session_id, tracking_events.seq": ExpectedIntegrityTag.EVENT_SEQUENCE_CONFLICT,
    "uq_tracking_event_session_seq": ExpectedIntegrityTag.EVENT_SEQUENCE_CONFLICT,
    "panic_alerts.session_id, panic_alerts.position": ExpectedIntegrityTag.ALERT_POSITION_CONFLICT,
    "uq_panic_alert_position": ExpectedIntegrityTag.ALERT_POSITION_CONFLICT,
    "shared_contacts.session_id, shared_contacts.position": ExpectedIntegrityTag.CONTACT_POSITION_CONFLICT,
    "uq_shared_contact_position": ExpectedIntegrityTag.CONTACT_POSITION_CONFLICT,
    "shared_contacts.token": ExpectedIntegrityTag.SHARE_TOKEN_COLLISION,
    "uq_shared_contact_token": ExpectedIntegrityTag.SHARE_TOKEN_COLLISION,
}


def is_unique_violation(exc: IntegrityError) -> bool:
    """Check if the IntegrityError is a unique constraint violation."""
    error_msg = str(exc.orig) if exc.orig else str(exc)
    return (
        "UNIQUE constraint failed" in error_msg
        or "duplicate key value violates unique constraint" in error_msg
    )


def extract_constraint_name(exc: IntegrityError) -> Optional[str]:
    """Extract constraint name (PostgreSQL) or column list (SQLite)."""
    diag = getattr(exc.orig, "diag", None)
    constraint_name = getattr(diag, "constraint_name", None)
    if constraint_name:
        return constraint_name

    error_msg = str(exc.orig) if exc.orig else str(exc)

    # SQLite format: "UNIQUE constraint failed: table.column1, table.column2"
    if "UNIQUE constraint failed:" in error_msg:
        return error_msg.split("UNIQUE constraint failed:", 1)[1].strip()

    if 'unique constraint "' in error_msg:
        return error_msg.split('unique constraint "', 1)[1].split('"', 1)[0]

    return None


def classify_integrity_error(exc: IntegrityError) -> Optional[ExpectedIntegrityTag]:
    """
    Classify an IntegrityError to determine if it's an expected constraint violation.

    Args:
        exc: The IntegrityError exception to classify

    Returns:
        ExpectedIntegrityTag if this is an expected violation, None otherwise
    """
    if not is_unique_violation(exc):
        return None

    constraint_name = extract_constraint_name(exc)
    if constraint_name is None:
        return None

    return CONSTRAINT_TAG_MAP.get(constraint_name)


def to_tracking_error(
    exc: IntegrityError, context: Dict[str, Any]
) -> Optional[TrackingError]:
    """
    Translate a lost race into the domain error the caller should see.

    Returns None for unexpected violations, which are logged at ERROR level
    and should be re-raised by the caller.
    """
    tag = classify_integrity_error(exc)
    if tag is None:
        log_unexpected_violation(exc, context)
        return None

    logger.info(
        "Expected integrity violation (concurrent writer won)",
        extra={
            "integrity_tag": tag.value,
            "constraint_name": extract_constraint_name(exc),
            "operation": context.get("operation", "unknown"),
            "visit_id": context.get("visit_id"),
        },
    )

    if tag == ExpectedIntegrityTag.VISIT_ALREADY_TRACKED:
        return AlreadyActiveError()
    return ConcurrentModificationError()


def log_unexpected_violation(exc: IntegrityError, context: Dict[str, Any]) -> None:
    """
    Log an unexpected integrity violation at ERROR level.

    Args:
        exc: The IntegrityError that was not expected
        context: Additional context for logging
    """
    logger.error(
        "Unexpected integrity violation",
        extra={
            "constraint_name": extract_constraint_name(exc),
            "operation": context.get("operation", "unknown"),
            "visit_id": context.get("visit_id"),
            "error_message": str(exc),
        },
        exc_info=exc,
    )
