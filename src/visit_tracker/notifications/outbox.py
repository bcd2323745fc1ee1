"""Durable notification outbox and its dispatcher.

Services enqueue notifications in the same transaction as the state change
that caused them. After commit, ``NotificationDispatcher`` drains pending
entries through a ``Notifier``. Transport failures never reach the caller:
the entry stays pending with an exponential backoff until it is delivered or
runs out of attempts.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import and_, select
from sqlalchemy.orm import Session, sessionmaker

from ..config import AppConfig, get_config
from ..core.enums import NotificationKind, NotificationSeverity, NotificationStatus
from ..db.models import NotificationOutboxEntry
from ..utils.logging_config import get_logger, log_exception
from .retry import next_attempt_at
from .transports import NotificationDeliveryError, Notifier

logger = get_logger("notifications")


class NotificationOutbox:
    """Writes outbox entries inside the caller's transaction."""

    def __init__(self, db: Session):
        self.db = db

    def enqueue(
        self,
        *,
        kind: NotificationKind,
        severity: NotificationSeverity,
        recipients: List[str],
        message: str,
        now: datetime,
        payload: Optional[Dict[str, Any]] = None,
        visit_id: Optional[str] = None,
        session_id: Optional[UUID] = None,
    ) -> NotificationOutboxEntry:
        entry = NotificationOutboxEntry(
            id=uuid4(),
            session_id=session_id,
            visit_id=visit_id,
            kind=NotificationKind(kind).value,
            severity=NotificationSeverity(severity).value,
            recipients=list(recipients),
            message=message,
            payload=dict(payload or {}),
            status=NotificationStatus.PENDING.value,
            attempts=0,
            created_at=now,
            next_attempt_at=now,
        )
        self.db.add(entry)
        logger.debug(
            f"Queued {entry.kind} notification for visit {visit_id} "
            f"to {len(entry.recipients)} recipient(s)"
        )
        return entry


@dataclass
class DispatchReport:
    """Counts of what one dispatch pass did."""

    delivered: int = 0
    retried: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return self.delivered + self.retried + self.failed


class NotificationDispatcher:
    """Drains pending outbox entries through a notifier."""

    def __init__(
        self,
        session_factory: sessionmaker,
        notifier: Notifier,
        clock: Optional[Callable[[], datetime]] = None,
        config: Optional[AppConfig] = None,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.config = config or get_config().app

    def dispatch_pending(self, limit: Optional[int] = None) -> DispatchReport:
        """Deliver every due pending entry once. Never raises on transport errors."""
        report = DispatchReport()
        now = self.clock()
        db = self.session_factory()
        try:
            entries = (
                db.execute(
                    select(NotificationOutboxEntry)
                    .where(
                        and_(
                            NotificationOutboxEntry.status
                            == NotificationStatus.PENDING.value,
                            NotificationOutboxEntry.next_attempt_at <= now,
                        )
                    )
                    .order_by(NotificationOutboxEntry.created_at)
                    .limit(limit or self.config.notify_batch_size)
                )
                .scalars()
                .all()
            )

            for entry in entries:
                self._deliver(entry, now, report)
                db.commit()
        finally:
            db.close()

        if report.attempted:
            logger.info(
                f"Notification dispatch: {report.delivered} delivered, "
                f"{report.retried} retrying, {report.failed} failed"
            )
        return report

    def _deliver(
        self, entry: NotificationOutboxEntry, now: datetime, report: DispatchReport
    ) -> None:
        entry.attempts += 1
        try:
            self.notifier.notify(
                list(entry.recipients),
                entry.message,
                NotificationSeverity(entry.severity),
                dict(entry.payload or {}),
            )
        except Exception as e:  # transport errors must never escape dispatch
            entry.last_error = f"{type(e).__name__}: {e}"[:1000]
            report.errors.append(entry.last_error)

            if entry.attempts >= self.config.notify_max_attempts:
                entry.status = NotificationStatus.FAILED.value
                report.failed += 1
                log_exception(
                    "notifications",
                    e,
                    {"entry_id": entry.id, "kind": entry.kind, "attempts": entry.attempts},
                )
                return

            retry_at = next_attempt_at(
                entry.attempts,
                now,
                self.config.notify_backoff_base_seconds,
                self.config.notify_backoff_max_seconds,
                requested=e.retry_at if isinstance(e, NotificationDeliveryError) else None,
            )
            entry.next_attempt_at = retry_at
            report.retried += 1
            logger.warning(
                f"Delivery of {entry.kind} notification {entry.id} failed "
                f"(attempt {entry.attempts}), retrying at {retry_at.isoformat()}: {e}"
            )
            return

        entry.status = NotificationStatus.DELIVERED.value
        entry.delivered_at = now
        entry.last_error = None
        report.delivered += 1
