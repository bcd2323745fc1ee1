"""Dependency injection for the tracking services."""

from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from ..config import AppConfig, get_config
from ..db.database import SessionLocal, get_db
from ..notifications.outbox import NotificationDispatcher
from ..notifications.transports import LoggingNotifier, Notifier, WebhookNotifier
from ..repositories.interfaces import VisitDirectory
from ..repositories.memory_impl import visit_directory
from ..services.panic import PanicWorkflow
from ..services.scheduler import CheckInScheduler
from ..services.sharing import ShareTokenManager
from ..services.tracking import TrackingLifecycle

_dispatcher: Optional[NotificationDispatcher] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_clock() -> Callable[[], datetime]:
    """Wall clock; overridden with a fake clock in tests."""
    return _utcnow


def get_app_config() -> AppConfig:
    return get_config().app


def get_visit_directory() -> VisitDirectory:
    return visit_directory


def build_notifier(config: AppConfig) -> Notifier:
    """Webhook delivery when a URL is configured, log-only otherwise."""
    if config.notify_webhook_url:
        return WebhookNotifier(
            config.notify_webhook_url, timeout_seconds=config.notify_timeout_seconds
        )
    return LoggingNotifier()


def get_notification_dispatcher() -> NotificationDispatcher:
    """Process-wide dispatcher, created on first use."""
    global _dispatcher
    if _dispatcher is None:
        config = get_config().app
        _dispatcher = NotificationDispatcher(SessionLocal, build_notifier(config), config=config)
    return _dispatcher


def get_lifecycle(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
    config: AppConfig = Depends(get_app_config),
) -> TrackingLifecycle:
    return TrackingLifecycle(db, clock=clock, config=config)


def get_scheduler(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
    config: AppConfig = Depends(get_app_config),
) -> CheckInScheduler:
    return CheckInScheduler(db, clock=clock, config=config)


def get_panic_workflow(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
    config: AppConfig = Depends(get_app_config),
) -> PanicWorkflow:
    return PanicWorkflow(db, clock=clock, config=config)


def get_share_manager(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
    config: AppConfig = Depends(get_app_config),
    directory: VisitDirectory = Depends(get_visit_directory),
) -> ShareTokenManager:
    return ShareTokenManager(db, clock=clock, config=config, directory=directory)
