"""Pytest configuration and shared fixtures."""

import dataclasses
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncGenerator, Callable, Dict, Generator, List, Optional

# Configure the application before any visit_tracker module is imported
_TEST_DIR = tempfile.mkdtemp(prefix="visit_tracker_tests_")
_TEST_DB_URL = f"sqlite:///{Path(_TEST_DIR) / 'test.db'}"
os.environ["VISIT_TRACKER_DATABASE_URL"] = _TEST_DB_URL
os.environ["VISIT_TRACKER_LOG_TO_FILE"] = "0"
os.environ["VISIT_TRACKER_JWT_SECRET_KEY"] = "tEst-Only-jwt-Secret-9f3b7c2e81d64a05b6c0e2d4f8a1b3c5"
os.environ["VISIT_TRACKER_PUBLIC_BASE_URL"] = "https://care.example.com/track"

import pytest
import pytest_asyncio
from alembic import command
from alembic.config import Config
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete

from visit_tracker.core.enums import ActorRole, NotificationSeverity
from visit_tracker.domain.events import Location, PatientAddress
from visit_tracker.notifications.transports import NotificationDeliveryError, Notifier


def _project_root() -> Path:
    """Return the repository root path."""
    return Path(__file__).resolve().parents[1]


def _run_alembic_migrations() -> None:
    """Run Alembic migrations programmatically for the test database."""
    alembic_cfg = Config()
    alembic_cfg.set_main_option("script_location", str(_project_root() / "alembic"))
    command.upgrade(alembic_cfg, "head")


START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable clock handed to the services instead of the wall clock."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float = 0, seconds: float = 0) -> datetime:
        self.now = self.now + timedelta(minutes=minutes, seconds=seconds)
        return self.now

    def set(self, when: datetime) -> None:
        self.now = when


class RecordingNotifier(Notifier):
    """Keeps every delivered notification; fails on demand."""

    def __init__(self):
        self.sent: List[Dict] = []
        self.fail = False

    def notify(self, recipients, message, severity, payload) -> None:
        if self.fail:
            raise NotificationDeliveryError("transport down")
        self.sent.append(
            {
                "recipients": list(recipients),
                "message": message,
                "severity": NotificationSeverity(severity),
                "payload": dict(payload),
            }
        )


@pytest.fixture(scope="session")
def engine():
    """Database engine with the schema migrated to head."""
    from visit_tracker.db.database import engine as app_engine

    _run_alembic_migrations()
    yield app_engine
    app_engine.dispose()


@pytest.fixture(scope="session")
def session_factory(engine):
    from visit_tracker.db.database import SessionLocal

    return SessionLocal


@pytest.fixture
def db_session(session_factory):
    """A database session for the test, closed afterwards."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def db_cleanup(engine):
    """Wipe every table after each test, children first."""
    yield
    from visit_tracker.db.database import Base

    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(delete(table))


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    from visit_tracker.auth.rate_limiter import rate_limiter

    rate_limiter.reset()
    yield
    rate_limiter.reset()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def app_config():
    """A private copy of the application config that tests may change."""
    from visit_tracker.config import get_config

    return dataclasses.replace(get_config().app)


@pytest.fixture
def directory():
    from visit_tracker.repositories.memory_impl import InMemoryVisitDirectory

    directory = InMemoryVisitDirectory()
    directory.register_professional("pro-1", "Maria Silva")
    directory.register_professional("pro-2", "Joao Pereira")
    directory.register_visit("visit-1", "Wound care")
    directory.register_visit("visit-2", "Physiotherapy")
    return directory


@pytest.fixture
def lifecycle(db_session, clock, app_config):
    from visit_tracker.services.tracking import TrackingLifecycle

    return TrackingLifecycle(db_session, clock=clock, config=app_config)


@pytest.fixture
def scheduler(db_session, clock, app_config):
    from visit_tracker.services.scheduler import CheckInScheduler

    return CheckInScheduler(db_session, clock=clock, config=app_config)


@pytest.fixture
def panic(db_session, clock, app_config):
    from visit_tracker.services.panic import PanicWorkflow

    return PanicWorkflow(db_session, clock=clock, config=app_config)


@pytest.fixture
def sharing(db_session, clock, app_config, directory):
    from visit_tracker.services.sharing import ShareTokenManager

    return ShareTokenManager(
        db_session, clock=clock, config=app_config, directory=directory
    )


@pytest.fixture
def dispatcher(session_factory, notifier, clock, app_config):
    from visit_tracker.notifications.outbox import NotificationDispatcher

    return NotificationDispatcher(session_factory, notifier, clock=clock, config=app_config)


@pytest.fixture
def address() -> PatientAddress:
    return PatientAddress(
        address_line="Rua das Flores 12",
        district="Centro",
        latitude=-23.5505,
        longitude=-46.6333,
        safety_zone="green",
    )


@pytest.fixture
def here() -> Location:
    return Location(latitude=-23.5510, longitude=-46.6340, accuracy=8.0, battery_level=80)


@pytest.fixture
def started(lifecycle, address):
    """An active session for visit-1 owned by pro-1, 30 minute interval."""
    return lifecycle.start("visit-1", "pro-1", "patient-1", address, interval_minutes=30)


def _override_dependencies(app, session_factory, clock, app_config, directory, dispatcher):
    from visit_tracker.api.dependencies import (
        get_app_config,
        get_clock,
        get_notification_dispatcher,
        get_visit_directory,
    )
    from visit_tracker.db.database import get_db

    def override_get_db():
        # Use a fresh session per request in tests
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_app_config] = lambda: app_config
    app.dependency_overrides[get_visit_directory] = lambda: directory
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher


@pytest.fixture
def client(
    session_factory, clock, app_config, directory, dispatcher
) -> Generator[TestClient, None, None]:
    """Create a test client with database, clock and notifier overrides."""
    from visit_tracker.main import app

    _override_dependencies(app, session_factory, clock, app_config, directory, dispatcher)

    with TestClient(app) as test_client:
        yield test_client

    # Clear overrides to avoid affecting other tests
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def async_client(
    session_factory, clock, app_config, directory, dispatcher
) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with the same overrides."""
    from visit_tracker.main import app

    _override_dependencies(app, session_factory, clock, app_config, directory, dispatcher)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers_for() -> Callable[..., Dict[str, str]]:
    """Return a function that builds bearer headers for an actor."""
    from visit_tracker.auth.jwt_auth import get_jwt_manager

    def _headers(actor_id: str, role: ActorRole = ActorRole.PROFESSIONAL) -> Dict[str, str]:
        token, _ = get_jwt_manager().create_access_token(actor_id, role)
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

    return _headers


@pytest.fixture
def pro_headers(auth_headers_for) -> Dict[str, str]:
    return auth_headers_for("pro-1", ActorRole.PROFESSIONAL)


@pytest.fixture
def monitor_headers(auth_headers_for) -> Dict[str, str]:
    return auth_headers_for("monitor-1", ActorRole.MONITORING)


@pytest.fixture
def start_payload() -> Callable[..., Dict]:
    def _payload(visit_id: str = "visit-1", interval: Optional[int] = 30) -> Dict:
        return {
            "visit_id": visit_id,
            "patient_id": "patient-1",
            "patient_address": {
                "address_line": "Rua das Flores 12",
                "district": "Centro",
                "latitude": -23.5505,
                "longitude": -46.6333,
            },
            "check_in_interval_minutes": interval,
        }

    return _payload
