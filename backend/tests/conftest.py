# backend/tests/conftest.py
"""
Shared fixtures for the scheduling core tests.

Every test gets a fresh in-memory SQLite database and a frozen clock set
to NOW. Services receive settings and clock explicitly, the same way the
orchestrator wires them in production.
"""

from typing import Iterator
from unittest.mock import Mock

import pytest
from sqlalchemy.orm import Session

from dateplanner.core.config import Settings
from dateplanner.database import create_db_engine, create_session_factory, init_db
from dateplanner.services.base import BaseService
from dateplanner.services.scheduling_orchestrator import SchedulingOrchestrator
from tests.helpers import NOW, FrozenClock


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, database_url="sqlite://", environment="test")


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def engine(settings: Settings):
    engine = create_db_engine(settings)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine) -> Iterator[Session]:
    session = create_session_factory(engine)()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def notifier() -> Mock:
    return Mock(name="notifier")


@pytest.fixture
def orchestrator(db: Session, settings: Settings, clock: FrozenClock, notifier: Mock):
    return SchedulingOrchestrator(db, settings=settings, clock=clock, notifier=notifier)


@pytest.fixture
def slot_manager(orchestrator: SchedulingOrchestrator):
    return orchestrator.slot_manager


@pytest.fixture
def booking_service(orchestrator: SchedulingOrchestrator):
    return orchestrator.booking_service


@pytest.fixture(autouse=True)
def _reset_service_metrics():
    yield
    BaseService._class_metrics.clear()
