# tests/conftest.py
"""Shared fixtures: in-memory SQLite storage, pinned clock, mocked collaborators."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Must be set before parkingmate.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("LOG_TO_FILE", "false")

import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from parkingmate.database import create_tables
from parkingmate.services.plate_locks import PlateLockRegistry
from parkingmate.services.recaptcha_service import VerificationResult
from parkingmate.utils.clock import FixedClock
from tests.helpers import T0


def _sqlite_engine(url, begin="BEGIN", poolclass=None, **connect_args):
    options = {"poolclass": poolclass} if poolclass else {}
    engine = create_engine(url, connect_args={"check_same_thread": False, **connect_args}, **options)

    # pysqlite needs explicit BEGIN for SAVEPOINT to work
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_conn, _record):
        dbapi_conn.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql(begin)

    create_tables(bind=engine)
    return engine


@pytest.fixture
def engine():
    engine = _sqlite_engine("sqlite://", poolclass=StaticPool)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def session_factory(tmp_path):
    """
    File-backed store for callers running on several threads at once, one
    session each. Writers queue on BEGIN IMMEDIATE instead of failing when
    SQLite upgrades a read lock.
    """
    engine = _sqlite_engine(
        f"sqlite:///{tmp_path / 'parkingmate.db'}",
        begin="BEGIN IMMEDIATE",
        timeout=10,
    )
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture
def clock():
    return FixedClock(T0)


@pytest.fixture
def locks():
    return PlateLockRegistry()


@pytest.fixture
def notifier():
    mock = MagicMock()
    mock.send_vehicle_detection_email = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def verifier():
    mock = MagicMock()
    mock.verify = AsyncMock(return_value=VerificationResult(success=True, score=0.9))
    return mock
