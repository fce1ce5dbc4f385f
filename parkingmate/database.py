# parkingmate/database.py
"""
Database connection, session management, and table creation.
Uses SQLAlchemy with PostgreSQL. All models are auto-imported here
so create_tables() creates every table in one call.
"""

from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.exc import DBAPIError, IntegrityError, TimeoutError as SQLAlchemyTimeoutError
from sqlalchemy.orm import declarative_base, sessionmaker
from parkingmate.config import settings
from parkingmate.errors import StorageUnavailableError
from parkingmate.utils.logger import get_logger

logger = get_logger(__name__)


def engine_options(database_url: str) -> dict:
    """Connection options per backend. SQLite has no pool sizing or statement timeout."""
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,          # Auto-reconnect if DB connection drops
        "pool_size": 10,
        "max_overflow": 20,
        "pool_timeout": 10,
        # Every statement is bounded; a timeout surfaces as StorageUnavailable
        "connect_args": {"options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}"},
    }


engine = create_engine(
    settings.DATABASE_URL,
    echo=False,                  # Set True to log all SQL queries (debug only)
    **engine_options(settings.DATABASE_URL),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency — yields a DB session and closes it after request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def storage_errors(operation: str):
    """
    Map driver/pool failures to StorageUnavailableError.
    IntegrityError passes through untouched; callers use it for the
    conditional-create path. Nothing is retried here.
    """
    try:
        yield
    except IntegrityError:
        raise
    except (DBAPIError, SQLAlchemyTimeoutError) as e:
        logger.error(f"[DB] {operation} failed: {e.__class__.__name__}: {e}")
        raise StorageUnavailableError(operation) from e


def create_tables(bind=None):
    """
    Creates all DB tables on startup. Safe to call multiple times.
    Import all models here so SQLAlchemy knows about them.
    """
    from parkingmate.models.camera_event import CameraEvent                       # noqa
    from parkingmate.models.customer import Customer                              # noqa
    from parkingmate.models.car import Car                                        # noqa
    from parkingmate.models.guest import Guest                                    # noqa
    from parkingmate.models.parking_session import ParkingSession                 # noqa
    from parkingmate.models.registration_token import CustomerRegistrationToken  # noqa
    from parkingmate.models.processed_event import ProcessedEvent                 # noqa

    Base.metadata.create_all(bind=bind or engine)
