# parkingmate/services/parking_session_service.py
"""
Parking session transitions.

open_session      — conditional create: at most one active session per (org, plate)
refresh_entry     — repeated entry detection of a still-active session
complete_session  — matching exit closes the stay
settle_duplicates — conservative repair when more than one active row is seen

Sessions in a terminal status (completed / expired / penalized) are never modified.
None of these functions commit; the caller owns the transaction.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from parkingmate.database import storage_errors
from parkingmate.models.camera_event import CameraEvent
from parkingmate.models.car import Car
from parkingmate.models.customer import Customer
from parkingmate.models.parking_session import ParkingSession, SessionStatus
from parkingmate.services.record_resolver import find_active_sessions
from parkingmate.utils.logger import get_logger

logger = get_logger(__name__)

ANOMALY_EXIT_BEFORE_ENTRY = "exit_before_entry"
ANOMALY_DUPLICATE_ACTIVE = "duplicate_active_sessions"


class SessionAlreadyClosedError(Exception):
    """Raised when a transition targets a session that is already terminal."""


def _ensure_active(session: ParkingSession):
    if session.status in SessionStatus.TERMINAL:
        raise SessionAlreadyClosedError(f"Session {session.id} is {session.status}")


def settle_duplicates(db: Session, sessions: list[ParkingSession], now: datetime) -> Optional[ParkingSession]:
    """
    Keep the earliest-created active session authoritative and close the rest
    as expired. Returns the kept session (or None for an empty list).
    """
    if not sessions:
        return None
    keep, extras = sessions[0], sessions[1:]
    for extra in extras:
        logger.warning(
            f"[SESSION][ANOMALY] Duplicate active session {extra.id} for plate={extra.license_plate} "
            f"— keeping {keep.id}, closing duplicate"
        )
        extra.status = SessionStatus.EXPIRED
        extra.exit_time = extra.exit_time or now
        extra.updated_at = now
    if extras:
        with storage_errors("settle_duplicates"):
            db.flush()
    return keep


def get_active_session(db: Session, plate: str, org_id: str, now: datetime) -> tuple[Optional[ParkingSession], bool]:
    """Active session for a plate plus a flag telling whether duplicates had to be settled."""
    sessions = find_active_sessions(db, plate, org_id)
    if len(sessions) > 1:
        return settle_duplicates(db, sessions, now), True
    return (sessions[0] if sessions else None), False


def open_session(db: Session, org_id: str, plate: str, entry_event: CameraEvent, now: datetime,
                 car: Optional[Car] = None, customer: Optional[Customer] = None) -> tuple[ParkingSession, bool]:
    """
    Create the active session for a plate unless one already exists.
    Returns (session, created). A concurrent writer that wins the unique
    index turns this call into a read of the winner's row.
    """
    existing, _ = get_active_session(db, plate, org_id, now)
    if existing:
        return existing, False

    session = ParkingSession(
        org_id=org_id,
        license_plate=plate,
        car_id=car.id if car else None,
        customer_id=customer.id if customer else None,
        entry_event_id=entry_event.id,
        entry_time=entry_event.timestamp,
        status=SessionStatus.ACTIVE,
        created_at=now,
        updated_at=now,
    )
    try:
        with storage_errors("open_session"):
            with db.begin_nested():
                db.add(session)
    except IntegrityError:
        logger.info(f"[SESSION] Lost create race for plate={plate} — using the existing active session")
        winner, _ = get_active_session(db, plate, org_id, now)
        if winner is None:
            raise
        return winner, False

    logger.info(f"[SESSION] Opened {session.id} plate={plate} entry={entry_event.timestamp.isoformat()}")
    return session, True


def refresh_entry(db: Session, session: ParkingSession, entry_event: CameraEvent, now: datetime) -> ParkingSession:
    """
    A further entry detection for a plate that is already parked.
    The stay keeps its earliest known entry; a detection that predates the
    recorded entry (late delivery) moves the entry back to it.
    """
    _ensure_active(session)
    if entry_event.timestamp < session.entry_time:
        session.entry_event_id = entry_event.id
        session.entry_time = entry_event.timestamp
    session.updated_at = now
    with storage_errors("refresh_entry"):
        db.flush()
    logger.info(f"[SESSION] Repeated entry for {session.id} plate={session.license_plate}")
    return session


def complete_session(db: Session, session: ParkingSession, exit_event: CameraEvent, now: datetime) -> Optional[str]:
    """
    Close an active session with its exit event.
    Returns an anomaly tag when the exit predates the entry; the session is closed anyway.
    """
    _ensure_active(session)
    anomaly = None
    if exit_event.timestamp < session.entry_time:
        anomaly = ANOMALY_EXIT_BEFORE_ENTRY
        logger.warning(
            f"[SESSION][ANOMALY] Exit {exit_event.id} at {exit_event.timestamp.isoformat()} precedes entry "
            f"{session.entry_time.isoformat()} for session {session.id}"
        )
    session.exit_event_id = exit_event.id
    session.exit_time = exit_event.timestamp
    session.status = SessionStatus.COMPLETED
    session.updated_at = now
    with storage_errors("complete_session"):
        db.flush()
    logger.info(f"[SESSION] Completed {session.id} plate={session.license_plate}")
    return anomaly
