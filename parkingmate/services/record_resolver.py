# parkingmate/services/record_resolver.py
"""
Read-side lookups used by the reconciler and the guest confirmation flow.

resolve() classifies a normalized plate within an organization, in fixed
priority order:
  1. registered customer vehicle
  2. confirmed guest whose window is still open
  3. pending guest whose window is still open
Guests past expires_at are never returned, whatever their stored status,
so a lapsed guest is observably Expired even before the sweep persists it.

Nothing in this module writes.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from parkingmate.database import storage_errors
from parkingmate.models.camera_event import CameraEvent
from parkingmate.models.car import Car
from parkingmate.models.customer import Customer
from parkingmate.models.guest import Guest, GuestStatus
from parkingmate.models.parking_session import ParkingSession, SessionStatus
from parkingmate.utils.logger import get_logger

logger = get_logger(__name__)


class RecordKind:
    CUSTOMER = "customer"
    CONFIRMED_GUEST = "confirmed_guest"
    PENDING_GUEST = "pending_guest"
    NONE = "none"


@dataclass
class Resolution:
    kind: str
    car: Optional[Car] = None
    customer: Optional[Customer] = None
    guest: Optional[Guest] = None

    @property
    def is_customer(self) -> bool:
        return self.kind == RecordKind.CUSTOMER


def find_car_by_plate(db: Session, plate: str, org_id: str) -> Optional[Car]:
    with storage_errors("find_car_by_plate"):
        return db.query(Car).filter(Car.license_plate == plate, Car.org_id == org_id).first()


def find_customer_vehicle(db: Session, plate: str, org_id: str):
    """Return (car, customer) for a registered plate, or (None, None)."""
    car = find_car_by_plate(db, plate, org_id)
    if not car:
        return None, None
    with storage_errors("find_customer"):
        customer = db.query(Customer).filter(Customer.id == car.owner_id).first()
    if not customer:
        logger.warning(f"[RESOLVE] Car {car.id} ({plate}) has no owner record — treated as unregistered")
        return None, None
    return car, customer


def find_open_guest(db: Session, plate: str, org_id: str, status: str, now: datetime) -> Optional[Guest]:
    """Guest with the given status whose window has not lapsed at `now`."""
    with storage_errors("find_open_guest"):
        return (
            db.query(Guest)
            .filter(
                Guest.license_plate == plate,
                Guest.org_id == org_id,
                Guest.status == status,
                Guest.expires_at > now,
            )
            .order_by(Guest.created_at.desc())
            .first()
        )


def find_latest_guest(db: Session, plate: str, org_id: str) -> Optional[Guest]:
    """Most recently created guest for the plate, whatever its status."""
    with storage_errors("find_latest_guest"):
        return (
            db.query(Guest)
            .filter(Guest.license_plate == plate, Guest.org_id == org_id)
            .order_by(Guest.created_at.desc())
            .first()
        )


def resolve(db: Session, plate: str, org_id: str, now: datetime) -> Resolution:
    car, customer = find_customer_vehicle(db, plate, org_id)
    if car:
        return Resolution(RecordKind.CUSTOMER, car=car, customer=customer)

    confirmed = find_open_guest(db, plate, org_id, GuestStatus.CONFIRMED, now)
    if confirmed:
        return Resolution(RecordKind.CONFIRMED_GUEST, guest=confirmed)

    pending = find_open_guest(db, plate, org_id, GuestStatus.PENDING, now)
    if pending:
        return Resolution(RecordKind.PENDING_GUEST, guest=pending)

    return Resolution(RecordKind.NONE)


def find_active_sessions(db: Session, plate: str, org_id: str) -> list[ParkingSession]:
    """All active sessions for a plate, earliest first. More than one is an invariant violation."""
    with storage_errors("find_active_sessions"):
        return (
            db.query(ParkingSession)
            .filter(
                ParkingSession.license_plate == plate,
                ParkingSession.org_id == org_id,
                ParkingSession.status == SessionStatus.ACTIVE,
            )
            .order_by(ParkingSession.created_at.asc(), ParkingSession.entry_time.asc())
            .all()
        )


def find_active_session_by_plate(db: Session, plate: str, org_id: str) -> Optional[ParkingSession]:
    sessions = find_active_sessions(db, plate, org_id)
    return sessions[0] if sessions else None


def find_recent_entry_event(db: Session, plate: str, org_id: str, since: datetime) -> Optional[CameraEvent]:
    """Most recent entry detection for the plate at or after `since`."""
    with storage_errors("find_recent_entry_event"):
        return (
            db.query(CameraEvent)
            .filter(
                CameraEvent.license_plate == plate,
                CameraEvent.org_id == org_id,
                CameraEvent.direction == "entry",
                CameraEvent.timestamp >= since,
            )
            .order_by(CameraEvent.timestamp.desc())
            .first()
        )
