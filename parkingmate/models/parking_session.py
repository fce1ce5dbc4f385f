# parkingmate/models/parking_session.py
"""
Parking sessions table — one row per continuous stay.
Guest sessions have no car/customer; they are linked to guests only by
(org_id, license_plate), looked up at query time.
"""

import uuid
from decimal import Decimal
from sqlalchemy import Column, String, DateTime, Numeric, ForeignKey, Index, text
from parkingmate.database import Base


class SessionStatus:
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"
    PENALIZED = "penalized"

    TERMINAL = frozenset({COMPLETED, EXPIRED, PENALIZED})


_ACTIVE_SESSION = text("status = 'active'")


class ParkingSession(Base):
    __tablename__ = "parking_sessions"
    __table_args__ = (
        # Exactly one active session per plate and organization
        Index(
            "uq_parking_sessions_active_plate", "org_id", "license_plate",
            unique=True, postgresql_where=_ACTIVE_SESSION, sqlite_where=_ACTIVE_SESSION,
        ),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    org_id = Column(String(36), nullable=False, index=True)
    license_plate = Column(String(20), nullable=False, index=True)
    car_id = Column(String(36), ForeignKey("cars.id"))
    customer_id = Column(String(36), ForeignKey("customers.id"))
    parking_lot_id = Column(String(36))
    entry_event_id = Column(String(36), ForeignKey("camera_events.id"))
    exit_event_id = Column(String(36), ForeignKey("camera_events.id"))
    entry_time = Column(DateTime, nullable=False)
    exit_time = Column(DateTime)
    status = Column(String(20), nullable=False, default=SessionStatus.ACTIVE)
    penalty_amount = Column(Numeric(10, 2), default=Decimal("0.00"))
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    @property
    def is_guest_session(self) -> bool:
        return self.car_id is None

    def __repr__(self):
        return f"<ParkingSession {self.id} plate={self.license_plate} status={self.status}>"
