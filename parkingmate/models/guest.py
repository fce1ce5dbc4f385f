# parkingmate/models/guest.py
"""
Guest parking table.
expires_at means "confirm before" while PendingConfirmation and
"parking valid until" once Confirmed. Expired rows are kept.
"""

import uuid
from sqlalchemy import Column, String, DateTime, Index, text
from parkingmate.database import Base


class GuestStatus:
    PENDING = "PendingConfirmation"
    CONFIRMED = "Confirmed"
    EXPIRED = "Expired"


_OPEN_GUEST = text("status <> 'Expired'")


class Guest(Base):
    __tablename__ = "guests"
    __table_args__ = (
        # At most one non-Expired guest per plate and organization
        Index(
            "uq_guests_open_plate", "org_id", "license_plate",
            unique=True, postgresql_where=_OPEN_GUEST, sqlite_where=_OPEN_GUEST,
        ),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    org_id = Column(String(36), nullable=False, index=True)
    license_plate = Column(String(20), nullable=False)
    status = Column(String(30), nullable=False, default=GuestStatus.PENDING)
    expires_at = Column(DateTime, nullable=False)
    confirmed_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<Guest {self.id} plate={self.license_plate} status={self.status}>"
