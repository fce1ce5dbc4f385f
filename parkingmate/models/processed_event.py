# parkingmate/models/processed_event.py
"""
Idempotency ledger for camera deliveries.
The unique (org_id, external_event_id) pair gives at-most-once processing
of a camera system event id; the stored outcome is replayed on redelivery.
"""

import uuid
from sqlalchemy import Column, String, DateTime, Boolean, JSON, UniqueConstraint
from parkingmate.database import Base


class ProcessedEvent(Base):
    __tablename__ = "processed_events"
    __table_args__ = (
        UniqueConstraint("org_id", "external_event_id", name="uq_processed_events_external_id"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    org_id = Column(String(36), nullable=False)
    external_event_id = Column(String(255), nullable=False)
    camera_event_id = Column(String(36), nullable=False)
    action = Column(String(50))
    message = Column(String(255))
    is_guest_entry = Column(Boolean, default=False, nullable=False)
    details = Column(JSON)
    processed_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<ProcessedEvent {self.external_event_id} action={self.action}>"
