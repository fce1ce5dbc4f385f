# parkingmate/models/camera_event.py
"""
ALPR camera event table.
Stores every entry/exit detection received from the camera system.
Rows are immutable facts; parking sessions reference them by id.
"""

import uuid
from sqlalchemy import Column, String, DateTime, Text, Numeric, Index
from parkingmate.database import Base


class CameraEvent(Base):
    __tablename__ = "camera_events"
    __table_args__ = (
        Index("ix_camera_events_plate_direction_time", "org_id", "license_plate", "direction", "timestamp"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    org_id = Column(String(36), nullable=False, index=True)
    event_id = Column(String(255))                       # external camera system event id
    license_plate = Column(String(20), nullable=False)   # normalized
    timestamp = Column(DateTime, nullable=False)
    camera_id = Column(String(100), nullable=False, index=True)
    location_name = Column(String(255))
    image_base64 = Column(Text)
    confidence = Column(Numeric(3, 2), nullable=False)  # 0.00 – 1.00
    direction = Column(String(20), nullable=False)       # entry | exit
    device_type = Column(String(100))
    created_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<CameraEvent {self.id} plate={self.license_plate} dir={self.direction}>"
