# parkingmate/models/car.py
"""
Registered vehicles table.
A car belongs to exactly one customer; its plate is stored normalized.
"""

import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey
from parkingmate.database import Base


class Car(Base):
    __tablename__ = "cars"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    org_id = Column(String(36), nullable=False, index=True)
    owner_id = Column(String(36), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False)
    license_plate = Column(String(20), nullable=False, index=True)
    label = Column(String(100))          # e.g. "Work Car"
    brand = Column(String(100))
    model = Column(String(100))
    created_at = Column(DateTime)

    def __repr__(self):
        return f"<Car {self.license_plate} owner={self.owner_id}>"
