# parkingmate/models/customer.py
"""
Customer accounts table.
Owned by the customer-management side; the engine only reads it to
classify plates and to decide whether a registration e-mail is due.
"""

import uuid
from sqlalchemy import Column, String, DateTime, Boolean
from parkingmate.database import Base


class Customer(Base):
    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    org_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255))
    email = Column(String(255), nullable=False)
    phone_number = Column(String(50))
    registered = Column(Boolean, default=False, nullable=False)
    status = Column(String(20), default="active", nullable=False)   # active | inactive
    created_at = Column(DateTime)

    def __repr__(self):
        return f"<Customer {self.id} email={self.email} registered={self.registered}>"
