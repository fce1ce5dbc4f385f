# parkingmate/models/registration_token.py
"""
Customer registration tokens.
One unused, unexpired token per unregistered customer; its presence means
the vehicle-detection e-mail has already gone out.
"""

import uuid
from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey
from parkingmate.database import Base


class CustomerRegistrationToken(Base):
    __tablename__ = "customer_registration_tokens"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    customer_id = Column(String(36), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(128), unique=True, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    used = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<CustomerRegistrationToken customer={self.customer_id} used={self.used}>"
