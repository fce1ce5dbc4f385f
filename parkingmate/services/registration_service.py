# parkingmate/services/registration_service.py
"""
Registration tokens for customers whose account exists but who never
finished registering. One outstanding token per customer; while it is
unused and unexpired, no further detection e-mail is sent.
"""

import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from parkingmate.config import settings
from parkingmate.database import storage_errors
from parkingmate.models.customer import Customer
from parkingmate.models.registration_token import CustomerRegistrationToken
from parkingmate.utils.logger import get_logger

logger = get_logger(__name__)


def find_outstanding_token(db: Session, customer_id: str, now: datetime) -> Optional[CustomerRegistrationToken]:
    with storage_errors("find_registration_token"):
        return (
            db.query(CustomerRegistrationToken)
            .filter(
                CustomerRegistrationToken.customer_id == customer_id,
                CustomerRegistrationToken.used.is_(False),
                CustomerRegistrationToken.expires_at > now,
            )
            .first()
        )


def issue_token_if_due(db: Session, customer: Customer, now: datetime) -> Optional[CustomerRegistrationToken]:
    """
    Create a registration token for an unregistered customer with none outstanding.
    Returns the new token, or None when no e-mail is due.
    """
    if customer.registered:
        return None
    if find_outstanding_token(db, customer.id, now):
        logger.info(f"[REGISTRATION] Token already outstanding for customer {customer.id}")
        return None

    token = CustomerRegistrationToken(
        customer_id=customer.id,
        token=secrets.token_urlsafe(48),
        expires_at=now + timedelta(hours=settings.REGISTRATION_TOKEN_EXPIRY_HOURS),
        used=False,
        created_at=now,
    )
    with storage_errors("create_registration_token"):
        db.add(token)
        db.flush()
    logger.info(f"[REGISTRATION] Issued token for customer {customer.id}")
    return token
