# parkingmate/services/guest_service.py
"""
Guest confirmation state machine.

    PendingConfirmation ──confirm──▶ Confirmed
            │                            │
            └──────── lapse ─────────────┴──▶ Expired (terminal)

Create:  expires_at = now + GUEST_CONFIRMATION_WINDOW_MINUTES
Confirm: expires_at = now + GUEST_PARKING_DURATION_HOURS (replaces, never adds)
Expire:  any non-Expired guest with now >= expires_at

Status, expires_at and confirmed_at are only ever written here.
None of these functions commit; the caller owns the transaction.
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from parkingmate.config import settings
from parkingmate.database import storage_errors
from parkingmate.errors import AlreadyConfirmedError, ConfirmationWindowExpiredError, GuestNotFoundError
from parkingmate.models.guest import Guest, GuestStatus
from parkingmate.utils.logger import get_logger

logger = get_logger(__name__)


def pending_window() -> timedelta:
    return timedelta(minutes=settings.GUEST_CONFIRMATION_WINDOW_MINUTES)


def full_parking_duration() -> timedelta:
    return timedelta(hours=settings.GUEST_PARKING_DURATION_HOURS)


def is_lapsed(guest: Guest, now: datetime) -> bool:
    return guest.status != GuestStatus.EXPIRED and now >= guest.expires_at


def effective_status(guest: Guest, now: datetime) -> str:
    """Status as observed at `now`; a lapsed guest reads as Expired."""
    if is_lapsed(guest, now):
        return GuestStatus.EXPIRED
    return guest.status


def create_pending_guest(db: Session, org_id: str, plate: str, now: datetime,
                         window: Optional[timedelta] = None) -> Guest:
    guest = Guest(
        org_id=org_id,
        license_plate=plate,
        status=GuestStatus.PENDING,
        expires_at=now + (window or pending_window()),
        created_at=now,
        updated_at=now,
    )
    with storage_errors("create_guest"):
        db.add(guest)
        db.flush()
    logger.info(f"[GUEST] Created pending guest {guest.id} plate={plate} expires={guest.expires_at.isoformat()}")
    return guest


def confirm_guest(db: Session, guest: Optional[Guest], now: datetime,
                  duration: Optional[timedelta] = None) -> Guest:
    """
    PendingConfirmation → Confirmed.
    Raises GuestNotFoundError, AlreadyConfirmedError or ConfirmationWindowExpiredError;
    the guest is left untouched on any error.
    """
    if guest is None:
        raise GuestNotFoundError(None)

    status = effective_status(guest, now)
    if status == GuestStatus.CONFIRMED:
        raise AlreadyConfirmedError(guest.expires_at)
    if status == GuestStatus.EXPIRED:
        raise ConfirmationWindowExpiredError()

    guest.status = GuestStatus.CONFIRMED
    guest.confirmed_at = now
    guest.expires_at = now + (duration or full_parking_duration())
    guest.updated_at = now
    with storage_errors("confirm_guest"):
        db.flush()
    logger.info(f"[GUEST] Confirmed guest {guest.id} plate={guest.license_plate} valid_until={guest.expires_at.isoformat()}")
    return guest


def confirm_guest_by_id(db: Session, guest_id: str, now: datetime,
                        duration: Optional[timedelta] = None) -> Guest:
    with storage_errors("get_guest"):
        guest = db.query(Guest).filter(Guest.id == guest_id).first()
    if guest is None:
        raise GuestNotFoundError(guest_id)
    return confirm_guest(db, guest, now, duration)


def expire_guest(guest: Guest, now: datetime) -> bool:
    """Persist Expired for a lapsed guest. Returns False if there was nothing to do."""
    if not is_lapsed(guest, now):
        return False
    guest.status = GuestStatus.EXPIRED
    guest.updated_at = now
    return True


def expire_lapsed_guests(db: Session, plate: str, org_id: str, now: datetime) -> int:
    """
    Persist expiry for every lapsed guest of one plate.
    Run before creating a new guest so the open-guest unique index only
    ever sees the live record.
    """
    with storage_errors("expire_lapsed_guests"):
        candidates = (
            db.query(Guest)
            .filter(
                Guest.license_plate == plate,
                Guest.org_id == org_id,
                Guest.status != GuestStatus.EXPIRED,
                Guest.expires_at <= now,
            )
            .all()
        )
        count = sum(1 for g in candidates if expire_guest(g, now))
        if count:
            db.flush()
    if count:
        logger.info(f"[GUEST] Expired {count} lapsed guest(s) for plate={plate}")
    return count


def sweep_expired_guests(db: Session, now: datetime, org_id: Optional[str] = None) -> int:
    """Housekeeping: persist Expired for all lapsed guests. Commits."""
    with storage_errors("sweep_expired_guests"):
        q = db.query(Guest).filter(Guest.status != GuestStatus.EXPIRED, Guest.expires_at <= now)
        if org_id:
            q = q.filter(Guest.org_id == org_id)
        count = sum(1 for g in q.all() if expire_guest(g, now))
        db.commit()
    logger.info(f"[SWEEP] Marked {count} guest(s) Expired")
    return count
