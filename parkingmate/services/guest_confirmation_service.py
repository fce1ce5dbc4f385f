# parkingmate/services/guest_confirmation_service.py
"""
Guest self-confirmation (public, bot-gated).

Checks run in this order and stop at the first failure:
  1. bot verification           → RECAPTCHA_FAILED
  2. plate format               → INVALID_LICENSE_PLATE
  3. registered customer car    → REGISTERED_VEHICLE
  4. confirmed, unexpired guest → ALREADY_CONFIRMED
  5. no pending guest           → NO_ENTRY_DETECTED
  6. no entry in the window     → CONFIRMATION_WINDOW_EXPIRED
then the guest is confirmed and its parking session opened on the matched
entry event. This is the only place a pending guest gets a session; a guest
that is already confirmed gets one from the camera entry path instead.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from parkingmate.config import settings
from parkingmate.database import storage_errors
from parkingmate.errors import (
    AlreadyConfirmedError,
    ConfirmationWindowExpiredError,
    NoEntryDetectedError,
    RecaptchaFailedError,
    RegisteredVehicleError,
)
from parkingmate.models.guest import GuestStatus
from parkingmate.services import guest_service, parking_session_service
from parkingmate.services.plate_locks import plate_locks
from parkingmate.services.plate_normalizer import normalize_plate
from parkingmate.services.recaptcha_service import recaptcha_verifier
from parkingmate.services.record_resolver import find_car_by_plate, find_latest_guest, find_recent_entry_event
from parkingmate.utils.clock import system_clock
from parkingmate.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class GuestConfirmation:
    guest_id: str
    session_id: str
    entry_event_id: str
    valid_until: datetime
    session_created: bool

    def to_response(self) -> dict:
        return {
            "success": True,
            "data": {
                "message": "Guest parking validated successfully",
                "validUntil": self.valid_until.isoformat(),
            },
        }


def _check_guest_state(db: Session, plate: str, org_id: str, now: datetime):
    """Steps 4 and 5; returns the pending guest to confirm."""
    guest = find_latest_guest(db, plate, org_id)
    if guest is None:
        raise NoEntryDetectedError()

    status = guest_service.effective_status(guest, now)
    if status == GuestStatus.CONFIRMED:
        raise AlreadyConfirmedError(guest.expires_at)
    if status == GuestStatus.PENDING:
        return guest
    # Expired: a never-confirmed guest missed its window; a confirmed one is an old stay
    if guest.confirmed_at is None:
        raise ConfirmationWindowExpiredError(settings.GUEST_CONFIRMATION_WINDOW_MINUTES)
    raise NoEntryDetectedError()


def _confirm_locked(db: Session, org_id: str, plate: str, now: datetime) -> GuestConfirmation:
    """Steps 3-6 plus the writes; blocking, run in a worker thread under the plate lock."""
    window = timedelta(minutes=settings.GUEST_CONFIRMATION_WINDOW_MINUTES)
    try:
        if find_car_by_plate(db, plate, org_id):
            raise RegisteredVehicleError()

        pending = _check_guest_state(db, plate, org_id, now)

        entry_event = find_recent_entry_event(db, plate, org_id, since=now - window)
        if entry_event is None:
            raise ConfirmationWindowExpiredError(settings.GUEST_CONFIRMATION_WINDOW_MINUTES)

        guest = guest_service.confirm_guest(db, pending, now)
        session, created = parking_session_service.open_session(db, org_id, plate, entry_event, now)
        confirmation = GuestConfirmation(
            guest_id=guest.id,
            session_id=session.id,
            entry_event_id=entry_event.id,
            valid_until=guest.expires_at,
            session_created=created,
        )

        with storage_errors("commit_guest_confirmation"):
            db.commit()
    except Exception:
        db.rollback()
        raise
    return confirmation


async def confirm_guest_plate(raw_plate: str, bot_token: str, db: Session, org_id: Optional[str] = None,
                              client_ip: Optional[str] = None, verifier=recaptcha_verifier,
                              clock=system_clock, locks=plate_locks) -> GuestConfirmation:
    verification = await verifier.verify(bot_token, client_ip)
    if not verification.success:
        logger.info(f"[GUEST] Bot verification failed from {client_ip}: {verification.error}")
        raise RecaptchaFailedError(verification.error)

    plate = normalize_plate(raw_plate)
    org_id = org_id or settings.DEFAULT_ORG_ID

    async with locks.hold(org_id, plate):
        now = clock.now()
        confirmation = await run_in_threadpool(_confirm_locked, db, org_id, plate, now)

    logger.info(
        f"[GUEST] Confirmed {confirmation.guest_id} plate={plate} session={confirmation.session_id} "
        f"created={confirmation.session_created} valid_until={confirmation.valid_until.isoformat()}"
    )
    return confirmation
