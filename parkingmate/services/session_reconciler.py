# parkingmate/services/session_reconciler.py
"""
Entry/exit reconciliation for ALPR camera events.

Every event is recorded as an immutable CameraEvent, then classified:

  entry + registered customer → customer_detected (session found or opened)
                                 registration_email_sent when the owner never registered
  entry + confirmed guest     → parking_session_created / parking_session_updated
  entry + pending guest       → guest_pending (nothing changes)
  entry + unknown plate       → guest_created (PendingConfirmation)
  exit                        → exit_processed (active session closed, or orphan)

A plate that already has an active session is never given a second one:
a further entry is a repeated detection of the same stay.

Redelivery of an external event id replays the stored outcome instead of
reprocessing. The decide-and-write step runs in a worker thread under the
per-plate lock; the registration e-mail goes out after commit and its
delivery outcome is reported as details.registrationEmailSent.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from parkingmate.config import settings
from parkingmate.database import storage_errors
from parkingmate.errors import StorageUnavailableError
from parkingmate.models.camera_event import CameraEvent
from parkingmate.models.processed_event import ProcessedEvent
from parkingmate.schemas.camera_event import CameraEventIn
from parkingmate.services import guest_service, parking_session_service
from parkingmate.services.notification_service import email_notifier
from parkingmate.services.parking_session_service import ANOMALY_DUPLICATE_ACTIVE
from parkingmate.services.plate_locks import plate_locks
from parkingmate.services.plate_normalizer import normalize_plate
from parkingmate.services.record_resolver import RecordKind, resolve
from parkingmate.services.registration_service import issue_token_if_due
from parkingmate.utils.clock import system_clock
from parkingmate.utils.logger import get_logger

logger = get_logger(__name__)


class Action:
    CUSTOMER_DETECTED = "customer_detected"
    REGISTRATION_EMAIL_SENT = "registration_email_sent"
    GUEST_CREATED = "guest_created"
    GUEST_PENDING = "guest_pending"
    SESSION_CREATED = "parking_session_created"
    SESSION_UPDATED = "parking_session_updated"
    EXIT_PROCESSED = "exit_processed"


@dataclass
class ReconcileResult:
    action: str
    message: str
    event_id: str
    is_guest_entry: bool
    details: dict = field(default_factory=dict)
    duplicate: bool = False

    def to_response(self) -> dict:
        details = dict(self.details)
        if self.duplicate:
            details["duplicate"] = True
        return {
            "success": True,
            "data": {
                "message": self.message,
                "eventId": self.event_id,
                "isGuestEntry": self.is_guest_entry,
                "action": self.action,
                "details": details,
            },
        }


@dataclass
class _PendingMail:
    email: str
    name: str
    token: str


# ── Idempotency ledger ───────────────────────────────────────────────────────

def _replay(ledger: ProcessedEvent) -> ReconcileResult:
    logger.info(f"[RECONCILE] Event {ledger.external_event_id} already processed — replaying {ledger.action}")
    return ReconcileResult(
        action=ledger.action,
        message=ledger.message,
        event_id=ledger.camera_event_id,
        is_guest_entry=ledger.is_guest_entry,
        details=dict(ledger.details or {}),
        duplicate=True,
    )


def _find_processed(db: Session, org_id: str, external_id: str) -> Optional[ProcessedEvent]:
    with storage_errors("find_processed_event"):
        return (
            db.query(ProcessedEvent)
            .filter(ProcessedEvent.org_id == org_id, ProcessedEvent.external_event_id == external_id)
            .first()
        )


def _claim(db: Session, org_id: str, external_id: str, camera_event: CameraEvent, now: datetime) -> Optional[ProcessedEvent]:
    """Insert the ledger row. None means another writer claimed this id first."""
    ledger = ProcessedEvent(
        org_id=org_id,
        external_event_id=external_id,
        camera_event_id=camera_event.id,
        processed_at=now,
    )
    try:
        with storage_errors("claim_event_id"):
            with db.begin_nested():
                db.add(ledger)
    except IntegrityError:
        return None
    return ledger


# ── Entry ────────────────────────────────────────────────────────────────────

def _open_or_refresh(db, org_id, plate, camera_event, now, car=None, customer=None):
    """Find-or-create the active session; returns (session, created, details)."""
    details = {}
    existing, settled = parking_session_service.get_active_session(db, plate, org_id, now)
    if settled:
        details["anomaly"] = ANOMALY_DUPLICATE_ACTIVE
    if existing:
        parking_session_service.refresh_entry(db, existing, camera_event, now)
        return existing, False, details

    session, created = parking_session_service.open_session(
        db, org_id, plate, camera_event, now, car=car, customer=customer,
    )
    if not created:
        parking_session_service.refresh_entry(db, session, camera_event, now)
    return session, created, details


def _customer_entry(db, org_id, plate, resolution, camera_event, now):
    car, customer = resolution.car, resolution.customer
    session, created, details = _open_or_refresh(db, org_id, plate, camera_event, now, car=car, customer=customer)
    details.update({
        "customerId": customer.id,
        "carId": car.id,
        "sessionId": session.id,
        "sessionCreated": created,
    })

    mail = None
    token = issue_token_if_due(db, customer, now)
    if token:
        mail = _PendingMail(email=customer.email, name=customer.name or "Customer", token=token.token)
        result = ReconcileResult(Action.REGISTRATION_EMAIL_SENT, "Customer detected, registration link issued",
                                 camera_event.id, False, details)
    else:
        result = ReconcileResult(Action.CUSTOMER_DETECTED, "Customer detected",
                                 camera_event.id, False, details)
    logger.info(f"[RECONCILE] Customer {customer.id} entry plate={plate} session={session.id} created={created}")
    return result, mail


def _confirmed_guest_entry(db, org_id, plate, guest, camera_event, now):
    session, created, details = _open_or_refresh(db, org_id, plate, camera_event, now)
    details.update({
        "guestId": guest.id,
        "sessionId": session.id,
        "validUntil": guest.expires_at.isoformat(),
    })
    if created:
        return ReconcileResult(Action.SESSION_CREATED, "Parking session created", camera_event.id, True, details)
    return ReconcileResult(Action.SESSION_UPDATED, "Parking session updated", camera_event.id, True, details)


def _pending_result(guest, camera_event) -> ReconcileResult:
    return ReconcileResult(
        Action.GUEST_PENDING, "Guest entry already exists (pending confirmation)", camera_event.id, True,
        {"guestId": guest.id, "expiresAt": guest.expires_at.isoformat()},
    )


def _new_guest_entry(db, org_id, plate, camera_event, now):
    # The pending window runs from the detection, never from a future timestamp
    base = min(camera_event.timestamp, now)
    guest_service.expire_lapsed_guests(db, plate, org_id, now)
    try:
        with db.begin_nested():
            guest = guest_service.create_pending_guest(db, org_id, plate, base)
    except IntegrityError:
        # Another writer holds the open guest row; continue as that guest's branch
        winner = resolve(db, plate, org_id, now)
        if winner.kind == RecordKind.CONFIRMED_GUEST:
            logger.info(f"[RECONCILE] Lost guest create race for plate={plate}, guest {winner.guest.id} is confirmed")
            return _confirmed_guest_entry(db, org_id, plate, winner.guest, camera_event, now)
        if winner.kind == RecordKind.PENDING_GUEST:
            logger.info(f"[RECONCILE] Lost guest create race for plate={plate}, guest {winner.guest.id} already pending")
            return _pending_result(winner.guest, camera_event)
        raise

    return ReconcileResult(
        Action.GUEST_CREATED, "Guest entry created (pending confirmation)", camera_event.id, True,
        {"guestId": guest.id, "expiresAt": guest.expires_at.isoformat()},
    )


def _handle_entry(db, org_id, plate, camera_event, now):
    resolution = resolve(db, plate, org_id, now)

    if resolution.kind == RecordKind.CUSTOMER:
        return _customer_entry(db, org_id, plate, resolution, camera_event, now)

    if resolution.kind == RecordKind.CONFIRMED_GUEST:
        return _confirmed_guest_entry(db, org_id, plate, resolution.guest, camera_event, now), None

    # Still parked from an earlier stay: repeated detection, not a new guest
    active, settled = parking_session_service.get_active_session(db, plate, org_id, now)
    if active:
        parking_session_service.refresh_entry(db, active, camera_event, now)
        details = {"sessionId": active.id}
        if settled:
            details["anomaly"] = ANOMALY_DUPLICATE_ACTIVE
        return ReconcileResult(Action.SESSION_UPDATED, "Parking session updated", camera_event.id,
                               active.is_guest_session, details), None

    if resolution.kind == RecordKind.PENDING_GUEST:
        logger.info(f"[RECONCILE] Guest {resolution.guest.id} already pending for plate={plate}")
        return _pending_result(resolution.guest, camera_event), None

    return _new_guest_entry(db, org_id, plate, camera_event, now), None


# ── Exit ─────────────────────────────────────────────────────────────────────

def _handle_exit(db, org_id, plate, camera_event, now):
    session, settled = parking_session_service.get_active_session(db, plate, org_id, now)
    if session is None:
        logger.warning(f"[RECONCILE] Orphan exit for plate={plate} — no active session")
        return ReconcileResult(
            Action.EXIT_PROCESSED, "Exit event processed (no matching session)", camera_event.id, False,
            {"reason": "no_matching_session", "licensePlate": plate},
        )

    anomaly = parking_session_service.complete_session(db, session, camera_event, now)
    details = {"sessionId": session.id}
    if session.customer_id:
        details["customerId"] = session.customer_id
    if anomaly or settled:
        details["anomaly"] = anomaly or ANOMALY_DUPLICATE_ACTIVE
    return ReconcileResult(Action.EXIT_PROCESSED, "Parking session completed", camera_event.id,
                           session.is_guest_session, details)


# ── Entry point ──────────────────────────────────────────────────────────────

def _record_camera_event(db, org_id, plate, event_in: CameraEventIn, now) -> CameraEvent:
    camera_event = CameraEvent(
        org_id=org_id,
        event_id=event_in.event_id,
        license_plate=plate,
        timestamp=event_in.timestamp,
        camera_id=event_in.camera_id,
        location_name=event_in.location_name,
        image_base64=event_in.image_base64,
        confidence=event_in.confidence,
        direction=event_in.direction,
        device_type=event_in.device_type,
        created_at=now,
    )
    with storage_errors("record_camera_event"):
        db.add(camera_event)
        db.flush()
    return camera_event


def _replay_and_release(db: Session, ledger: ProcessedEvent):
    result = _replay(ledger)
    db.rollback()
    return result, None


def _reconcile(db: Session, org_id: str, plate: str, event_in: CameraEventIn, now: datetime):
    """
    Blocking decide-and-write for one event, run in a worker thread while the
    caller holds the plate lock. Returns (result, pending registration mail).
    Results are built before commit so nothing reloads from storage afterwards.
    """
    try:
        if event_in.event_id:
            previous = _find_processed(db, org_id, event_in.event_id)
            if previous:
                return _replay_and_release(db, previous)

        camera_event = _record_camera_event(db, org_id, plate, event_in, now)
        logger.info(
            f"[RECONCILE] Event {camera_event.id} plate={plate} dir={event_in.direction} "
            f"cam={event_in.camera_id} conf={event_in.confidence}"
        )

        ledger = None
        if event_in.event_id:
            ledger = _claim(db, org_id, event_in.event_id, camera_event, now)
            if ledger is None:
                db.rollback()
                previous = _find_processed(db, org_id, event_in.event_id)
                if previous is None:
                    raise StorageUnavailableError("claim_event_id")
                return _replay_and_release(db, previous)

        mail = None
        if event_in.direction == "entry":
            result, mail = _handle_entry(db, org_id, plate, camera_event, now)
        else:
            result = _handle_exit(db, org_id, plate, camera_event, now)

        if ledger is not None:
            ledger.action = result.action
            ledger.message = result.message
            ledger.is_guest_entry = result.is_guest_entry
            ledger.details = dict(result.details)

        with storage_errors("commit_camera_event"):
            db.commit()
    except Exception:
        db.rollback()
        raise
    return result, mail


async def process_event(event_in: CameraEventIn, db: Session, org_id: Optional[str] = None,
                        clock=system_clock, notifier=email_notifier, locks=plate_locks) -> ReconcileResult:
    """
    Reconcile one camera event. Raises InvalidLicensePlateError before any write,
    StorageUnavailableError when storage fails (the transaction is rolled back).

    Storage work runs in the threadpool, so the event loop stays free for other
    plates while this one holds its lock.
    """
    org_id = org_id or settings.DEFAULT_ORG_ID
    plate = normalize_plate(event_in.license_plate)

    async with locks.hold(org_id, plate):
        now = clock.now()
        result, mail = await run_in_threadpool(_reconcile, db, org_id, plate, event_in, now)

    logger.info(f"[RECONCILE] plate={plate} → {result.action}")
    if mail:
        delivered = await notifier.send_vehicle_detection_email(mail.email, mail.name, mail.token)
        result.details["registrationEmailSent"] = delivered
        if not delivered:
            logger.warning(f"[RECONCILE] Registration e-mail for plate={plate} was not delivered to {mail.email}")
    return result
