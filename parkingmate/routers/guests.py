# parkingmate/routers/guests.py
"""
Guest self-confirmation (public) + guest listing (staff).
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from parkingmate.config import settings
from parkingmate.database import get_db, storage_errors
from parkingmate.models.guest import Guest
from parkingmate.schemas.guest import GuestOut, GuestValidationResponse, ValidateGuestPlateIn
from parkingmate.services.guest_confirmation_service import confirm_guest_plate
from parkingmate.services.guest_service import effective_status
from parkingmate.services.plate_normalizer import strip_separators
from parkingmate.utils.clock import system_clock
from parkingmate.utils.rate_limiter import SlidingWindowLimiter

router = APIRouter()

guest_rate_limiter = SlidingWindowLimiter(
    max_requests=settings.GUEST_RATE_LIMIT_MAX,
    window_seconds=settings.GUEST_RATE_LIMIT_WINDOW_SECONDS,
)


@router.post(
    "/guest/validate-plate",
    response_model=GuestValidationResponse,
    summary="Guest confirms parking for a detected plate",
    dependencies=[Depends(guest_rate_limiter.dependency)],
)
async def validate_guest_plate(body: ValidateGuestPlateIn, request: Request, db: Session = Depends(get_db)):
    client_ip = request.client.host if request.client else None
    confirmation = await confirm_guest_plate(body.license_plate, body.recaptcha_token, db, client_ip=client_ip)
    return confirmation.to_response()


@router.get("/guests", response_model=list[GuestOut], summary="List guests")
def list_guests(
    status: Optional[str] = None,
    plate: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Status is reported as observed now: a lapsed guest reads Expired even before the sweep runs."""
    q = db.query(Guest).filter(Guest.org_id == settings.DEFAULT_ORG_ID)
    if plate:
        q = q.filter(Guest.license_plate == strip_separators(plate))
    with storage_errors("list_guests"):
        guests = q.order_by(Guest.created_at.desc()).all()

    now = system_clock.now()
    out = []
    for guest in guests:
        item = GuestOut.model_validate(guest)
        item.status = effective_status(guest, now)
        if status and item.status != status:
            continue
        out.append(item)
        if len(out) >= limit:
            break
    return out
