# parkingmate/routers/parking_sessions.py
"""Parking session listing for the staff dashboard."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from parkingmate.config import settings
from parkingmate.database import get_db, storage_errors
from parkingmate.models.parking_session import ParkingSession
from parkingmate.schemas.parking_session import ParkingSessionOut
from parkingmate.services.plate_normalizer import strip_separators

router = APIRouter()


@router.get("/parking-sessions", response_model=list[ParkingSessionOut], summary="List parking sessions")
def list_parking_sessions(
    status: Optional[str] = None,
    plate: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    q = db.query(ParkingSession).filter(ParkingSession.org_id == settings.DEFAULT_ORG_ID)
    if status:
        q = q.filter(ParkingSession.status == status)
    if plate:
        q = q.filter(ParkingSession.license_plate == strip_separators(plate))
    with storage_errors("list_parking_sessions"):
        return q.order_by(ParkingSession.entry_time.desc()).limit(limit).all()
