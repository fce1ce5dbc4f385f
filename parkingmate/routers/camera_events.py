# parkingmate/routers/camera_events.py
"""
ALPR camera webhook + camera event log viewer.
POST /datahub/entry  — receives one entry/exit detection from the camera system.
GET  /camera-events  — lists recorded detections with optional filters.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from parkingmate.config import settings
from parkingmate.database import get_db, storage_errors
from parkingmate.models.camera_event import CameraEvent
from parkingmate.schemas.camera_event import CameraEventIn, CameraEventOut, CameraEventResponse
from parkingmate.services.plate_normalizer import strip_separators
from parkingmate.services.session_reconciler import process_event
from parkingmate.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.post("/datahub/entry", response_model=CameraEventResponse, summary="ALPR webhook — entry/exit detection")
async def receive_camera_event(body: CameraEventIn, db: Session = Depends(get_db)):
    """
    Business outcomes (guest created, orphan exit, duplicate delivery...) are
    all HTTP 200 so the camera system does not retry them. Only an invalid
    plate (400) and unavailable storage (503) are errors.
    """
    logger.info(f"[WEBHOOK] {body.direction} plate={body.license_plate!r} cam={body.camera_id} event={body.event_id}")
    result = await process_event(body, db)
    return result.to_response()


@router.get("/camera-events", response_model=list[CameraEventOut], summary="List recorded camera events")
def list_camera_events(
    plate: Optional[str] = None,
    direction: Optional[str] = None,
    camera_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    q = db.query(CameraEvent).filter(CameraEvent.org_id == settings.DEFAULT_ORG_ID)
    if plate:
        q = q.filter(CameraEvent.license_plate == strip_separators(plate))
    if direction:
        q = q.filter(CameraEvent.direction == direction)
    if camera_id:
        q = q.filter(CameraEvent.camera_id == camera_id)
    with storage_errors("list_camera_events"):
        return q.order_by(CameraEvent.timestamp.desc()).limit(limit).all()
