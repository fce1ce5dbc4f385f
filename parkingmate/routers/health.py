# parkingmate/routers/health.py
"""
System health check endpoint.
Returns status of backend + DB, which collaborators are configured,
and a snapshot of open guests / active sessions.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import text
from parkingmate.database import get_db
from parkingmate.config import settings
from parkingmate.models.guest import Guest, GuestStatus
from parkingmate.models.parking_session import ParkingSession, SessionStatus
from parkingmate.utils.clock import system_clock

router = APIRouter()


@router.get("/health", summary="System health check")
def health_check(db: Session = Depends(get_db)):
    now = system_clock.now()
    result = {
        "status": "ok",
        "timestamp": now.isoformat(),
        "environment": settings.ENVIRONMENT,
        "database": "unknown",
        "recaptcha": "configured" if settings.RECAPTCHA_SECRET_KEY else "not_configured",
        "email": "configured" if settings.SENDGRID_API_KEY else "not_configured",
        "counts": {},
    }

    try:
        db.execute(text("SELECT 1"))
        result["database"] = "ok"
        result["counts"] = {
            "activeSessions": db.query(ParkingSession).filter(ParkingSession.status == SessionStatus.ACTIVE).count(),
            "pendingGuests": db.query(Guest).filter(
                Guest.status == GuestStatus.PENDING, Guest.expires_at > now,
            ).count(),
        }
    except Exception as e:
        result["database"] = f"error: {str(e)}"
        result["status"] = "degraded"

    # A production deployment without bot verification rejects every guest confirmation
    if settings.is_production and not settings.RECAPTCHA_SECRET_KEY:
        result["status"] = "degraded"

    return result
