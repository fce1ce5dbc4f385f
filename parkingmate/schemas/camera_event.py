# parkingmate/schemas/camera_event.py
from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Any, Literal, Optional

from parkingmate.utils.clock import to_naive_utc


class CameraEventIn(BaseModel):
    """ALPR webhook body, as sent by the camera system."""

    event_id: Optional[str] = Field(None, alias="eventId", max_length=255)
    license_plate: str = Field(..., alias="licensePlate", min_length=1, max_length=50)
    timestamp: datetime
    camera_id: str = Field(..., alias="cameraId", min_length=1, max_length=100)
    location_name: Optional[str] = Field(None, alias="locationName", max_length=255)
    image_base64: Optional[str] = Field(None, alias="imageBase64")
    confidence: float = Field(..., ge=0, le=1)
    direction: Literal["entry", "exit"]
    device_type: Optional[str] = Field(None, alias="deviceType", max_length=100)

    @field_validator("timestamp")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

    class Config:
        populate_by_name = True


class CameraEventOut(BaseModel):
    id: str
    org_id: str
    event_id: Optional[str]
    license_plate: str
    timestamp: datetime
    camera_id: str
    location_name: Optional[str]
    confidence: float
    direction: str
    device_type: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class CameraEventResult(BaseModel):
    message: str
    eventId: str
    isGuestEntry: bool
    action: str
    details: Optional[dict[str, Any]] = None


class CameraEventResponse(BaseModel):
    success: bool = True
    data: CameraEventResult
