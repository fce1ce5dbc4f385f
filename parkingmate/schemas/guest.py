# parkingmate/schemas/guest.py
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class ValidateGuestPlateIn(BaseModel):
    license_plate: str = Field(..., alias="licensePlate", min_length=1, max_length=50)
    recaptcha_token: str = Field(..., alias="recaptchaToken", min_length=1)

    class Config:
        populate_by_name = True


class GuestValidationResult(BaseModel):
    message: str
    validUntil: datetime


class GuestValidationResponse(BaseModel):
    success: bool = True
    data: GuestValidationResult


class GuestOut(BaseModel):
    id: str
    org_id: str
    license_plate: str
    status: str
    expires_at: datetime
    confirmed_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True
