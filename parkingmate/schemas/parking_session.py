# parkingmate/schemas/parking_session.py
from pydantic import BaseModel
from datetime import datetime
from decimal import Decimal
from typing import Optional


class ParkingSessionOut(BaseModel):
    id: str
    org_id: str
    license_plate: str
    car_id: Optional[str]
    customer_id: Optional[str]
    parking_lot_id: Optional[str]
    entry_event_id: Optional[str]
    exit_event_id: Optional[str]
    entry_time: datetime
    exit_time: Optional[datetime]
    status: str
    penalty_amount: Optional[Decimal]
    created_at: datetime

    class Config:
        from_attributes = True
