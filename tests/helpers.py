# tests/helpers.py
"""Test data builders shared across test modules."""

from datetime import datetime
from parkingmate.models.car import Car
from parkingmate.models.customer import Customer
from parkingmate.schemas.camera_event import CameraEventIn

ORG_ID = "11111111-1111-1111-1111-111111111111"
T0 = datetime(2026, 3, 2, 9, 0, 0)


def make_event(plate="B-AB 1234", direction="entry", timestamp=T0, event_id=None, camera_id="CAM-GATE-01"):
    return CameraEventIn(
        eventId=event_id,
        licensePlate=plate,
        timestamp=timestamp,
        cameraId=camera_id,
        locationName="Main gate",
        confidence=0.93,
        direction=direction,
        deviceType="alpr",
    )


def add_customer(db, plate="BAB1234", registered=True, org_id=ORG_ID, email="driver@example.com"):
    customer = Customer(org_id=org_id, name="Dana Driver", email=email, registered=registered, created_at=T0)
    db.add(customer)
    db.flush()
    car = Car(org_id=org_id, owner_id=customer.id, license_plate=plate, label="Work Car", created_at=T0)
    db.add(car)
    db.commit()
    return customer, car
