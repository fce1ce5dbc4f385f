# ParkingMate — Database Models
# Import all models here for SQLAlchemy discovery

from parkingmate.models.camera_event import CameraEvent                       # noqa
from parkingmate.models.customer import Customer                              # noqa
from parkingmate.models.car import Car                                        # noqa
from parkingmate.models.guest import Guest, GuestStatus                       # noqa
from parkingmate.models.parking_session import ParkingSession, SessionStatus  # noqa
from parkingmate.models.registration_token import CustomerRegistrationToken  # noqa
from parkingmate.models.processed_event import ProcessedEvent                 # noqa
