# tests/test_record_resolver.py
"""Unit tests for plate classification and lookups."""

from datetime import timedelta
from parkingmate.models.guest import GuestStatus
from parkingmate.services import guest_service
from parkingmate.services.record_resolver import (
    RecordKind,
    find_active_session_by_plate,
    find_customer_vehicle,
    find_latest_guest,
    find_recent_entry_event,
    resolve,
)
from parkingmate.services.session_reconciler import _record_camera_event
from tests.helpers import ORG_ID, T0, add_customer, make_event


class TestResolve:
    def test_unknown_plate(self, db):
        assert resolve(db, "BAB1234", ORG_ID, T0).kind == RecordKind.NONE

    def test_customer_wins_over_guest(self, db):
        customer, car = add_customer(db)
        guest_service.create_pending_guest(db, ORG_ID, "BAB1234", T0)
        db.commit()

        resolution = resolve(db, "BAB1234", ORG_ID, T0)
        assert resolution.kind == RecordKind.CUSTOMER
        assert resolution.is_customer
        assert resolution.car.id == car.id
        assert resolution.customer.id == customer.id

    def test_pending_guest(self, db):
        guest = guest_service.create_pending_guest(db, ORG_ID, "BAB1234", T0)
        db.commit()
        resolution = resolve(db, "BAB1234", ORG_ID, T0 + timedelta(minutes=5))
        assert resolution.kind == RecordKind.PENDING_GUEST
        assert resolution.guest.id == guest.id

    def test_confirmed_guest(self, db):
        guest = guest_service.create_pending_guest(db, ORG_ID, "BAB1234", T0)
        guest_service.confirm_guest(db, guest, T0 + timedelta(minutes=1))
        db.commit()
        assert resolve(db, "BAB1234", ORG_ID, T0 + timedelta(hours=2)).kind == RecordKind.CONFIRMED_GUEST

    def test_lapsed_guest_is_not_returned(self, db):
        guest_service.create_pending_guest(db, ORG_ID, "BAB1234", T0)
        db.commit()
        # Stored status is still PendingConfirmation; lookups must not see it
        assert resolve(db, "BAB1234", ORG_ID, T0 + timedelta(minutes=31)).kind == RecordKind.NONE

    def test_other_org_is_invisible(self, db):
        add_customer(db, org_id="other-org")
        assert resolve(db, "BAB1234", ORG_ID, T0).kind == RecordKind.NONE


class TestLookups:
    def test_car_without_owner_record_counts_as_unregistered(self, db):
        customer, _ = add_customer(db)
        db.delete(customer)
        db.commit()
        assert find_customer_vehicle(db, "BAB1234", ORG_ID) == (None, None)

    def test_latest_guest_includes_expired(self, db):
        guest = guest_service.create_pending_guest(db, ORG_ID, "BAB1234", T0)
        guest_service.expire_guest(guest, T0 + timedelta(hours=1))
        db.commit()
        latest = find_latest_guest(db, "BAB1234", ORG_ID)
        assert latest.id == guest.id
        assert latest.status == GuestStatus.EXPIRED

    def test_recent_entry_event_respects_window(self, db):
        _record_camera_event(db, ORG_ID, "BAB1234", make_event(timestamp=T0), T0)
        _record_camera_event(db, ORG_ID, "BAB1234", make_event(direction="exit", timestamp=T0), T0)
        db.commit()

        found = find_recent_entry_event(db, "BAB1234", ORG_ID, since=T0 - timedelta(minutes=30))
        assert found is not None
        assert found.direction == "entry"
        assert find_recent_entry_event(db, "BAB1234", ORG_ID, since=T0 + timedelta(seconds=1)) is None

    def test_active_session_by_plate(self, db):
        from parkingmate.services.parking_session_service import open_session

        assert find_active_session_by_plate(db, "BAB1234", ORG_ID) is None
        entry = _record_camera_event(db, ORG_ID, "BAB1234", make_event(timestamp=T0), T0)
        session, created = open_session(db, ORG_ID, "BAB1234", entry, T0)
        db.commit()
        assert created is True
        assert find_active_session_by_plate(db, "BAB1234", ORG_ID).id == session.id
