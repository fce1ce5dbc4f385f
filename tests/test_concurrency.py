# tests/test_concurrency.py
"""
Concurrent callers with one session each, as separate requests would have.
Same-plate work must run one at a time; different plates must overlap.
"""

import asyncio
import threading
import time
import pytest
from datetime import timedelta
from unittest.mock import patch
from parkingmate.errors import AlreadyConfirmedError
from parkingmate.models.camera_event import CameraEvent
from parkingmate.models.guest import Guest, GuestStatus
from parkingmate.models.parking_session import ParkingSession, SessionStatus
from parkingmate.services import guest_confirmation_service, guest_service, session_reconciler
from parkingmate.services.guest_confirmation_service import confirm_guest_plate
from parkingmate.services.session_reconciler import Action, process_event
from tests.helpers import ORG_ID, T0, add_customer, make_event


class CriticalSection:
    """Counts callers inside wrapped storage steps; optional delay and barrier."""

    def __init__(self, delay=0.05, barrier=None):
        self.delay = delay
        self.barrier = barrier
        self.inside = 0
        self.peak = 0
        self._lock = threading.Lock()

    def wrap(self, func):
        def wrapper(*args, **kwargs):
            with self._lock:
                self.inside += 1
                self.peak = max(self.peak, self.inside)
            try:
                if self.barrier is not None:
                    self.barrier.wait()
                time.sleep(self.delay)
                return func(*args, **kwargs)
            finally:
                with self._lock:
                    self.inside -= 1
        return wrapper


def slow_entries(section):
    return patch.object(session_reconciler, "_record_camera_event",
                        section.wrap(session_reconciler._record_camera_event))


def slow_confirmations(section):
    return patch.object(guest_confirmation_service, "find_car_by_plate",
                        section.wrap(guest_confirmation_service.find_car_by_plate))


@pytest.fixture
def entry(session_factory, clock, notifier, locks):
    async def _entry(plate="B-AB 1234", at=T0):
        with session_factory() as db:
            return await process_event(make_event(plate, timestamp=at), db, org_id=ORG_ID,
                                       clock=clock, notifier=notifier, locks=locks)
    return _entry


@pytest.fixture
def confirm(session_factory, clock, verifier, locks):
    async def _confirm(plate="bab1234"):
        with session_factory() as db:
            return await confirm_guest_plate(plate, "token-ok", db, org_id=ORG_ID,
                                             verifier=verifier, clock=clock, locks=locks)
    return _confirm


class TestSamePlate:
    @pytest.mark.asyncio
    async def test_customer_entries_open_one_session(self, session_factory, entry):
        with session_factory() as db:
            add_customer(db)
        section = CriticalSection()

        with slow_entries(section):
            results = await asyncio.gather(*(entry(at=T0 + timedelta(seconds=n)) for n in range(5)))

        assert section.peak == 1
        assert [r.details["sessionCreated"] for r in results].count(True) == 1
        with session_factory() as db:
            session = db.query(ParkingSession).one()
            assert session.status == SessionStatus.ACTIVE
            assert session.entry_time == T0
            assert db.query(CameraEvent).count() == 5

    @pytest.mark.asyncio
    async def test_confirmed_guest_entries_open_one_session(self, session_factory, entry):
        with session_factory() as db:
            guest = guest_service.create_pending_guest(db, ORG_ID, "BAB1234", T0 - timedelta(minutes=10))
            guest_service.confirm_guest(db, guest, T0 - timedelta(minutes=5))
            db.commit()
        section = CriticalSection()

        with slow_entries(section):
            results = await asyncio.gather(*(entry() for _ in range(4)))

        assert section.peak == 1
        actions = sorted(r.action for r in results)
        assert actions == [Action.SESSION_CREATED] + [Action.SESSION_UPDATED] * 3
        with session_factory() as db:
            assert db.query(ParkingSession).filter_by(status=SessionStatus.ACTIVE).count() == 1

    @pytest.mark.asyncio
    async def test_unknown_plate_entries_create_one_guest(self, session_factory, entry):
        section = CriticalSection()

        with slow_entries(section):
            results = await asyncio.gather(*(entry() for _ in range(3)))

        assert section.peak == 1
        assert sorted(r.action for r in results) == [Action.GUEST_CREATED] + [Action.GUEST_PENDING] * 2
        with session_factory() as db:
            assert db.query(Guest).one().status == GuestStatus.PENDING

    @pytest.mark.asyncio
    async def test_entry_racing_confirmation_leaves_one_session(self, session_factory, entry, confirm, clock):
        await entry(at=T0)
        clock.advance(timedelta(minutes=5))
        section = CriticalSection()

        with slow_entries(section), slow_confirmations(section):
            detected, confirmation = await asyncio.gather(
                entry(at=T0 + timedelta(minutes=5)),
                confirm(),
            )

        assert section.peak == 1
        assert detected.action in (Action.GUEST_PENDING, Action.SESSION_UPDATED)
        with session_factory() as db:
            assert db.query(Guest).one().status == GuestStatus.CONFIRMED
            session = db.query(ParkingSession).one()
            assert session.id == confirmation.session_id
            assert session.status == SessionStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_double_confirmation_confirms_once(self, session_factory, entry, confirm, clock):
        await entry(at=T0)
        clock.advance(timedelta(minutes=2))
        section = CriticalSection()

        with slow_confirmations(section):
            outcomes = await asyncio.gather(confirm(), confirm("B AB-1234"), return_exceptions=True)

        assert section.peak == 1
        assert sum(isinstance(o, AlreadyConfirmedError) for o in outcomes) == 1
        with session_factory() as db:
            assert db.query(ParkingSession).count() == 1


class TestDifferentPlates:
    @pytest.mark.asyncio
    async def test_storage_work_overlaps(self, session_factory, entry):
        # Both callers must be inside storage at the same moment to pass the barrier
        section = CriticalSection(delay=0, barrier=threading.Barrier(2, timeout=5))

        with slow_entries(section):
            first, second = await asyncio.gather(entry("AAA 111"), entry("BBB 222"))

        assert section.peak == 2
        assert first.action == second.action == Action.GUEST_CREATED
        with session_factory() as db:
            assert sorted(g.license_plate for g in db.query(Guest).all()) == ["AAA111", "BBB222"]

    @pytest.mark.asyncio
    async def test_event_loop_stays_responsive(self, entry):
        section = CriticalSection(delay=0.3)
        ticks = []

        async def heartbeat():
            for _ in range(5):
                ticks.append(time.monotonic())
                await asyncio.sleep(0.02)

        with slow_entries(section):
            await asyncio.gather(heartbeat(), entry("CCC 333"))

        # The heartbeat ran while the entry slept in its worker thread
        assert ticks[-1] - ticks[0] < 0.3
