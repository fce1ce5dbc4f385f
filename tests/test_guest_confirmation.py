# tests/test_guest_confirmation.py
"""Tests for the guest self-confirmation flow (bot check → plate → state → window)."""

import pytest
from datetime import timedelta
from parkingmate.errors import (
    AlreadyConfirmedError,
    ConfirmationWindowExpiredError,
    ErrorCode,
    InvalidLicensePlateError,
    NoEntryDetectedError,
    RecaptchaFailedError,
    RegisteredVehicleError,
)
from parkingmate.models.guest import Guest, GuestStatus
from parkingmate.models.parking_session import ParkingSession, SessionStatus
from parkingmate.services.guest_confirmation_service import confirm_guest_plate
from parkingmate.services.recaptcha_service import VerificationResult
from parkingmate.services.session_reconciler import process_event
from tests.helpers import ORG_ID, T0, add_customer, make_event


@pytest.fixture
def detect(db, clock, notifier, locks):
    async def _detect(plate="B-AB 1234", timestamp=T0):
        return await process_event(make_event(plate, timestamp=timestamp), db, org_id=ORG_ID,
                                   clock=clock, notifier=notifier, locks=locks)
    return _detect


@pytest.fixture
def confirm(db, clock, verifier, locks):
    async def _confirm(plate="b ab1234", token="token-ok"):
        return await confirm_guest_plate(plate, token, db, org_id=ORG_ID, client_ip="203.0.113.7",
                                         verifier=verifier, clock=clock, locks=locks)
    return _confirm


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_confirm_detected_guest(self, db, detect, confirm, clock):
        entry = await detect("B-AB 1234")
        clock.advance(timedelta(minutes=12))
        now = clock.now()

        confirmation = await confirm("b ab1234")

        assert confirmation.valid_until == now + timedelta(hours=24)
        guest = db.query(Guest).one()
        assert guest.status == GuestStatus.CONFIRMED
        assert guest.confirmed_at == now
        session = db.query(ParkingSession).one()
        assert session.status == SessionStatus.ACTIVE
        assert session.entry_event_id == entry.event_id
        assert session.entry_time == T0
        assert confirmation.session_created is True

    @pytest.mark.asyncio
    async def test_response_body(self, detect, confirm):
        await detect()
        body = (await confirm()).to_response()
        assert body["success"] is True
        assert body["data"]["message"] == "Guest parking validated successfully"
        assert body["data"]["validUntil"] == (T0 + timedelta(hours=24)).isoformat()

    @pytest.mark.asyncio
    async def test_verifier_receives_token_and_ip(self, detect, confirm, verifier):
        await detect()
        await confirm(token="abc")
        verifier.verify.assert_awaited_once_with("abc", "203.0.113.7")


class TestRejections:
    @pytest.mark.asyncio
    async def test_bot_check_fails_first(self, db, confirm, verifier):
        verifier.verify.return_value = VerificationResult(success=False, error="timeout-or-duplicate")
        # Invalid plate too, but the bot check wins
        with pytest.raises(RecaptchaFailedError) as exc:
            await confirm(plate="#")
        assert exc.value.code == ErrorCode.RECAPTCHA_FAILED
        assert exc.value.status_code == 400

    @pytest.mark.asyncio
    async def test_invalid_plate(self, confirm):
        with pytest.raises(InvalidLicensePlateError):
            await confirm(plate="A")

    @pytest.mark.asyncio
    async def test_registered_vehicle(self, db, detect, confirm):
        add_customer(db)
        await detect()
        with pytest.raises(RegisteredVehicleError) as exc:
            await confirm()
        assert exc.value.status_code == 409

    @pytest.mark.asyncio
    async def test_no_entry_detected(self, confirm):
        with pytest.raises(NoEntryDetectedError) as exc:
            await confirm()
        assert exc.value.status_code == 404

    @pytest.mark.asyncio
    async def test_double_confirm_returns_already_confirmed(self, db, detect, confirm, clock):
        await detect()
        first = await confirm()
        clock.advance(timedelta(minutes=1))

        with pytest.raises(AlreadyConfirmedError) as exc:
            await confirm()
        assert exc.value.valid_until == first.valid_until
        assert db.query(Guest).one().expires_at == first.valid_until
        assert db.query(ParkingSession).count() == 1

    @pytest.mark.asyncio
    async def test_window_boundary_inside(self, detect, confirm, clock):
        await detect()
        clock.advance(timedelta(minutes=30) - timedelta(seconds=1))
        confirmation = await confirm()
        assert confirmation.valid_until == clock.now() + timedelta(hours=24)

    @pytest.mark.asyncio
    async def test_window_boundary_outside(self, db, detect, confirm, clock):
        await detect()
        clock.advance(timedelta(minutes=30, seconds=1))
        with pytest.raises(ConfirmationWindowExpiredError) as exc:
            await confirm()
        assert exc.value.code == ErrorCode.CONFIRMATION_WINDOW_EXPIRED
        assert db.query(ParkingSession).count() == 0

    @pytest.mark.asyncio
    async def test_window_expired_after_sweep(self, db, detect, confirm, clock):
        from parkingmate.services.guest_service import sweep_expired_guests

        await detect()
        clock.advance(timedelta(hours=1))
        sweep_expired_guests(db, clock.now())
        with pytest.raises(ConfirmationWindowExpiredError):
            await confirm()

    @pytest.mark.asyncio
    async def test_finished_stay_is_not_reconfirmable(self, detect, confirm, clock):
        await detect()
        await confirm()
        clock.advance(timedelta(hours=25))
        with pytest.raises(NoEntryDetectedError):
            await confirm()

    @pytest.mark.asyncio
    async def test_failed_confirmation_leaves_guest_pending(self, db, detect, confirm, verifier):
        await detect()
        verifier.verify.return_value = VerificationResult(success=False, error="bad token")
        with pytest.raises(RecaptchaFailedError):
            await confirm()
        assert db.query(Guest).one().status == GuestStatus.PENDING
