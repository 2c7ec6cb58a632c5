"""Door admission decisions, idempotency and the access-log audit trail."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from unittest.mock import MagicMock, AsyncMock
from datetime import timedelta
from app.database import SessionLocal
from app.errors import (
    ConflictError,
    ExternalUnavailableError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from app.models.access_log import AccessLog
from app.models.credential import ROLE_CO_OCCUPANT, STATUS_CLAIMED, STATUS_REVOKED
from app.models.door_transaction import DoorTransaction, DOOR_ACTIVE, DOOR_EXPIRED, DOOR_USED
from app.services import door_admission_service
from app.services.claim_validator import holder_short_id, reservation_short_id
from app.services.verifier_gateway import Challenge, Presentation
from app.utils.clock import fixed_clock
from conftest import AFTER_STAY, BEFORE_STAY, DURING_STAY, H1, H2, P1, RESERVATION_ID

CID = "5f0e7c1a-9b2d-4c3e-8f10-aa55bb66cc77"


def presented(verified=True, **overrides):
    claims = {
        "booking_id": reservation_short_id(RESERVATION_ID),
        "member_serial": holder_short_id(H1),
        "room_num": "R1",
        "nonce": "AB12",
        "checkin_time": "20250110T1500",
        "checkout_time": "20250112T1100",
    }
    claims.update(overrides)
    return Presentation(verified=verified, description="success" if verified else "signature invalid",
                        claims=claims)


def make_verifier(presentation=None):
    verifier = MagicMock()
    verifier.create_challenge = AsyncMock(
        side_effect=lambda tx: Challenge(tx, "data:image/png;base64,QR", "openid4vp://authorize"))
    verifier.fetch_result = AsyncMock(return_value=presentation)
    return verifier


@pytest.fixture
def claimed(make_credential):
    return make_credential(holder_id=H1, nonce="AB12", status=STATUS_CLAIMED, credential_id=CID)


async def attempt_at(db, instant, verifier, room="R1"):
    attempt = await door_admission_service.begin_attempt(db, P1, room, verifier=verifier,
                                                         clock=fixed_clock(instant))
    return await door_admission_service.check_result(db, attempt.transaction_id, verifier=verifier,
                                                     clock=fixed_clock(instant))


class TestBeginAttempt:
    @pytest.mark.asyncio
    async def test_creates_active_transaction(self, db, stay):
        verifier = make_verifier()
        attempt = await door_admission_service.begin_attempt(db, P1, "R1", verifier=verifier,
                                                             clock=fixed_clock(DURING_STAY))

        tx = db.query(DoorTransaction).filter(DoorTransaction.transaction_id == attempt.transaction_id).one()
        assert tx.status == DOOR_ACTIVE
        assert tx.expires_at == DURING_STAY + timedelta(minutes=15)
        assert attempt.qr_image == "data:image/png;base64,QR"
        verifier.create_challenge.assert_awaited_once_with(attempt.transaction_id)

    @pytest.mark.asyncio
    async def test_unknown_property(self, db, stay):
        with pytest.raises(NotFoundError):
            await door_admission_service.begin_attempt(db, "no-such-property", "R1", verifier=make_verifier(),
                                                       clock=fixed_clock(DURING_STAY))

    @pytest.mark.asyncio
    async def test_blank_room(self, db, stay):
        with pytest.raises(ValidationError):
            await door_admission_service.begin_attempt(db, P1, " - ", verifier=make_verifier(),
                                                       clock=fixed_clock(DURING_STAY))

    @pytest.mark.asyncio
    async def test_verifier_failure_expires_transaction(self, db, stay):
        verifier = make_verifier()
        verifier.create_challenge.side_effect = ExternalUnavailableError("verifier unreachable")
        with pytest.raises(ExternalUnavailableError):
            await door_admission_service.begin_attempt(db, P1, "R1", verifier=verifier,
                                                       clock=fixed_clock(DURING_STAY))
        assert [t.status for t in db.query(DoorTransaction).all()] == [DOOR_EXPIRED]


class TestCheckResult:
    @pytest.mark.asyncio
    async def test_pending_until_presented(self, db, stay, claimed):
        result = await attempt_at(db, DURING_STAY, make_verifier(None))
        assert result.status == "pending"
        assert db.query(AccessLog).count() == 0

    @pytest.mark.asyncio
    async def test_granted_during_stay(self, db, stay, claimed):
        result = await attempt_at(db, DURING_STAY, make_verifier(presented()))

        assert result.status == "granted"
        logs = db.query(AccessLog).all()
        assert len(logs) == 1
        assert logs[0].outcome == "success"
        assert logs[0].identity_id == H1
        assert logs[0].reservation_id == RESERVATION_ID
        assert logs[0].transaction_id == result.transaction_id
        assert logs[0].method == "digital_credential"

    @pytest.mark.asyncio
    async def test_denied_after_stay(self, db, stay, claimed):
        result = await attempt_at(db, AFTER_STAY, make_verifier(presented()))
        assert result.status == "denied"
        assert db.query(AccessLog).one().outcome == "denied"

    @pytest.mark.asyncio
    async def test_denied_before_check_in(self, db, stay, claimed):
        result = await attempt_at(db, BEFORE_STAY, make_verifier(presented()))
        assert result.status == "denied"
        assert result.reason == "outside stay window"

    @pytest.mark.asyncio
    async def test_decision_recorded_once(self, db, stay, claimed):
        verifier = make_verifier(presented())
        first = await attempt_at(db, DURING_STAY, verifier)
        again = await door_admission_service.check_result(db, first.transaction_id, verifier=verifier,
                                                          clock=fixed_clock(AFTER_STAY))

        assert (again.status, again.reason, again.decided_at) == (first.status, first.reason, first.decided_at)
        verifier.fetch_result.assert_awaited_once()
        assert db.query(AccessLog).count() == 1
        assert db.query(DoorTransaction).one().status == DOOR_USED

    @pytest.mark.asyncio
    async def test_wrong_door(self, db, stay, claimed):
        result = await attempt_at(db, DURING_STAY, make_verifier(presented()), room="R2")
        assert result.reason == "wrong door"

    @pytest.mark.asyncio
    async def test_holder_mismatch(self, db, stay, claimed):
        result = await attempt_at(db, DURING_STAY, make_verifier(presented(member_serial=holder_short_id(H2))))
        assert result.reason == "holder mismatch"

    @pytest.mark.asyncio
    async def test_unresolvable_reservation(self, db, stay, claimed):
        result = await attempt_at(db, DURING_STAY, make_verifier(presented(booking_id="0" * 30)))
        assert result.status == "denied"
        assert result.reason == "reservation not found"
        assert db.query(AccessLog).one().reservation_id is None

    @pytest.mark.asyncio
    async def test_revoked_credential_denied(self, db, stay, make_credential):
        make_credential(nonce="AB12", status=STATUS_REVOKED, credential_id=CID)
        result = await attempt_at(db, DURING_STAY, make_verifier(presented()))
        assert result.reason == "credential revoked"

    @pytest.mark.asyncio
    async def test_unverified_presentation_denied(self, db, stay, claimed):
        result = await attempt_at(db, DURING_STAY, make_verifier(presented(verified=False)))
        assert result.status == "denied"
        assert result.reason.startswith("presentation not verified")

    @pytest.mark.asyncio
    async def test_co_occupant_admitted(self, db, stay, make_credential):
        make_credential(holder_id=H2, role=ROLE_CO_OCCUPANT, nonce="CD34", status=STATUS_CLAIMED,
                        credential_id=CID, grant_id=stay.grant.id)
        result = await attempt_at(db, DURING_STAY, make_verifier(presented(nonce="CD34")))
        assert result.status == "granted"
        assert db.query(AccessLog).one().identity_id == H2

    @pytest.mark.asyncio
    async def test_expired_transaction(self, db, stay, claimed):
        verifier = make_verifier(presented())
        attempt = await door_admission_service.begin_attempt(db, P1, "R1", verifier=verifier,
                                                             clock=fixed_clock(DURING_STAY))
        with pytest.raises(PreconditionFailedError):
            await door_admission_service.check_result(db, attempt.transaction_id, verifier=verifier,
                                                      clock=fixed_clock(DURING_STAY + timedelta(minutes=16)))
        verifier.fetch_result.assert_not_awaited()
        assert db.query(DoorTransaction).one().status == DOOR_EXPIRED

    @pytest.mark.asyncio
    async def test_unknown_transaction(self, db, stay):
        with pytest.raises(NotFoundError):
            await door_admission_service.check_result(db, "nope", verifier=make_verifier(),
                                                      clock=fixed_clock(DURING_STAY))


def decide_elsewhere(transaction_id, outcome="denied", reason="decided by another reader", log=False):
    """Commit a competing change through a separate session."""
    other = SessionLocal()
    try:
        tx = other.query(DoorTransaction).filter(DoorTransaction.transaction_id == transaction_id).one()
        if log:
            other.add(AccessLog(property_id=tx.property_id, room_number=tx.room_number, method="digital_credential",
                                outcome=outcome, reason=reason, transaction_id=transaction_id,
                                access_time=DURING_STAY))
        else:
            tx.status = DOOR_USED
            tx.outcome = outcome
            tx.reason = reason
            tx.decided_at = DURING_STAY
        other.commit()
    finally:
        other.close()


class TestVerifierCallsAndRaces:
    @pytest.mark.asyncio
    async def test_no_transaction_open_during_verifier_calls(self, db, stay, claimed):
        seen = []
        verifier = make_verifier()

        def create_challenge(tx):
            seen.append(db.in_transaction())
            return Challenge(tx, "data:image/png;base64,QR")

        def fetch_result(tx):
            seen.append(db.in_transaction())
            return presented()

        verifier.create_challenge.side_effect = create_challenge
        verifier.fetch_result.side_effect = fetch_result

        result = await attempt_at(db, DURING_STAY, verifier)

        assert seen == [False, False]
        assert result.status == "granted"

    @pytest.mark.asyncio
    async def test_losing_decision_returns_stored_outcome(self, db, stay, claimed):
        verifier = make_verifier()

        def fetch_result(tx):
            decide_elsewhere(tx)
            return presented()

        verifier.fetch_result.side_effect = fetch_result
        result = await attempt_at(db, DURING_STAY, verifier)

        assert (result.status, result.reason) == ("denied", "decided by another reader")
        assert db.query(AccessLog).count() == 0
        assert db.query(DoorTransaction).one().status == DOOR_USED

    @pytest.mark.asyncio
    async def test_access_log_clash_rolls_back_decision(self, db, stay, claimed):
        verifier = make_verifier()

        def fetch_result(tx):
            decide_elsewhere(tx, log=True)
            return presented()

        verifier.fetch_result.side_effect = fetch_result
        with pytest.raises(ConflictError):
            await attempt_at(db, DURING_STAY, verifier)

        assert db.query(DoorTransaction).one().status == DOOR_ACTIVE
        assert db.query(AccessLog).one().reason == "decided by another reader"
