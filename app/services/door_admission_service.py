# app/services/door_admission_service.py
"""
Door admission: QR challenge at the door → wallet presentation → grant / deny.

How it works:
  - begin_attempt stores an `active` door transaction for (property, room) with a
    short validity window and asks the verifier for a presentation-request QR.
  - check_result is polled by the door-side client. While no wallet has answered
    it returns `pending`. Once claims are presented they are checked against the
    reservation they name:
        (a) the door's property and room are the reservation's
        (b) now lies within [check-in, check-out]
        (c) the presented holder is the reservation's primary holder
    and the credential behind the presentation (found by its nonce) must still
    be live locally, so revoked or expired credentials never open a door.
  - The decision, the flip to `used` and the access-log row commit together.
    A transaction is decided once; every later call reads the stored outcome.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.database import end_transaction
from app.errors import (
    ConflictError,
    EngineError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from app.models.credential import STATUS_CLAIMED, STATUS_EXPIRED, STATUS_PENDING, STATUS_REVOKED
from app.models.door_transaction import DoorTransaction, DOOR_ACTIVE, DOOR_EXPIRED, DOOR_USED
from app.models.reservation import Property, Reservation
from app.services.access_log_service import add_access_log
from app.services.claim_validator import (
    RESERVATION_SHORT_ID_LENGTH,
    alphanumeric,
    holder_short_id,
    reservation_short_id,
)
from app.services.credential_service import find_by_nonce, RESERVATION_CANCELLED
from app.services.verifier_gateway import Presentation, VerifierGateway
from app.utils.clock import Clock, utcnow
from app.utils.logger import get_logger

logger = get_logger(__name__)

RESULT_GRANTED = "granted"
RESULT_DENIED = "denied"
RESULT_PENDING = "pending"


@dataclass
class DoorAttempt:
    transaction_id: str
    qr_image: str
    auth_uri: Optional[str]
    expires_at: datetime


@dataclass
class DoorResult:
    transaction_id: str
    status: str
    reason: Optional[str] = None
    decided_at: Optional[datetime] = None


@dataclass
class AdmissionDecision:
    granted: bool
    reason: str
    reservation_id: Optional[str] = None
    identity_id: Optional[str] = None


def get_door_transaction(db: Session, transaction_id: str) -> DoorTransaction:
    tx = db.query(DoorTransaction).filter(DoorTransaction.transaction_id == transaction_id).first()
    if not tx:
        raise NotFoundError(f"Door transaction '{transaction_id}' not found")
    return tx


def _stored_result(tx: DoorTransaction) -> DoorResult:
    return DoorResult(tx.transaction_id, tx.outcome, tx.reason, tx.decided_at)


def _expire(db: Session, tx: DoorTransaction):
    (db.query(DoorTransaction)
       .filter(DoorTransaction.id == tx.id, DoorTransaction.status == DOOR_ACTIVE)
       .update({"status": DOOR_EXPIRED}, synchronize_session=False))
    db.commit()
    db.refresh(tx)


async def begin_attempt(
    db: Session,
    property_id: str,
    room_number: str,
    *,
    verifier: VerifierGateway,
    clock: Clock = utcnow,
    ttl_minutes: Optional[int] = None,
) -> DoorAttempt:
    room = alphanumeric(room_number or "")
    if not room:
        raise ValidationError("Room number is required", details=[{"field": "room_number", "reason": "required"}])
    if not db.query(Property).filter(Property.id == property_id).first():
        raise NotFoundError(f"Property '{property_id}' not found")

    now = clock()
    ttl = timedelta(minutes=ttl_minutes or settings.DOOR_TRANSACTION_TTL_MINUTES)
    tx = DoorTransaction(
        transaction_id=str(uuid.uuid4()),
        property_id=property_id,
        room_number=room,
        status=DOOR_ACTIVE,
        created_at=now,
        expires_at=now + ttl,
    )
    db.add(tx)
    db.commit()
    db.refresh(tx)
    transaction_id = tx.transaction_id
    end_transaction(db)

    try:
        challenge = await verifier.create_challenge(transaction_id)
    except EngineError:
        _expire(db, tx)
        raise

    logger.info(f"[DOOR] attempt tx={tx.transaction_id} property={property_id} room={room}")
    return DoorAttempt(tx.transaction_id, challenge.qr_image, challenge.auth_uri, tx.expires_at)


def resolve_reservation(db: Session, short_id: Optional[str]) -> Optional[Reservation]:
    """Find the one reservation whose id reduces to `short_id`."""
    if not short_id or len(short_id) != RESERVATION_SHORT_ID_LENGTH or alphanumeric(short_id) != short_id:
        return None
    candidates = (
        db.query(Reservation)
        .filter(func.replace(Reservation.id, "-", "").like(f"{short_id}%"))
        .limit(2)
        .all()
    )
    matches = [r for r in candidates if reservation_short_id(r.id) == short_id]
    return matches[0] if len(matches) == 1 else None


def evaluate(db: Session, tx: DoorTransaction, presentation: Presentation, now: datetime) -> AdmissionDecision:
    if not presentation.verified:
        return AdmissionDecision(False, f"presentation not verified: {presentation.description}".strip())

    claims = presentation.claims
    reservation = resolve_reservation(db, claims.get("booking_id"))
    if reservation is None:
        return AdmissionDecision(False, "reservation not found")

    credential = find_by_nonce(db, reservation.id, claims["nonce"]) if claims.get("nonce") else None
    if credential is None:
        return AdmissionDecision(False, "credential not found", reservation.id)
    identity = credential.holder_id

    def deny(reason: str) -> AdmissionDecision:
        return AdmissionDecision(False, reason, reservation.id, identity)

    if credential.status == STATUS_REVOKED:
        return deny("credential revoked")
    if credential.status == STATUS_EXPIRED or (
        credential.status in (STATUS_PENDING, STATUS_CLAIMED)
        and credential.expires_at is not None and credential.expires_at < now
    ):
        return deny("credential expired")
    if reservation.status == RESERVATION_CANCELLED:
        return deny("reservation cancelled")

    if claims.get("member_serial") != holder_short_id(reservation.holder_id):
        return deny("holder mismatch")

    reservation_room = alphanumeric(reservation.room_number or "")
    if tx.property_id != reservation.property_id or tx.room_number != reservation_room:
        return deny("wrong door")
    if alphanumeric(claims.get("room_num", "")) != reservation_room:
        return deny("room mismatch")

    if not (reservation.check_in <= now <= reservation.check_out):
        return deny("outside stay window")

    return AdmissionDecision(True, "admitted", reservation.id, identity)


def _record(db: Session, tx: DoorTransaction, decision: AdmissionDecision, now: datetime) -> DoorResult:
    outcome = RESULT_GRANTED if decision.granted else RESULT_DENIED
    decision.reason = decision.reason[:200]
    won = (
        db.query(DoorTransaction)
        .filter(DoorTransaction.id == tx.id, DoorTransaction.status == DOOR_ACTIVE)
        .update({"status": DOOR_USED, "outcome": outcome, "reason": decision.reason, "decided_at": now},
                synchronize_session=False)
    )
    if won != 1:
        db.rollback()
        db.refresh(tx)
        if tx.status == DOOR_USED:
            return _stored_result(tx)
        raise PreconditionFailedError("Door transaction expired")

    add_access_log(
        db,
        transaction_id=tx.transaction_id,
        property_id=tx.property_id,
        room_number=tx.room_number,
        granted=decision.granted,
        reason=decision.reason,
        access_time=now,
        reservation_id=decision.reservation_id,
        identity_id=decision.identity_id,
    )
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        db.refresh(tx)
        if tx.status == DOOR_USED:
            return _stored_result(tx)
        raise ConflictError("Door decision could not be recorded") from e

    db.refresh(tx)
    log = logger.info if decision.granted else logger.warning
    log(f"[DOOR] tx={tx.transaction_id} {outcome.upper()} reservation={decision.reservation_id} "
        f"identity={decision.identity_id}: {decision.reason}")
    return _stored_result(tx)


async def check_result(
    db: Session,
    transaction_id: str,
    *,
    verifier: VerifierGateway,
    clock: Clock = utcnow,
) -> DoorResult:
    tx = get_door_transaction(db, transaction_id)
    if tx.status == DOOR_USED:
        return _stored_result(tx)

    now = clock()
    if tx.status == DOOR_EXPIRED or tx.expires_at < now:
        _expire(db, tx)
        if tx.status == DOOR_USED:
            return _stored_result(tx)
        raise PreconditionFailedError("Door transaction expired")

    end_transaction(db)
    presentation = await verifier.fetch_result(transaction_id)
    if presentation is None:
        return DoorResult(transaction_id, RESULT_PENDING)

    return _record(db, tx, evaluate(db, tx, presentation, now), now)
