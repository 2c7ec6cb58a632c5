# app/services/revocation_service.py
"""
Who may revoke a credential, and the revocation commit itself.

Permission matrix (evaluated in order):
  1. revoked / expired credentials cannot be revoked again
  2. the property host may revoke any credential on the property
  3. the primary holder may revoke co-occupant credentials they invited,
     never their own credential
  4. everyone else, co-occupants included, is denied

Commit order is external first, local second. A credential that was never
claimed has no issuer identifier and is revoked locally only. When the issuer
cannot be reached, RevocationFallback decides: FAIL_CLOSED still revokes the
local row (door checks stop honouring it) and returns a warning; STRICT leaves
the row untouched and re-raises.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.database import end_transaction
from app.errors import (
    ConflictError,
    ExternalRejectedError,
    ExternalUnavailableError,
    ForbiddenError,
    NotFoundError,
    PreconditionFailedError,
)
from app.models.co_occupancy_grant import CoOccupancyGrant
from app.models.credential import (
    Credential,
    ROLE_CO_OCCUPANT,
    ROLE_PRIMARY,
    STATUS_CLAIMED,
    STATUS_EXPIRED,
    STATUS_PENDING,
    STATUS_REVOKED,
)
from app.models.reservation import Property, Reservation
from app.services.credential_service import find_by_nonce, get_credential, transition
from app.services.issuer_gateway import IssuerGateway, is_invalid_credential_id
from app.utils.clock import Clock, utcnow
from app.utils.logger import get_logger

logger = get_logger(__name__)

REASON_HOST = "host"
REASON_PRIMARY_REVOKES_CO_OCCUPANT = "primary revokes co-occupant"
REASON_OWN_CREDENTIAL = "cannot revoke own credential"
REASON_NOT_INVITER = "not the inviter of this co-occupant"
REASON_NO_PERMISSION = "no permission"


class RevocationFallback(str, Enum):
    FAIL_CLOSED = "fail_closed"
    STRICT = "strict"


@dataclass
class RevocationDecision:
    allowed: bool
    reason: str


@dataclass
class RevocationOutcome:
    credential: Credential
    reason: str
    issuer_status: Optional[str] = None
    warning: Optional[str] = None


def _effective_status(credential: Credential, clock: Clock) -> str:
    if (credential.status in (STATUS_PENDING, STATUS_CLAIMED)
            and credential.expires_at is not None and credential.expires_at < clock()):
        return STATUS_EXPIRED
    return credential.status


def decide(db: Session, actor_id: str, credential: Credential, clock: Clock = utcnow) -> RevocationDecision:
    status = _effective_status(credential, clock)
    if status in (STATUS_REVOKED, STATUS_EXPIRED):
        return RevocationDecision(False, status)

    reservation = db.query(Reservation).filter(Reservation.id == credential.reservation_id).first()
    if reservation is None:
        return RevocationDecision(False, REASON_NO_PERMISSION)

    prop = db.query(Property).filter(Property.id == reservation.property_id).first()
    if prop is not None and prop.host_id == actor_id:
        return RevocationDecision(True, REASON_HOST)

    if reservation.holder_id == actor_id:
        if credential.role == ROLE_PRIMARY:
            return RevocationDecision(False, REASON_OWN_CREDENTIAL)
        if credential.role == ROLE_CO_OCCUPANT and credential.co_occupancy_grant_id:
            grant = (
                db.query(CoOccupancyGrant)
                .filter(CoOccupancyGrant.id == credential.co_occupancy_grant_id)
                .first()
            )
            if grant is not None and grant.inviter_id == actor_id:
                return RevocationDecision(True, REASON_PRIMARY_REVOKES_CO_OCCUPANT)
        return RevocationDecision(False, REASON_NOT_INVITER)

    return RevocationDecision(False, REASON_NO_PERMISSION)


def can_revoke(db: Session, actor_id: str, credential_id: str, clock: Clock = utcnow) -> RevocationDecision:
    return decide(db, actor_id, get_credential(db, credential_id), clock)


def _mark_revoked(db: Session, credential: Credential, now) -> Credential:
    won = transition(db, credential.id, (STATUS_PENDING, STATUS_CLAIMED),
                     {"status": STATUS_REVOKED, "revoked_at": now})
    db.refresh(credential)
    if not won and credential.status != STATUS_REVOKED:
        raise ConflictError(f"Credential moved to '{credential.status}' while being revoked")
    return credential


async def revoke(
    db: Session,
    actor_id: str,
    credential_id: str,
    *,
    issuer: IssuerGateway,
    clock: Clock = utcnow,
    fallback: Optional[RevocationFallback] = None,
) -> RevocationOutcome:
    credential = get_credential(db, credential_id)
    decision = decide(db, actor_id, credential, clock)
    if not decision.allowed:
        logger.info(f"[REVOKE] denied actor={actor_id} credential={credential.id}: {decision.reason}")
        if decision.reason in (STATUS_REVOKED, STATUS_EXPIRED):
            raise PreconditionFailedError(f"Credential is already {decision.reason}")
        raise ForbiddenError(f"Cannot revoke: {decision.reason}", details={"reason": decision.reason})

    fallback = fallback or RevocationFallback(settings.REVOCATION_FALLBACK)

    if not credential.credential_id:
        _mark_revoked(db, credential, clock())
        logger.info(f"[REVOKE] credential={credential.id} revoked locally (never claimed) by {actor_id}")
        return RevocationOutcome(credential, decision.reason)

    cid = credential.credential_id
    issuer_status = None
    warning = None
    end_transaction(db)
    try:
        issuer_status = await issuer.revoke(cid)
    except ExternalRejectedError as e:
        if not is_invalid_credential_id(e):
            raise
        # TODO: split "already revoked upstream" from "malformed identifier" once the issuer distinguishes them
        warning = "Issuer does not recognise the credential identifier; revoked locally"
        logger.warning(f"[REVOKE] credential={credential.id} cid={cid}: {warning}")
    except ExternalUnavailableError as e:
        if fallback is RevocationFallback.STRICT:
            raise
        warning = f"Issuer unreachable ({e.message}); revoked locally, reconcile with the issuer"
        logger.warning(f"[REVOKE] credential={credential.id} cid={cid}: {warning}")

    _mark_revoked(db, credential, clock())
    logger.info(f"[REVOKE] credential={credential.id} revoked by {actor_id} ({decision.reason})")
    return RevocationOutcome(credential, decision.reason, issuer_status=issuer_status, warning=warning)


async def revoke_by_nonce(
    db: Session,
    actor_id: str,
    reservation_id: str,
    nonce: str,
    *,
    issuer: IssuerGateway,
    clock: Clock = utcnow,
    fallback: Optional[RevocationFallback] = None,
) -> RevocationOutcome:
    credential = find_by_nonce(db, reservation_id, nonce)
    if credential is None:
        raise NotFoundError(f"No credential with nonce '{nonce}' on reservation '{reservation_id}'")
    return await revoke(db, actor_id, credential.id, issuer=issuer, clock=clock, fallback=fallback)
