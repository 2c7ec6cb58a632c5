# app/routers/credentials.py
"""Credential issuance, claim polling, revocation and per-reservation listing."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.database import get_db
from app.schemas.credential import (
    CredentialOut,
    IssueOut,
    IssueRequest,
    PermissionsOut,
    ReservationCredentialsOut,
    RevocationCheckOut,
    RevokeByNonceRequest,
    RevokeOut,
)
from app.services import credential_service, revocation_service
from app.services.credential_service import ROLE_HOST
from app.models.credential import ROLE_PRIMARY
from app.services.issuer_gateway import IssuerGateway, get_issuer_gateway
from app.utils.clock import Clock, get_clock
from app.utils.identity import Actor, get_actor

router = APIRouter()


def _revoke_out(outcome: revocation_service.RevocationOutcome) -> RevokeOut:
    return RevokeOut(
        credential=CredentialOut.model_validate(outcome.credential),
        reason=outcome.reason,
        issuer_status=outcome.issuer_status,
        warning=outcome.warning,
    )


@router.post("/credentials", response_model=IssueOut, status_code=201, summary="Issue a room credential")
async def issue_credential(
    body: IssueRequest,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    issuer: IssuerGateway = Depends(get_issuer_gateway),
    clock: Clock = Depends(get_clock),
):
    """
    Issue a credential for the caller on a reservation. The primary holder needs
    no grant; co-occupants pass the id of their accepted co-occupancy grant.
    The QR code and deep link are only returned here.
    """
    result = await credential_service.issue_credential(
        db, body.reservation_id, actor.id, actor.email, body.co_occupancy_grant_id,
        issuer=issuer, clock=clock,
    )
    return IssueOut(
        credential=CredentialOut.model_validate(result.credential),
        qr_code=result.qr_code,
        deep_link=result.deep_link,
    )


@router.get("/credentials/{credential_id}/status", response_model=CredentialOut, summary="Poll claim status")
async def poll_status(
    credential_id: str,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    issuer: IssuerGateway = Depends(get_issuer_gateway),
    clock: Clock = Depends(get_clock),
):
    return await credential_service.poll_status(db, credential_id, issuer=issuer, clock=clock, actor_id=actor.id)


@router.get("/credentials/{credential_id}/revocation", response_model=RevocationCheckOut,
            summary="Can the caller revoke this credential?")
def check_revocation(
    credential_id: str,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    decision = revocation_service.can_revoke(db, actor.id, credential_id, clock)
    return RevocationCheckOut(credential_id=credential_id, allowed=decision.allowed, reason=decision.reason)


@router.post("/credentials/{credential_id}/revoke", response_model=RevokeOut, summary="Revoke a credential")
async def revoke_credential(
    credential_id: str,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    issuer: IssuerGateway = Depends(get_issuer_gateway),
    clock: Clock = Depends(get_clock),
):
    outcome = await revocation_service.revoke(db, actor.id, credential_id, issuer=issuer, clock=clock)
    return _revoke_out(outcome)


@router.post("/credentials/revoke-by-nonce", response_model=RevokeOut, summary="Revoke by reservation + nonce")
async def revoke_by_nonce(
    body: RevokeByNonceRequest,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    issuer: IssuerGateway = Depends(get_issuer_gateway),
    clock: Clock = Depends(get_clock),
):
    outcome = await revocation_service.revoke_by_nonce(
        db, actor.id, body.reservation_id, body.nonce.upper(), issuer=issuer, clock=clock,
    )
    return _revoke_out(outcome)


@router.get("/reservations/{reservation_id}/credentials", response_model=ReservationCredentialsOut,
            summary="All credentials of a reservation")
def list_reservation_credentials(
    reservation_id: str,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    listing = credential_service.list_reservation_credentials(db, reservation_id, actor.id, clock)
    return ReservationCredentialsOut(
        reservation_id=reservation_id,
        role=listing.role,
        permissions=PermissionsOut(
            can_revoke_all=listing.role == ROLE_HOST,
            can_revoke_co_occupants=listing.role in (ROLE_HOST, ROLE_PRIMARY),
        ),
        credentials=[CredentialOut.model_validate(c) for c in listing.credentials],
    )
