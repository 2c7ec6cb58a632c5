# app/routers/door.py
"""Door-side admission: start a presentation request, then poll its decision."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.database import get_db
from app.schemas.door import DoorAttemptOut, DoorAttemptRequest, DoorResultOut
from app.services import door_admission_service
from app.services.verifier_gateway import VerifierGateway, get_verifier_gateway
from app.utils.clock import Clock, get_clock

router = APIRouter()


@router.post("/door/attempts", response_model=DoorAttemptOut, status_code=201, summary="Begin a door attempt")
async def begin_attempt(
    body: DoorAttemptRequest,
    db: Session = Depends(get_db),
    verifier: VerifierGateway = Depends(get_verifier_gateway),
    clock: Clock = Depends(get_clock),
):
    attempt = await door_admission_service.begin_attempt(
        db, body.property_id, body.room_number, verifier=verifier, clock=clock,
    )
    return DoorAttemptOut(
        transaction_id=attempt.transaction_id,
        qr_image=attempt.qr_image,
        auth_uri=attempt.auth_uri,
        expires_at=attempt.expires_at,
    )


@router.get("/door/attempts/{transaction_id}/result", response_model=DoorResultOut,
            summary="Poll a door attempt: pending | granted | denied")
async def check_result(
    transaction_id: str,
    db: Session = Depends(get_db),
    verifier: VerifierGateway = Depends(get_verifier_gateway),
    clock: Clock = Depends(get_clock),
):
    result = await door_admission_service.check_result(db, transaction_id, verifier=verifier, clock=clock)
    return DoorResultOut.model_validate(result)
