# app/schemas/credential.py
from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class CredentialOut(BaseModel):
    id: str
    reservation_id: str
    holder_id: str
    role: str                      # primary | co-occupant
    co_occupancy_grant_id: Optional[str]
    transaction_id: str
    credential_id: Optional[str]   # set once the wallet has claimed the offer
    nonce: str
    status: str                    # pending | claimed | revoked | expired
    created_at: datetime
    claimed_at: Optional[datetime]
    revoked_at: Optional[datetime]
    expires_at: Optional[datetime]

    class Config:
        from_attributes = True


class IssueRequest(BaseModel):
    reservation_id: str
    co_occupancy_grant_id: Optional[str] = None


class IssueOut(BaseModel):
    credential: CredentialOut
    qr_code: str
    deep_link: str


class RevocationCheckOut(BaseModel):
    credential_id: str
    allowed: bool
    reason: str


class RevokeByNonceRequest(BaseModel):
    reservation_id: str
    nonce: str


class RevokeOut(BaseModel):
    credential: CredentialOut
    reason: str
    issuer_status: Optional[str] = None
    warning: Optional[str] = None


class PermissionsOut(BaseModel):
    can_revoke_all: bool
    can_revoke_co_occupants: bool
    can_revoke_own: bool = False


class ReservationCredentialsOut(BaseModel):
    reservation_id: str
    role: str                      # host | primary | co-occupant
    permissions: PermissionsOut
    credentials: list[CredentialOut]
