# app/schemas/door.py
from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class DoorAttemptRequest(BaseModel):
    property_id: str
    room_number: str


class DoorAttemptOut(BaseModel):
    transaction_id: str
    qr_image: str
    auth_uri: Optional[str]
    expires_at: datetime


class DoorResultOut(BaseModel):
    transaction_id: str
    status: str                    # pending | granted | denied
    reason: Optional[str] = None
    decided_at: Optional[datetime] = None

    class Config:
        from_attributes = True
