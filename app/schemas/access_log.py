# app/schemas/access_log.py
from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class AccessLogOut(BaseModel):
    id: int
    reservation_id: Optional[str]
    identity_id: Optional[str]
    property_id: str
    room_number: str
    method: str
    outcome: str                   # success | denied
    reason: Optional[str]
    transaction_id: str
    access_time: datetime

    class Config:
        from_attributes = True
