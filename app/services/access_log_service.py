# app/services/access_log_service.py
"""
Shared access-log writer and reader.
Entries are append-only; nothing in the engine updates or deletes them.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session
from app.models.access_log import AccessLog
from app.utils.logger import get_logger

logger = get_logger(__name__)

METHOD_DIGITAL_CREDENTIAL = "digital_credential"
OUTCOME_SUCCESS = "success"
OUTCOME_DENIED = "denied"


def add_access_log(db: Session, *, transaction_id: str, property_id: str, room_number: str,
                   granted: bool, reason: str, access_time: datetime,
                   reservation_id: Optional[str] = None, identity_id: Optional[str] = None) -> AccessLog:
    """Stage one audit row. The caller commits it together with the door decision."""
    entry = AccessLog(
        reservation_id=reservation_id,
        identity_id=identity_id,
        property_id=property_id,
        room_number=room_number,
        method=METHOD_DIGITAL_CREDENTIAL,
        outcome=OUTCOME_SUCCESS if granted else OUTCOME_DENIED,
        reason=reason,
        transaction_id=transaction_id,
        access_time=access_time,
    )
    db.add(entry)
    return entry


def list_access_logs(db: Session, reservation_id: Optional[str] = None,
                     property_id: Optional[str] = None, limit: int = 50) -> list[AccessLog]:
    q = db.query(AccessLog)
    if reservation_id:
        q = q.filter(AccessLog.reservation_id == reservation_id)
    if property_id:
        q = q.filter(AccessLog.property_id == property_id)
    return q.order_by(AccessLog.access_time.desc(), AccessLog.id.desc()).limit(limit).all()
