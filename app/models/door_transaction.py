"""
Door transactions: one single-use admission check per QR shown at a door.
Flipped to `used` together with the admission decision, so replays of the same
QR always read back the stored outcome.
"""

from sqlalchemy import Column, Integer, String, DateTime
from app.database import Base

DOOR_ACTIVE = "active"
DOOR_USED = "used"
DOOR_EXPIRED = "expired"


class DoorTransaction(Base):
    __tablename__ = "door_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_id = Column(String(100), nullable=False, unique=True, index=True)
    property_id = Column(String(36), nullable=False)
    room_number = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=DOOR_ACTIVE)  # active | used | expired
    outcome = Column(String(20))             # granted | denied (set when used)
    reason = Column(String(200))
    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    decided_at = Column(DateTime)

    def __repr__(self):
        return f"<DoorTransaction {self.transaction_id} status={self.status} outcome={self.outcome}>"
