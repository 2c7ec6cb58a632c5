"""
Door access audit log. Append-only: one row per decided door transaction.
"""

from sqlalchemy import Column, Integer, String, DateTime
from app.database import Base


class AccessLog(Base):
    __tablename__ = "access_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reservation_id = Column(String(36), index=True)   # null when the presentation matched no reservation
    identity_id = Column(String(36))
    property_id = Column(String(36), nullable=False)
    room_number = Column(String(20), nullable=False)
    method = Column(String(30), nullable=False)       # digital_credential
    outcome = Column(String(20), nullable=False)      # success | denied
    reason = Column(String(200))
    transaction_id = Column(String(100), nullable=False, unique=True)
    access_time = Column(DateTime, nullable=False, index=True)

    def __repr__(self):
        return f"<AccessLog {self.id} tx={self.transaction_id} outcome={self.outcome}>"
