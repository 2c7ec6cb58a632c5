"""
Co-occupancy grants (shared room cards), owned by the booking subsystem.
An invitation from the reservation holder to a second guest, resolved either
by account id or, while the invitee has not signed up, by email.
"""

import uuid
from sqlalchemy import Column, String, DateTime
from app.database import Base


class CoOccupancyGrant(Base):
    __tablename__ = "co_occupancy_grants"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    reservation_id = Column(String(36), nullable=False, index=True)
    inviter_id = Column(String(36), nullable=False)
    invitee_id = Column(String(36))              # set once the invitee accepts
    invitee_email = Column(String(200))
    status = Column(String(20), nullable=False, default="pending")  # pending | accepted | declined | revoked
    created_at = Column(DateTime)
    responded_at = Column(DateTime)

    def __repr__(self):
        return f"<CoOccupancyGrant {self.id} status={self.status}>"
