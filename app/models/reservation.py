"""
Booking-subsystem tables, mapped read-only.
The credential engine never writes these rows; it reads the holder, property,
room and stay window when issuing credentials and admitting guests.
"""

import uuid
from sqlalchemy import Column, String, DateTime
from app.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Property(Base):
    __tablename__ = "properties"

    id = Column(String(36), primary_key=True, default=_uuid)
    host_id = Column(String(36), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    vc_title = Column(String(50))              # ASCII-only title for the issued credential

    def __repr__(self):
        return f"<Property {self.id} host={self.host_id}>"


class GuestProfile(Base):
    __tablename__ = "guest_profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(100))
    email = Column(String(200))
    national_id = Column(String(20))

    def __repr__(self):
        return f"<GuestProfile {self.id}>"


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(String(36), primary_key=True, default=_uuid)
    holder_id = Column(String(36), nullable=False, index=True)    # FK to guest_profiles.id
    property_id = Column(String(36), nullable=False, index=True)  # FK to properties.id
    room_number = Column(String(20))                               # assigned before issuance
    check_in = Column(DateTime, nullable=False)
    check_out = Column(DateTime, nullable=False)
    status = Column(String(20), nullable=False, default="pending")  # pending | confirmed | cancelled | completed

    def __repr__(self):
        return f"<Reservation {self.id} room={self.room_number} status={self.status}>"
