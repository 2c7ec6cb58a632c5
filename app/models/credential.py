"""
Digital room-access credentials issued through the external issuer.

Lifecycle: pending → claimed → {revoked | expired}, or pending → expired.
The QR image and deep link returned at issuance are never stored here.
"""

import uuid
from sqlalchemy import Column, String, DateTime, UniqueConstraint
from app.database import Base

STATUS_PENDING = "pending"
STATUS_CLAIMED = "claimed"
STATUS_REVOKED = "revoked"
STATUS_EXPIRED = "expired"
TERMINAL_STATUSES = (STATUS_REVOKED, STATUS_EXPIRED)

ROLE_PRIMARY = "primary"
ROLE_CO_OCCUPANT = "co-occupant"


class Credential(Base):
    __tablename__ = "credentials"
    __table_args__ = (
        # The nonce is the only identifier printed in the wallet artifact
        UniqueConstraint("reservation_id", "nonce", name="uq_credentials_reservation_nonce"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    reservation_id = Column(String(36), nullable=False, index=True)
    holder_id = Column(String(36), nullable=False, index=True)
    role = Column(String(20), nullable=False, default=ROLE_PRIMARY)   # primary | co-occupant
    co_occupancy_grant_id = Column(String(36))                         # FK to co_occupancy_grants.id
    transaction_id = Column(String(100), nullable=False, unique=True)
    credential_id = Column(String(100), unique=True)                   # issuer CID, set on claim
    nonce = Column(String(4), nullable=False)
    status = Column(String(20), nullable=False, default=STATUS_PENDING, index=True)
    created_at = Column(DateTime, nullable=False)
    claimed_at = Column(DateTime)
    revoked_at = Column(DateTime)
    expires_at = Column(DateTime)

    def __repr__(self):
        return f"<Credential {self.id} role={self.role} status={self.status} nonce={self.nonce}>"
