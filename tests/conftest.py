# tests/conftest.py
"""Shared fixtures: in-memory SQLite session and a seeded stay."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["API_KEY"] = ""
os.environ["ISSUER_ACCESS_TOKEN"] = "test-issuer-token"
os.environ["VERIFIER_ACCESS_TOKEN"] = "test-verifier-token"

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import pytest
from app.database import Base, SessionLocal, create_tables, engine
from app.models.co_occupancy_grant import CoOccupancyGrant
from app.models.credential import Credential, ROLE_PRIMARY, STATUS_PENDING
from app.models.reservation import GuestProfile, Property, Reservation

HOST_ID = "aaaaaaaa-0000-4000-8000-000000000001"
H1 = "11111111-1111-4111-8111-111111111111"
H2 = "22222222-2222-4222-8222-222222222222"
STRANGER = "99999999-9999-4999-8999-999999999999"
P1 = "bbbbbbbb-0000-4000-8000-000000000001"
RESERVATION_ID = "c0ffee00-1234-4abc-9def-0123456789ab"

CHECK_IN = datetime(2025, 1, 10, 15, 0)
CHECK_OUT = datetime(2025, 1, 12, 11, 0)
BEFORE_STAY = datetime(2025, 1, 9, 12, 0)
DURING_STAY = datetime(2025, 1, 11, 10, 0)
AFTER_STAY = datetime(2025, 1, 13, 10, 0)


@dataclass
class Stay:
    property: Property
    holder: GuestProfile
    reservation: Reservation
    grant: Optional[CoOccupancyGrant] = None


@pytest.fixture
def db():
    create_tables()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def stay(db) -> Stay:
    """P1 hosted by HOST_ID, reservation for H1 in room R1, H2 invited and accepted."""
    prop = Property(id=P1, host_id=HOST_ID, title="Harbour View Inn", vc_title="HarbourViewInn")
    holder = GuestProfile(id=H1, name="Alice", email="alice@example.com", national_id="A123456789")
    reservation = Reservation(
        id=RESERVATION_ID, holder_id=H1, property_id=P1, room_number="R1",
        check_in=CHECK_IN, check_out=CHECK_OUT, status="confirmed",
    )
    grant = CoOccupancyGrant(
        id="g1000000-0000-4000-8000-000000000001", reservation_id=RESERVATION_ID,
        inviter_id=H1, invitee_id=H2, invitee_email="bob@example.com", status="accepted",
        created_at=BEFORE_STAY,
    )
    db.add_all([prop, holder, reservation, grant])
    db.commit()
    return Stay(prop, holder, reservation, grant)


@pytest.fixture
def make_credential(db):
    """Insert a credential row directly, bypassing the issuer."""
    def _make(holder_id=H1, role=ROLE_PRIMARY, status=STATUS_PENDING, nonce="AB12",
              credential_id=None, grant_id=None, expires_at=CHECK_OUT, reservation_id=RESERVATION_ID):
        credential = Credential(
            reservation_id=reservation_id,
            holder_id=holder_id,
            role=role,
            co_occupancy_grant_id=grant_id,
            transaction_id=f"tx-{uuid.uuid4()}",
            credential_id=credential_id,
            nonce=nonce,
            status=status,
            created_at=BEFORE_STAY,
            expires_at=expires_at,
        )
        db.add(credential)
        db.commit()
        db.refresh(credential)
        return credential
    return _make
