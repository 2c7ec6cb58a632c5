"""
Database connection, session management, and table creation.
Uses SQLAlchemy with PostgreSQL (SQLite accepted for local runs and tests).
All models are auto-imported here so create_tables() creates every table in one call.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from app.config import settings

if settings.DATABASE_URL.startswith("sqlite"):
    engine = create_engine(
        settings.DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )
else:
    engine = create_engine(
        settings.DATABASE_URL,
        pool_pre_ping=True,          # Auto-reconnect if DB connection drops
        pool_size=10,
        max_overflow=20,
        echo=False,                  # Set True to log all SQL queries (debug only)
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency. Yields a DB session and closes it after request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(bind=None):
    """
    Creates all DB tables on startup. Safe to call multiple times.
    Import all models here so SQLAlchemy knows about them.
    """
    # Booking subsystem (read-only here)
    from app.models.reservation import Property, GuestProfile, Reservation   # noqa
    from app.models.co_occupancy_grant import CoOccupancyGrant               # noqa
    # Owned by this engine
    from app.models.credential import Credential                             # noqa
    from app.models.door_transaction import DoorTransaction                  # noqa
    from app.models.access_log import AccessLog                              # noqa

    Base.metadata.create_all(bind=bind or engine)


def end_transaction(db):
    """
    Close the session's current transaction before awaiting the issuer or verifier.
    Read values the call needs first: touching an expired instance starts a new one.
    """
    if db.in_transaction():
        db.commit()
