# app/services/credential_service.py
"""
Credential lifecycle: issue → claim detection → expiry.

How it works:
  - issue_credential resolves the caller's occupancy role, builds and validates
    the claim set, asks the issuer for an offer and stores a `pending` row.
    The QR image / deep link go back to the caller once and are not stored.
  - poll_status is called repeatedly by the holder's client. The first poll that
    sees a JWT from the issuer moves the row to `claimed` (or straight to
    `expired` when the JWT is already past its exp). Later polls are no-ops.
  - Every transition is one conditional UPDATE guarded by the expected current
    status, so concurrent pollers cannot both win.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.errors import (
    ConflictError,
    ExternalRejectedError,
    ForbiddenError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from app.config import settings
from app.database import end_transaction
from app.models.co_occupancy_grant import CoOccupancyGrant
from app.models.credential import (
    Credential,
    ROLE_CO_OCCUPANT,
    ROLE_PRIMARY,
    STATUS_CLAIMED,
    STATUS_EXPIRED,
    STATUS_PENDING,
    TERMINAL_STATUSES,
)
from app.models.reservation import GuestProfile, Property, Reservation
from app.services.claim_validator import (
    alphanumeric,
    format_claim_date,
    format_claim_datetime,
    holder_short_id,
    validate_claims,
)
from app.services.issuer_gateway import IssuerGateway
from app.services.nonce_service import generate_nonce
from app.utils.clock import Clock, utcnow
from app.utils.credential_token import parse_credential_token
from app.utils.logger import get_logger

logger = get_logger(__name__)

GRANT_ACCEPTED = "accepted"
RESERVATION_CANCELLED = "cancelled"

ROLE_HOST = "host"


@dataclass
class IssueResult:
    credential: Credential
    qr_code: str
    deep_link: str


@dataclass
class ReservationCredentials:
    role: str
    credentials: list[Credential]


# ── Lookups ──────────────────────────────────────────────────────────────────

def get_reservation(db: Session, reservation_id: str) -> Reservation:
    reservation = db.query(Reservation).filter(Reservation.id == reservation_id).first()
    if not reservation:
        raise NotFoundError(f"Reservation '{reservation_id}' not found")
    return reservation


def get_credential(db: Session, credential_id: str) -> Credential:
    credential = db.query(Credential).filter(Credential.id == credential_id).first()
    if not credential:
        raise NotFoundError(f"Credential '{credential_id}' not found")
    return credential


def find_by_nonce(db: Session, reservation_id: str, nonce: str) -> Optional[Credential]:
    return (
        db.query(Credential)
        .filter(Credential.reservation_id == reservation_id, Credential.nonce == nonce.upper())
        .first()
    )


def transition(db: Session, credential_id: str, expected: tuple, values: dict) -> bool:
    """
    Atomic conditional update: applies `values` only while the row is still in
    one of the `expected` statuses. Commits and returns whether this call won.
    """
    count = (
        db.query(Credential)
        .filter(Credential.id == credential_id, Credential.status.in_(expected))
        .update(values, synchronize_session=False)
    )
    db.commit()
    return count == 1


# ── Occupancy role ───────────────────────────────────────────────────────────

def resolve_occupancy(
    db: Session,
    reservation: Reservation,
    actor_id: str,
    actor_email: Optional[str],
    co_occupancy_grant_id: Optional[str],
) -> tuple[str, Optional[CoOccupancyGrant]]:
    """Primary if the actor holds the reservation, else an accepted grant naming the actor is required."""
    if reservation.holder_id == actor_id:
        return ROLE_PRIMARY, None

    if not co_occupancy_grant_id:
        raise ForbiddenError("Not the reservation holder; a co-occupancy grant id is required")

    grant = (
        db.query(CoOccupancyGrant)
        .filter(
            CoOccupancyGrant.id == co_occupancy_grant_id,
            CoOccupancyGrant.reservation_id == reservation.id,
            CoOccupancyGrant.status == GRANT_ACCEPTED,
        )
        .first()
    )
    if not grant:
        logger.warning(f"[ISSUE] actor={actor_id} used grant={co_occupancy_grant_id} "
                       f"with no accepted grant on reservation={reservation.id}")
        raise ForbiddenError("No accepted co-occupancy grant for this reservation")

    email_match = bool(actor_email and grant.invitee_email
                       and grant.invitee_email.lower() == actor_email.lower())
    if grant.invitee_id != actor_id and not email_match:
        logger.warning(f"[ISSUE] actor={actor_id} is not the invitee of grant={grant.id}")
        raise ForbiddenError("This co-occupancy grant belongs to another guest")

    return ROLE_CO_OCCUPANT, grant


# ── Claim set ────────────────────────────────────────────────────────────────

def _credential_title(prop: Optional[Property]) -> str:
    if prop is None:
        return ""
    if prop.vc_title:
        return prop.vc_title[:50]
    return "".join(ch for ch in (prop.title or "") if ch.isascii() and (ch.isalnum() or ch == "_"))[:50]


def _display_name(profile: Optional[GuestProfile]) -> str:
    name = (profile.name if profile else None) or "Guest"
    allowed = "".join(ch for ch in name
                      if ch == "_" or (ch.isascii() and ch.isalnum()) or "\u4e00" <= ch <= "\u9fa5")
    return allowed or "Guest"


def build_claims(
    reservation: Reservation,
    prop: Optional[Property],
    holder: Optional[GuestProfile],
    nonce: str,
    issued_date: str,
) -> dict[str, Optional[str]]:
    """Claims always describe the primary holder, also on co-occupant credentials."""
    return {
        "id_number": holder.national_id if holder else None,
        "name": _display_name(holder),
        "member_serial": holder_short_id(reservation.holder_id),
        "checkin_time": format_claim_datetime(reservation.check_in),
        "checkout_time": format_claim_datetime(reservation.check_out),
        "booking_id": reservation.id,
        "room_num": alphanumeric(reservation.room_number, 10),
        "nonce": nonce,
        "email": holder.email if holder and holder.email else "",
        "booking_title": _credential_title(prop),
        "issued_date": issued_date,
    }


# ── Operations ───────────────────────────────────────────────────────────────

async def issue_credential(
    db: Session,
    reservation_id: str,
    actor_id: str,
    actor_email: Optional[str] = None,
    co_occupancy_grant_id: Optional[str] = None,
    *,
    issuer: IssuerGateway,
    clock: Clock = utcnow,
) -> IssueResult:
    reservation = get_reservation(db, reservation_id)
    role, grant = resolve_occupancy(db, reservation, actor_id, actor_email, co_occupancy_grant_id)

    if reservation.status == RESERVATION_CANCELLED:
        raise PreconditionFailedError("Reservation is cancelled")
    if not alphanumeric(reservation.room_number or ""):
        raise PreconditionFailedError("Reservation has no assigned room")

    now = clock()
    issued_date = format_claim_date(now)
    expired_date = format_claim_date(reservation.check_out)
    nonce = generate_nonce(reservation.id, actor_id, issued_date)

    prop = db.query(Property).filter(Property.id == reservation.property_id).first()
    holder = db.query(GuestProfile).filter(GuestProfile.id == reservation.holder_id).first()
    claims = validate_claims(build_claims(reservation, prop, holder, nonce, issued_date))

    if issued_date >= expired_date:
        raise ValidationError(
            "Issuance date must be before the credential expiry date",
            details=[{"field": "expired_date", "reason": f"{expired_date} is not after {issued_date}"}],
        )

    if find_by_nonce(db, reservation.id, nonce):
        logger.warning(f"[ISSUE] nonce {nonce} already used on reservation={reservation.id}")
        raise ConflictError(f"A credential with nonce {nonce} already exists for this reservation")

    request = {
        "vcUid": settings.ISSUER_VC_UID,
        "issuanceDate": issued_date,
        "expiredDate": expired_date,
        "fields": [{"ename": name, "content": value} for name, value in claims.items()],
    }
    end_transaction(db)
    offer = await issuer.issue(request)

    credential = Credential(
        reservation_id=reservation.id,
        holder_id=actor_id,
        role=role,
        co_occupancy_grant_id=grant.id if grant else None,
        transaction_id=offer.transaction_id,
        nonce=nonce,
        status=STATUS_PENDING,
        created_at=now,
        expires_at=reservation.check_out,
    )
    db.add(credential)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"[ISSUE] lost insert race for nonce={nonce} tx={offer.transaction_id}: {e.orig}")
        raise ConflictError(f"A credential with nonce {nonce} already exists for this reservation") from e
    db.refresh(credential)

    logger.info(f"[ISSUE] credential={credential.id} role={role} reservation={reservation.id} "
                f"nonce={nonce} tx={offer.transaction_id}")
    return IssueResult(credential=credential, qr_code=offer.qr_code, deep_link=offer.deep_link)


def _past_expiry(credential: Credential, now: datetime) -> bool:
    return (
        credential.status not in TERMINAL_STATUSES
        and credential.expires_at is not None
        and credential.expires_at < now
    )


def expire_if_past(db: Session, credential_id: str, clock: Clock = utcnow) -> bool:
    """Flip a pending/claimed credential to expired once its expiry has passed. Idempotent."""
    now = clock()
    count = (
        db.query(Credential)
        .filter(
            Credential.id == credential_id,
            Credential.status.in_((STATUS_PENDING, STATUS_CLAIMED)),
            Credential.expires_at.isnot(None),
            Credential.expires_at < now,
        )
        .update({"status": STATUS_EXPIRED}, synchronize_session=False)
    )
    db.commit()
    if count:
        logger.info(f"[EXPIRE] credential={credential_id}")
    return count == 1


def sweep_expired(db: Session, clock: Clock = utcnow, reservation_id: Optional[str] = None) -> int:
    """Housekeeping pass over every live credential (optionally one reservation)."""
    q = db.query(Credential).filter(
        Credential.status.in_((STATUS_PENDING, STATUS_CLAIMED)),
        Credential.expires_at.isnot(None),
        Credential.expires_at < clock(),
    )
    if reservation_id:
        q = q.filter(Credential.reservation_id == reservation_id)
    count = q.update({"status": STATUS_EXPIRED}, synchronize_session=False)
    db.commit()
    if count:
        logger.info(f"[EXPIRE] sweep expired {count} credential(s)")
    return count


async def poll_status(
    db: Session,
    credential_id: str,
    *,
    issuer: IssuerGateway,
    clock: Clock = utcnow,
    actor_id: Optional[str] = None,
) -> Credential:
    credential = get_credential(db, credential_id)
    if actor_id is not None and credential.holder_id != actor_id:
        raise ForbiddenError("Only the credential holder may poll its status")

    now = clock()
    if _past_expiry(credential, now):
        expire_if_past(db, credential.id, clock)
        db.refresh(credential)
    if credential.status != STATUS_PENDING:
        return credential

    transaction_id = credential.transaction_id
    end_transaction(db)
    token = await issuer.claim_status(transaction_id)
    if token is None:
        return credential

    info = parse_credential_token(token)
    if info is None or not info.credential_id:
        logger.error(f"[CLAIM] unreadable credential JWT for tx={credential.transaction_id}")
        raise ExternalRejectedError("Issuer returned an unreadable credential", upstream_code="MALFORMED_CREDENTIAL")

    expires_at = info.expires_at or credential.expires_at
    new_status = STATUS_EXPIRED if expires_at is not None and expires_at < now else STATUS_CLAIMED
    won = transition(db, credential.id, (STATUS_PENDING,), {
        "status": new_status,
        "credential_id": info.credential_id,
        "claimed_at": now,
        "expires_at": expires_at,
    })
    db.refresh(credential)

    if won:
        logger.info(f"[CLAIM] credential={credential.id} cid={info.credential_id} → {new_status}")
    elif credential.credential_id and credential.credential_id != info.credential_id:
        logger.error(f"[CLAIM] tx={credential.transaction_id} observed cid={info.credential_id} "
                     f"but stored cid={credential.credential_id}")
        raise ConflictError("Credential was already claimed with a different identifier")
    return credential


def list_reservation_credentials(
    db: Session,
    reservation_id: str,
    actor_id: str,
    clock: Clock = utcnow,
) -> ReservationCredentials:
    """All credentials of a reservation, visible to its host, holder and accepted co-occupants."""
    reservation = get_reservation(db, reservation_id)
    prop = db.query(Property).filter(Property.id == reservation.property_id).first()

    if prop and prop.host_id == actor_id:
        role = ROLE_HOST
    elif reservation.holder_id == actor_id:
        role = ROLE_PRIMARY
    else:
        accepted = (
            db.query(CoOccupancyGrant)
            .filter(
                CoOccupancyGrant.reservation_id == reservation.id,
                CoOccupancyGrant.invitee_id == actor_id,
                CoOccupancyGrant.status == GRANT_ACCEPTED,
            )
            .first()
        )
        if not accepted:
            raise ForbiddenError("Not a participant of this reservation")
        role = ROLE_CO_OCCUPANT

    sweep_expired(db, clock, reservation_id=reservation.id)
    credentials = (
        db.query(Credential)
        .filter(Credential.reservation_id == reservation.id)
        .order_by(Credential.created_at.desc())
        .all()
    )
    return ReservationCredentials(role=role, credentials=credentials)
