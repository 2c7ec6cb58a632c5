# app/services/claim_validator.py
"""
Validates and normalizes the claim set sent to the issuer.

Each claim is checked against a declared rule (required, max length, pattern or
predicate). Every failing field is collected; a single ValidationError lists
them all. On success the normalized claims are returned in declaration order,
with the reservation id reduced to the issuer's alphanumeric form.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional
from app.errors import ValidationError

CLAIM_DATETIME_FORMAT = "%Y%m%dT%H%M"
CLAIM_DATE_FORMAT = "%Y%m%d"

_ID_NUMBER = re.compile(r"[A-Z][12][0-9]{8}")
_NAME = re.compile(r"[\u4e00-\u9fa5a-zA-Z0-9_]+")
_ASCII_TITLE = re.compile(r"[a-zA-Z0-9_]+")
_ALNUM = re.compile(r"[a-zA-Z0-9]+")
_UUID = re.compile(r"[a-fA-F0-9]{8}-[a-fA-F0-9]{4}-[a-fA-F0-9]{4}-[a-fA-F0-9]{4}-[a-fA-F0-9]{12}")
_EMAIL = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
_CLAIM_DATETIME = re.compile(r"[0-9]{8}T[0-9]{4}")
_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")

RESERVATION_SHORT_ID_LENGTH = 30
HOLDER_SHORT_ID_LENGTH = 20


@dataclass(frozen=True)
class ClaimRule:
    required: bool
    message: str
    max_length: Optional[int] = None
    pattern: Optional[re.Pattern] = None
    predicate: Optional[Callable[[str], bool]] = None
    normalize: Optional[Callable[[str], str]] = None

    def check(self, value: str) -> bool:
        if self.pattern is not None and not self.pattern.fullmatch(value):
            return False
        if self.predicate is not None and not self.predicate(value):
            return False
        return True


def is_claim_datetime(value: str) -> bool:
    """YYYYMMDDThhmm that is also a real calendar instant."""
    if not _CLAIM_DATETIME.fullmatch(value):
        return False
    try:
        datetime.strptime(value, CLAIM_DATETIME_FORMAT)
    except ValueError:
        return False
    return True


def alphanumeric(value: str, limit: Optional[int] = None) -> str:
    stripped = _NON_ALNUM.sub("", value or "")
    return stripped[:limit] if limit else stripped


def reservation_short_id(reservation_id: str) -> str:
    """UUID text form → the bare alphanumeric form the issuer accepts."""
    return alphanumeric(reservation_id, RESERVATION_SHORT_ID_LENGTH)


def holder_short_id(holder_id: str) -> str:
    return alphanumeric(holder_id, HOLDER_SHORT_ID_LENGTH)


def format_claim_datetime(value: datetime) -> str:
    return value.strftime(CLAIM_DATETIME_FORMAT)


def parse_claim_datetime(value: str) -> Optional[datetime]:
    if not value or not is_claim_datetime(value):
        return None
    return datetime.strptime(value, CLAIM_DATETIME_FORMAT)


def format_claim_date(value: datetime) -> str:
    return value.strftime(CLAIM_DATE_FORMAT)


CLAIM_RULES: dict[str, ClaimRule] = {
    # Identity, required
    "id_number": ClaimRule(True, "identity number must be one letter followed by 9 digits starting with 1 or 2",
                           pattern=_ID_NUMBER),
    "name": ClaimRule(True, "name may only contain letters, digits, underscore and CJK characters",
                      max_length=50, pattern=_NAME),
    # Stay, required
    "member_serial": ClaimRule(True, "member serial must be alphanumeric", max_length=20, pattern=_ALNUM),
    "checkin_time": ClaimRule(True, "check-in time must be a valid YYYYMMDDThhmm", predicate=is_claim_datetime),
    "checkout_time": ClaimRule(True, "check-out time must be a valid YYYYMMDDThhmm", predicate=is_claim_datetime),
    "booking_id": ClaimRule(True, "reservation id must be a UUID", max_length=36, pattern=_UUID,
                            normalize=reservation_short_id),
    "room_num": ClaimRule(True, "room number must be alphanumeric", max_length=10, pattern=_ALNUM),
    "nonce": ClaimRule(True, "nonce must be alphanumeric", max_length=32, pattern=_ALNUM),
    # Optional. The issuer rejects non-ASCII titles
    "email": ClaimRule(False, "email address is malformed", max_length=100, pattern=_EMAIL),
    "booking_title": ClaimRule(False, "title may only contain ASCII letters, digits and underscore",
                               max_length=50, pattern=_ASCII_TITLE),
    "issued_date": ClaimRule(False, "issued date must be alphanumeric", max_length=20, pattern=_ALNUM),
}


def _field_error(field: str, reason: str) -> dict:
    return {"field": field, "reason": reason}


def validate_claims(claims: dict[str, Optional[str]]) -> dict[str, str]:
    """
    Validate every claim and return the normalized set.
    Raises ValidationError whose details enumerate each failing field.
    """
    errors: list[dict] = []
    normalized: dict[str, str] = {}

    for field in claims:
        if field not in CLAIM_RULES:
            errors.append(_field_error(field, "unknown field"))

    for field, rule in CLAIM_RULES.items():
        value = claims.get(field)
        if value is None or not value.strip():
            if rule.required:
                errors.append(_field_error(field, "required"))
            elif field in claims:
                normalized[field] = value or ""
            continue

        if rule.max_length is not None and len(value) > rule.max_length:
            errors.append(_field_error(field, f"longer than {rule.max_length} characters"))
            continue
        if not rule.check(value):
            errors.append(_field_error(field, rule.message))
            continue

        normalized[field] = rule.normalize(value) if rule.normalize else value

    if errors:
        failing = ", ".join(e["field"] for e in errors)
        raise ValidationError(f"Claim validation failed: {failing}", details=errors)
    return normalized
