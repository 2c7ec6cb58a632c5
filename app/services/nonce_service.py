# app/services/nonce_service.py
"""
Deterministic 4-character disambiguator for a (reservation, holder, issuance date).
Same inputs always give the same nonce; uniqueness per reservation is enforced
by the credentials table, not here.
"""

import hashlib

NONCE_LENGTH = 4


def generate_nonce(reservation_id: str, holder_id: str, issued_date: str) -> str:
    digest = hashlib.sha256(f"{reservation_id}{holder_id}{issued_date}".encode("utf-8")).hexdigest()
    return digest[-NONCE_LENGTH:].upper()
