# app/utils/credential_token.py
"""
Reads the two facts the engine needs from the issuer's credential JWT:
the credential identifier (last segment of `jti`) and its expiry (`exp`).
The signature is not checked here; the issuer and verifier own that.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import jwt

_CID_FROM_JTI = re.compile(r"/credential/([a-f0-9-]+)$", re.IGNORECASE)


@dataclass
class CredentialTokenInfo:
    credential_id: Optional[str]
    expires_at: Optional[datetime]


def extract_credential_id(jti) -> Optional[str]:
    if not isinstance(jti, str):
        return None
    match = _CID_FROM_JTI.search(jti)
    return match.group(1) if match else None


def parse_credential_token(token: str) -> Optional[CredentialTokenInfo]:
    """Returns None when the token is not a decodable JWT or its exp is out of range."""
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return None

    expires_at = None
    exp = payload.get("exp")
    if isinstance(exp, (int, float)):
        try:
            expires_at = datetime.fromtimestamp(exp, tz=timezone.utc).replace(tzinfo=None)
        except (OverflowError, ValueError, OSError):
            return None

    return CredentialTokenInfo(
        credential_id=extract_credential_id(payload.get("jti")),
        expires_at=expires_at,
    )
