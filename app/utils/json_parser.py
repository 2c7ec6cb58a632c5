"""
Helpers for reading issuer/verifier JSON bodies.
Error bodies are not always JSON, so parsing never raises.
"""

import json
from typing import Optional, Any


def safe_parse_json(raw_body: bytes) -> Optional[dict]:
    """Parse JSON bytes safely. Returns None on error or when the body is not an object."""
    try:
        data = json.loads(raw_body.decode("utf-8", errors="replace"))
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None


def get_nested(data: dict, *keys: str, default: Any = None) -> Any:
    """Safely navigate nested dict keys. Returns default if any key is missing."""
    current = data
    for key in keys:
        if not isinstance(current, dict):
            return default
        current = current.get(key, default)
        if current is default:
            return default
    return current


def flatten_presented_claims(result: dict) -> dict[str, str]:
    """
    Collapse the verifier's `data: [{credentialType, claims: [{ename, value}]}]`
    into a single {ename: value} map. Later credentials do not override earlier ones.
    """
    claims: dict[str, str] = {}
    for credential in result.get("data") or []:
        if not isinstance(credential, dict):
            continue
        for claim in credential.get("claims") or []:
            name = get_nested(claim, "ename")
            if name and name not in claims:
                value = get_nested(claim, "value", default="")
                claims[name] = "" if value is None else str(value)
    return claims
