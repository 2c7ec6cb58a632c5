# app/utils/http_client.py
"""
Single-request HTTP helper shared by the issuer and verifier gateways.

One blocking round trip per call, no retries. Transport failures, timeouts and
5xx answers become ExternalUnavailableError; every other response is handed
back as (status_code, parsed_json_or_empty_dict) for the gateway to interpret.
"""

from typing import Any, Optional

import httpx

from app.errors import ExternalUnavailableError
from app.utils.json_parser import safe_parse_json, get_nested
from app.utils.logger import get_logger

logger = get_logger(__name__)


async def send(
    *,
    service: str,
    method: str,
    base_url: str,
    path: str,
    token: Optional[str],
    timeout: float,
    payload: Optional[dict] = None,
    params: Optional[dict] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> tuple[int, dict]:
    if not token:
        raise ExternalUnavailableError(f"{service} access token is not configured")

    headers = {"Content-Type": "application/json", "Access-Token": token}
    query = {k: v for k, v in (params or {}).items() if v is not None}

    try:
        async with httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport) as client:
            response = await client.request(method, path, json=payload, params=query or None, headers=headers)
    except httpx.TimeoutException as e:
        logger.warning(f"[{service}] {method} {path} timed out: {e}")
        raise ExternalUnavailableError(f"{service} timed out") from e
    except httpx.TransportError as e:
        logger.warning(f"[{service}] {method} {path} unreachable: {e}")
        raise ExternalUnavailableError(f"{service} unreachable") from e

    body: dict[str, Any] = safe_parse_json(response.content) or {}
    if response.status_code >= 500:
        logger.warning(f"[{service}] {method} {path} → HTTP {response.status_code} {body}")
        raise ExternalUnavailableError(
            f"{service} server error: {get_nested(body, 'message', default=response.reason_phrase)}",
            details={"status": response.status_code, "code": get_nested(body, "code")},
        )

    logger.debug(f"[{service}] {method} {path} → HTTP {response.status_code}")
    return response.status_code, body


def error_code(body: dict) -> Optional[str]:
    code = get_nested(body, "code")
    return str(code) if code is not None else None
