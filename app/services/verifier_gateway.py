# app/services/verifier_gateway.py
"""
Thin client for the external verifier.

  GET  /oidvp/qrcode?ref=...&transactionId=...  → presentation request QR
  POST /oidvp/result {transactionId}             → presented claims, once a wallet answered
"""

from dataclasses import dataclass, field
from typing import Optional

import httpx

from app.config import settings
from app.errors import ExternalRejectedError
from app.utils.http_client import send, error_code
from app.utils.json_parser import get_nested, flatten_presented_claims
from app.utils.logger import get_logger

logger = get_logger(__name__)

SERVICE = "verifier"


@dataclass
class Challenge:
    transaction_id: str
    qr_image: str
    auth_uri: Optional[str] = None


@dataclass
class Presentation:
    verified: bool
    description: str = ""
    claims: dict[str, str] = field(default_factory=dict)


class VerifierGateway:
    def __init__(
        self,
        base_url: str,
        access_token: Optional[str],
        ref: str,
        pending_codes: Optional[list[str]] = None,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.access_token = access_token
        self.ref = ref
        self.pending_codes = set(pending_codes or [])
        self.timeout = timeout
        self.transport = transport

    async def create_challenge(self, transaction_id: str) -> Challenge:
        status, body = await send(
            service=SERVICE, method="GET", base_url=self.base_url, path="/oidvp/qrcode",
            token=self.access_token, timeout=self.timeout, transport=self.transport,
            params={"ref": self.ref, "transactionId": transaction_id},
        )
        if status >= 400:
            raise _rejected("presentation request", status, body)

        qr_image = body.get("qrcodeImage")
        if not qr_image:
            raise ExternalRejectedError("Verifier response has no qrcodeImage", upstream_code="INVALID_RESPONSE_FORMAT")
        return Challenge(transaction_id=transaction_id, qr_image=qr_image, auth_uri=body.get("authUri"))

    async def fetch_result(self, transaction_id: str) -> Optional[Presentation]:
        """Presented claims, or None while no wallet has answered the request."""
        status, body = await send(
            service=SERVICE, method="POST", base_url=self.base_url, path="/oidvp/result",
            token=self.access_token, timeout=self.timeout, transport=self.transport,
            payload={"transactionId": transaction_id},
        )
        if status >= 400:
            if error_code(body) in self.pending_codes:
                return None
            raise _rejected("result fetch", status, body)

        return Presentation(
            verified=bool(body.get("verifyResult")),
            description=body.get("resultDescription") or "",
            claims=flatten_presented_claims(body),
        )


def _rejected(action: str, status: int, body: dict) -> ExternalRejectedError:
    code = error_code(body)
    message = get_nested(body, "message", default="unknown error")
    logger.warning(f"[verifier] {action} rejected: HTTP {status} code={code} {message}")
    return ExternalRejectedError(f"Verifier rejected {action}: {message}", upstream_code=code,
                                 details={"status": status})


def get_verifier_gateway() -> VerifierGateway:
    """FastAPI dependency: gateway configured from settings."""
    return VerifierGateway(
        settings.VERIFIER_API_URL,
        settings.VERIFIER_ACCESS_TOKEN,
        settings.VERIFIER_REF,
        settings.VERIFIER_PENDING_CODES,
        settings.HTTP_TIMEOUT_SECONDS,
    )
