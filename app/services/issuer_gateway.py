# app/services/issuer_gateway.py
"""
Thin client for the external credential issuer.

  POST /qrcode/data                         → create a credential offer
  GET  /credential/nonce/{transactionId}    → claim status (JWT once the wallet claimed it)
  POST /credential/{credentialId}/revocation → revoke a claimed credential

Stateless, no retries. Business error codes come back as ExternalRejectedError.
"""

from dataclasses import dataclass
from typing import Optional

import httpx

from app.config import settings
from app.errors import ExternalRejectedError
from app.utils.http_client import send, error_code
from app.utils.json_parser import get_nested
from app.utils.logger import get_logger

logger = get_logger(__name__)

SERVICE = "issuer"

CODE_NOT_YET_CLAIMED = "61010"
CODE_INVALID_CREDENTIAL_ID = "61006"


@dataclass
class IssuedOffer:
    transaction_id: str
    qr_code: str
    deep_link: str


class IssuerGateway:
    def __init__(
        self,
        base_url: str,
        access_token: Optional[str],
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.access_token = access_token
        self.timeout = timeout
        self.transport = transport

    async def _send(self, method: str, path: str, payload: Optional[dict] = None) -> tuple[int, dict]:
        return await send(
            service=SERVICE, method=method, base_url=self.base_url, path=path,
            token=self.access_token, timeout=self.timeout, payload=payload, transport=self.transport,
        )

    async def issue(self, request: dict) -> IssuedOffer:
        """`request` is {vcUid, issuanceDate, expiredDate, fields: [{ename, content}]}."""
        status, body = await self._send("POST", "/qrcode/data", request)
        if status >= 400:
            raise _rejected("credential creation", status, body)

        offer = IssuedOffer(
            transaction_id=body.get("transactionId") or "",
            qr_code=body.get("qrCode") or "",
            deep_link=body.get("deepLink") or "",
        )
        if not (offer.transaction_id and offer.qr_code and offer.deep_link):
            logger.error(f"[issuer] incomplete create-credential response: keys={sorted(body)}")
            raise ExternalRejectedError("Issuer response is missing transactionId, qrCode or deepLink",
                                        upstream_code="INVALID_RESPONSE_FORMAT")
        logger.info(f"[issuer] offer created tx={offer.transaction_id}")
        return offer

    async def claim_status(self, transaction_id: str) -> Optional[str]:
        """The credential JWT once claimed, or None while the QR has not been scanned."""
        status, body = await self._send("GET", f"/credential/nonce/{transaction_id}")
        if status >= 400:
            if error_code(body) == CODE_NOT_YET_CLAIMED:
                return None
            raise _rejected("claim status", status, body)

        credential = body.get("credential")
        if not credential:
            raise ExternalRejectedError("Issuer claim-status response has no credential",
                                        upstream_code="INVALID_RESPONSE_FORMAT")
        return credential

    async def revoke(self, credential_id: str) -> str:
        """Returns the issuer's credentialStatus (e.g. REVOKED)."""
        status, body = await self._send("POST", f"/credential/{credential_id}/revocation")
        if status >= 400:
            raise _rejected("revocation", status, body)
        credential_status = body.get("credentialStatus") or "REVOKED"
        logger.info(f"[issuer] revoked cid={credential_id} status={credential_status}")
        return credential_status


def _rejected(action: str, status: int, body: dict) -> ExternalRejectedError:
    code = error_code(body)
    message = get_nested(body, "message", default="unknown error")
    logger.warning(f"[issuer] {action} rejected: HTTP {status} code={code} {message}")
    return ExternalRejectedError(f"Issuer rejected {action}: {message}", upstream_code=code,
                                 details={"status": status})


def is_invalid_credential_id(error: ExternalRejectedError) -> bool:
    return error.upstream_code == CODE_INVALID_CREDENTIAL_ID


def get_issuer_gateway() -> IssuerGateway:
    """FastAPI dependency: gateway configured from settings."""
    return IssuerGateway(settings.ISSUER_API_URL, settings.ISSUER_ACCESS_TOKEN, settings.HTTP_TIMEOUT_SECONDS)
