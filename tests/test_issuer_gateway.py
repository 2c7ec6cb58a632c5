"""Issuer gateway against a mocked HTTP transport."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import json
import httpx
import pytest
from app.errors import ExternalRejectedError, ExternalUnavailableError
from app.services.issuer_gateway import IssuerGateway, is_invalid_credential_id

BASE_URL = "https://issuer.test/api"


def gateway(handler, token="issuer-token"):
    return IssuerGateway(BASE_URL, token, timeout=1.0, transport=httpx.MockTransport(handler))


class TestIssue:
    @pytest.mark.asyncio
    async def test_offer_returned_and_token_sent(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["token"] = request.headers.get("Access-Token")
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"transactionId": "tx-1", "qrCode": "data:image/png;base64,AAA",
                                             "deepLink": "wallet://offer/tx-1"})

        offer = await gateway(handler).issue({"vcUid": "vc", "fields": []})

        assert offer.transaction_id == "tx-1"
        assert offer.deep_link == "wallet://offer/tx-1"
        assert seen == {"path": "/api/qrcode/data", "token": "issuer-token", "body": {"vcUid": "vc", "fields": []}}

    @pytest.mark.asyncio
    async def test_incomplete_response_rejected(self):
        handler = lambda request: httpx.Response(200, json={"transactionId": "tx-1", "qrCode": "qr"})
        with pytest.raises(ExternalRejectedError) as exc_info:
            await gateway(handler).issue({})
        assert exc_info.value.upstream_code == "INVALID_RESPONSE_FORMAT"

    @pytest.mark.asyncio
    async def test_business_error_carries_upstream_code(self):
        handler = lambda request: httpx.Response(400, json={"code": 61001, "message": "bad field"})
        with pytest.raises(ExternalRejectedError) as exc_info:
            await gateway(handler).issue({})
        assert exc_info.value.upstream_code == "61001"
        assert exc_info.value.to_dict()["upstream_code"] == "61001"

    @pytest.mark.asyncio
    async def test_server_error_is_unavailable(self):
        handler = lambda request: httpx.Response(503, text="maintenance")
        with pytest.raises(ExternalUnavailableError):
            await gateway(handler).issue({})

    @pytest.mark.asyncio
    async def test_connection_failure_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ExternalUnavailableError):
            await gateway(handler).issue({})

    @pytest.mark.asyncio
    async def test_missing_token_is_unavailable(self):
        handler = lambda request: httpx.Response(200, json={})
        with pytest.raises(ExternalUnavailableError):
            await gateway(handler, token=None).issue({})


class TestClaimStatus:
    @pytest.mark.asyncio
    async def test_not_yet_claimed_returns_none(self):
        handler = lambda request: httpx.Response(400, json={"code": "61010", "message": "not yet scanned"})
        assert await gateway(handler).claim_status("tx-1") is None

    @pytest.mark.asyncio
    async def test_claimed_returns_jwt(self):
        def handler(request):
            assert request.url.path == "/api/credential/nonce/tx-1"
            return httpx.Response(200, json={"credential": "header.payload.sig"})

        assert await gateway(handler).claim_status("tx-1") == "header.payload.sig"


class TestRevoke:
    @pytest.mark.asyncio
    async def test_returns_credential_status(self):
        def handler(request):
            assert request.method == "POST"
            assert request.url.path == "/api/credential/cid-1/revocation"
            return httpx.Response(200, json={"credentialStatus": "REVOKED"})

        assert await gateway(handler).revoke("cid-1") == "REVOKED"

    @pytest.mark.asyncio
    async def test_invalid_credential_id_detected(self):
        handler = lambda request: httpx.Response(400, json={"code": "61006", "message": "invalid credential id"})
        with pytest.raises(ExternalRejectedError) as exc_info:
            await gateway(handler).revoke("cid-1")
        assert is_invalid_credential_id(exc_info.value)
