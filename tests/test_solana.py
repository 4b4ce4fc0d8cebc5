"""
Tests for sardis_multisend.solana (RPC client and fee sponsor client).

HTTP is faked with httpx.MockTransport.
"""
from __future__ import annotations

import base64
import json

import httpx
import pytest

from sardis_multisend.config import MultisendConfig, SponsorshipConfig, SubmissionConfig
from sardis_multisend.solana.client import BlockhashInfo, SolanaClient, SolanaRPCError
from sardis_multisend.solana.sponsor import (
    FeePayerSponsorClient,
    SponsoredTransaction,
    SponsorshipUnavailable,
)


def rpc_transport(handler):
    """Transport that decodes the JSON-RPC body and returns handler's result."""
    requests = []

    def respond(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        requests.append(body)
        return handler(body)

    return httpx.MockTransport(respond), requests


def make_client(handler, config=None):
    transport, requests = rpc_transport(handler)
    client = SolanaClient(
        config or MultisendConfig(rpc_url="http://rpc.test"),
        http_client=httpx.AsyncClient(transport=transport),
    )
    return client, requests


def ok(body, result):
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})


class TestSolanaClient:
    """Tests for SolanaClient."""

    @pytest.mark.asyncio
    async def test_latest_blockhash(self):
        """Should return blockhash and last valid height."""
        client, requests = make_client(
            lambda body: ok(
                body,
                {"context": {"slot": 1}, "value": {"blockhash": "abc", "lastValidBlockHeight": 150}},
            )
        )

        info = await client.get_latest_blockhash()

        assert info == BlockhashInfo(blockhash="abc", last_valid_block_height=150)
        assert requests[0]["method"] == "getLatestBlockhash"
        assert requests[0]["params"] == [{"commitment": "confirmed"}]
        await client.close()

    @pytest.mark.asyncio
    async def test_send_raw_transaction_options(self):
        """Should base64-encode and request preflight with bounded retries."""
        config = MultisendConfig(
            rpc_url="http://rpc.test",
            submission=SubmissionConfig(skip_preflight=False, preflight_commitment="confirmed", max_retries=3),
        )
        client, requests = make_client(lambda body: ok(body, "5igSig"), config)

        signature = await client.send_raw_transaction(b"\x01\x02\x03")

        assert signature == "5igSig"
        encoded, options = requests[0]["params"]
        assert base64.b64decode(encoded) == b"\x01\x02\x03"
        assert options == {
            "encoding": "base64",
            "skipPreflight": False,
            "preflightCommitment": "confirmed",
            "maxRetries": 3,
        }
        await client.close()

    @pytest.mark.asyncio
    async def test_rpc_error_preserves_error_object(self):
        """Should raise SolanaRPCError carrying the JSON-RPC error."""
        error = {"code": -32002, "message": "Transaction simulation failed: insufficient funds"}
        client, _ = make_client(
            lambda body: httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": error})
        )

        with pytest.raises(SolanaRPCError) as exc_info:
            await client.send_raw_transaction(b"\x00")

        assert "insufficient funds" in str(exc_info.value)
        assert exc_info.value.error_data["code"] == -32002
        await client.close()

    @pytest.mark.asyncio
    async def test_account_exists(self):
        """Should map a null value to a missing account."""
        client, _ = make_client(lambda body: ok(body, {"context": {"slot": 1}, "value": None}))

        assert await client.account_exists("Missing111") is False
        await client.close()

    @pytest.mark.asyncio
    async def test_signature_statuses(self):
        """Should return one entry per signature."""
        client, requests = make_client(
            lambda body: ok(body, {"value": [None, {"confirmationStatus": "finalized", "err": None}]})
        )

        statuses = await client.get_signature_statuses(["a", "b"])

        assert statuses[0] is None
        assert statuses[1]["confirmationStatus"] == "finalized"
        assert requests[0]["params"] == [["a", "b"]]
        await client.close()

    @pytest.mark.asyncio
    async def test_http_error_propagates(self):
        """Should let HTTP status errors propagate."""
        client, _ = make_client(lambda body: httpx.Response(503, text="unavailable"))

        with pytest.raises(httpx.HTTPStatusError):
            await client.get_latest_blockhash()
        await client.close()


def make_sponsor(handler, config=None):
    transport, requests = rpc_transport(handler)
    sponsor = FeePayerSponsorClient(
        config or SponsorshipConfig(enabled=True, rpc_url="http://sponsor.test", policy_id="policy-1"),
        http_client=httpx.AsyncClient(transport=transport),
    )
    return sponsor, requests


class TestFeePayerSponsorClient:
    """Tests for FeePayerSponsorClient."""

    @pytest.mark.asyncio
    async def test_sponsored(self):
        """Should send policy and unsigned bytes and decode the result."""
        sponsored = base64.b64encode(b"countersigned").decode()
        sponsor, requests = make_sponsor(
            lambda body: ok(body, {"serializedTransaction": sponsored})
        )

        result = await sponsor.request_sponsorship(b"unsigned", "Requester111")

        assert result == SponsoredTransaction(transaction_bytes=b"countersigned")
        assert requests[0]["method"] == "alchemy_requestFeePayer"
        assert requests[0]["params"]["policyId"] == "policy-1"
        assert base64.b64decode(requests[0]["params"]["serializedTransaction"]) == b"unsigned"
        await sponsor.close()

    @pytest.mark.asyncio
    async def test_service_error(self):
        """Should return Unavailable with the service's message."""
        sponsor, _ = make_sponsor(
            lambda body: httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -1, "message": "policy exhausted"}},
            )
        )

        result = await sponsor.request_sponsorship(b"unsigned", "Requester111")

        assert isinstance(result, SponsorshipUnavailable)
        assert "policy exhausted" in result.reason

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        """Should return Unavailable when the transaction is missing."""
        sponsor, _ = make_sponsor(lambda body: ok(body, {"somethingElse": True}))

        result = await sponsor.request_sponsorship(b"unsigned", "Requester111")

        assert isinstance(result, SponsorshipUnavailable)
        assert "serializedTransaction" in result.reason

    @pytest.mark.asyncio
    async def test_non_json_response(self):
        """Should return Unavailable for a non-JSON body."""
        sponsor, _ = make_sponsor(lambda body: httpx.Response(502, text="<html>bad gateway</html>"))

        result = await sponsor.request_sponsorship(b"unsigned", "Requester111")

        assert isinstance(result, SponsorshipUnavailable)

    @pytest.mark.asyncio
    async def test_transport_error(self):
        """Should return Unavailable instead of raising on connection errors."""
        def refuse(body):
            raise httpx.ConnectError("connection refused")

        sponsor, _ = make_sponsor(refuse)

        result = await sponsor.request_sponsorship(b"unsigned", "Requester111")

        assert isinstance(result, SponsorshipUnavailable)
        assert "connection refused" in result.reason

    @pytest.mark.asyncio
    async def test_not_configured(self):
        """Should not call out without endpoint and policy."""
        sponsor, requests = make_sponsor(
            lambda body: ok(body, {}), SponsorshipConfig(enabled=True)
        )

        assert sponsor.available is False
        result = await sponsor.request_sponsorship(b"unsigned", "Requester111")

        assert isinstance(result, SponsorshipUnavailable)
        assert requests == []
