"""Fee sponsorship via a third-party fee payer service.

The sponsor receives a serialized, unsigned transaction and returns it
countersigned by its own fee payer. The caller still signs for any
instructions it authorizes before submitting.
"""
from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Protocol, Union

import httpx

from ..config import SponsorshipConfig, get_config

logger = logging.getLogger(__name__)


@dataclass
class SponsoredTransaction:
    """A transaction countersigned by the sponsor as fee payer."""
    transaction_bytes: bytes


@dataclass
class SponsorshipUnavailable:
    """The sponsor declined or could not be reached."""
    reason: str


SponsorshipResult = Union[SponsoredTransaction, SponsorshipUnavailable]


class FeeSponsor(Protocol):
    """Anything that can countersign a transaction as fee payer."""

    @property
    def available(self) -> bool:
        ...

    async def request_sponsorship(
        self, unsigned_tx: bytes, requester: str
    ) -> SponsorshipResult:
        ...


class FeePayerSponsorClient:
    """Client for a JSON-RPC fee payer service (``alchemy_requestFeePayer``).

    Never raises on service problems: transport errors, malformed
    responses and explicit service errors all come back as
    ``SponsorshipUnavailable`` with a readable reason.
    """

    def __init__(
        self,
        config: SponsorshipConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or get_config().sponsorship
        self._client = http_client or httpx.AsyncClient(timeout=self.config.timeout_seconds)
        self._request_id = 0

    @property
    def available(self) -> bool:
        """Check if the sponsor endpoint and policy are configured."""
        return self.config.configured

    async def request_sponsorship(
        self, unsigned_tx: bytes, requester: str
    ) -> SponsorshipResult:
        """Request the sponsor to co-sign as fee payer.

        Args:
            unsigned_tx: Serialized transaction without signatures.
            requester: Public key of the sender, for logging only.
        """
        if not self.available:
            return SponsorshipUnavailable("sponsorship endpoint or policy not configured")

        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": self.config.method,
            "params": {
                "policyId": self.config.policy_id,
                "serializedTransaction": base64.b64encode(unsigned_tx).decode("ascii"),
            },
        }
        logger.info("Requesting fee sponsorship for %s", requester)

        try:
            resp = await self._client.post(self.config.rpc_url, json=payload)
            data = resp.json()
        except httpx.HTTPError as e:
            return self._unavailable(f"transport error: {e}")
        except ValueError:
            return self._unavailable(f"non-JSON response (HTTP {resp.status_code})")

        if not isinstance(data, dict):
            return self._unavailable("malformed response")

        if data.get("error"):
            return self._unavailable(f"service error: {_error_message(data['error'])}")

        if resp.status_code != 200:
            return self._unavailable(f"HTTP {resp.status_code}")

        result = data.get("result")
        encoded = result.get("serializedTransaction") if isinstance(result, dict) else None
        if not encoded:
            return self._unavailable("response missing serializedTransaction")

        try:
            tx_bytes = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError):
            return self._unavailable("serializedTransaction is not valid base64")

        logger.info("Fee sponsorship granted for %s", requester)
        return SponsoredTransaction(transaction_bytes=tx_bytes)

    @staticmethod
    def _unavailable(reason: str) -> SponsorshipUnavailable:
        logger.warning("Fee sponsorship unavailable: %s", reason)
        return SponsorshipUnavailable(reason)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error)
    return str(error)
