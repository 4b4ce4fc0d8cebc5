"""Solana RPC client wrapper."""
from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..config import MultisendConfig, get_config

logger = logging.getLogger(__name__)


@dataclass
class BlockhashInfo:
    """Latest blockhash and the last block height at which it is valid."""
    blockhash: str
    last_valid_block_height: int


class SolanaClient:
    """Async Solana JSON-RPC client.

    Only the handful of RPC methods the send pipeline needs: account
    lookup, blockhash fetch, raw submission and batched status lookup.
    All methods are called via JSON-RPC 2.0 over httpx.
    """

    def __init__(
        self,
        config: MultisendConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or get_config()
        self._client = http_client or httpx.AsyncClient(
            timeout=self.config.http_timeout_seconds
        )
        self._request_id = 0

    @property
    def rpc_url(self) -> str:
        return self.config.rpc_url

    async def _rpc(self, method: str, params: list[Any] | None = None) -> Any:
        """Make a JSON-RPC call to Solana."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }
        logger.debug("RPC %s (id=%d)", method, self._request_id)
        resp = await self._client.post(self.config.rpc_url, json=payload)
        resp.raise_for_status()
        data = resp.json()
        if "error" in data:
            raise SolanaRPCError(data["error"].get("message", "Unknown RPC error"), data["error"])
        return data.get("result")

    async def get_account_info(self, address: str) -> Optional[dict[str, Any]]:
        """Get an account, or None if it does not exist."""
        result = await self._rpc(
            "getAccountInfo",
            [address, {"encoding": "base64", "commitment": self.config.confirmation.commitment}],
        )
        return result.get("value") if result else None

    async def account_exists(self, address: str) -> bool:
        return await self.get_account_info(address) is not None

    async def get_parsed_account_info(self, address: str) -> Optional[dict[str, Any]]:
        """Get an account with jsonParsed data, or None if it does not exist."""
        result = await self._rpc(
            "getAccountInfo",
            [address, {"encoding": "jsonParsed", "commitment": self.config.confirmation.commitment}],
        )
        return result.get("value") if result else None

    async def get_latest_blockhash(self) -> BlockhashInfo:
        """Get latest blockhash for transaction building."""
        result = await self._rpc(
            "getLatestBlockhash",
            [{"commitment": self.config.submission.blockhash_commitment}],
        )
        value = result["value"]
        return BlockhashInfo(
            blockhash=value["blockhash"],
            last_valid_block_height=int(value["lastValidBlockHeight"]),
        )

    async def send_raw_transaction(self, raw_transaction: bytes) -> str:
        """Send a signed transaction. Returns transaction signature.

        Requests preflight simulation (unless disabled) and lets the node
        rebroadcast up to ``submission.max_retries`` times.
        """
        submission = self.config.submission
        result = await self._rpc(
            "sendTransaction",
            [
                base64.b64encode(raw_transaction).decode("ascii"),
                {
                    "encoding": "base64",
                    "skipPreflight": submission.skip_preflight,
                    "preflightCommitment": submission.preflight_commitment,
                    "maxRetries": submission.max_retries,
                },
            ],
        )
        logger.info("Solana tx sent: %s", result)
        return result

    async def get_signature_statuses(
        self, signatures: list[str]
    ) -> list[Optional[dict[str, Any]]]:
        """Get statuses for a batch of signatures; unknown ones are None."""
        result = await self._rpc("getSignatureStatuses", [signatures])
        return (result or {}).get("value", [])

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()


class SolanaRPCError(Exception):
    """Solana RPC error."""
    def __init__(self, message: str, error_data: dict[str, Any] | None = None):
        super().__init__(message)
        self.error_data = error_data or {}
