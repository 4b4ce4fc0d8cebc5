"""
Confirmation polling for submitted transactions.

Polls signature status at a fixed interval until the requested
commitment (or a stronger one) is reached, the status reports an
execution error, or the deadline passes. A signature the node does not
know yet, and an RPC error while polling, both count as still pending.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

import httpx

from .config import ConfirmationConfig, get_config
from .errors import ConfirmationTimeout, TransactionFailedError
from .logging_utils import SendLogger, get_send_logger
from .models import ConfirmationState
from .solana.client import SolanaRPCError

if TYPE_CHECKING:
    from .solana.client import SolanaClient

logger = logging.getLogger(__name__)

COMMITMENT_RANK = {
    "processed": 0,
    "confirmed": 1,
    "finalized": 2,
}


def commitment_satisfied(observed: Optional[str], target: str) -> bool:
    """True when ``observed`` is at least as strong as ``target``."""
    if observed not in COMMITMENT_RANK:
        return False
    return COMMITMENT_RANK[observed] >= COMMITMENT_RANK.get(target, COMMITMENT_RANK["confirmed"])


@dataclass
class ConfirmationResult:
    """Outcome of waiting for one signature."""
    signature: str
    outcome: ConfirmationState
    reason: Optional[str] = None
    commitment: Optional[str] = None
    timeout_seconds: Optional[float] = None

    @property
    def confirmed(self) -> bool:
        return self.outcome == ConfirmationState.CONFIRMED

    def raise_for_outcome(self) -> None:
        """Raise TransactionFailedError or ConfirmationTimeout unless confirmed."""
        if self.outcome == ConfirmationState.FAILED:
            raise TransactionFailedError(self.signature, self.reason or "unknown error")
        if self.outcome == ConfirmationState.TIMED_OUT:
            raise ConfirmationTimeout(self.signature, self.timeout_seconds or 0.0)


class ConfirmationWatcher:
    """Waits for signatures to reach a commitment level."""

    def __init__(
        self,
        client: "SolanaClient",
        config: Optional[ConfirmationConfig] = None,
        send_logger: Optional[SendLogger] = None,
    ):
        self._client = client
        self._config = config or get_config().confirmation
        self._send_logger = send_logger or get_send_logger()

    async def await_confirmation(
        self,
        signature: str,
        commitment: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ConfirmationResult:
        """
        Wait for a transaction to be confirmed.

        Args:
            signature: Transaction signature
            commitment: Target commitment (default from config)
            timeout: Maximum wait in seconds (default from config)

        Returns:
            ConfirmationResult with CONFIRMED, FAILED or TIMED_OUT
        """
        commitment = commitment or self._config.commitment
        timeout = self._config.timeout_seconds if timeout is None else timeout
        poll_interval = self._config.poll_interval_seconds

        loop = asyncio.get_event_loop()
        deadline = loop.time() + timeout

        while True:
            status = await self._poll(signature)

            if status is not None:
                if status.get("err"):
                    reason = f"Transaction failed: {json.dumps(status['err'])}"
                    self._send_logger.log_transaction_failed(signature, reason)
                    return ConfirmationResult(signature, ConfirmationState.FAILED, reason=reason)

                observed = status.get("confirmationStatus")
                if commitment_satisfied(observed, commitment):
                    self._send_logger.log_transaction_confirmed(signature, observed)
                    return ConfirmationResult(
                        signature, ConfirmationState.CONFIRMED, commitment=observed
                    )

            remaining = deadline - loop.time()
            if remaining <= 0:
                self._send_logger.log_transaction_timed_out(signature, timeout)
                return ConfirmationResult(
                    signature,
                    ConfirmationState.TIMED_OUT,
                    reason=f"confirmation timeout after {timeout:g}s",
                    timeout_seconds=timeout,
                )

            await asyncio.sleep(min(poll_interval, remaining))

    async def _poll(self, signature: str) -> Optional[dict[str, Any]]:
        try:
            statuses = await self._client.get_signature_statuses([signature])
        except (SolanaRPCError, httpx.HTTPError) as e:
            logger.debug("Status poll for %s failed, treating as pending: %s", signature, e)
            return None
        if not statuses:
            return None
        return statuses[0]
