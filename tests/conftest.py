"""
Pytest configuration for sardis-multisend tests.
"""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add package source to path
package_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(package_src))

from solders.hash import Hash  # type: ignore  # noqa: E402
from solders.keypair import Keypair  # type: ignore  # noqa: E402
from solders.pubkey import Pubkey  # type: ignore  # noqa: E402

from sardis_multisend.assets import AssetDescriptor  # noqa: E402
from sardis_multisend.config import (  # noqa: E402
    ConfirmationConfig,
    LoggingConfig,
    MultisendConfig,
    PacingConfig,
    ResolutionConfig,
    SponsorshipConfig,
)
from sardis_multisend.logging_utils import SendLogger  # noqa: E402
from sardis_multisend.signer import KeypairSigner  # noqa: E402
from sardis_multisend.solana.client import BlockhashInfo, SolanaRPCError  # noqa: E402
from sardis_multisend.solana.sponsor import (  # noqa: E402
    SponsoredTransaction,
    SponsorshipUnavailable,
)

CONFIRMED = {"confirmationStatus": "confirmed", "err": None, "slot": 1}


class FakeSolanaClient:
    """In-memory stand-in for SolanaClient."""

    def __init__(self) -> None:
        self.existing_accounts: set[str] = set()
        self.parsed_accounts: Dict[str, dict] = {}
        self.sent: List[bytes] = []
        self.signatures: List[str] = []
        # signature -> list of statuses returned on successive polls
        self.statuses: Dict[str, List[Optional[dict]]] = {}
        self.default_status: Optional[dict] = CONFIRMED
        self.submit_errors: List[Exception] = []
        self.lookup_errors: List[Exception] = []
        self.lookups: List[str] = []
        self.on_submit = None

    async def account_exists(self, address: str) -> bool:
        self.lookups.append(address)
        if self.lookup_errors:
            raise self.lookup_errors.pop(0)
        return address in self.existing_accounts

    async def get_account_info(self, address: str) -> Optional[dict]:
        return {"lamports": 1} if await self.account_exists(address) else None

    async def get_parsed_account_info(self, address: str) -> Optional[dict]:
        return self.parsed_accounts.get(address)

    async def get_latest_blockhash(self) -> BlockhashInfo:
        return BlockhashInfo(blockhash=str(Hash.new_unique()), last_valid_block_height=1000)

    async def send_raw_transaction(self, raw: bytes) -> str:
        if self.submit_errors:
            raise self.submit_errors.pop(0)
        self.sent.append(raw)
        signature = f"sig{len(self.sent)}"
        self.signatures.append(signature)
        if self.on_submit is not None:
            self.on_submit(signature, raw)
        return signature

    async def get_signature_statuses(self, signatures: List[str]) -> List[Optional[dict]]:
        result = []
        for signature in signatures:
            queue = self.statuses.get(signature)
            if queue:
                status = queue.pop(0) if len(queue) > 1 else queue[0]
            else:
                status = self.default_status
            if isinstance(status, Exception):
                raise status
            result.append(status)
        return result

    async def close(self) -> None:
        pass


class FakeSponsor:
    """Fee sponsor that echoes the transaction back or declines."""

    def __init__(self, reason: Optional[str] = None) -> None:
        self.reason = reason
        self.requests: List[bytes] = []

    @property
    def available(self) -> bool:
        return True

    async def request_sponsorship(self, unsigned_tx: bytes, requester: str):
        self.requests.append(unsigned_tx)
        if self.reason is not None:
            return SponsorshipUnavailable(self.reason)
        return SponsoredTransaction(transaction_bytes=unsigned_tx)


@pytest.fixture
def fast_config() -> MultisendConfig:
    """Configuration with no pacing and short confirmation waits."""
    return MultisendConfig(
        rpc_url="http://localhost:8899",
        resolution=ResolutionConfig(max_retries=3, retry_delay_seconds=0, max_concurrent_lookups=4),
        confirmation=ConfirmationConfig(
            commitment="confirmed", poll_interval_seconds=0.01, timeout_seconds=0.2
        ),
        pacing=PacingConfig(
            creation_batch_delay_seconds=0,
            transfer_batch_delay_seconds=0,
            post_creation_delay_seconds=0,
        ),
        sponsorship=SponsorshipConfig(enabled=False),
    )


@pytest.fixture
def send_logger() -> SendLogger:
    return SendLogger(config=LoggingConfig())


@pytest.fixture
def fake_client() -> FakeSolanaClient:
    return FakeSolanaClient()


@pytest.fixture
def sender_keypair() -> Keypair:
    return Keypair()


@pytest.fixture
def signer(sender_keypair) -> KeypairSigner:
    return KeypairSigner(sender_keypair)


@pytest.fixture
def usdc() -> AssetDescriptor:
    """A 6-decimal token on the classic token program."""
    return AssetDescriptor.fungible(str(Pubkey.new_unique()), 6, symbol="USDC")


def make_addresses(count: int) -> List[str]:
    return [str(Pubkey.new_unique()) for _ in range(count)]


def rpc_error(message: str = "RPC unavailable") -> SolanaRPCError:
    return SolanaRPCError(message, {"code": -32005, "message": message})
