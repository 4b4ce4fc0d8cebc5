"""
Receiving-account resolution.

For fungible assets every recipient needs an associated token account
for the mint before it can be credited. The resolver derives each
expected account, checks which exist, and returns the deduplicated
creation work. Native assets need no receiving account.

Existence checks for independent recipients run concurrently, bounded
by ``ResolutionConfig.max_concurrent_lookups``. Check-then-create is not
atomic; creation uses the idempotent instruction so an account created
in between is harmless.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Set

import httpx
from solders.pubkey import Pubkey  # type: ignore
from spl.token.instructions import get_associated_token_address  # type: ignore

from .assets import AssetDescriptor
from .config import ResolutionConfig, get_config
from .errors import InputError, ResolutionError
from .logging_utils import OperationType, SendLogger, get_send_logger
from .models import ReceivingAccountWork, Recipient
from .solana.client import SolanaRPCError

if TYPE_CHECKING:
    from .solana.client import SolanaClient

logger = logging.getLogger(__name__)


def derive_receiving_account(owner: Pubkey, asset: AssetDescriptor) -> Pubkey:
    """Associated token account of ``owner`` for the asset's mint and program."""
    if asset.mint is None:
        raise InputError("Native assets have no receiving account")
    return get_associated_token_address(
        owner, asset.mint, token_program_id=asset.owner_program_id
    )


@dataclass
class ResolutionResult:
    """Recipients split by whether their receiving account exists."""
    existing: Set[str] = field(default_factory=set)
    to_create: List[ReceivingAccountWork] = field(default_factory=list)
    source_account: Optional[Pubkey] = None

    @property
    def existing_count(self) -> int:
        return len(self.existing)

    @property
    def to_create_count(self) -> int:
        return len(self.to_create)


class AccountResolver:
    """Determines which receiving accounts must be created."""

    def __init__(
        self,
        client: "SolanaClient",
        config: Optional[ResolutionConfig] = None,
        send_logger: Optional[SendLogger] = None,
    ):
        self._client = client
        self._config = config or get_config().resolution
        self._send_logger = send_logger or get_send_logger()

    async def resolve(
        self,
        owner: Pubkey,
        recipients: Sequence[Recipient],
        asset: AssetDescriptor,
    ) -> ResolutionResult:
        """Partition recipients into existing and to-create.

        Raises:
            InputError: If the sender has no source account for the mint.
            ResolutionError: If existence checks keep failing after retries.
        """
        if asset.is_native:
            return ResolutionResult(existing={r.address for r in recipients})

        async with self._send_logger.operation_context(
            OperationType.ACCOUNT_RESOLUTION, asset.label, recipients=len(recipients)
        ) as ctx:
            source = derive_receiving_account(owner, asset)
            if not await self._exists_with_retry(source):
                raise InputError(
                    f"Sender {owner} has no {asset.label} token account ({source})"
                )

            # One derivation per distinct recipient, first occurrence wins
            derived: Dict[Pubkey, str] = {}
            for r in recipients:
                account = derive_receiving_account(Pubkey.from_string(r.address), asset)
                derived.setdefault(account, r.address)

            semaphore = asyncio.Semaphore(max(1, self._config.max_concurrent_lookups))

            async def check(account: Pubkey) -> bool:
                async with semaphore:
                    return await self._exists_with_retry(account)

            accounts = list(derived)
            found = await asyncio.gather(*(check(a) for a in accounts))

            result = ResolutionResult(source_account=source)
            existing_accounts = {a for a, ok in zip(accounts, found) if ok}
            for account in accounts:
                if account not in existing_accounts:
                    result.to_create.append(
                        ReceivingAccountWork(
                            recipient=derived[account],
                            derived_account=account,
                            mint=asset.mint,
                        )
                    )
            create_owners = {w.recipient for w in result.to_create}
            result.existing = {
                r.address for r in recipients if r.address not in create_owners
            }

            ctx.metadata["existing"] = result.existing_count
            ctx.metadata["to_create"] = result.to_create_count
            logger.info(
                f"{asset.label}: {result.existing_count} receiving accounts exist, "
                f"{result.to_create_count} to create"
            )
            return result

    async def all_exist(self, accounts: Sequence[Pubkey]) -> bool:
        """Re-check a set of accounts, e.g. after a failed creation batch."""
        found = await asyncio.gather(*(self._exists_with_retry(a) for a in accounts))
        return all(found)

    async def _exists_with_retry(self, account: Pubkey) -> bool:
        attempts = max(1, self._config.max_retries)
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            try:
                return await self._client.account_exists(str(account))
            except (SolanaRPCError, httpx.HTTPError) as e:
                last_error = e
                logger.warning(
                    "Account lookup for %s failed (attempt %d/%d): %s",
                    account, attempt, attempts, e,
                )
                if attempt < attempts:
                    await asyncio.sleep(self._config.retry_delay_seconds)
        raise ResolutionError(
            f"Could not check account {account} after {attempts} attempts: {last_error}",
            account=str(account),
            attempts=attempts,
        )
