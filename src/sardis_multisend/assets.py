"""Asset descriptors: which instruction family and account rule applies."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

from solders.pubkey import Pubkey  # type: ignore
from solders.system_program import ID as SYSTEM_PROGRAM_ID  # type: ignore
from spl.token.constants import TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID  # type: ignore

from .addresses import is_valid_address, short_address
from .errors import InputError

if TYPE_CHECKING:
    from .solana.client import SolanaClient

logger = logging.getLogger(__name__)

NATIVE_DECIMALS = 9  # lamports per SOL
NATIVE_SYMBOL = "SOL"

TOKEN_PROGRAMS = {
    str(TOKEN_PROGRAM_ID): TOKEN_PROGRAM_ID,
    str(TOKEN_2022_PROGRAM_ID): TOKEN_2022_PROGRAM_ID,
}


class AssetKind(str, Enum):
    """Instruction family of an asset."""
    NATIVE = "native"
    FUNGIBLE = "fungible"


@dataclass(frozen=True)
class AssetDescriptor:
    """An asset to distribute."""
    kind: AssetKind
    decimals: int
    owner_program_id: Pubkey
    mint: Optional[Pubkey] = None
    symbol: Optional[str] = None  # display only

    @classmethod
    def native(cls) -> "AssetDescriptor":
        return cls(
            kind=AssetKind.NATIVE,
            decimals=NATIVE_DECIMALS,
            owner_program_id=SYSTEM_PROGRAM_ID,
            symbol=NATIVE_SYMBOL,
        )

    @classmethod
    def fungible(
        cls,
        mint: str,
        decimals: int,
        program_id: Pubkey = TOKEN_PROGRAM_ID,
        symbol: Optional[str] = None,
    ) -> "AssetDescriptor":
        if not is_valid_address(mint):
            raise InputError(f"Invalid token mint address: {mint!r}")
        if decimals < 0:
            raise InputError(f"Token decimals must be non-negative, got {decimals}")
        return cls(
            kind=AssetKind.FUNGIBLE,
            decimals=decimals,
            owner_program_id=program_id,
            mint=Pubkey.from_string(mint),
            symbol=symbol,
        )

    @property
    def is_native(self) -> bool:
        return self.kind == AssetKind.NATIVE

    @property
    def label(self) -> str:
        """Human-readable name used in status messages."""
        if self.symbol:
            return self.symbol
        if self.mint is not None:
            return short_address(str(self.mint))
        return NATIVE_SYMBOL


async def load_fungible_asset(
    client: "SolanaClient",
    mint: str,
    symbol: Optional[str] = None,
) -> AssetDescriptor:
    """Read a mint account and build its descriptor.

    Detects whether the mint belongs to the classic token program or
    Token-2022, and reads its decimals.

    Raises:
        InputError: If the address is not a mint owned by a token program.
    """
    if not is_valid_address(mint):
        raise InputError(f"Invalid token mint address: {mint!r}")

    account = await client.get_parsed_account_info(mint)
    if account is None:
        raise InputError(f"Token mint {mint} not found")

    program = TOKEN_PROGRAMS.get(account.get("owner", ""))
    data = account.get("data")
    parsed = data.get("parsed", {}) if isinstance(data, dict) else {}
    if program is None or parsed.get("type") != "mint":
        raise InputError(f"Account {mint} is not a token mint")

    decimals = int(parsed["info"]["decimals"])
    logger.debug("Loaded mint %s: decimals=%d, program=%s", mint, decimals, program)
    return AssetDescriptor.fungible(mint, decimals, program_id=program, symbol=symbol)
