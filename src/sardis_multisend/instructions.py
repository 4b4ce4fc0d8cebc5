"""
Instruction building for transfer and account-creation batches.

Amounts are converted from decimal strings to the smallest integer unit
with ``Decimal`` arithmetic, rounding half up at the asset's precision.
This conversion is the single source of truth for on-chain amounts:

    to_smallest_units("1.5", 9)          -> 1_500_000_000
    to_smallest_units("0.000000001", 9)  -> 1
    to_smallest_units("0.0000000015", 9) -> 2

Fungible transfers use the checked transfer instruction, which carries
the decimals so the network rejects a mismatch with the mint.

Nothing here touches the network.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import List, Optional, Sequence

from solders.hash import Hash  # type: ignore
from solders.instruction import Instruction  # type: ignore
from solders.message import Message  # type: ignore
from solders.pubkey import Pubkey  # type: ignore
from solders.system_program import TransferParams, transfer  # type: ignore
from solders.transaction import Transaction  # type: ignore
from spl.token.instructions import (  # type: ignore
    TransferCheckedParams,
    create_idempotent_associated_token_account,
    transfer_checked,
)

from .accounts import derive_receiving_account
from .assets import AssetDescriptor
from .errors import InputError
from .models import Batch, ReceivingAccountWork

logger = logging.getLogger(__name__)

# Token and lamport amounts are u64 on chain.
MAX_UNITS = 2**64 - 1


def to_smallest_units(amount: str, decimals: int) -> int:
    """Convert a decimal amount string to integer smallest units.

    Raises:
        InputError: If the amount is not a finite, non-negative decimal,
            or does not fit in an unsigned 64-bit amount.
    """
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError) as e:
        raise InputError(f"Invalid amount: {amount!r}") from e
    if not value.is_finite() or value < 0:
        raise InputError(f"Invalid amount: {amount!r}")
    try:
        units = int(value.scaleb(decimals).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    except ArithmeticError as e:
        raise InputError(f"Amount too large: {amount!r}") from e
    if units > MAX_UNITS:
        raise InputError(f"Amount too large: {amount!r} exceeds {MAX_UNITS} smallest units")
    return units


@dataclass
class UnsignedTransaction:
    """Instructions plus the default fee payer, not yet bound to a blockhash."""
    instructions: List[Instruction]
    fee_payer: Pubkey
    description: str = ""
    accounts_touched: List[Pubkey] = field(default_factory=list)

    @property
    def instruction_count(self) -> int:
        return len(self.instructions)

    def to_message(self, blockhash: Hash, fee_payer: Optional[Pubkey] = None) -> Message:
        return Message.new_with_blockhash(
            self.instructions, fee_payer or self.fee_payer, blockhash
        )

    def to_transaction(self, blockhash: Hash, fee_payer: Optional[Pubkey] = None) -> Transaction:
        """Build a transaction with empty signature slots."""
        return Transaction.new_unsigned(self.to_message(blockhash, fee_payer))

    def to_unsigned_bytes(self, blockhash: Hash, fee_payer: Optional[Pubkey] = None) -> bytes:
        """Wire bytes with no signatures, as handed to a fee sponsor."""
        return bytes(self.to_transaction(blockhash, fee_payer))


class InstructionBuilder:
    """Builds unsigned transactions for one batch at a time."""

    def build_transfer_batch(
        self,
        sender: Pubkey,
        batch: Batch,
        asset: AssetDescriptor,
    ) -> UnsignedTransaction:
        """One transfer instruction per recipient, in batch order."""
        if asset.is_native:
            instructions = [
                transfer(
                    TransferParams(
                        from_pubkey=sender,
                        to_pubkey=Pubkey.from_string(r.address),
                        lamports=to_smallest_units(r.amount, asset.decimals),
                    )
                )
                for r in batch.recipients
            ]
        else:
            instructions = self._token_transfers(sender, batch, asset)

        return UnsignedTransaction(
            instructions=instructions,
            fee_payer=sender,
            description=f"{asset.label} transfer batch {batch.index + 1}",
        )

    def _token_transfers(
        self,
        sender: Pubkey,
        batch: Batch,
        asset: AssetDescriptor,
    ) -> List[Instruction]:
        if asset.mint is None:
            raise InputError("Fungible asset requires a mint")
        source = derive_receiving_account(sender, asset)
        instructions = []
        for r in batch.recipients:
            dest = derive_receiving_account(Pubkey.from_string(r.address), asset)
            instructions.append(
                transfer_checked(
                    TransferCheckedParams(
                        program_id=asset.owner_program_id,
                        source=source,
                        mint=asset.mint,
                        dest=dest,
                        owner=sender,
                        amount=to_smallest_units(r.amount, asset.decimals),
                        decimals=asset.decimals,
                    )
                )
            )
        return instructions

    def build_creation_batch(
        self,
        payer: Pubkey,
        work: Sequence[ReceivingAccountWork],
        asset: AssetDescriptor,
    ) -> UnsignedTransaction:
        """One idempotent account-creation instruction per work item; ``payer`` funds all."""
        instructions = [
            create_idempotent_associated_token_account(
                payer=payer,
                owner=Pubkey.from_string(item.recipient),
                mint=item.mint,
                token_program_id=asset.owner_program_id,
            )
            for item in work
        ]
        return UnsignedTransaction(
            instructions=instructions,
            fee_payer=payer,
            description=f"{asset.label} account creation ({len(work)} accounts)",
            accounts_touched=[item.derived_account for item in work],
        )
