"""Transaction submission: fresh blockhash, fee payer, signatures, send."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import httpx
from solders.hash import Hash  # type: ignore
from solders.pubkey import Pubkey  # type: ignore
from solders.transaction import Transaction  # type: ignore

from .errors import SponsorshipUnavailableError, SubmissionError
from .instructions import UnsignedTransaction
from .logging_utils import OperationType, SendLogger, get_send_logger
from .signer import TransactionSigner
from .solana.client import SolanaRPCError
from .solana.sponsor import FeeSponsor, SponsorshipUnavailable

if TYPE_CHECKING:
    from .solana.client import SolanaClient

logger = logging.getLogger(__name__)


@dataclass
class SubmissionReceipt:
    """Network acceptance of a transaction. Not a confirmation."""
    signature: str
    fee_payer: str
    blockhash: str
    last_valid_block_height: int
    sponsored: bool = False


class Submitter:
    """
    Signs and submits one transaction at a time.

    Every call fetches a fresh blockhash; a rejected transaction is never
    resent as-is. With a sponsor, the unsigned transaction goes to the
    sponsor first and the returned countersigned transaction is signed
    locally (where the sender is a required signer) and submitted.
    """

    def __init__(
        self,
        client: "SolanaClient",
        signer: TransactionSigner,
        send_logger: Optional[SendLogger] = None,
    ):
        self._client = client
        self._signer = signer
        self._send_logger = send_logger or get_send_logger()

    async def submit(
        self,
        transaction: UnsignedTransaction,
        fee_payer: Optional[Pubkey] = None,
        sponsor: Optional[FeeSponsor] = None,
        asset: str = "",
        stage: str = "",
    ) -> SubmissionReceipt:
        """Submit ``transaction`` and return its signature.

        Raises:
            SponsorshipUnavailableError: The sponsor declined or failed.
            SubmissionError: The network rejected the transaction.
        """
        fee_payer = fee_payer or transaction.fee_payer or self._signer.pubkey

        try:
            latest = await self._client.get_latest_blockhash()
        except (SolanaRPCError, httpx.HTTPError) as e:
            raise SubmissionError(f"Could not fetch latest blockhash: {e}") from e
        blockhash = Hash.from_string(latest.blockhash)

        sponsored = sponsor is not None
        if sponsor is not None:
            signed = await self._sponsored(transaction, blockhash, fee_payer, sponsor, asset)
        else:
            signed = self._signer.sign_transaction(
                transaction.to_transaction(blockhash, fee_payer)
            )

        actual_fee_payer = str(signed.message.account_keys[0])
        try:
            signature = await self._client.send_raw_transaction(bytes(signed))
        except SolanaRPCError as e:
            raise SubmissionError(str(e), e.error_data) from e
        except httpx.HTTPError as e:
            raise SubmissionError(f"Transport error during submission: {e}") from e

        self._send_logger.log_transaction_submitted(
            signature=signature,
            asset=asset,
            stage=stage,
            fee_payer=actual_fee_payer,
            instruction_count=transaction.instruction_count,
            sponsored=sponsored,
        )
        return SubmissionReceipt(
            signature=signature,
            fee_payer=actual_fee_payer,
            blockhash=latest.blockhash,
            last_valid_block_height=latest.last_valid_block_height,
            sponsored=sponsored,
        )

    async def _sponsored(
        self,
        transaction: UnsignedTransaction,
        blockhash: Hash,
        fee_payer: Pubkey,
        sponsor: FeeSponsor,
        asset: str,
    ) -> Transaction:
        unsigned = transaction.to_unsigned_bytes(blockhash, fee_payer)
        async with self._send_logger.operation_context(OperationType.SPONSORSHIP, asset):
            result = await sponsor.request_sponsorship(unsigned, str(self._signer.pubkey))
            if isinstance(result, SponsorshipUnavailable):
                raise SponsorshipUnavailableError(result.reason)
            try:
                sponsored_tx = Transaction.from_bytes(result.transaction_bytes)
            except Exception as e:
                raise SponsorshipUnavailableError(
                    f"sponsored transaction could not be decoded: {e}"
                ) from e
        return self._signer.sign_transaction(sponsored_tx)
