"""Solana network integration for sardis-multisend."""
from sardis_multisend.solana.client import BlockhashInfo, SolanaClient, SolanaRPCError
from sardis_multisend.solana.sponsor import (
    FeePayerSponsorClient,
    FeeSponsor,
    SponsoredTransaction,
    SponsorshipUnavailable,
)

__all__ = [
    "BlockhashInfo",
    "SolanaClient",
    "SolanaRPCError",
    "FeePayerSponsorClient",
    "FeeSponsor",
    "SponsoredTransaction",
    "SponsorshipUnavailable",
]
