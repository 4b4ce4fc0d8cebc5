"""Recipient address validation."""
from __future__ import annotations

from solders.pubkey import Pubkey  # type: ignore


def is_valid_address(address: str) -> bool:
    """Check that ``address`` is a base58-encoded 32-byte public key.

    Never raises; anything that does not decode is simply invalid.
    """
    if not isinstance(address, str) or not address:
        return False
    try:
        Pubkey.from_string(address.strip())
        return True
    except Exception:
        return False


def short_address(address: str) -> str:
    """Abbreviate an address for status text."""
    if len(address) <= 10:
        return address
    return f"{address[:4]}...{address[-4:]}"
