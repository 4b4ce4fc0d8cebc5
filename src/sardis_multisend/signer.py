"""Local signing authority."""
from __future__ import annotations

import json
import logging
from typing import Protocol

from solders.keypair import Keypair  # type: ignore
from solders.pubkey import Pubkey  # type: ignore
from solders.transaction import Transaction  # type: ignore

from .errors import InputError

logger = logging.getLogger(__name__)


class TransactionSigner(Protocol):
    """Signs transactions on behalf of the sender."""

    @property
    def pubkey(self) -> Pubkey:
        ...

    def sign_transaction(self, transaction: Transaction) -> Transaction:
        ...


def is_required_signer(transaction: Transaction, pubkey: Pubkey) -> bool:
    """True when ``pubkey`` must sign ``transaction``."""
    message = transaction.message
    required = message.header.num_required_signatures
    return pubkey in list(message.account_keys[:required])


class KeypairSigner:
    """Signs with an in-process ed25519 keypair."""

    def __init__(self, keypair: Keypair):
        self._keypair = keypair

    @classmethod
    def from_secret(cls, secret: str) -> "KeypairSigner":
        """Load a keypair from a base58 secret or a JSON byte array.

        Raises:
            InputError: If the secret cannot be decoded into a keypair.
        """
        text = (secret or "").strip()
        if not text:
            raise InputError("Empty private key")
        try:
            if text.startswith("["):
                keypair = Keypair.from_bytes(bytes(json.loads(text)))
            else:
                keypair = Keypair.from_base58_string(text)
        except Exception as e:
            raise InputError(f"Invalid private key: {e}") from e
        return cls(keypair)

    @property
    def pubkey(self) -> Pubkey:
        return self._keypair.pubkey()

    def sign_transaction(self, transaction: Transaction) -> Transaction:
        """Add this keypair's signature, keeping any signatures already present."""
        if not is_required_signer(transaction, self.pubkey):
            logger.debug("Signer %s not required by transaction; leaving unsigned", self.pubkey)
            return transaction
        transaction.partial_sign([self._keypair], transaction.message.recent_blockhash)
        return transaction
