"""Exception taxonomy for multi-recipient sends."""
from __future__ import annotations

from typing import Optional


class MultisendError(Exception):
    """Base exception for sardis-multisend."""
    pass


class InputError(MultisendError):
    """Invalid recipient, amount, or asset selection."""
    pass


class ResolutionError(MultisendError):
    """Receiving-account existence could not be determined."""

    def __init__(self, message: str, account: Optional[str] = None, attempts: int = 0):
        self.account = account
        self.attempts = attempts
        super().__init__(message)


class SponsorshipUnavailableError(MultisendError):
    """The fee sponsorship service declined or could not be reached."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Fee sponsorship unavailable: {reason}")


class SubmissionError(MultisendError):
    """The network rejected a transaction at submission time."""

    def __init__(self, reason: str, data: Optional[dict] = None):
        self.reason = reason
        self.data = data or {}
        super().__init__(reason)


class TransactionFailedError(MultisendError):
    """A submitted transaction reported an on-chain execution error."""

    def __init__(self, signature: str, reason: str):
        self.signature = signature
        self.reason = reason
        super().__init__(f"Transaction {signature} failed: {reason}")


class ConfirmationTimeout(MultisendError):
    """
    Finality could not be observed in time.

    This does not mean the transaction failed; it may still land.
    """

    def __init__(self, signature: str, timeout_seconds: float):
        self.signature = signature
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Transaction {signature} not confirmed after {timeout_seconds:g}s"
        )


class AbortError(MultisendError):
    """Terminal failure for a run (or, when configured, for one asset)."""

    def __init__(
        self,
        message: str,
        stage: str,
        asset: Optional[str] = None,
        batch: Optional[str] = None,
    ):
        self.stage = stage
        self.asset = asset
        self.batch = batch
        super().__init__(message)


class SessionStateError(MultisendError):
    """Raised on an illegal send session phase transition."""
    pass
