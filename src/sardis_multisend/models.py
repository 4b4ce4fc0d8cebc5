"""Send pipeline data models."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple

from solders.pubkey import Pubkey  # type: ignore

from .errors import SessionStateError

if TYPE_CHECKING:
    from .assets import AssetDescriptor
    from .instructions import UnsignedTransaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Recipient:
    """A single payment recipient; amount is a decimal string."""
    address: str
    amount: str


@dataclass(frozen=True)
class Batch:
    """An ordered, size-bounded slice of the recipient list."""
    index: int  # zero-based position among batches of the same asset
    recipients: Tuple[Recipient, ...]

    def __len__(self) -> int:
        return len(self.recipients)


@dataclass(frozen=True)
class ReceivingAccountWork:
    """One receiving account that must be created before transfers."""
    recipient: str
    derived_account: Pubkey
    mint: Pubkey


class JobKind(str, Enum):
    """What a transaction job does."""
    ACCOUNT_CREATION = "account_creation"
    TRANSFER = "transfer"


class ConfirmationState(str, Enum):
    """Confirmation state of a submitted transaction."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"  # outcome unknown, not a failure


@dataclass
class TransactionJob:
    """A built transaction moving through submit and confirm."""
    kind: JobKind
    asset: "AssetDescriptor"
    index: int
    total: int
    transaction: "UnsignedTransaction"
    batch: Optional[Batch] = None
    creation_work: Tuple[ReceivingAccountWork, ...] = ()
    signature: Optional[str] = None
    sponsored: bool = False
    confirmation: ConfirmationState = ConfirmationState.PENDING
    error: Optional[str] = None
    # Creation batch failed but every account it targeted exists anyway
    already_satisfied: bool = False

    @property
    def stage(self) -> str:
        return "account creation" if self.kind == JobKind.ACCOUNT_CREATION else "transfer"

    @property
    def label(self) -> str:
        """e.g. ``transfer batch 2/3 for USDC``."""
        return f"{self.stage} batch {self.index + 1}/{self.total} for {self.asset.label}"


class SessionPhase(str, Enum):
    """Phase of a send session."""
    IDLE = "idle"
    VALIDATING = "validating"
    SENDING = "sending"
    SUCCESS = "success"
    ERROR = "error"


_ALLOWED_TRANSITIONS: Dict[SessionPhase, Tuple[SessionPhase, ...]] = {
    SessionPhase.IDLE: (SessionPhase.VALIDATING,),
    SessionPhase.VALIDATING: (SessionPhase.SENDING, SessionPhase.ERROR),
    SessionPhase.SENDING: (SessionPhase.SUCCESS, SessionPhase.ERROR),
    SessionPhase.SUCCESS: (),
    SessionPhase.ERROR: (),
}

SessionListener = Callable[["SendSession"], Any]


@dataclass
class SendSession:
    """
    Observable state of one user-initiated send.

    The orchestrator is the only writer. Observers register with
    ``subscribe`` and are called after every phase or status change.
    """
    phase: SessionPhase = SessionPhase.IDLE
    status_message: str = ""
    signatures: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    jobs: List[TransactionJob] = field(default_factory=list)
    skipped_recipients: int = 0
    failed_assets: List[str] = field(default_factory=list)
    accounts_created: int = 0
    accounts_existing: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    _listeners: List[SessionListener] = field(default_factory=list, repr=False)
    _task: Optional["asyncio.Task"] = field(default=None, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.phase in (SessionPhase.SUCCESS, SessionPhase.ERROR)

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def transition(self, phase: SessionPhase, message: str) -> None:
        """Move to ``phase``; terminal phases cannot be left."""
        if phase not in _ALLOWED_TRANSITIONS[self.phase]:
            raise SessionStateError(
                f"Illegal session transition {self.phase.value} -> {phase.value}"
            )
        self.phase = phase
        if self.is_terminal:
            self.completed_at = datetime.now(timezone.utc)
        self.set_status(message)

    def set_status(self, message: str) -> None:
        self.status_message = message
        logger.info(f"[{self.phase.value}] {message}")
        self._notify()

    def record_signature(self, signature: str) -> None:
        self.signatures.append(signature)
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error(f"Error in session listener: {e}")

    async def wait(self) -> "SendSession":
        """Wait for a session started with ``start_send`` to finish."""
        if self._task is not None:
            await self._task
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "status_message": self.status_message,
            "signatures": list(self.signatures),
            "warnings": list(self.warnings),
            "skipped_recipients": self.skipped_recipients,
            "failed_assets": list(self.failed_assets),
            "accounts_created": self.accounts_created,
            "accounts_existing": self.accounts_existing,
            "jobs": [
                {
                    "kind": job.kind.value,
                    "label": job.label,
                    "signature": job.signature,
                    "sponsored": job.sponsored,
                    "confirmation": job.confirmation.value,
                    "error": job.error,
                }
                for job in self.jobs
            ],
        }
