"""
Sardis multisend: batch distribution of SOL and SPL tokens to many recipients.

The pipeline plans recipients into size-bounded batches, provisions
receiving token accounts, optionally routes account creation through a
fee sponsor, and submits and confirms every batch in order.
"""

from .accounts import AccountResolver, ResolutionResult, derive_receiving_account
from .addresses import is_valid_address, short_address
from .assets import AssetDescriptor, AssetKind, load_fungible_asset
from .config import (
    MultisendConfig,
    build_default_config,
    get_config,
    set_config,
)
from .confirmation import ConfirmationResult, ConfirmationWatcher
from .errors import (
    AbortError,
    ConfirmationTimeout,
    InputError,
    MultisendError,
    ResolutionError,
    SessionStateError,
    SponsorshipUnavailableError,
    SubmissionError,
    TransactionFailedError,
)
from .instructions import InstructionBuilder, UnsignedTransaction, to_smallest_units
from .logging_utils import OperationType, SendLogger, get_send_logger
from .models import (
    Batch,
    ConfirmationState,
    JobKind,
    ReceivingAccountWork,
    Recipient,
    SendSession,
    SessionPhase,
    TransactionJob,
)
from .orchestrator import AssetSelection, CancellationToken, SendOrchestrator, SendRequest
from .planner import ParseMode, ParseResult, chunk_recipients, max_batch_size_for, parse_recipients
from .signer import KeypairSigner, TransactionSigner
from .submitter import SubmissionReceipt, Submitter

__version__ = "0.1.0"

__all__ = [
    # Orchestration
    "SendOrchestrator",
    "SendRequest",
    "AssetSelection",
    "CancellationToken",
    "SendSession",
    "SessionPhase",
    # Planning
    "ParseMode",
    "ParseResult",
    "parse_recipients",
    "chunk_recipients",
    "max_batch_size_for",
    "is_valid_address",
    "short_address",
    # Models
    "Recipient",
    "Batch",
    "ReceivingAccountWork",
    "TransactionJob",
    "JobKind",
    "ConfirmationState",
    "AssetDescriptor",
    "AssetKind",
    "load_fungible_asset",
    # Pipeline stages
    "AccountResolver",
    "ResolutionResult",
    "derive_receiving_account",
    "InstructionBuilder",
    "UnsignedTransaction",
    "to_smallest_units",
    "Submitter",
    "SubmissionReceipt",
    "ConfirmationWatcher",
    "ConfirmationResult",
    "KeypairSigner",
    "TransactionSigner",
    # Config and logging
    "MultisendConfig",
    "build_default_config",
    "get_config",
    "set_config",
    "SendLogger",
    "OperationType",
    "get_send_logger",
    # Errors
    "MultisendError",
    "InputError",
    "ResolutionError",
    "SponsorshipUnavailableError",
    "SubmissionError",
    "TransactionFailedError",
    "ConfirmationTimeout",
    "AbortError",
    "SessionStateError",
]
