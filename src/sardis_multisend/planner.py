"""
Recipient planning.

Turns raw recipient text into a normalized recipient list and partitions
it into order-preserving batches sized for the asset kind.

Tokenization splits on newlines, whitespace and commas. Two parse modes:

- UNIFORM: every token is an address; one amount applies to all of them.
- PAIRED: tokens are read positionally as address/amount pairs. A trailing
  address with no amount gets ``"0"`` and is dropped later by
  ``filter_valid_recipients``.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from .addresses import is_valid_address
from .assets import AssetKind
from .config import BatchingConfig, get_config
from .errors import InputError
from .models import Batch, Recipient

logger = logging.getLogger(__name__)

_TOKEN_SPLIT = re.compile(r"[\s,]+")

MISSING_AMOUNT = "0"


class ParseMode(str, Enum):
    """How recipient text is interpreted."""
    UNIFORM = "uniform"
    PAIRED = "paired"


@dataclass
class ParseResult:
    """Parsed recipients plus non-fatal warnings."""
    recipients: List[Recipient]
    warnings: List[str] = field(default_factory=list)
    truncated: int = 0

    @property
    def was_truncated(self) -> bool:
        return self.truncated > 0


def tokenize(raw: str) -> List[str]:
    """Split raw input on newlines, whitespace and commas; drop empty tokens."""
    return [token for token in _TOKEN_SPLIT.split(raw or "") if token]


def parse_recipients(
    raw: str,
    mode: ParseMode = ParseMode.PAIRED,
    uniform_amount: Optional[str] = None,
    max_recipients: Optional[int] = None,
) -> ParseResult:
    """Parse recipient text into ``Recipient`` entries.

    Entries beyond ``max_recipients`` are truncated, not rejected; the
    truncation is reported as a warning on the result.

    Raises:
        InputError: If UNIFORM mode is requested without an amount.
    """
    if max_recipients is None:
        max_recipients = get_config().batching.max_recipients

    tokens = tokenize(raw)
    recipients: List[Recipient] = []

    if mode == ParseMode.UNIFORM:
        if uniform_amount is None or not str(uniform_amount).strip():
            raise InputError("Uniform mode requires an amount")
        amount = str(uniform_amount).strip()
        recipients = [Recipient(address=token, amount=amount) for token in tokens]
    else:
        for i in range(0, len(tokens), 2):
            address = tokens[i]
            amount = tokens[i + 1] if i + 1 < len(tokens) else MISSING_AMOUNT
            recipients.append(Recipient(address=address, amount=amount))

    result = ParseResult(recipients=recipients)
    if len(recipients) > max_recipients:
        result.truncated = len(recipients) - max_recipients
        result.recipients = recipients[:max_recipients]
        result.warnings.append(
            f"Recipient list truncated to {max_recipients} entries "
            f"({result.truncated} dropped)"
        )
        logger.warning(result.warnings[-1])

    return result


def is_positive_amount(amount: str) -> bool:
    """True when ``amount`` parses as a finite decimal greater than zero."""
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        return False
    return value.is_finite() and value > 0


def filter_valid_recipients(
    recipients: Sequence[Recipient],
    check_amounts: bool = True,
) -> Tuple[List[Recipient], int]:
    """Drop recipients with an invalid address or a non-positive amount.

    With ``check_amounts=False`` only addresses are checked, for sends
    where every asset carries its own amount.

    Returns the kept recipients (order preserved) and the skipped count.
    """
    valid = [
        r for r in recipients
        if is_valid_address(r.address) and (not check_amounts or is_positive_amount(r.amount))
    ]
    skipped = len(recipients) - len(valid)
    if skipped:
        logger.info(f"{skipped} invalid recipients skipped")
    return valid, skipped


def chunk_recipients(recipients: Sequence[Recipient], max_size: int) -> List[Batch]:
    """Split recipients into consecutive batches of at most ``max_size``."""
    if max_size < 1:
        raise ValueError(f"Batch size must be positive, got {max_size}")
    return [
        Batch(index=n, recipients=tuple(recipients[start:start + max_size]))
        for n, start in enumerate(range(0, len(recipients), max_size))
    ]


def max_batch_size_for(kind: AssetKind, config: Optional[BatchingConfig] = None) -> int:
    """Transfer batch size for an asset kind."""
    config = config or get_config().batching
    if kind == AssetKind.NATIVE:
        return config.native_transfers_per_tx
    return config.token_transfers_per_tx
