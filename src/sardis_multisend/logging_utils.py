"""
Logging utilities for multi-recipient send operations.

Features:
- Operation context tracking with timing
- Transaction lifecycle logging (submitted, confirmed, failed, timed out)
- Optional address masking
- Bounded in-memory history for the current process
"""
from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .config import LoggingConfig, get_config

logger = logging.getLogger(__name__)


class OperationType(str, Enum):
    """Types of send pipeline operations."""
    ACCOUNT_RESOLUTION = "account_resolution"
    SPONSORSHIP = "sponsorship"
    TRANSACTION_CONFIRM = "transaction_confirm"
    ASSET_SEND = "asset_send"


@dataclass
class OperationContext:
    """Timing and outcome of one pipeline step."""
    operation_id: str
    operation_type: OperationType
    asset: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    duration_ms: Optional[float] = None
    success: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "operation_type": self.operation_type.value,
            "asset": self.asset,
            "duration_ms": self.duration_ms,
            "success": self.success,
            "error": self.error,
            "metadata": self.metadata,
        }


@dataclass
class TransactionLog:
    """Log entry for a submitted transaction."""
    signature: str
    asset: str
    stage: str
    fee_payer: str
    instruction_count: int
    submitted_at: datetime
    sponsored: bool = False
    status: str = "submitted"
    error: Optional[str] = None

    def to_dict(self, mask_addresses: bool = False) -> Dict[str, Any]:
        """Convert to dictionary."""
        fee_payer = mask_address(self.fee_payer) if mask_addresses else self.fee_payer
        return {
            "signature": self.signature,
            "asset": self.asset,
            "stage": self.stage,
            "fee_payer": fee_payer,
            "instruction_count": self.instruction_count,
            "sponsored": self.sponsored,
            "submitted_at": self.submitted_at.isoformat(),
            "status": self.status,
            "error": self.error,
        }


def mask_address(address: str) -> str:
    """Mask middle portion of address for privacy."""
    if len(address) < 10:
        return address
    return f"{address[:4]}...{address[-4:]}"


class SendLogger:
    """
    Structured logger for the send pipeline.

    Wraps a standard library logger; every record carries a structured
    ``extra`` payload so JSON log handlers can index it.
    """

    def __init__(
        self,
        name: str = "sardis_multisend",
        config: Optional[LoggingConfig] = None,
    ):
        self._logger = logging.getLogger(name)
        self._config = config or get_config().logging
        self._operation_counter = 0
        self._transactions: Dict[str, TransactionLog] = {}

    def _get_level(self, level_str: str) -> int:
        return getattr(logging, level_str.upper(), logging.INFO)

    @asynccontextmanager
    async def operation_context(
        self,
        operation_type: OperationType,
        asset: str,
        **metadata,
    ):
        """Time a pipeline step and log its outcome once it exits."""
        self._operation_counter += 1
        ctx = OperationContext(
            operation_id=f"op_{self._operation_counter}",
            operation_type=operation_type,
            asset=asset,
            metadata=metadata,
        )
        started = time.monotonic()
        try:
            yield ctx
            ctx.success = True
        except BaseException as e:
            ctx.error = str(e)
            raise
        finally:
            ctx.duration_ms = (time.monotonic() - started) * 1000
            level_name = self._config.transaction_level if ctx.success else self._config.error_level
            self._logger.log(
                self._get_level(level_name),
                f"{operation_type.value} for {asset} took {ctx.duration_ms:.0f}ms "
                f"(success={ctx.success})",
                extra={"operation": ctx.to_dict()},
            )

    def log_transaction_submitted(
        self,
        signature: str,
        asset: str,
        stage: str,
        fee_payer: str,
        instruction_count: int,
        sponsored: bool = False,
    ) -> None:
        """Log transaction submission."""
        log_entry = TransactionLog(
            signature=signature,
            asset=asset,
            stage=stage,
            fee_payer=fee_payer,
            instruction_count=instruction_count,
            submitted_at=datetime.now(timezone.utc),
            sponsored=sponsored,
        )
        self._transactions[signature] = log_entry
        if len(self._transactions) > self._config.max_history:
            oldest = next(iter(self._transactions))
            del self._transactions[oldest]

        self._logger.log(
            self._get_level(self._config.transaction_level),
            f"Transaction submitted: {signature} ({stage}, {asset})",
            extra={"transaction": log_entry.to_dict(self._config.mask_addresses)},
        )

    def _mark(self, signature: str, status: str, error: Optional[str] = None) -> Dict[str, Any]:
        log_entry = self._transactions.get(signature)
        if log_entry is None:
            return {"signature": signature, "status": status, "error": error}
        log_entry.status = status
        log_entry.error = error
        return log_entry.to_dict(self._config.mask_addresses)

    def log_transaction_confirmed(self, signature: str, commitment: str) -> None:
        """Log transaction confirmation."""
        payload = self._mark(signature, "confirmed")
        self._logger.log(
            self._get_level(self._config.confirmation_level),
            f"Transaction confirmed: {signature} at {commitment}",
            extra={"transaction": payload},
        )

    def log_transaction_failed(self, signature: str, error: str) -> None:
        """Log on-chain failure or rejection."""
        payload = self._mark(signature, "failed", error)
        self._logger.log(
            self._get_level(self._config.error_level),
            f"Transaction failed: {signature} - {error}",
            extra={"transaction": payload},
        )

    def log_transaction_timed_out(self, signature: str, timeout_seconds: float) -> None:
        """Log a confirmation timeout (outcome unknown, not a failure)."""
        payload = self._mark(signature, "timed_out")
        self._logger.warning(
            f"Transaction {signature} not confirmed within {timeout_seconds:g}s; "
            f"verify manually before resending",
            extra={"transaction": payload},
        )

    def get_recent_transactions(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Get recent transaction logs."""
        entries = list(self._transactions.values())[-limit:]
        return [t.to_dict(self._config.mask_addresses) for t in entries]


_send_logger: Optional[SendLogger] = None


def get_send_logger() -> SendLogger:
    """Get the shared send logger."""
    global _send_logger
    if _send_logger is None:
        _send_logger = SendLogger()
    return _send_logger
