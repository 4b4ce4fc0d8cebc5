"""
Configuration management for sardis-multisend.

Provides centralized configuration for:
- Batch sizing per asset kind
- Receiving-account resolution retries and fan-out
- Submission and confirmation parameters
- Pacing between batches
- Fee sponsorship
- Logging configuration
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "SARDIS_MULTISEND_"

DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"


@dataclass
class BatchingConfig:
    """Recipient caps and per-transaction batch sizes."""
    native_transfers_per_tx: int = 8
    token_transfers_per_tx: int = 5  # checked token transfers carry more accounts
    account_creations_per_tx: int = 2
    max_recipients: int = 100


@dataclass
class ResolutionConfig:
    """Configuration for receiving-account existence checks."""
    max_retries: int = 3
    retry_delay_seconds: float = 1.0
    max_concurrent_lookups: int = 10


@dataclass
class SubmissionConfig:
    """Configuration for transaction submission."""
    blockhash_commitment: str = "confirmed"
    skip_preflight: bool = False
    preflight_commitment: str = "confirmed"
    max_retries: int = 3  # network-level rebroadcasts, handled by the RPC node


@dataclass
class ConfirmationConfig:
    """Configuration for confirmation polling."""
    commitment: str = "confirmed"
    poll_interval_seconds: float = 2.0
    timeout_seconds: float = 90.0


@dataclass
class PacingConfig:
    """Fixed delays between batches to stay under RPC rate limits."""
    creation_batch_delay_seconds: float = 1.0
    transfer_batch_delay_seconds: float = 0.8
    post_creation_delay_seconds: float = 1.5


@dataclass
class SponsorshipConfig:
    """Configuration for the third-party fee sponsorship service."""
    enabled: bool = False
    rpc_url: str = ""
    policy_id: str = ""
    method: str = "alchemy_requestFeePayer"
    timeout_seconds: float = 30.0

    # Allow the local signer to pay fees when sponsorship is unavailable
    self_pay_fallback: bool = True

    @property
    def configured(self) -> bool:
        return bool(self.rpc_url and self.policy_id)


@dataclass
class LoggingConfig:
    """Configuration for send operation logging."""
    rpc_call_level: str = "DEBUG"
    transaction_level: str = "INFO"
    confirmation_level: str = "INFO"
    error_level: str = "ERROR"

    mask_addresses: bool = False
    max_history: int = 1000


@dataclass
class MultisendConfig:
    """
    Master configuration for sardis-multisend.

    Supports loading from environment variables with prefix SARDIS_MULTISEND_.
    """
    rpc_url: str = DEFAULT_RPC_URL
    http_timeout_seconds: float = 30.0

    # Keep sending later assets after one asset aborts (run still ends in ERROR)
    continue_on_asset_failure: bool = False

    batching: BatchingConfig = field(default_factory=BatchingConfig)
    resolution: ResolutionConfig = field(default_factory=ResolutionConfig)
    submission: SubmissionConfig = field(default_factory=SubmissionConfig)
    confirmation: ConfirmationConfig = field(default_factory=ConfirmationConfig)
    pacing: PacingConfig = field(default_factory=PacingConfig)
    sponsorship: SponsorshipConfig = field(default_factory=SponsorshipConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _get_env(key: str, default: Any = None, prefix: str = ENV_PREFIX) -> Any:
    """Get environment variable with prefix."""
    return os.getenv(f"{prefix}{key}", default)


def _get_env_int(key: str, default: int) -> int:
    value = _get_env(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring invalid integer for {ENV_PREFIX}{key}: {value!r}")
        return default


def _get_env_float(key: str, default: float) -> float:
    value = _get_env(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring invalid number for {ENV_PREFIX}{key}: {value!r}")
        return default


def _get_env_bool(key: str, default: bool) -> bool:
    value = _get_env(key)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def build_default_config() -> MultisendConfig:
    """Build default configuration with environment variable overrides."""
    defaults = MultisendConfig()

    batching = BatchingConfig(
        native_transfers_per_tx=_get_env_int(
            "NATIVE_BATCH_SIZE", defaults.batching.native_transfers_per_tx
        ),
        token_transfers_per_tx=_get_env_int(
            "TOKEN_BATCH_SIZE", defaults.batching.token_transfers_per_tx
        ),
        account_creations_per_tx=_get_env_int(
            "CREATION_BATCH_SIZE", defaults.batching.account_creations_per_tx
        ),
        max_recipients=_get_env_int("MAX_RECIPIENTS", defaults.batching.max_recipients),
    )

    confirmation = ConfirmationConfig(
        commitment=_get_env("COMMITMENT", defaults.confirmation.commitment),
        poll_interval_seconds=_get_env_float(
            "POLL_INTERVAL", defaults.confirmation.poll_interval_seconds
        ),
        timeout_seconds=_get_env_float(
            "CONFIRMATION_TIMEOUT", defaults.confirmation.timeout_seconds
        ),
    )

    sponsorship = SponsorshipConfig(
        enabled=_get_env_bool("SPONSOR_ENABLED", defaults.sponsorship.enabled),
        rpc_url=_get_env("SPONSOR_URL", defaults.sponsorship.rpc_url),
        policy_id=_get_env("SPONSOR_POLICY_ID", defaults.sponsorship.policy_id),
        self_pay_fallback=_get_env_bool(
            "SELF_PAY_FALLBACK", defaults.sponsorship.self_pay_fallback
        ),
    )

    return MultisendConfig(
        rpc_url=_get_env("RPC_URL", defaults.rpc_url),
        batching=batching,
        confirmation=confirmation,
        sponsorship=sponsorship,
    )


# Global configuration instance
_global_config: Optional[MultisendConfig] = None


def get_config() -> MultisendConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = build_default_config()
    return _global_config


def set_config(config: Optional[MultisendConfig]) -> None:
    """Set (or with None, reset) the global configuration instance."""
    global _global_config
    _global_config = config
