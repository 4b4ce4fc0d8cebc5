"""
Tests for sardis_multisend.config.
"""
from __future__ import annotations

import pytest

from sardis_multisend.config import (
    DEFAULT_RPC_URL,
    MultisendConfig,
    build_default_config,
    get_config,
    set_config,
)


@pytest.fixture(autouse=True)
def reset_global_config():
    set_config(None)
    yield
    set_config(None)


class TestDefaults:
    """Tests for documented defaults."""

    def test_default_values(self):
        """Should match the documented defaults."""
        config = MultisendConfig()

        assert config.rpc_url == DEFAULT_RPC_URL
        assert config.batching.native_transfers_per_tx == 8
        assert config.batching.token_transfers_per_tx == 5
        assert config.batching.account_creations_per_tx == 2
        assert config.batching.max_recipients == 100
        assert config.confirmation.poll_interval_seconds == 2.0
        assert config.confirmation.timeout_seconds == 90.0
        assert config.pacing.creation_batch_delay_seconds == 1.0
        assert config.pacing.transfer_batch_delay_seconds == 0.8
        assert config.pacing.post_creation_delay_seconds == 1.5
        assert config.sponsorship.enabled is False
        assert config.sponsorship.self_pay_fallback is True
        assert config.continue_on_asset_failure is False


class TestEnvironmentOverrides:
    """Tests for build_default_config."""

    def test_env_overrides(self, monkeypatch):
        """Should read prefixed environment variables."""
        monkeypatch.setenv("SARDIS_MULTISEND_RPC_URL", "http://devnet.test")
        monkeypatch.setenv("SARDIS_MULTISEND_NATIVE_BATCH_SIZE", "6")
        monkeypatch.setenv("SARDIS_MULTISEND_CONFIRMATION_TIMEOUT", "30")
        monkeypatch.setenv("SARDIS_MULTISEND_SPONSOR_ENABLED", "true")
        monkeypatch.setenv("SARDIS_MULTISEND_SPONSOR_URL", "http://sponsor.test")
        monkeypatch.setenv("SARDIS_MULTISEND_SPONSOR_POLICY_ID", "policy-1")

        config = build_default_config()

        assert config.rpc_url == "http://devnet.test"
        assert config.batching.native_transfers_per_tx == 6
        assert config.confirmation.timeout_seconds == 30.0
        assert config.sponsorship.enabled is True
        assert config.sponsorship.configured is True

    def test_invalid_numbers_fall_back(self, monkeypatch):
        """Should keep defaults for malformed numeric values."""
        monkeypatch.setenv("SARDIS_MULTISEND_MAX_RECIPIENTS", "lots")
        monkeypatch.setenv("SARDIS_MULTISEND_POLL_INTERVAL", "soon")

        config = build_default_config()

        assert config.batching.max_recipients == 100
        assert config.confirmation.poll_interval_seconds == 2.0


class TestGlobalConfig:
    """Tests for get_config / set_config."""

    def test_set_and_get(self):
        """Should return the installed instance."""
        config = MultisendConfig(rpc_url="http://custom.test")
        set_config(config)
        assert get_config() is config

    def test_lazy_build(self):
        """Should build once and cache."""
        assert get_config() is get_config()
