"""
Tests for sardis_multisend.confirmation.
"""
from __future__ import annotations

import pytest

from conftest import rpc_error
from sardis_multisend.config import ConfirmationConfig
from sardis_multisend.confirmation import (
    ConfirmationResult,
    ConfirmationWatcher,
    commitment_satisfied,
)
from sardis_multisend.errors import ConfirmationTimeout, TransactionFailedError
from sardis_multisend.models import ConfirmationState


@pytest.fixture
def watcher(fake_client, send_logger):
    return ConfirmationWatcher(
        fake_client,
        ConfirmationConfig(commitment="confirmed", poll_interval_seconds=0.01, timeout_seconds=0.2),
        send_logger,
    )


def status(level: str, err=None) -> dict:
    return {"confirmationStatus": level, "err": err, "slot": 1}


class TestCommitmentSatisfied:
    """Tests for commitment ranking."""

    def test_ranking(self):
        """Should accept the target level or a stronger one."""
        assert commitment_satisfied("confirmed", "confirmed")
        assert commitment_satisfied("finalized", "confirmed")
        assert not commitment_satisfied("processed", "confirmed")
        assert not commitment_satisfied("confirmed", "finalized")
        assert commitment_satisfied("processed", "processed")
        assert not commitment_satisfied(None, "processed")


class TestAwaitConfirmation:
    """Tests for ConfirmationWatcher.await_confirmation."""

    @pytest.mark.asyncio
    async def test_confirmed(self, watcher, fake_client):
        """Should return CONFIRMED once the commitment is reached."""
        fake_client.statuses["sig"] = [None, status("processed"), status("confirmed")]

        result = await watcher.await_confirmation("sig")

        assert result.outcome == ConfirmationState.CONFIRMED
        assert result.confirmed
        assert result.commitment == "confirmed"

    @pytest.mark.asyncio
    async def test_finalized_satisfies_confirmed(self, watcher, fake_client):
        """Should accept a stronger commitment than requested."""
        fake_client.statuses["sig"] = [status("finalized")]

        result = await watcher.await_confirmation("sig", commitment="confirmed")

        assert result.outcome == ConfirmationState.CONFIRMED

    @pytest.mark.asyncio
    async def test_execution_error_is_failure(self, watcher, fake_client):
        """Should return FAILED with the on-chain error."""
        fake_client.statuses["sig"] = [status("confirmed", err={"InstructionError": [0, "Custom"]})]

        result = await watcher.await_confirmation("sig")

        assert result.outcome == ConfirmationState.FAILED
        assert "InstructionError" in result.reason

    @pytest.mark.asyncio
    async def test_rpc_errors_are_pending(self, watcher, fake_client):
        """Should keep polling through transient RPC errors."""
        fake_client.statuses["sig"] = [rpc_error(), rpc_error(), status("confirmed")]

        result = await watcher.await_confirmation("sig")

        assert result.outcome == ConfirmationState.CONFIRMED

    @pytest.mark.asyncio
    async def test_timeout_is_not_failure(self, watcher, fake_client):
        """Should return TIMED_OUT when never visible."""
        fake_client.default_status = None

        result = await watcher.await_confirmation("sig", timeout=0.05)

        assert result.outcome == ConfirmationState.TIMED_OUT
        assert "confirmation timeout" in result.reason

    @pytest.mark.asyncio
    async def test_below_target_commitment_times_out(self, watcher, fake_client):
        """Should not accept processed when finalized is required."""
        fake_client.statuses["sig"] = [status("processed")]

        result = await watcher.await_confirmation("sig", commitment="finalized", timeout=0.05)

        assert result.outcome == ConfirmationState.TIMED_OUT


class TestRaiseForOutcome:
    """Tests for ConfirmationResult.raise_for_outcome."""

    @pytest.mark.asyncio
    async def test_failed_raises_transaction_failed(self, watcher, fake_client):
        """Should raise TransactionFailedError carrying the on-chain reason."""
        fake_client.statuses["sig"] = [status("confirmed", err={"InstructionError": [0, "Custom"]})]

        result = await watcher.await_confirmation("sig")

        with pytest.raises(TransactionFailedError) as exc_info:
            result.raise_for_outcome()
        assert exc_info.value.signature == "sig"
        assert "InstructionError" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_timeout_raises_confirmation_timeout(self, watcher, fake_client):
        """Should raise ConfirmationTimeout with the waited duration."""
        fake_client.default_status = None

        result = await watcher.await_confirmation("sig", timeout=0.05)

        with pytest.raises(ConfirmationTimeout) as exc_info:
            result.raise_for_outcome()
        assert exc_info.value.timeout_seconds == 0.05

    def test_confirmed_does_not_raise(self):
        """Should return quietly for a confirmed signature."""
        ConfirmationResult("sig", ConfirmationState.CONFIRMED, commitment="confirmed").raise_for_outcome()
