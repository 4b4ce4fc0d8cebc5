"""
Multi-recipient send orchestration.

Drives one send session through

    IDLE -> VALIDATING -> SENDING -> SUCCESS | ERROR

For each selected asset, in order:

1. resolve receiving accounts
2. build, submit and confirm account-creation batches (sponsored when
   enabled, falling back to self-paid when allowed)
3. build, submit and confirm transfer batches in order

Batches and assets run strictly one after another. Signatures are
recorded in submission order; they are kept on ERROR so partial success
stays visible.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Sequence, Set

from .accounts import AccountResolver, ResolutionResult
from .assets import AssetDescriptor, load_fungible_asset
from .config import MultisendConfig, get_config
from .confirmation import ConfirmationWatcher
from .errors import (
    AbortError,
    ConfirmationTimeout,
    InputError,
    MultisendError,
    ResolutionError,
    SponsorshipUnavailableError,
    SubmissionError,
    TransactionFailedError,
)
from .instructions import InstructionBuilder, to_smallest_units
from .logging_utils import OperationType, SendLogger, get_send_logger
from .models import (
    ConfirmationState,
    JobKind,
    Recipient,
    SendSession,
    SessionPhase,
    TransactionJob,
)
from .planner import (
    MISSING_AMOUNT,
    ParseMode,
    chunk_recipients,
    filter_valid_recipients,
    is_positive_amount,
    max_batch_size_for,
    parse_recipients,
)
from .signer import TransactionSigner
from .solana.client import SolanaClient
from .solana.sponsor import FeePayerSponsorClient, FeeSponsor
from .submitter import Submitter

if TYPE_CHECKING:
    from solders.pubkey import Pubkey  # type: ignore

logger = logging.getLogger(__name__)


class CancellationToken:
    """Caller-side abort flag, checked before each new batch."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class AssetSelection:
    """
    One asset to send.

    Give a ready ``asset`` descriptor, or just a ``mint`` to have its
    decimals and token program read from the network. ``amount``, when
    set, replaces every recipient's amount for this asset.
    """
    asset: Optional[AssetDescriptor] = None
    mint: Optional[str] = None
    amount: Optional[str] = None
    symbol: Optional[str] = None

    @classmethod
    def native(cls, amount: Optional[str] = None) -> "AssetSelection":
        return cls(asset=AssetDescriptor.native(), amount=amount)


@dataclass
class SendRequest:
    """Everything one send needs."""
    assets: List[AssetSelection]
    recipients_text: str = ""
    parse_mode: ParseMode = ParseMode.PAIRED
    uniform_amount: Optional[str] = None
    recipients: Optional[List[Recipient]] = None  # pre-parsed; skips text parsing
    sponsorship_enabled: Optional[bool] = None  # None: use config
    max_recipients: Optional[int] = None  # None: use config
    cancellation: Optional[CancellationToken] = None


@dataclass
class _AssetPlan:
    asset: AssetDescriptor
    recipients: List[Recipient] = field(default_factory=list)


class SendOrchestrator:
    """Runs send sessions against one network connection and signer."""

    def __init__(
        self,
        client: SolanaClient,
        signer: TransactionSigner,
        config: Optional[MultisendConfig] = None,
        sponsor: Optional[FeeSponsor] = None,
        send_logger: Optional[SendLogger] = None,
    ):
        self._client = client
        self._signer = signer
        self._config = config or get_config()
        self._sponsor = sponsor
        self._send_logger = send_logger or get_send_logger()

        self._resolver = AccountResolver(client, self._config.resolution, self._send_logger)
        self._builder = InstructionBuilder()
        self._submitter = Submitter(client, signer, self._send_logger)
        self._watcher = ConfirmationWatcher(client, self._config.confirmation, self._send_logger)
        self._owned: List = []

    @classmethod
    def from_config(
        cls,
        signer: TransactionSigner,
        config: Optional[MultisendConfig] = None,
    ) -> "SendOrchestrator":
        """Build an orchestrator with its own RPC and sponsor clients."""
        config = config or get_config()
        client = SolanaClient(config)
        sponsor = None
        if config.sponsorship.configured:
            sponsor = FeePayerSponsorClient(config.sponsorship)
        orchestrator = cls(client, signer, config=config, sponsor=sponsor)
        orchestrator._owned = [c for c in (client, sponsor) if c is not None]
        return orchestrator

    async def close(self) -> None:
        """Close clients created by ``from_config``."""
        for owned in self._owned:
            await owned.close()
        self._owned = []

    @property
    def sender(self) -> "Pubkey":
        return self._signer.pubkey

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def start_send(self, request: SendRequest) -> SendSession:
        """Start a send in the background and return its live session.

        Must be called from a running event loop; ``await session.wait()``
        to join the run.
        """
        session = SendSession()
        session._task = asyncio.create_task(self._run(session, request))
        return session

    async def send(self, request: SendRequest, session: Optional[SendSession] = None) -> SendSession:
        """Run a send to completion and return the terminal session."""
        session = session or SendSession()
        await self._run(session, request)
        return session

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def _run(self, session: SendSession, request: SendRequest) -> None:
        token = request.cancellation or CancellationToken()
        session.transition(SessionPhase.VALIDATING, "Validating recipients...")

        try:
            plans = await self._validate(session, request)
        except MultisendError as e:
            session.transition(SessionPhase.ERROR, f"Validation failed: {e}")
            return
        except Exception as e:
            logger.exception("Unexpected error during validation")
            session.transition(SessionPhase.ERROR, f"Validation failed unexpectedly: {e}")
            return

        recipient_count = max(len(p.recipients) for p in plans)
        labels = ", ".join(p.asset.label for p in plans)
        session.transition(
            SessionPhase.SENDING,
            f"Sending {labels} to {recipient_count} recipients",
        )

        failures: List[AbortError] = []
        for plan in plans:
            try:
                await self._send_asset(session, plan, request, token)
            except AbortError as e:
                failures.append(e)
                if e.asset:
                    session.failed_assets.append(e.asset)
                session.set_status(str(e))
                if token.cancelled or not self._config.continue_on_asset_failure:
                    break
            except Exception as e:
                logger.exception("Unexpected error while sending %s", plan.asset.label)
                failures.append(
                    AbortError(
                        f"Unexpected error while sending {plan.asset.label}: {e}",
                        stage="send",
                        asset=plan.asset.label,
                    )
                )
                session.failed_assets.append(plan.asset.label)
                break

        if failures:
            session.transition(SessionPhase.ERROR, self._failure_message(session, failures))
        else:
            session.transition(SessionPhase.SUCCESS, self._success_message(session, plans))

    async def _validate(self, session: SendSession, request: SendRequest) -> List[_AssetPlan]:
        if not request.assets:
            raise AbortError("No asset selected", stage="validation")

        all_overridden = all(s.amount is not None for s in request.assets)
        max_recipients = (
            request.max_recipients
            if request.max_recipients is not None
            else self._config.batching.max_recipients
        )
        if request.recipients is not None:
            parsed = list(request.recipients)
            if len(parsed) > max_recipients:
                session.warnings.append(
                    f"Recipient list truncated to {max_recipients} entries "
                    f"({len(parsed) - max_recipients} dropped)"
                )
                parsed = parsed[:max_recipients]
        else:
            result = parse_recipients(
                request.recipients_text,
                request.parse_mode,
                uniform_amount=(
                    request.uniform_amount
                    if request.uniform_amount is not None or not all_overridden
                    else MISSING_AMOUNT
                ),
                max_recipients=max_recipients,
            )
            parsed = result.recipients
            session.warnings.extend(result.warnings)

        addressed, _ = filter_valid_recipients(parsed, check_amounts=False)
        _, invalid_count = filter_valid_recipients(parsed, check_amounts=not all_overridden)
        # positions in ``addressed`` whose own amount overflows an asset
        oversized: Set[int] = set()

        plans: List[_AssetPlan] = []
        for selection in request.assets:
            asset = await self._resolve_selection(selection)
            if selection.amount is not None:
                if not is_positive_amount(selection.amount):
                    session.warnings.append(
                        f"Skipping {asset.label}: amount must be positive"
                    )
                    continue
                try:
                    to_smallest_units(selection.amount, asset.decimals)
                except InputError as e:
                    session.warnings.append(f"Skipping {asset.label}: {e}")
                    continue
                candidates = [
                    (n, Recipient(r.address, selection.amount)) for n, r in enumerate(addressed)
                ]
            else:
                candidates = [
                    (n, r) for n, r in enumerate(addressed) if is_positive_amount(r.amount)
                ]

            sendable: List[Recipient] = []
            dust = too_large = 0
            for n, recipient in candidates:
                try:
                    units = to_smallest_units(recipient.amount, asset.decimals)
                except InputError as e:
                    logger.info("Skipping %s for %s: %s", recipient.address, asset.label, e)
                    oversized.add(n)
                    too_large += 1
                    continue
                if units == 0:
                    dust += 1
                    continue
                sendable.append(recipient)

            if dust:
                session.warnings.append(
                    f"{dust} {asset.label} amounts round to zero "
                    f"at {asset.decimals} decimals and were skipped"
                )
            if too_large:
                session.warnings.append(
                    f"{too_large} {asset.label} amounts exceed the largest transferable "
                    f"amount at {asset.decimals} decimals and were skipped"
                )
            if sendable:
                plans.append(_AssetPlan(asset=asset, recipients=sendable))

        session.skipped_recipients = invalid_count + len(oversized)
        if session.skipped_recipients:
            message = f"{session.skipped_recipients} invalid recipients skipped"
            session.warnings.append(message)
            session.set_status(message)

        if not plans:
            if len(request.assets) > 1 or all_overridden:
                raise AbortError(
                    "No selected asset has a positive amount and valid recipients",
                    stage="validation",
                )
            raise AbortError("No valid recipients", stage="validation")
        return plans

    async def _resolve_selection(self, selection: AssetSelection) -> AssetDescriptor:
        if selection.asset is not None:
            return selection.asset
        if not selection.mint:
            raise InputError("Token send requires a mint")
        return await load_fungible_asset(self._client, selection.mint, symbol=selection.symbol)

    # ------------------------------------------------------------------
    # Per asset
    # ------------------------------------------------------------------

    async def _send_asset(
        self,
        session: SendSession,
        plan: _AssetPlan,
        request: SendRequest,
        token: CancellationToken,
    ) -> None:
        asset = plan.asset
        label = asset.label
        async with self._send_logger.operation_context(
            OperationType.ASSET_SEND, label, recipients=len(plan.recipients)
        ) as ctx:
            self._check_cancelled(token, f"{label} account resolution", label)
            if not asset.is_native:
                session.set_status(f"Checking {label} receiving accounts...")
            try:
                resolution = await self._resolver.resolve(self.sender, plan.recipients, asset)
            except (ResolutionError, InputError) as e:
                raise AbortError(
                    f"{label}: account resolution failed: {e}",
                    stage="account resolution",
                    asset=label,
                ) from e

            if not asset.is_native:
                session.accounts_existing += resolution.existing_count
            if resolution.to_create:
                await self._create_accounts(session, asset, resolution, request, token)

            await self._transfer(session, plan, token)
            ctx.metadata["signatures"] = len(session.signatures)

    async def _create_accounts(
        self,
        session: SendSession,
        asset: AssetDescriptor,
        resolution: ResolutionResult,
        request: SendRequest,
        token: CancellationToken,
    ) -> None:
        label = asset.label
        size = max(1, self._config.batching.account_creations_per_tx)
        work = resolution.to_create
        chunks = [work[i:i + size] for i in range(0, len(work), size)]
        sponsored = (
            request.sponsorship_enabled
            if request.sponsorship_enabled is not None
            else self._config.sponsorship.enabled
        )
        session.set_status(
            f"Creating {len(work)} {label} receiving accounts in {len(chunks)} batches"
            + (" (fee sponsored)" if sponsored else "")
        )

        for i, chunk in enumerate(chunks):
            self._check_cancelled(token, f"{label} account creation batch {i + 1}", label)
            job = TransactionJob(
                kind=JobKind.ACCOUNT_CREATION,
                asset=asset,
                index=i,
                total=len(chunks),
                transaction=self._builder.build_creation_batch(self.sender, chunk, asset),
                creation_work=tuple(chunk),
            )
            session.jobs.append(job)
            session.set_status(f"Submitting {job.label}...")

            if await self._submit_job(session, job, sponsored=sponsored):
                await self._confirm_job(session, job)

            if job.already_satisfied:
                session.accounts_existing += len(chunk)
            else:
                session.accounts_created += len(chunk)
            session.set_status(f"Finished {job.label}")

            if i < len(chunks) - 1:
                await self._pause(self._config.pacing.creation_batch_delay_seconds)

        session.set_status(f"{label} receiving accounts ready, starting transfers")
        await self._pause(self._config.pacing.post_creation_delay_seconds)

    async def _transfer(
        self,
        session: SendSession,
        plan: _AssetPlan,
        token: CancellationToken,
    ) -> None:
        asset = plan.asset
        batches = chunk_recipients(
            plan.recipients, max_batch_size_for(asset.kind, self._config.batching)
        )
        session.set_status(
            f"Sending {len(plan.recipients)} {asset.label} transfers in {len(batches)} batches"
        )

        for batch in batches:
            self._check_cancelled(
                token, f"{asset.label} transfer batch {batch.index + 1}", asset.label
            )
            try:
                transaction = self._builder.build_transfer_batch(self.sender, batch, asset)
            except InputError as e:
                raise AbortError(
                    f"Could not build {asset.label} transfer batch "
                    f"{batch.index + 1}/{len(batches)}: {e}",
                    stage="transfer",
                    asset=asset.label,
                    batch=str(batch.index + 1),
                ) from e

            job = TransactionJob(
                kind=JobKind.TRANSFER,
                asset=asset,
                index=batch.index,
                total=len(batches),
                transaction=transaction,
                batch=batch,
            )
            session.jobs.append(job)
            session.set_status(f"Sending {job.label}...")

            await self._submit_job(session, job, sponsored=False)
            await self._confirm_job(session, job)
            session.set_status(f"Confirmed {job.label}")

            if batch.index < len(batches) - 1:
                await self._pause(self._config.pacing.transfer_batch_delay_seconds)

    # ------------------------------------------------------------------
    # Per job
    # ------------------------------------------------------------------

    async def _submit_job(self, session: SendSession, job: TransactionJob, sponsored: bool) -> bool:
        """Submit a job; False when a creation batch turned out to be unnecessary."""
        try:
            receipt = await self._submit_with_fallback(session, job, sponsored)
        except SubmissionError as e:
            job.confirmation = ConfirmationState.FAILED
            job.error = e.reason
            if await self._creation_satisfied(session, job):
                return False
            raise self._abort(job, f"{job.label} rejected at submission: {e.reason}") from e

        job.signature = receipt.signature
        job.sponsored = receipt.sponsored
        session.record_signature(receipt.signature)
        return True

    async def _submit_with_fallback(self, session: SendSession, job: TransactionJob, sponsored: bool):
        if sponsored:
            try:
                if self._sponsor is None:
                    raise SponsorshipUnavailableError("no fee sponsor configured")
                return await self._submitter.submit(
                    job.transaction,
                    sponsor=self._sponsor,
                    asset=job.asset.label,
                    stage=job.stage,
                )
            except SponsorshipUnavailableError as e:
                if not self._config.sponsorship.self_pay_fallback:
                    job.confirmation = ConfirmationState.FAILED
                    job.error = str(e)
                    raise self._abort(
                        job, f"{job.label} aborted at the {job.stage} stage: {e}"
                    ) from e
                warning = f"{e}; paying fees locally for {job.label}"
                session.warnings.append(warning)
                session.set_status(warning)

        return await self._submitter.submit(
            job.transaction, asset=job.asset.label, stage=job.stage
        )

    async def _confirm_job(self, session: SendSession, job: TransactionJob) -> None:
        session.set_status(f"Confirming {job.label}...")
        async with self._send_logger.operation_context(
            OperationType.TRANSACTION_CONFIRM, job.asset.label, signature=job.signature
        ):
            result = await self._watcher.await_confirmation(job.signature)
        job.confirmation = result.outcome

        try:
            result.raise_for_outcome()
        except (ConfirmationTimeout, TransactionFailedError) as e:
            job.error = result.reason
            if await self._creation_satisfied(session, job):
                return
            if isinstance(e, ConfirmationTimeout):
                raise self._abort(
                    job,
                    f"Confirmation timeout for {job.label} (signature {job.signature}): "
                    f"the transaction may still land, verify it before resending",
                    stage="confirmation",
                ) from e
            raise self._abort(job, f"{job.label} failed on-chain: {result.reason}") from e

    async def _creation_satisfied(self, session: SendSession, job: TransactionJob) -> bool:
        """Re-check a failed creation batch; its accounts may exist already."""
        if job.kind != JobKind.ACCOUNT_CREATION:
            return False
        accounts = [w.derived_account for w in job.creation_work]
        try:
            satisfied = await self._resolver.all_exist(accounts)
        except ResolutionError as e:
            logger.warning("Re-check after failed %s did not complete: %s", job.label, e)
            return False
        if satisfied:
            job.already_satisfied = True
            session.set_status(f"{job.label}: accounts already exist, continuing")
        return satisfied

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _abort(job: TransactionJob, message: str, stage: Optional[str] = None) -> AbortError:
        return AbortError(
            message,
            stage=stage or job.stage,
            asset=job.asset.label,
            batch=f"{job.index + 1}/{job.total}",
        )

    @staticmethod
    def _check_cancelled(token: CancellationToken, next_step: str, asset: str) -> None:
        if token.cancelled:
            raise AbortError(f"Send cancelled before {next_step}", stage="cancelled", asset=asset)

    @staticmethod
    async def _pause(seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)

    @staticmethod
    def _success_message(session: SendSession, plans: Sequence[_AssetPlan]) -> str:
        parts = [
            f"Sent {', '.join(p.asset.label for p in plans)} to "
            f"{max(len(p.recipients) for p in plans)} recipients in "
            f"{len(session.signatures)} transactions"
        ]
        if any(not p.asset.is_native for p in plans):
            parts.append(
                f"receiving accounts: {session.accounts_created} created, "
                f"{session.accounts_existing} already existed"
            )
        if session.skipped_recipients:
            parts.append(f"{session.skipped_recipients} invalid recipients skipped")
        return "; ".join(parts)

    @staticmethod
    def _failure_message(session: SendSession, failures: Sequence[AbortError]) -> str:
        message = str(failures[0])
        if len(failures) > 1:
            message += f" (and {len(failures) - 1} more failed assets)"
        if session.signatures:
            message += f"; {len(session.signatures)} transactions submitted so far"
        return message
