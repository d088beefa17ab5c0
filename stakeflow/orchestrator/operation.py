"""Operation orchestrator: sequences staking writes and tracks confirmation.

Stake is two-phase::

    Input -> Approving -> AwaitingApprovalConfirmation -> ReadyToSubmit
          -> Submitting -> AwaitingConfirmation -> Success

Unstake and claim are single-phase (``Input -> Submitting ->
AwaitingConfirmation -> Success``).  Any non-terminal state can move to
``Failed``.  Write failures are terminal and never retried here; a new
attempt is always an explicit call by the user.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import Awaitable, Callable

from stakeflow.data.constants import DEFAULT_CONFIRM_TIMEOUT, DEFAULT_POLL_INTERVAL
from stakeflow.data.contracts import NetworkConfig
from stakeflow.data.interfaces import IdentityProvider, LedgerGateway, Pool, Receipt, ReceiptStatus, UserStake
from stakeflow.errors import (
    ApprovalRejected,
    ApprovalReverted,
    ConfirmationTimeout,
    OperationInProgress,
    ReadFailure,
    StakingError,
    SubmissionRejected,
    SubmissionReverted,
    WriteRejected,
)
from stakeflow.orchestrator.states import OperationKind, OperationState, TransactionRecord
from stakeflow.orchestrator.validation import (
    require_network,
    require_wallet,
    validate_stake_amount,
    validate_unstake_amount,
)
from stakeflow.registry.snapshot_registry import DedupedSnapshotRegistry
from stakeflow.rewards.unwind import UnwindQuote, is_matured, quote_unstake

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r; using %s", name, raw, default)
        return default


class OperationOrchestrator:
    """State machine for one staking operation at a time.

    Parameters
    ----------
    gateway : LedgerGateway
        Ledger to write to and poll for receipts.
    identity : IdentityProvider
        Connected account and the wallet's active chain.
    network : NetworkConfig
        Deployment the pools live on; writes are refused on any other chain.
    registry : DedupedSnapshotRegistry | None
        If given, the pool is refreshed after a successful write.
    poll_interval : float | None
        Seconds between receipt polls (``STAKING_POLL_INTERVAL``, default 2).
    confirm_timeout : float | None
        Seconds to wait for a terminal receipt (``STAKING_CONFIRM_TIMEOUT``,
        default 180).
    clock : Callable[[], float]
        Source of "now" for maturity checks.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        identity: IdentityProvider,
        network: NetworkConfig,
        registry: DedupedSnapshotRegistry | None = None,
        poll_interval: float | None = None,
        confirm_timeout: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._gateway = gateway
        self._identity = identity
        self.network = network
        self._registry = registry
        self.poll_interval = (
            poll_interval if poll_interval is not None
            else _env_float("STAKING_POLL_INTERVAL", DEFAULT_POLL_INTERVAL)
        )
        self.confirm_timeout = (
            confirm_timeout if confirm_timeout is not None
            else _env_float("STAKING_CONFIRM_TIMEOUT", DEFAULT_CONFIRM_TIMEOUT)
        )
        self._clock = clock
        self._state = OperationState.INPUT
        self.transitions: list[OperationState] = [OperationState.INPUT]
        self.records: list[TransactionRecord] = []
        self._pending_stake: tuple[Pool, int] | None = None
        self._poll_task: asyncio.Task | None = None
        self._disposed = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> OperationState:
        return self._state

    @property
    def record(self) -> TransactionRecord | None:
        """Record of the most recent write, if any."""
        return self.records[-1] if self.records else None

    @property
    def disposed(self) -> bool:
        return self._disposed

    def reset(self) -> None:
        """Return to ``Input`` so the user can start over.

        Not allowed while a write's outcome is still unknown.
        """
        if self._state.is_in_flight:
            raise OperationInProgress(f"Cannot reset while {self._state.value}")
        self._state = OperationState.INPUT
        self.transitions = [OperationState.INPUT]
        self.records = []
        self._pending_stake = None

    def dispose(self) -> None:
        """Stop observing (polling).  An already-broadcast write is not affected."""
        self._disposed = True
        if self._poll_task is not None and not self._poll_task.done():
            logger.info("Stopped polling for %s", self.record.handle if self.record else None)
            self._poll_task.cancel()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def quote_unstake(
        self,
        pool: Pool,
        stake: UserStake,
        now: float | None = None,
        pending_rewards: int | None = None,
    ) -> UnwindQuote:
        """Fee and receivable for unstaking now, shown before confirmation."""
        fee_bps = await self._gateway.get_emergency_withdraw_fee()
        current = self._clock() if now is None else now
        return quote_unstake(pool, stake, fee_bps, now=current, pending_rewards=pending_rewards)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def begin_stake(self, pool: Pool, amount: int, balance: int | None = None) -> TransactionRecord:
        """Approve *amount* for the staking contract and stop at ``ReadyToSubmit``.

        Args:
            pool: Target pool.
            amount: Stake amount in base units.
            balance: Wallet balance in base units, if known.

        Returns:
            The approval record (``ReadyToSubmit`` or ``Failed``).
        """
        self._check_can_start()
        self._check_identity()
        validate_stake_amount(pool, amount, balance)

        record = self._open(OperationKind.APPROVE, pool.id, amount)
        self._transition(OperationState.APPROVING)
        try:
            handle = await self._gateway.approve(
                self._gateway.spender_address, amount, pool.staking_asset_ref
            )
        except WriteRejected as exc:
            return self._fail(ApprovalRejected(exc.message))
        except Exception as exc:
            logger.error("approve for pool %d raised unexpectedly", pool.id, exc_info=True)
            return self._fail(ApprovalRejected(str(exc)))

        record.handle = handle
        self._transition(OperationState.AWAITING_APPROVAL_CONFIRMATION)
        receipt = await self._confirm(handle, ApprovalReverted)
        if receipt is None:
            return record

        record.block_number = receipt.block_number
        self._pending_stake = (pool, amount)
        self._transition(OperationState.READY_TO_SUBMIT)
        return record

    async def submit_stake(self) -> TransactionRecord:
        """Second phase of a stake, after the user confirms again."""
        if self._state is not OperationState.READY_TO_SUBMIT or self._pending_stake is None:
            raise RuntimeError(f"No approved stake to submit (state is {self._state.value})")
        self._check_not_disposed()
        pool, amount = self._pending_stake
        self._check_identity()
        self._pending_stake = None
        return await self._submit(
            OperationKind.STAKE, pool.id, amount, lambda: self._gateway.stake(pool.id, amount)
        )

    async def unstake(
        self,
        pool: Pool,
        stake: UserStake,
        amount: int | None = None,
        now: float | None = None,
    ) -> TransactionRecord:
        """Withdraw from *pool*.

        Matured stakes use ``unstake`` for *amount* (default: everything).
        Locked stakes use ``emergencyUnstake``, which always withdraws the
        whole position and pays the early-exit fee.
        """
        self._check_can_start()
        self._check_identity()

        current = self._clock() if now is None else now
        if is_matured(stake.last_stake_timestamp, pool.lock_period, current):
            value = stake.staked_amount if amount is None else amount
            validate_unstake_amount(stake, value)
            return await self._submit(
                OperationKind.UNSTAKE, pool.id, value,
                lambda: self._gateway.unstake(pool.id, value),
            )

        validate_unstake_amount(stake, stake.staked_amount)
        if amount is not None and amount != stake.staked_amount:
            raise ValueError("A locked stake can only be withdrawn in full")
        logger.info("Pool %d is still locked; using emergency unstake", pool.id)
        return await self._submit(
            OperationKind.EMERGENCY_UNSTAKE, pool.id, stake.staked_amount,
            lambda: self._gateway.emergency_unstake(pool.id),
        )

    async def claim(self, pool_id: int, pending_rewards: int | None = None) -> TransactionRecord:
        """Claim pending rewards from *pool_id*."""
        self._check_can_start()
        self._check_identity()
        if pending_rewards is not None and pending_rewards <= 0:
            raise ValueError(f"No rewards to claim in pool {pool_id}")
        return await self._submit(
            OperationKind.CLAIM, pool_id, pending_rewards,
            lambda: self._gateway.claim(pool_id),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_not_disposed(self) -> None:
        if self._disposed:
            raise RuntimeError("Orchestrator has been disposed")

    def _check_can_start(self) -> None:
        self._check_not_disposed()
        if self._state.is_terminal:
            # Starting again after a finished operation is the explicit restart
            self.reset()
        elif self._state is not OperationState.INPUT:
            raise OperationInProgress(
                f"{self.record.kind.value if self.record else 'operation'} is {self._state.value}"
            )

    def _check_identity(self) -> None:
        require_wallet(self._identity)
        require_network(self._identity, self.network.chain_id)

    def _open(self, kind: OperationKind, pool_id: int, amount: int | None) -> TransactionRecord:
        record = TransactionRecord(kind=kind, related_pool_id=pool_id, state=self._state, amount=amount)
        record.history.append(self._state)
        self.records.append(record)
        return record

    def _transition(self, new_state: OperationState) -> None:
        record = self.record
        logger.info(
            "%s pool %s: %s -> %s",
            record.kind.value if record else "-",
            record.related_pool_id if record else "-",
            self._state.value,
            new_state.value,
        )
        self._state = new_state
        self.transitions.append(new_state)
        if record is not None:
            record.state = new_state
            record.history.append(new_state)

    def _fail(self, error: StakingError) -> TransactionRecord:
        record = self.record
        assert record is not None
        if record.handle is not None and error.handle is None:
            error.handle = record.handle
        record.handle = None
        record.error = error
        self._pending_stake = None
        logger.warning("%s pool %d failed: %s", record.kind.value, record.related_pool_id, error)
        self._transition(OperationState.FAILED)
        return record

    async def _submit(
        self,
        kind: OperationKind,
        pool_id: int,
        amount: int | None,
        write: Callable[[], Awaitable[str]],
    ) -> TransactionRecord:
        record = self._open(kind, pool_id, amount)
        self._transition(OperationState.SUBMITTING)
        try:
            handle = await write()
        except WriteRejected as exc:
            return self._fail(SubmissionRejected(exc.message))
        except Exception as exc:
            logger.error("%s for pool %d raised unexpectedly", kind.value, pool_id, exc_info=True)
            return self._fail(SubmissionRejected(str(exc)))

        record.handle = handle
        self._transition(OperationState.AWAITING_CONFIRMATION)
        receipt = await self._confirm(handle, SubmissionReverted)
        if receipt is None:
            return record

        record.block_number = receipt.block_number
        self._transition(OperationState.SUCCESS)
        if self._registry is not None:
            self._registry.refresh(pool_id, min_block=receipt.block_number)
        return record

    async def _confirm(self, handle: str, reverted: type[StakingError]) -> Receipt | None:
        """Poll until a terminal receipt; return it on success.

        On revert or timeout the record is failed and None is returned.
        None is also returned, leaving the state untouched, if polling was
        stopped by :meth:`dispose`.
        """
        if self._disposed:
            # Disposed while the write was being signed
            logger.info("Not polling %s; orchestrator was disposed", handle)
            return None
        self._poll_task = asyncio.ensure_future(self._poll_receipt(handle))
        try:
            receipt = await asyncio.wait_for(self._poll_task, self.confirm_timeout)
        except asyncio.TimeoutError:
            self._fail(ConfirmationTimeout(
                f"No receipt after {self.confirm_timeout:g}s; the transaction may still be mined",
                handle=handle,
            ))
            return None
        except asyncio.CancelledError:
            if not self._disposed:
                raise
            return None
        finally:
            self._poll_task = None

        if receipt.status is ReceiptStatus.SUCCESS:
            return receipt
        self._fail(reverted(receipt.reason or "transaction reverted", handle=handle))
        return None

    async def _poll_receipt(self, handle: str) -> Receipt:
        while True:
            try:
                receipt = await self._gateway.get_receipt(handle)
            except ReadFailure:
                # A failed poll is not a failed write
                logger.warning("Receipt poll for %s failed; retrying", handle, exc_info=True)
            else:
                if receipt.is_terminal:
                    return receipt
            await asyncio.sleep(self.poll_interval)
