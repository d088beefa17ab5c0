"""In-memory ledger gateway simulating the multi-pool staking contract.

Used by the test-suite and by the dashboard when no RPC endpoint is
configured.  Writes are queued as pending transactions and only take
effect when their receipt is first observed after ``confirm_after_polls``
polls, so callers see the same asynchronous confirmation the real chain
gives them.
"""

from __future__ import annotations

import itertools
import logging
import time
from collections import Counter
from dataclasses import dataclass, replace
from typing import Callable

from stakeflow.data.constants import DEFAULT_EMERGENCY_FEE_BPS, WEI
from stakeflow.data.interfaces import (
    PENDING_RECEIPT,
    LedgerGateway,
    Pool,
    Receipt,
    ReceiptStatus,
    UserStake,
)
from stakeflow.errors import ReadFailure, WriteRejected

logger = logging.getLogger(__name__)

SIMULATED_TOKEN = "0x5cfeEc46ABeD58db87a1e2e1873efeecE26a6484"
SIMULATED_STAKING = "0x3c122D7571F76a32bE8dbC33255E97156f3A9576"

# --- Representative pool table (base units) ---

_DEFAULT_POOLS: list[Pool] = [
    Pool(
        id=0,
        staking_asset_ref=SIMULATED_TOKEN,
        total_staked=250_000 * WEI,
        max_stake_limit=1_000_000 * WEI,
        min_stake_amount=100 * WEI,
        reward_rate=6.34e-9,  # ~20% APY
        lock_period=30 * 86_400,
        is_active=True,
    ),
    Pool(
        id=1,
        staking_asset_ref=SIMULATED_TOKEN,
        total_staked=900_000 * WEI,
        max_stake_limit=1_000_000 * WEI,
        min_stake_amount=1_000 * WEI,
        reward_rate=1.268e-8,  # ~40% APY
        lock_period=90 * 86_400,
        is_active=True,
    ),
    Pool(
        id=2,
        staking_asset_ref=SIMULATED_TOKEN,
        total_staked=0,
        max_stake_limit=500_000 * WEI,
        min_stake_amount=10 * WEI,
        reward_rate=1.585e-9,  # ~5% APY
        lock_period=7 * 86_400,
        is_active=False,
    ),
]


@dataclass
class _Position:
    staked: int = 0
    last_stake_time: int = 0
    accrued: int = 0  # Settled but unclaimed rewards
    last_accrual: int = 0
    claimed: int = 0


@dataclass
class _PendingTx:
    kind: str
    sender: str
    args: tuple
    polls: int = 0
    forced_revert: str | None = None
    receipt: Receipt | None = None


@dataclass
class _Faults:
    reject_next: str | None = None
    revert_next: str | None = None
    failing_reads: int = 0
    read_message: str = "simulated network error"
    receipt_errors: int = 0


class StaticLedgerGateway(LedgerGateway):
    """Simulated staking ledger for one signing account.

    Parameters
    ----------
    account : str
        Address that signs writes.
    pools : list[Pool] | None
        Initial pool table (defaults to a representative three-pool table).
    balance : int
        Initial token balance of *account* in base units.
    emergency_fee_bps : int
        Early-unstake fee in basis points.
    confirm_after_polls : int
        Number of ``get_receipt`` calls that report pending before a
        transaction is mined.
    clock : Callable[[], float]
        Source of "now" in epoch seconds.
    """

    def __init__(
        self,
        account: str,
        pools: list[Pool] | None = None,
        balance: int = 100_000 * WEI,
        emergency_fee_bps: int = DEFAULT_EMERGENCY_FEE_BPS,
        confirm_after_polls: int = 1,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.account = account
        self._pools: dict[int, Pool] = {p.id: p for p in (pools if pools is not None else _DEFAULT_POOLS)}
        self._positions: dict[tuple[int, str], _Position] = {}
        self._balances: dict[str, int] = {account: balance}
        self._allowances: dict[tuple[str, str], int] = {}
        self._pending: dict[str, _PendingTx] = {}
        self._hashes = itertools.count(1)
        self.emergency_fee_bps = emergency_fee_bps
        self.confirm_after_polls = confirm_after_polls
        self.block_number = 1
        self.faults = _Faults()
        self.calls: Counter[str] = Counter()
        self._clock = clock

    # ------------------------------------------------------------------
    # Fault injection and seeding
    # ------------------------------------------------------------------

    def reject_next_write(self, message: str = "User rejected the request.") -> None:
        self.faults.reject_next = message

    def revert_next_write(self, reason: str = "execution reverted") -> None:
        self.faults.revert_next = reason

    def fail_next_reads(self, count: int, message: str = "simulated network error") -> None:
        self.faults.failing_reads = count
        self.faults.read_message = message

    def fail_next_receipt_polls(self, count: int) -> None:
        self.faults.receipt_errors = count

    def seed_stake(
        self,
        pool_id: int,
        user_id: str,
        staked: int,
        last_stake_time: int,
        accrued: int = 0,
        claimed: int = 0,
    ) -> None:
        """Place a position directly, bypassing the write path."""
        pos = self._position(pool_id, user_id)
        pos.staked = staked
        pos.last_stake_time = last_stake_time
        pos.last_accrual = int(self._clock())
        pos.accrued = accrued
        pos.claimed = claimed

    def balance_of(self, user_id: str) -> int:
        return self._balances.get(user_id, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _now(self) -> int:
        return int(self._clock())

    def _position(self, pool_id: int, user_id: str) -> _Position:
        key = (pool_id, user_id)
        if key not in self._positions:
            self._positions[key] = _Position()
        return self._positions[key]

    def _pending_of(self, pool: Pool, pos: _Position) -> int:
        elapsed = max(0, self._now() - pos.last_accrual)
        return pos.accrued + int(pos.staked * pool.reward_rate * elapsed)

    def _settle(self, pool: Pool, pos: _Position) -> None:
        pos.accrued = self._pending_of(pool, pos)
        pos.last_accrual = self._now()

    def _read(self, name: str) -> None:
        self.calls[name] += 1
        if self.faults.failing_reads > 0:
            self.faults.failing_reads -= 1
            raise ReadFailure(self.faults.read_message)

    def _pool(self, pool_id: int) -> Pool:
        try:
            return self._pools[pool_id]
        except KeyError:
            raise ReadFailure(f"Unknown pool: {pool_id}") from None

    def _broadcast(self, kind: str, *args: object) -> str:
        self.calls[kind] += 1
        if self.faults.reject_next is not None:
            message, self.faults.reject_next = self.faults.reject_next, None
            raise WriteRejected(message)
        handle = f"0x{next(self._hashes):064x}"
        tx = _PendingTx(kind=kind, sender=self.account, args=args)
        if self.faults.revert_next is not None:
            tx.forced_revert, self.faults.revert_next = self.faults.revert_next, None
        self._pending[handle] = tx
        logger.debug("Broadcast %s%r as %s", kind, args, handle)
        return handle

    def _ledger_pool(self, pool_id: int) -> Pool:
        pool = self._pools.get(pool_id)
        if pool is None:
            raise _Revert("Invalid pool")
        return pool

    def _mine(self, tx: _PendingTx) -> Receipt:
        self.block_number += 1
        if tx.forced_revert is not None:
            return Receipt(ReceiptStatus.FAILURE, self.block_number, tx.forced_revert)
        try:
            getattr(self, f"_apply_{tx.kind}")(tx.sender, *tx.args)
        except _Revert as exc:
            return Receipt(ReceiptStatus.FAILURE, self.block_number, str(exc))
        return Receipt(ReceiptStatus.SUCCESS, self.block_number)

    # ------------------------------------------------------------------
    # State transitions applied when a transaction is mined
    # ------------------------------------------------------------------

    def _apply_approve(self, sender: str, spender: str, amount: int, token: str | None) -> None:
        self._allowances[(sender, spender)] = amount

    def _apply_stake(self, sender: str, pool_id: int, amount: int) -> None:
        pool = self._ledger_pool(pool_id)
        if not pool.is_active:
            raise _Revert("Pool is not active")
        if amount < pool.min_stake_amount:
            raise _Revert("Below minimum stake amount")
        if self.allowance(sender, SIMULATED_STAKING) < amount:
            raise _Revert("ERC20: insufficient allowance")
        if self.balance_of(sender) < amount:
            raise _Revert("ERC20: transfer amount exceeds balance")
        pos = self._position(pool_id, sender)
        self._settle(pool, pos)
        pos.staked += amount
        pos.last_stake_time = self._now()
        self._balances[sender] -= amount
        self._allowances[(sender, SIMULATED_STAKING)] -= amount
        self._pools[pool_id] = _replace_total(pool, pool.total_staked + amount)

    def _apply_unstake(self, sender: str, pool_id: int, amount: int) -> None:
        pool = self._ledger_pool(pool_id)
        pos = self._position(pool_id, sender)
        if amount <= 0 or amount > pos.staked:
            raise _Revert("Invalid unstake amount")
        if self._now() < pos.last_stake_time + pool.lock_period:
            raise _Revert("Tokens are still locked")
        self._settle(pool, pos)
        payout = amount + pos.accrued
        pos.claimed += pos.accrued
        pos.accrued = 0
        pos.staked -= amount
        self._balances[sender] = self.balance_of(sender) + payout
        self._pools[pool_id] = _replace_total(pool, pool.total_staked - amount)

    def _apply_emergency_unstake(self, sender: str, pool_id: int) -> None:
        pool = self._ledger_pool(pool_id)
        pos = self._position(pool_id, sender)
        if pos.staked <= 0:
            raise _Revert("No stake to withdraw")
        self._settle(pool, pos)
        fee = pos.staked * self.emergency_fee_bps // 10_000
        payout = pos.staked - fee + pos.accrued
        pos.claimed += pos.accrued
        pos.accrued = 0
        self._balances[sender] = self.balance_of(sender) + payout
        self._pools[pool_id] = _replace_total(pool, pool.total_staked - pos.staked)
        pos.staked = 0

    def _apply_claim(self, sender: str, pool_id: int) -> None:
        pool = self._ledger_pool(pool_id)
        pos = self._position(pool_id, sender)
        self._settle(pool, pos)
        if pos.accrued <= 0:
            raise _Revert("No rewards to claim")
        self._balances[sender] = self.balance_of(sender) + pos.accrued
        pos.claimed += pos.accrued
        pos.accrued = 0

    # ------------------------------------------------------------------
    # LedgerGateway interface
    # ------------------------------------------------------------------

    @property
    def spender_address(self) -> str:
        return SIMULATED_STAKING

    async def get_all_pools(self) -> list[Pool]:
        self._read("get_all_pools")
        return [self._pools[k] for k in sorted(self._pools)]

    async def get_user_stake(self, pool_id: int, user_id: str) -> UserStake:
        self._read("get_user_stake")
        pool = self._pool(pool_id)
        pos = self._position(pool_id, user_id)
        return UserStake(
            pool_id=pool_id,
            staked_amount=pos.staked,
            last_stake_timestamp=pos.last_stake_time,
            pending_rewards=self._pending_of(pool, pos),
            total_rewards_claimed=pos.claimed,
            as_of_block=self.block_number,
        )

    async def get_pending_rewards(self, pool_id: int, user_id: str) -> int:
        self._read("get_pending_rewards")
        pool = self._pool(pool_id)
        return self._pending_of(pool, self._position(pool_id, user_id))

    async def get_user_staked_pools(self, user_id: str) -> list[int]:
        self._read("get_user_staked_pools")
        return sorted(
            pool_id
            for (pool_id, owner), pos in self._positions.items()
            if owner == user_id and (pos.staked > 0 or pos.claimed > 0 or pos.accrued > 0)
        )

    async def get_emergency_withdraw_fee(self) -> int:
        self._read("get_emergency_withdraw_fee")
        return self.emergency_fee_bps

    async def approve(self, spender: str, amount: int, token: str | None = None) -> str:
        return self._broadcast("approve", spender, amount, token)

    async def stake(self, pool_id: int, amount: int) -> str:
        return self._broadcast("stake", pool_id, amount)

    async def unstake(self, pool_id: int, amount: int) -> str:
        return self._broadcast("unstake", pool_id, amount)

    async def emergency_unstake(self, pool_id: int) -> str:
        return self._broadcast("emergency_unstake", pool_id)

    async def claim(self, pool_id: int) -> str:
        return self._broadcast("claim", pool_id)

    async def get_receipt(self, handle: str) -> Receipt:
        self.calls["get_receipt"] += 1
        if self.faults.receipt_errors > 0:
            self.faults.receipt_errors -= 1
            raise ReadFailure("receipt lookup failed")
        tx = self._pending.get(handle)
        if tx is None:
            return PENDING_RECEIPT  # Unknown to this node (yet)
        if tx.receipt is None:
            tx.polls += 1
            if tx.polls <= self.confirm_after_polls:
                return PENDING_RECEIPT
            tx.receipt = self._mine(tx)
        return tx.receipt


class _Revert(Exception):
    pass


def _replace_total(pool: Pool, total: int) -> Pool:
    return replace(pool, total_staked=total)
