"""Maturity and early-exit cost of unwinding a stake.

Unwind paths for a position:
  1. Matured (``now >= last_stake + lock_period``): ``unstake`` returns the
     principal plus pending rewards, no fee.
  2. Locked: ``emergencyUnstake`` returns the whole principal plus pending
     rewards minus ``staked * fee_bps / 10_000``.

Integer (base-unit) inputs are quoted with the contract's integer
arithmetic, so the fee truncates exactly as the ledger charges it.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from stakeflow.data.constants import BPS_DIVISOR
from stakeflow.data.interfaces import Pool, UserStake


@dataclass(frozen=True)
class UnwindQuote:
    """What the user receives when unstaking now.

    Amounts are in the same units as the inputs (integral base units when
    quoted from raw ledger records).
    """

    staked_amount: float
    pending_rewards: float
    early_fee: float
    total_receivable: float
    is_matured: bool
    unlock_time: int
    time_remaining: int  # Seconds until maturity (0 once matured)


def unlock_time(last_stake_timestamp: int, lock_period: int) -> int:
    return last_stake_timestamp + lock_period


def is_matured(last_stake_timestamp: int, lock_period: int, now: float | None = None) -> bool:
    """True once the lock has elapsed; ``now == unlock_time`` counts as matured."""
    current = time.time() if now is None else now
    return current >= unlock_time(last_stake_timestamp, lock_period)


def time_remaining(last_stake_timestamp: int, lock_period: int, now: float | None = None) -> int:
    current = time.time() if now is None else now
    return max(0, int(unlock_time(last_stake_timestamp, lock_period) - current))


def early_unstake_fee(
    staked_amount: float,
    fee_bps: int,
    matured: bool,
) -> float:
    """Fee charged for leaving before maturity.

    Args:
        staked_amount: Principal being withdrawn.  An ``int`` is treated
            as base units and the fee is truncated like the contract's
            ``staked * fee / 10_000``.
        fee_bps: Emergency withdraw fee in basis points (500 = 5%).
        matured: Whether the lock period has elapsed.

    Returns:
        ``staked_amount * fee_bps / 10_000`` while locked, otherwise 0.
    """
    if matured or staked_amount <= 0 or fee_bps <= 0:
        return 0
    if isinstance(staked_amount, int):
        return staked_amount * fee_bps // BPS_DIVISOR
    return staked_amount * (fee_bps / BPS_DIVISOR)


def total_receivable(staked_amount: float, pending_rewards: float, fee: float) -> float:
    """Principal plus rewards minus fee, clamped at zero."""
    return max(0, staked_amount + pending_rewards - fee)


def quote_unstake(
    pool: Pool,
    stake: UserStake,
    fee_bps: int,
    now: float | None = None,
    pending_rewards: int | None = None,
) -> UnwindQuote:
    """Quote an unstake of the whole position in base units.

    Args:
        pool: Pool the stake lives in (for its lock period).
        stake: The user's stake record.
        fee_bps: Emergency withdraw fee in basis points.
        now: Evaluation time in epoch seconds (defaults to wall clock).
        pending_rewards: Fresher pending-reward read, if available;
            otherwise the figure on the stake record is used.

    Returns:
        UnwindQuote with fee and receivable.
    """
    current = time.time() if now is None else now
    pending = stake.pending_rewards if pending_rewards is None else pending_rewards
    matured = is_matured(stake.last_stake_timestamp, pool.lock_period, current)
    fee = early_unstake_fee(stake.staked_amount, fee_bps, matured)
    return UnwindQuote(
        staked_amount=stake.staked_amount,
        pending_rewards=pending,
        early_fee=fee,
        total_receivable=total_receivable(stake.staked_amount, pending, fee),
        is_matured=matured,
        unlock_time=unlock_time(stake.last_stake_timestamp, pool.lock_period),
        time_remaining=time_remaining(stake.last_stake_timestamp, pool.lock_period, current),
    )
