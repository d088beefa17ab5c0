"""Reward aggregation: APY, pending/earned rewards and USD value per pool.

Pure functions over ledger reads.  Anything that depends on a read that
has not arrived yet yields ``LOADING`` instead of a zero, so a view can
show a spinner rather than a false "0 rewards".
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum

import numpy as np

from stakeflow.data.constants import (
    DEFAULT_TOKEN_SYMBOL,
    HIGH_APY_PERCENT,
    SECONDS_PER_YEAR,
    TOKEN_DECIMALS,
    UNREALISTIC_APY_PERCENT,
)
from stakeflow.data.interfaces import Pool, UserStake
from stakeflow.rewards.formatting import from_base_units
from stakeflow.rewards.unwind import is_matured, time_remaining, unlock_time


class Loading(Enum):
    """Marker for data whose underlying reads are still in flight."""

    LOADING = "loading"

    def __repr__(self) -> str:
        return "LOADING"


LOADING = Loading.LOADING


class SnapshotStatus(str, Enum):
    CLAIMABLE = "claimable"
    PENDING = "pending"


@dataclass(frozen=True)
class AggregatedSnapshot:
    """Display-ready reward state of one pool for one user.

    Token amounts are in whole tokens (not base units).
    """

    pool_id: int
    token_symbol: str
    staked_amount: float
    available_rewards: float  # Pending, claimable now
    total_claimed: float
    total_earned: float  # Claimed + pending
    apy_percent: float | None
    usd_value: float  # available_rewards × price
    status: SnapshotStatus
    unlock_time: int
    is_matured: bool
    time_remaining: int
    as_of_block: int | None = None


def compute_apy(reward_rate: float | None) -> float | None:
    """Annual percentage yield from a per-second, per-token reward rate.

    APY is a per-unit rate, so it does not depend on how much is staked in
    the pool; an empty pool still has a well-defined APY.
    """
    if reward_rate is None:
        return None
    return reward_rate * SECONDS_PER_YEAR * 100


def apy_warning(apy_percent: float | None) -> str | None:
    """Flag implausible APYs for review.  The value itself is never altered."""
    if apy_percent is None:
        return None
    if apy_percent > UNREALISTIC_APY_PERCENT:
        return "unrealistic"
    if apy_percent > HIGH_APY_PERCENT:
        return "high"
    return None


def pool_status(pool: Pool) -> str:
    """Human-readable pool capacity status."""
    if not pool.is_active:
        return "Inactive"
    if pool.max_stake_limit <= 0:
        return "Full"
    utilization = pool.total_staked / pool.max_stake_limit * 100
    if utilization >= 100:
        return "Full"
    if utilization >= 90:
        return "Nearly Full"
    if utilization >= 50:
        return "Active"
    return "Available"


def pool_utilization(pool: Pool) -> float:
    """Fraction of capacity in use; may exceed 1 if the ledger over-fills."""
    if pool.max_stake_limit <= 0:
        return 0.0
    return pool.total_staked / pool.max_stake_limit


def estimate_rewards(amount: float, pool: Pool) -> float:
    """Rewards earned by *amount* over one full lock period."""
    return pool.reward_rate * amount * pool.lock_period


def project_rewards(
    amount: float,
    reward_rate: float,
    horizon_seconds: float,
    n_points: int = 50,
) -> tuple[np.ndarray, np.ndarray]:
    """Linear reward accrual curve.

    Args:
        amount: Staked amount (tokens).
        reward_rate: Tokens per second per token staked.
        horizon_seconds: Length of the projection.
        n_points: Number of samples.

    Returns:
        (times_in_days, cumulative_rewards) arrays of length ``n_points``.
    """
    seconds = np.linspace(0.0, horizon_seconds, n_points)
    rewards = amount * reward_rate * seconds
    return seconds / 86_400, rewards


def build_snapshot(
    pool: Pool | None,
    stake: UserStake | None,
    pending_rewards: int | None,
    usd_price: float | None,
    token_symbol: str = DEFAULT_TOKEN_SYMBOL,
    decimals: int = TOKEN_DECIMALS,
    now: float | None = None,
) -> AggregatedSnapshot | Loading:
    """Aggregate raw ledger reads into a snapshot.

    Args:
        pool: Pool table entry, or None while loading.
        stake: User stake record, or None while loading.
        pending_rewards: Pending-reward read in base units, or None while
            loading.
        usd_price: Token→USD rate from the price collaborator.
        token_symbol: Display symbol of the staked token.
        decimals: Token decimals for base-unit conversion.
        now: Evaluation time in epoch seconds.

    Returns:
        AggregatedSnapshot, or ``LOADING`` if any input is missing.
    """
    if pool is None or stake is None or pending_rewards is None or usd_price is None:
        return LOADING

    current = time.time() if now is None else now
    available = from_base_units(pending_rewards, decimals)
    claimed = from_base_units(stake.total_rewards_claimed, decimals)

    return AggregatedSnapshot(
        pool_id=pool.id,
        token_symbol=token_symbol,
        staked_amount=from_base_units(stake.staked_amount, decimals),
        available_rewards=available,
        total_claimed=claimed,
        total_earned=claimed + available,
        apy_percent=compute_apy(pool.reward_rate),
        usd_value=available * usd_price,
        status=SnapshotStatus.CLAIMABLE if pending_rewards > 0 else SnapshotStatus.PENDING,
        unlock_time=unlock_time(stake.last_stake_timestamp, pool.lock_period),
        is_matured=is_matured(stake.last_stake_timestamp, pool.lock_period, current),
        time_remaining=time_remaining(stake.last_stake_timestamp, pool.lock_period, current),
        as_of_block=stake.as_of_block,
    )


def is_loading(value: object) -> bool:
    return value is LOADING
