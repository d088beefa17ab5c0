"""Tests for reward aggregation: APY, snapshots, pool status and projections."""

from dataclasses import replace

import numpy as np
import pytest

from stakeflow.data.constants import SECONDS_PER_YEAR, WEI
from stakeflow.data.interfaces import Pool, UserStake
from stakeflow.rewards.engine import (
    LOADING,
    AggregatedSnapshot,
    SnapshotStatus,
    apy_warning,
    build_snapshot,
    compute_apy,
    estimate_rewards,
    is_loading,
    pool_status,
    pool_utilization,
    project_rewards,
)

NOW = 1_700_000_000
THIRTY_DAYS = 30 * 86_400


@pytest.fixture
def pool() -> Pool:
    return Pool(
        id=0,
        staking_asset_ref="0x5cfeEc46ABeD58db87a1e2e1873efeecE26a6484",
        total_staked=250_000 * WEI,
        max_stake_limit=1_000_000 * WEI,
        min_stake_amount=100 * WEI,
        reward_rate=6.34e-9,
        lock_period=THIRTY_DAYS,
        is_active=True,
    )


@pytest.fixture
def stake() -> UserStake:
    return UserStake(
        pool_id=0,
        staked_amount=1_000 * WEI,
        last_stake_timestamp=NOW - 100,
        pending_rewards=5 * WEI,
        total_rewards_claimed=2 * WEI,
        as_of_block=42,
    )


class TestAPY:
    def test_twenty_percent_pool(self, pool: Pool) -> None:
        assert compute_apy(pool.reward_rate) == pytest.approx(20.0, abs=0.01)

    def test_formula(self) -> None:
        assert compute_apy(1e-8) == pytest.approx(1e-8 * SECONDS_PER_YEAR * 100)

    def test_independent_of_total_staked(self, pool: Pool) -> None:
        empty = replace(pool, total_staked=0)
        full = replace(pool, total_staked=pool.max_stake_limit)
        assert compute_apy(empty.reward_rate) == compute_apy(full.reward_rate)

    def test_unknown_rate(self) -> None:
        assert compute_apy(None) is None

    def test_zero_rate(self) -> None:
        assert compute_apy(0.0) == 0.0


class TestAPYWarning:
    def test_normal(self) -> None:
        assert apy_warning(20.0) is None

    def test_high(self) -> None:
        assert apy_warning(150.0) == "high"

    def test_unrealistic(self) -> None:
        assert apy_warning(5_000.0) == "unrealistic"

    def test_boundary_not_flagged(self) -> None:
        assert apy_warning(100.0) is None

    def test_unknown(self) -> None:
        assert apy_warning(None) is None


class TestPoolStatus:
    def test_inactive(self, pool: Pool) -> None:
        assert pool_status(replace(pool, is_active=False)) == "Inactive"

    def test_available(self, pool: Pool) -> None:
        assert pool_status(replace(pool, total_staked=100 * WEI)) == "Available"

    def test_active(self, pool: Pool) -> None:
        assert pool_status(replace(pool, total_staked=600_000 * WEI)) == "Active"

    def test_nearly_full(self, pool: Pool) -> None:
        assert pool_status(replace(pool, total_staked=950_000 * WEI)) == "Nearly Full"

    def test_over_limit_is_full_not_error(self, pool: Pool) -> None:
        over = replace(pool, total_staked=1_200_000 * WEI)
        assert pool_status(over) == "Full"
        assert pool_utilization(over) == pytest.approx(1.2)

    def test_zero_limit(self, pool: Pool) -> None:
        assert pool_status(replace(pool, max_stake_limit=0)) == "Full"
        assert pool_utilization(replace(pool, max_stake_limit=0)) == 0.0


class TestBuildSnapshot:
    def test_loading_when_pool_missing(self, stake: UserStake) -> None:
        assert build_snapshot(None, stake, 0, 1.0) is LOADING

    def test_loading_when_stake_missing(self, pool: Pool) -> None:
        assert build_snapshot(pool, None, 0, 1.0) is LOADING

    def test_loading_when_pending_missing(self, pool: Pool, stake: UserStake) -> None:
        assert build_snapshot(pool, stake, None, 1.0) is LOADING

    def test_loading_when_price_missing(self, pool: Pool, stake: UserStake) -> None:
        assert build_snapshot(pool, stake, 0, None) is LOADING

    def test_loading_is_not_zero(self) -> None:
        assert is_loading(LOADING)
        assert LOADING != 0
        assert repr(LOADING) == "LOADING"

    def test_values(self, pool: Pool, stake: UserStake) -> None:
        snap = build_snapshot(pool, stake, 5 * WEI, 0.5, now=NOW)
        assert isinstance(snap, AggregatedSnapshot)
        assert snap.pool_id == 0
        assert snap.token_symbol == "W3E"
        assert snap.staked_amount == pytest.approx(1_000.0)
        assert snap.available_rewards == pytest.approx(5.0)
        assert snap.total_claimed == pytest.approx(2.0)
        assert snap.total_earned == pytest.approx(7.0)
        assert snap.usd_value == pytest.approx(2.5)
        assert snap.apy_percent == pytest.approx(20.0, abs=0.01)
        assert snap.as_of_block == 42

    def test_claimable_iff_pending(self, pool: Pool, stake: UserStake) -> None:
        assert build_snapshot(pool, stake, 1, 1.0, now=NOW).status is SnapshotStatus.CLAIMABLE
        assert build_snapshot(pool, stake, 0, 1.0, now=NOW).status is SnapshotStatus.PENDING

    def test_zero_pending_is_real_zero(self, pool: Pool, stake: UserStake) -> None:
        snap = build_snapshot(pool, stake, 0, 1.0, now=NOW)
        assert snap.available_rewards == 0.0
        assert snap.total_earned == pytest.approx(2.0)

    def test_locked(self, pool: Pool, stake: UserStake) -> None:
        snap = build_snapshot(pool, stake, 0, 1.0, now=NOW)
        assert snap.is_matured is False
        assert snap.unlock_time == NOW - 100 + THIRTY_DAYS
        assert snap.time_remaining == THIRTY_DAYS - 100

    def test_matured_at_unlock_time(self, pool: Pool, stake: UserStake) -> None:
        unlock = stake.last_stake_timestamp + pool.lock_period
        snap = build_snapshot(pool, stake, 0, 1.0, now=unlock)
        assert snap.is_matured is True
        assert snap.time_remaining == 0

    def test_custom_symbol_and_decimals(self, pool: Pool) -> None:
        stake = UserStake(0, 2_000_000, NOW, 500_000, 0)
        snap = build_snapshot(pool, stake, 500_000, 1.0, token_symbol="USDC", decimals=6, now=NOW)
        assert snap.token_symbol == "USDC"
        assert snap.staked_amount == pytest.approx(2.0)
        assert snap.available_rewards == pytest.approx(0.5)


class TestEstimates:
    def test_estimate_over_lock_period(self, pool: Pool) -> None:
        expected = 6.34e-9 * 1_000 * THIRTY_DAYS
        assert estimate_rewards(1_000.0, pool) == pytest.approx(expected)

    def test_projection_shape(self) -> None:
        days, rewards = project_rewards(1_000.0, 1e-6, 10 * 86_400, n_points=11)
        assert len(days) == len(rewards) == 11
        np.testing.assert_allclose(days, np.arange(11))
        assert rewards[0] == 0.0
        assert rewards[-1] == pytest.approx(864.0)

    def test_projection_is_linear(self) -> None:
        _, rewards = project_rewards(500.0, 2e-8, 86_400 * 365)
        assert np.allclose(np.diff(rewards), np.diff(rewards)[0])
