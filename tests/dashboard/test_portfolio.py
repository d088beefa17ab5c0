"""Tests for the dashboard's one-shot portfolio load."""

from __future__ import annotations

import asyncio

import pytest

from stakeflow.data.constants import WEI
from stakeflow.data.static_ledger import StaticLedgerGateway
from stakeflow.dashboard.portfolio import load_portfolio
from stakeflow.errors import ReadFailure
from stakeflow.rewards.engine import LOADING


class _BrokenPoolLedger(StaticLedgerGateway):
    async def get_pending_rewards(self, pool_id, user_id):
        if pool_id == 1:
            raise ReadFailure("pendingRewards(1): execution reverted")
        return await super().get_pending_rewards(pool_id, user_id)


class _SlowLedger(StaticLedgerGateway):
    async def get_pending_rewards(self, pool_id, user_id):
        await asyncio.Event().wait()


def _seed(ledger, now):
    ledger.seed_stake(0, ledger.account, 1_000 * WEI, now, accrued=2 * WEI)
    ledger.seed_stake(1, ledger.account, 5_000 * WEI, now, accrued=3 * WEI)


class TestLoadPortfolio:
    @pytest.mark.asyncio
    async def test_loads_staked_pools(self, ledger, clock) -> None:
        _seed(ledger, int(clock()))
        view = await load_portfolio(ledger, ledger.account, usd_price=2.0, symbol="W3E")

        assert [p.id for p in view.pools] == [0, 1, 2]
        assert sorted(view.snapshots) == [0, 1]
        assert len(view.loaded) == 2
        assert view.totals.total_claimable == pytest.approx(5.0)
        assert view.totals.total_usd_value == pytest.approx(10.0)
        assert view.totals.is_complete
        assert view.errors == {}
        assert view.pool(1).min_stake_amount == 1_000 * WEI
        assert view.pool(7) is None

    @pytest.mark.asyncio
    async def test_no_stakes(self, ledger) -> None:
        view = await load_portfolio(ledger, ledger.account, usd_price=1.0, symbol="W3E")
        assert view.snapshots == {}
        assert view.totals.pool_count == 0

    @pytest.mark.asyncio
    async def test_failed_pool_reported(self, account, clock) -> None:
        ledger = _BrokenPoolLedger(account=account, clock=clock)
        _seed(ledger, int(clock()))
        view = await load_portfolio(ledger, account, usd_price=1.0, symbol="W3E", retry_backoff=0.0)

        assert [s.pool_id for s in view.loaded] == [0]
        assert view.snapshots[1] is LOADING
        assert "execution reverted" in view.errors[1]
        assert view.totals.loading_count == 1

    @pytest.mark.asyncio
    async def test_timeout_returns_partial(self, account, clock) -> None:
        ledger = _SlowLedger(account=account, clock=clock)
        _seed(ledger, int(clock()))
        view = await load_portfolio(ledger, account, usd_price=1.0, symbol="W3E", timeout=0.05)
        assert view.loaded == []
        assert view.totals.loading_count == 2
        assert not view.totals.is_complete
