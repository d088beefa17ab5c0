"""Tests for DedupedSnapshotRegistry: pipeline sharing, totals, retries and teardown."""

from __future__ import annotations

import asyncio

import pytest

from stakeflow.data.constants import WEI
from stakeflow.data.static_ledger import SIMULATED_STAKING, StaticLedgerGateway
from stakeflow.errors import ReadFailure, StaleSnapshot
from stakeflow.registry.snapshot_registry import (
    DedupedSnapshotRegistry,
    PortfolioTotals,
    collect_snapshots,
)
from stakeflow.rewards.engine import LOADING, AggregatedSnapshot


def _registry(ledger, clock, **kwargs) -> DedupedSnapshotRegistry:
    kwargs.setdefault("retry_backoff", 0.0)
    return DedupedSnapshotRegistry(ledger, ledger.account, clock=clock, **kwargs)


async def _settle(rounds: int = 200) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


class _HangingLedger(StaticLedgerGateway):
    async def get_user_stake(self, pool_id, user_id):
        await asyncio.Event().wait()


class _BrokenReadLedger(StaticLedgerGateway):
    async def get_user_stake(self, pool_id, user_id):
        self.calls["get_user_stake"] += 1
        raise ConnectionError("socket closed")


# ======================================================================
# 1. Deduplication and lifecycle
# ======================================================================


class TestDedup:
    @pytest.mark.asyncio
    async def test_one_pipeline_per_pool(self, ledger, clock) -> None:
        async with _registry(ledger, clock) as registry:
            a = registry.register(0)
            b = registry.register(0)
            assert registry.refcount(0) == 2
            assert await a.wait() == await b.wait()
            assert ledger.calls["get_user_stake"] == 1
            assert ledger.calls["get_pending_rewards"] == 1

    @pytest.mark.asyncio
    async def test_pool_table_shared_across_pipelines(self, ledger, clock) -> None:
        async with _registry(ledger, clock) as registry:
            subs = [registry.register(pool_id) for pool_id in (0, 1, 2)]
            await asyncio.gather(*(s.wait() for s in subs))
            assert ledger.calls["get_all_pools"] == 1
            assert ledger.calls["get_user_stake"] == 3
            assert registry.registered_pools() == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_late_joiner_gets_current_value(self, ledger, clock) -> None:
        async with _registry(ledger, clock) as registry:
            first = registry.register(0)
            snap = await first.wait()
            seen = []
            registry.register(0, on_update=lambda pid, s: seen.append((pid, s)))
            assert seen == [(0, snap)]
            assert ledger.calls["get_user_stake"] == 1

    @pytest.mark.asyncio
    async def test_last_release_tears_down(self, ledger, clock) -> None:
        async with _registry(ledger, clock) as registry:
            a = registry.register(0)
            b = registry.register(0)
            await a.wait()
            a.close()
            assert registry.refcount(0) == 1
            b.close()
            assert registry.refcount(0) == 0
            assert registry.registered_pools() == []
            assert registry.snapshot(0) is LOADING

            # A fresh registration starts a new pipeline
            await registry.register(0).wait()
            assert ledger.calls["get_user_stake"] == 2

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, ledger, clock) -> None:
        async with _registry(ledger, clock) as registry:
            sub = registry.register(0)
            other = registry.register(0)
            sub.close()
            sub.close()
            assert registry.refcount(0) == 1
            other.close()

    @pytest.mark.asyncio
    async def test_context_manager_subscription(self, ledger, clock) -> None:
        async with _registry(ledger, clock) as registry:
            with registry.register(1) as sub:
                await sub.wait()
                assert registry.refcount(1) == 1
            assert registry.refcount(1) == 0

    @pytest.mark.asyncio
    async def test_unregister(self, ledger, clock) -> None:
        async with _registry(ledger, clock) as registry:
            registry.register(0)
            registry.register(0)
            registry.unregister(0)
            assert registry.refcount(0) == 1
            registry.unregister(0)
            registry.unregister(0)
            registry.unregister(5)
            assert registry.registered_pools() == []

    @pytest.mark.asyncio
    async def test_closed_subscription_cannot_wait(self, ledger, clock) -> None:
        async with _registry(ledger, clock) as registry:
            sub = registry.register(0)
            sub.close()
            with pytest.raises(RuntimeError):
                await sub.wait()

    @pytest.mark.asyncio
    async def test_registry_close(self, ledger, clock) -> None:
        registry = _registry(ledger, clock)
        sub = registry.register(0)
        await sub.wait()
        await registry.close()
        assert registry.registered_pools() == []
        assert sub.closed
        with pytest.raises(RuntimeError, match="closed"):
            registry.register(0)


# ======================================================================
# 2. Snapshots and totals
# ======================================================================


class TestSnapshots:
    @pytest.mark.asyncio
    async def test_snapshot_values(self, ledger, clock) -> None:
        ledger.seed_stake(0, ledger.account, 1_000 * WEI, int(clock()), accrued=5 * WEI, claimed=WEI)
        async with _registry(ledger, clock, usd_price=2.0) as registry:
            snap = await registry.register(0).wait()
            assert isinstance(snap, AggregatedSnapshot)
            assert snap.staked_amount == pytest.approx(1_000.0)
            assert snap.available_rewards == pytest.approx(5.0)
            assert snap.total_earned == pytest.approx(6.0)
            assert snap.usd_value == pytest.approx(10.0)
            assert registry.snapshots() == {0: snap}

    @pytest.mark.asyncio
    async def test_totals(self, ledger, clock) -> None:
        ledger.seed_stake(0, ledger.account, 1_000 * WEI, int(clock()), accrued=5 * WEI, claimed=WEI)
        ledger.seed_stake(1, ledger.account, 2_000 * WEI, int(clock()), accrued=3 * WEI)
        async with _registry(ledger, clock, usd_price=2.0) as registry:
            subs = [registry.register(0), registry.register(1)]
            await asyncio.gather(*(s.wait() for s in subs))
            totals = registry.get_totals()
            assert totals.total_claimable == pytest.approx(8.0)
            assert totals.total_earned == pytest.approx(9.0)
            assert totals.total_usd_value == pytest.approx(16.0)
            assert totals.total_staked == pytest.approx(3_000.0)
            assert totals.pool_count == 2
            assert totals.is_complete

            subs[1].close()
            assert registry.get_totals().total_claimable == pytest.approx(5.0)

    @pytest.mark.asyncio
    async def test_missing_price_stays_loading(self, ledger, clock) -> None:
        async with _registry(ledger, clock, usd_price=lambda: None) as registry:
            registry.register(0)
            await _settle()
            assert registry.snapshot(0) is LOADING
            totals = registry.get_totals()
            assert totals == PortfolioTotals(loading_count=1)
            assert not totals.is_complete

    @pytest.mark.asyncio
    async def test_price_callable_queried_per_read(self, ledger, clock) -> None:
        prices = iter([1.0, 3.0])
        ledger.seed_stake(0, ledger.account, 100 * WEI, int(clock()), accrued=WEI)
        async with _registry(ledger, clock, usd_price=lambda: next(prices)) as registry:
            sub = registry.register(0)
            assert (await sub.wait()).usd_value == pytest.approx(1.0)
            registry.refresh(0)
            await _settle()
            assert registry.snapshot(0).usd_value == pytest.approx(3.0)

    @pytest.mark.asyncio
    async def test_observers_notified_on_refresh(self, ledger, clock) -> None:
        async with _registry(ledger, clock) as registry:
            seen = []
            sub = registry.register(0, on_update=lambda pid, s: seen.append(s))
            await sub.wait()
            registry.refresh()
            await _settle()
            assert len(seen) == 2

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_block_others(self, ledger, clock) -> None:
        def boom(pool_id, snap):
            raise RuntimeError("observer bug")

        async with _registry(ledger, clock) as registry:
            seen = []
            registry.register(0, on_update=boom)
            sub = registry.register(0, on_update=lambda pid, s: seen.append(pid))
            await sub.wait()
            assert seen == [0]


class TestPublish:
    @pytest.mark.asyncio
    async def test_out_of_order_dropped(self, ledger, clock, make_snapshot) -> None:
        async with _registry(ledger, clock) as registry:
            sub = registry.register(0)
            await sub.wait()
            newer = make_snapshot(pool_id=0, rewards=9.0, block=5)
            older = make_snapshot(pool_id=0, rewards=1.0, block=3)
            registry.publish(0, newer)
            registry.publish(0, older)
            assert registry.snapshot(0) is newer

    @pytest.mark.asyncio
    async def test_loading_never_replaces_value(self, ledger, clock) -> None:
        async with _registry(ledger, clock) as registry:
            snap = await registry.register(0).wait()
            registry.publish(0, LOADING)
            assert registry.snapshot(0) is snap

    @pytest.mark.asyncio
    async def test_unobserved_pool_ignored(self, ledger, clock, make_snapshot) -> None:
        async with _registry(ledger, clock) as registry:
            registry.publish(9, make_snapshot(pool_id=9))
            assert registry.registered_pools() == []


# ======================================================================
# 3. Failure handling
# ======================================================================


class TestRetries:
    @pytest.mark.asyncio
    async def test_transient_failures_retried(self, ledger, clock) -> None:
        ledger.fail_next_reads(2)
        async with _registry(ledger, clock) as registry:
            snap = await registry.register(0).wait()
            assert isinstance(snap, AggregatedSnapshot)
            assert ledger.calls["get_all_pools"] == 3
            assert registry.last_error(0) is None

    @pytest.mark.asyncio
    async def test_exhausted_reports_error(self, ledger, clock) -> None:
        ledger.fail_next_reads(100, "node unreachable")
        errors = []
        async with _registry(ledger, clock, max_attempts=3) as registry:
            sub = registry.register(0, on_error=lambda pid, exc: errors.append(exc))
            with pytest.raises(ReadFailure, match="node unreachable"):
                await sub.wait()
            assert len(errors) == 1
            assert registry.snapshot(0) is LOADING
            assert isinstance(registry.last_error(0), ReadFailure)
            assert ledger.calls["get_all_pools"] == 3

    @pytest.mark.asyncio
    async def test_unexpected_error_reported_not_hung(self, account, clock) -> None:
        ledger = _BrokenReadLedger(account=account, clock=clock)
        errors = []
        async with _registry(ledger, clock) as registry:
            sub = registry.register(0, on_error=lambda pid, exc: errors.append(exc))
            with pytest.raises(ReadFailure, match="socket closed"):
                await asyncio.wait_for(sub.wait(), 1.0)
            assert len(errors) == 1
            assert isinstance(registry.last_error(0), ReadFailure)
            assert registry.snapshot(0) is LOADING
            assert ledger.calls["get_user_stake"] == 1

            # The pipeline survives and reads again on refresh
            registry.refresh(0)
            await _settle()
            assert ledger.calls["get_user_stake"] == 2
            assert len(errors) == 2

    @pytest.mark.asyncio
    async def test_failing_price_source_reported(self, ledger, clock) -> None:
        def price():
            raise RuntimeError("price feed down")

        async with _registry(ledger, clock, usd_price=price) as registry:
            with pytest.raises(ReadFailure, match="price feed down"):
                await collect_snapshots(registry, [0], timeout=1.0)

    @pytest.mark.asyncio
    async def test_unknown_pool(self, ledger, clock) -> None:
        async with _registry(ledger, clock, max_attempts=1) as registry:
            with pytest.raises(ReadFailure, match="Unknown pool"):
                await registry.register(42).wait()

    def test_invalid_attempts(self, ledger, clock) -> None:
        with pytest.raises(ValueError):
            _registry(ledger, clock, max_attempts=0)

    @pytest.mark.asyncio
    async def test_stale_read_retried_then_reported(self, ledger, clock) -> None:
        errors = []
        async with _registry(ledger, clock, max_attempts=2) as registry:
            sub = registry.register(0, on_error=lambda pid, exc: errors.append(exc))
            before = await sub.wait()
            registry.refresh(0, min_block=50)
            await _settle()
            assert len(errors) == 1
            assert isinstance(errors[0], StaleSnapshot)
            # Last good value is kept
            assert registry.snapshot(0) is before

    @pytest.mark.asyncio
    async def test_refresh_after_confirmed_write(self, ledger, clock) -> None:
        async with _registry(ledger, clock) as registry:
            sub = registry.register(0)
            assert (await sub.wait()).as_of_block == 1

            handle = await ledger.approve(SIMULATED_STAKING, 100 * WEI)
            await ledger.get_receipt(handle)
            receipt = await ledger.get_receipt(handle)

            registry.refresh(0, min_block=receipt.block_number)
            await _settle()
            assert registry.snapshot(0).as_of_block == receipt.block_number

    @pytest.mark.asyncio
    async def test_auto_refresh(self, ledger, clock) -> None:
        async with _registry(ledger, clock, auto_refresh_interval=0.01) as registry:
            await registry.register(0).wait()
            await asyncio.sleep(0.1)
            assert ledger.calls["get_user_stake"] > 1


# ======================================================================
# 4. collect_snapshots
# ======================================================================


class TestCollectSnapshots:
    @pytest.mark.asyncio
    async def test_collects_and_releases(self, ledger, clock) -> None:
        async with _registry(ledger, clock) as registry:
            result = await collect_snapshots(registry, [0, 0, 1])
            assert sorted(result) == [0, 1]
            assert all(isinstance(s, AggregatedSnapshot) for s in result.values())
            assert ledger.calls["get_user_stake"] == 2
            assert registry.registered_pools() == []

    @pytest.mark.asyncio
    async def test_timeout(self, account, clock) -> None:
        ledger = _HangingLedger(account=account, clock=clock)
        async with _registry(ledger, clock) as registry:
            with pytest.raises(asyncio.TimeoutError):
                await collect_snapshots(registry, [0], timeout=0.05)
            assert registry.refcount(0) == 0

    @pytest.mark.asyncio
    async def test_failure_propagates(self, ledger, clock) -> None:
        async with _registry(ledger, clock, max_attempts=1) as registry:
            with pytest.raises(ReadFailure):
                await collect_snapshots(registry, [0, 99])
            assert registry.registered_pools() == []
