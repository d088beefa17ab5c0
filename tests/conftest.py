"""Shared fixtures: a controllable clock, a simulated ledger and snapshot factory."""

from __future__ import annotations

import pytest

from stakeflow.data.static_ledger import StaticLedgerGateway
from stakeflow.rewards.engine import AggregatedSnapshot, SnapshotStatus

ACCOUNT = "0x9965507D1a55bcC2695C58ba16FB37d819B0A4dc"
NOW = 1_700_000_000


class FakeClock:
    def __init__(self, now: float = NOW) -> None:
        self.now = float(now)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ledger(clock: FakeClock) -> StaticLedgerGateway:
    return StaticLedgerGateway(account=ACCOUNT, clock=clock)


@pytest.fixture
def account() -> str:
    return ACCOUNT


def _make_snapshot(
    pool_id: int = 0,
    staked: float = 1_000.0,
    rewards: float = 0.0,
    claimed: float = 0.0,
    apy: float | None = 20.0,
    symbol: str = "W3E",
    price: float = 1.0,
    matured: bool = False,
    block: int | None = 1,
) -> AggregatedSnapshot:
    return AggregatedSnapshot(
        pool_id=pool_id,
        token_symbol=symbol,
        staked_amount=staked,
        available_rewards=rewards,
        total_claimed=claimed,
        total_earned=claimed + rewards,
        apy_percent=apy,
        usd_value=rewards * price,
        status=SnapshotStatus.CLAIMABLE if rewards > 0 else SnapshotStatus.PENDING,
        unlock_time=NOW if matured else NOW + 86_400,
        is_matured=matured,
        time_remaining=0 if matured else 86_400,
        as_of_block=block,
    )


@pytest.fixture
def make_snapshot():
    return _make_snapshot


@pytest.fixture
def five_snapshots() -> list[AggregatedSnapshot]:
    """Three claimable and two pending positions."""
    return [
        _make_snapshot(pool_id=0, staked=500.0, rewards=3.0, apy=20.0, matured=True),
        _make_snapshot(pool_id=1, staked=5_000.0, rewards=12.0, apy=40.0),
        _make_snapshot(pool_id=2, staked=0.0, rewards=0.0, claimed=7.0, apy=5.0, matured=True),
        _make_snapshot(pool_id=3, staked=25_000.0, rewards=6.0, apy=None),
        _make_snapshot(pool_id=4, staked=800.0, rewards=0.0, apy=30.0),
    ]
