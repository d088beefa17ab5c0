"""One-shot portfolio load for a dashboard rerun."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from stakeflow.data.interfaces import LedgerGateway, Pool
from stakeflow.registry.snapshot_registry import DedupedSnapshotRegistry, PortfolioTotals, SnapshotOrLoading
from stakeflow.rewards.engine import AggregatedSnapshot

logger = logging.getLogger(__name__)


@dataclass
class PortfolioView:
    pools: list[Pool]
    snapshots: dict[int, SnapshotOrLoading]
    totals: PortfolioTotals
    errors: dict[int, str] = field(default_factory=dict)

    @property
    def loaded(self) -> list[AggregatedSnapshot]:
        return [s for s in self.snapshots.values() if isinstance(s, AggregatedSnapshot)]

    def pool(self, pool_id: int) -> Pool | None:
        return next((p for p in self.pools if p.id == pool_id), None)


async def load_portfolio(
    gateway: LedgerGateway,
    user_id: str,
    usd_price: float,
    symbol: str,
    timeout: float = 20.0,
    retry_backoff: float = 0.25,
) -> PortfolioView:
    """Read the pool table and every staked pool's snapshot.

    Pools still loading after *timeout* are returned as loading rather
    than failing the whole view.
    """
    pools = await gateway.get_all_pools()
    staked = await gateway.get_user_staked_pools(user_id)

    async with DedupedSnapshotRegistry(
        gateway, user_id, usd_price=usd_price, token_symbol=symbol, retry_backoff=retry_backoff
    ) as registry:
        subs = [registry.register(pool_id) for pool_id in staked]
        try:
            await asyncio.wait_for(
                asyncio.gather(*(sub.wait() for sub in subs), return_exceptions=True), timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Portfolio load timed out after %.0fs; showing partial data", timeout)

        errors = {}
        for pool_id in staked:
            error = registry.last_error(pool_id)
            if error is not None:
                errors[pool_id] = str(error)
        return PortfolioView(
            pools=pools,
            snapshots=registry.snapshots(),
            totals=registry.get_totals(),
            errors=errors,
        )
