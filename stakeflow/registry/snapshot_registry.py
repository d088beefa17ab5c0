"""Shared, reference-counted cache of per-pool reward snapshots.

One registry is built per user session and passed to every consumer that
needs pool snapshots.  Each distinct pool id gets at most one read
pipeline (an asyncio task) no matter how many observers register for it;
the pipeline is torn down when the last observer leaves.

All methods must be called from the event loop that runs the pipelines.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Union

from stakeflow.data.constants import DEFAULT_TOKEN_SYMBOL, TOKEN_DECIMALS
from stakeflow.data.interfaces import LedgerGateway, Pool
from stakeflow.errors import ReadFailure, StaleSnapshot, StakingError
from stakeflow.rewards.engine import LOADING, AggregatedSnapshot, Loading, build_snapshot

logger = logging.getLogger(__name__)

SnapshotOrLoading = Union[AggregatedSnapshot, Loading]
UpdateCallback = Callable[[int, AggregatedSnapshot], None]
ErrorCallback = Callable[[int, StakingError], None]
PriceSource = Union[float, Callable[[], Union[float, None]]]


@dataclass(frozen=True)
class PortfolioTotals:
    """Reduction over every registered, non-loading snapshot."""

    total_claimable: float = 0.0
    total_earned: float = 0.0
    total_usd_value: float = 0.0
    total_staked: float = 0.0
    pool_count: int = 0
    loading_count: int = 0

    @property
    def is_complete(self) -> bool:
        return self.loading_count == 0


class Subscription:
    """Handle returned by :meth:`DedupedSnapshotRegistry.register`."""

    def __init__(
        self,
        registry: DedupedSnapshotRegistry,
        sub_id: int,
        pool_id: int,
        on_update: UpdateCallback | None,
        on_error: ErrorCallback | None,
    ) -> None:
        self._registry = registry
        self.id = sub_id
        self.pool_id = pool_id
        self.on_update = on_update
        self.on_error = on_error
        self.closed = False

    @property
    def snapshot(self) -> SnapshotOrLoading:
        return self._registry.snapshot(self.pool_id)

    async def wait(self) -> AggregatedSnapshot:
        """Wait for the first non-loading snapshot.

        Raises the pipeline's error if reads were exhausted before any
        snapshot arrived.
        """
        if self.closed:
            raise RuntimeError(f"Subscription to pool {self.pool_id} is closed")
        return await self._registry._wait_ready(self.pool_id)

    def close(self) -> None:
        """Release this observer.  Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        self._registry._release(self)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


@dataclass
class _Pipeline:
    pool_id: int
    subscribers: dict[int, Subscription] = field(default_factory=dict)
    snapshot: SnapshotOrLoading = LOADING
    error: StakingError | None = None
    min_block: int | None = None
    wake: asyncio.Event = field(default_factory=asyncio.Event)
    ready: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task | None = None

    @property
    def refcount(self) -> int:
        return len(self.subscribers)


class DedupedSnapshotRegistry:
    """Deduplicated snapshot pipelines for one user.

    Parameters
    ----------
    gateway : LedgerGateway
        Source of pool, stake and pending-reward reads.
    user_id : str
        Account whose positions are tracked.
    usd_price : float | Callable[[], float | None]
        Token→USD rate, or a callable queried on every computation.  A
        ``None`` price leaves the snapshot loading.
    token_symbol, decimals :
        Display symbol and base-unit decimals of the staked token.
    max_attempts : int
        Reads per refresh before the failure is reported to observers.
    retry_backoff : float
        Initial delay between attempts in seconds; doubles each time up
        to ``max_backoff``.
    auto_refresh_interval : float | None
        Re-read every N seconds while observed; None disables.
    clock : Callable[[], float]
        Source of "now" for maturity calculations.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        user_id: str,
        usd_price: PriceSource = 0.0,
        token_symbol: str = DEFAULT_TOKEN_SYMBOL,
        decimals: int = TOKEN_DECIMALS,
        max_attempts: int = 5,
        retry_backoff: float = 0.5,
        max_backoff: float = 8.0,
        auto_refresh_interval: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._gateway = gateway
        self.user_id = user_id
        self._usd_price = usd_price
        self.token_symbol = token_symbol
        self.decimals = decimals
        self.max_attempts = max_attempts
        self.retry_backoff = retry_backoff
        self.max_backoff = max_backoff
        self.auto_refresh_interval = auto_refresh_interval
        self._clock = clock
        self._pipelines: dict[int, _Pipeline] = {}
        self._sub_ids = itertools.count(1)
        self._pool_read: asyncio.Future | None = None
        self._closed = False

    # ------------------------------------------------------------------
    # Observer API
    # ------------------------------------------------------------------

    def register(
        self,
        pool_id: int,
        on_update: UpdateCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Observe *pool_id*, starting its read pipeline if none is live."""
        if self._closed:
            raise RuntimeError("Registry is closed")

        pipe = self._pipelines.get(pool_id)
        if pipe is None:
            pipe = _Pipeline(pool_id=pool_id)
            self._pipelines[pool_id] = pipe
            pipe.task = asyncio.get_running_loop().create_task(
                self._run(pipe), name=f"snapshot-pipeline-{pool_id}"
            )
            logger.debug("Started pipeline for pool %d", pool_id)

        sub = Subscription(self, next(self._sub_ids), pool_id, on_update, on_error)
        pipe.subscribers[sub.id] = sub

        # Late joiners see the current value straight away
        if on_update is not None and not isinstance(pipe.snapshot, Loading):
            self._call(on_update, pool_id, pipe.snapshot)
        return sub

    def unregister(self, pool_id: int) -> None:
        """Release the most recent observer of *pool_id*; no-op if none remain."""
        pipe = self._pipelines.get(pool_id)
        if pipe is None or not pipe.subscribers:
            return
        last_id = next(reversed(pipe.subscribers))
        pipe.subscribers[last_id].close()

    def refcount(self, pool_id: int) -> int:
        pipe = self._pipelines.get(pool_id)
        return pipe.refcount if pipe is not None else 0

    def registered_pools(self) -> list[int]:
        return sorted(self._pipelines)

    def snapshot(self, pool_id: int) -> SnapshotOrLoading:
        pipe = self._pipelines.get(pool_id)
        return pipe.snapshot if pipe is not None else LOADING

    def snapshots(self) -> dict[int, SnapshotOrLoading]:
        return {pool_id: pipe.snapshot for pool_id, pipe in sorted(self._pipelines.items())}

    def last_error(self, pool_id: int) -> StakingError | None:
        pipe = self._pipelines.get(pool_id)
        return pipe.error if pipe is not None else None

    def publish(self, pool_id: int, snapshot: SnapshotOrLoading) -> None:
        """Store *snapshot* as the latest for *pool_id* and notify observers.

        A snapshot read at an older block than the stored one is dropped,
        so interleaved reads cannot move a pool backwards.
        """
        pipe = self._pipelines.get(pool_id)
        if pipe is None:
            logger.debug("Dropping snapshot for unobserved pool %d", pool_id)
            return
        if isinstance(snapshot, Loading):
            if isinstance(pipe.snapshot, Loading):
                return
            logger.debug("Keeping last snapshot for pool %d while inputs load", pool_id)
            return

        current = pipe.snapshot
        if (
            isinstance(current, AggregatedSnapshot)
            and current.as_of_block is not None
            and snapshot.as_of_block is not None
            and snapshot.as_of_block < current.as_of_block
        ):
            logger.debug(
                "Dropping out-of-order snapshot for pool %d (block %d < %d)",
                pool_id, snapshot.as_of_block, current.as_of_block,
            )
            return

        pipe.snapshot = snapshot
        pipe.error = None
        pipe.ready.set()
        for sub in list(pipe.subscribers.values()):
            if sub.on_update is not None:
                self._call(sub.on_update, pool_id, snapshot)

    def get_totals(self) -> PortfolioTotals:
        """Sum rewards, earnings and USD value over non-loading snapshots."""
        claimable = earned = usd = staked = 0.0
        loaded = loading = 0
        for pipe in self._pipelines.values():
            snap = pipe.snapshot
            if isinstance(snap, Loading):
                loading += 1
                continue
            loaded += 1
            claimable += snap.available_rewards
            earned += snap.total_earned
            usd += snap.usd_value
            staked += snap.staked_amount
        return PortfolioTotals(
            total_claimable=claimable,
            total_earned=earned,
            total_usd_value=usd,
            total_staked=staked,
            pool_count=loaded,
            loading_count=loading,
        )

    def refresh(self, pool_id: int | None = None, min_block: int | None = None) -> None:
        """Force a re-read of one pool (or all).

        With *min_block*, reads reflecting an earlier block are treated as
        stale and retried until the ledger catches up.
        """
        if pool_id is None:
            targets = list(self._pipelines.values())
        else:
            pipe = self._pipelines.get(pool_id)
            targets = [pipe] if pipe is not None else []
        for pipe in targets:
            if min_block is not None:
                pipe.min_block = max(pipe.min_block or 0, min_block)
            pipe.wake.set()

    async def close(self) -> None:
        """Tear down every pipeline (logout / disconnect)."""
        self._closed = True
        tasks = []
        for pipe in self._pipelines.values():
            for sub in pipe.subscribers.values():
                sub.closed = True
            pipe.subscribers.clear()
            if pipe.task is not None:
                pipe.task.cancel()
                tasks.append(pipe.task)
        self._pipelines.clear()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def __aenter__(self) -> DedupedSnapshotRegistry:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Pipeline internals
    # ------------------------------------------------------------------

    def _release(self, sub: Subscription) -> None:
        pipe = self._pipelines.get(sub.pool_id)
        if pipe is None or pipe.subscribers.pop(sub.id, None) is None:
            return
        if pipe.subscribers:
            return
        del self._pipelines[sub.pool_id]
        if pipe.task is not None:
            pipe.task.cancel()
        logger.debug("Tore down pipeline for pool %d", sub.pool_id)

    async def _wait_ready(self, pool_id: int) -> AggregatedSnapshot:
        pipe = self._pipelines.get(pool_id)
        if pipe is None:
            raise RuntimeError(f"Pool {pool_id} is not registered")
        await pipe.ready.wait()
        if isinstance(pipe.snapshot, AggregatedSnapshot):
            return pipe.snapshot
        assert pipe.error is not None
        raise pipe.error

    async def _run(self, pipe: _Pipeline) -> None:
        while True:
            pipe.wake.clear()
            try:
                snapshot = await self._load_with_retry(pipe)
            except ReadFailure as exc:
                logger.warning(
                    "Giving up on pool %d after %d attempts: %s",
                    pipe.pool_id, self.max_attempts, exc,
                )
                self._report_error(pipe, exc)
            except Exception as exc:
                # Not retried; reported like exhausted reads so waiters wake up
                logger.error("Read pipeline for pool %d raised", pipe.pool_id, exc_info=True)
                failure = ReadFailure(f"{type(exc).__name__}: {exc}")
                failure.__cause__ = exc
                self._report_error(pipe, failure)
            else:
                self.publish(pipe.pool_id, snapshot)

            if self.auto_refresh_interval is None:
                await pipe.wake.wait()
            else:
                try:
                    await asyncio.wait_for(pipe.wake.wait(), self.auto_refresh_interval)
                except asyncio.TimeoutError:
                    pass

    async def _load_with_retry(self, pipe: _Pipeline) -> SnapshotOrLoading:
        delay = self.retry_backoff
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._load(pipe)
            except ReadFailure as exc:
                if attempt == self.max_attempts:
                    raise
                logger.info(
                    "Read for pool %d failed (attempt %d/%d): %s",
                    pipe.pool_id, attempt, self.max_attempts, exc,
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.max_backoff)
        raise AssertionError("unreachable")

    async def _load(self, pipe: _Pipeline) -> SnapshotOrLoading:
        pools = await self._pool_table()
        pool = next((p for p in pools if p.id == pipe.pool_id), None)
        if pool is None:
            raise ReadFailure(f"Unknown pool: {pipe.pool_id}")

        stake = await self._gateway.get_user_stake(pipe.pool_id, self.user_id)
        if (
            pipe.min_block is not None
            and stake.as_of_block is not None
            and stake.as_of_block < pipe.min_block
        ):
            raise StaleSnapshot(
                f"pool {pipe.pool_id} read at block {stake.as_of_block}, "
                f"expected at least {pipe.min_block}"
            )
        pending = await self._gateway.get_pending_rewards(pipe.pool_id, self.user_id)

        return build_snapshot(
            pool,
            stake,
            pending,
            self._price(),
            token_symbol=self.token_symbol,
            decimals=self.decimals,
            now=self._clock(),
        )

    async def _pool_table(self) -> list[Pool]:
        """Pool table read shared by every pipeline while it is in flight."""
        if self._pool_read is None:
            read = asyncio.ensure_future(self._gateway.get_all_pools())
            read.add_done_callback(self._pool_read_done)
            self._pool_read = read
        return await asyncio.shield(self._pool_read)

    def _pool_read_done(self, read: asyncio.Future) -> None:
        if self._pool_read is read:
            self._pool_read = None
        if not read.cancelled():
            read.exception()  # Mark retrieved; awaiting pipelines handle it

    def _price(self) -> float | None:
        if callable(self._usd_price):
            return self._usd_price()
        return self._usd_price

    def _report_error(self, pipe: _Pipeline, exc: StakingError) -> None:
        pipe.error = exc
        if isinstance(pipe.snapshot, Loading):
            pipe.ready.set()
        for sub in list(pipe.subscribers.values()):
            if sub.on_error is not None:
                self._call(sub.on_error, pipe.pool_id, exc)

    @staticmethod
    def _call(callback: Callable, pool_id: int, value: object) -> None:
        try:
            callback(pool_id, value)
        except Exception:
            logger.error("Observer callback for pool %d failed", pool_id, exc_info=True)


async def collect_snapshots(
    registry: DedupedSnapshotRegistry,
    pool_ids: Iterable[int],
    timeout: float | None = 30.0,
) -> dict[int, AggregatedSnapshot]:
    """Register, wait for every pool's first snapshot, then release.

    Raises ``asyncio.TimeoutError`` if any pool is still loading after
    *timeout* seconds, or the pool's ``ReadFailure`` if reads ran out.
    """
    subs = [registry.register(pool_id) for pool_id in dict.fromkeys(pool_ids)]
    try:
        results = await asyncio.wait_for(
            asyncio.gather(*(sub.wait() for sub in subs), return_exceptions=True),
            timeout,
        )
    finally:
        for sub in subs:
            sub.close()
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return {sub.pool_id: snap for sub, snap in zip(subs, results)}
