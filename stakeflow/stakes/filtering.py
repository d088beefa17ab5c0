"""Filter criteria over aggregated stake snapshots."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from stakeflow.rewards.engine import AggregatedSnapshot


class StatusFilter(str, Enum):
    ALL = "all"
    CLAIMABLE = "claimable"
    PENDING = "pending"


class AmountBucket(str, Enum):
    ALL = "all"
    NONE = "none"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class QuickFilter(str, Enum):
    READY_TO_UNSTAKE = "ready_to_unstake"
    HIGH_REWARDS = "high_rewards"
    LARGE_STAKES = "large_stakes"
    HIGH_APY = "high_apy"
    TOP_PERFORMERS = "top_performers"


@dataclass(frozen=True)
class AmountBuckets:
    """Staked-amount bucket boundaries in whole tokens.

    ``none`` is exactly zero, ``small`` is below ``small_max``, ``medium``
    is below ``medium_max`` and ``large`` is everything above.
    """

    small_max: float = 1_000.0
    medium_max: float = 10_000.0

    def __post_init__(self) -> None:
        if not 0 < self.small_max <= self.medium_max:
            raise ValueError("Bucket boundaries must satisfy 0 < small_max <= medium_max")

    def bucket_of(self, amount: float) -> AmountBucket:
        if amount <= 0:
            return AmountBucket.NONE
        if amount < self.small_max:
            return AmountBucket.SMALL
        if amount < self.medium_max:
            return AmountBucket.MEDIUM
        return AmountBucket.LARGE


DEFAULT_BUCKETS = AmountBuckets()

# Quick-filter thresholds
HIGH_REWARDS_THRESHOLD = 10.0
HIGH_APY_THRESHOLD = 25.0
TOP_PERFORMER_REWARDS = 5.0
TOP_PERFORMER_APY = 20.0


@dataclass(frozen=True)
class FilterCriteria:
    """Conjunction of every active filter.  Defaults match everything."""

    status: StatusFilter = StatusFilter.ALL
    amount: AmountBucket = AmountBucket.ALL
    search: str = ""
    pool_id: int | None = None
    quick: QuickFilter | None = None


def _apy(snapshot: AggregatedSnapshot) -> float:
    return snapshot.apy_percent if snapshot.apy_percent is not None else 0.0


def matches_quick_filter(
    snapshot: AggregatedSnapshot,
    quick: QuickFilter,
    buckets: AmountBuckets = DEFAULT_BUCKETS,
) -> bool:
    if quick is QuickFilter.READY_TO_UNSTAKE:
        return snapshot.is_matured and snapshot.staked_amount > 0
    if quick is QuickFilter.HIGH_REWARDS:
        return snapshot.available_rewards > HIGH_REWARDS_THRESHOLD
    if quick is QuickFilter.LARGE_STAKES:
        return buckets.bucket_of(snapshot.staked_amount) is AmountBucket.LARGE
    if quick is QuickFilter.HIGH_APY:
        return _apy(snapshot) > HIGH_APY_THRESHOLD
    if quick is QuickFilter.TOP_PERFORMERS:
        return (
            snapshot.available_rewards > TOP_PERFORMER_REWARDS
            and _apy(snapshot) > TOP_PERFORMER_APY
        )
    raise ValueError(f"Unknown quick filter: {quick!r}")


def matches(
    snapshot: AggregatedSnapshot,
    criteria: FilterCriteria,
    buckets: AmountBuckets = DEFAULT_BUCKETS,
) -> bool:
    if criteria.status is not StatusFilter.ALL and snapshot.status.value != criteria.status.value:
        return False

    if criteria.amount is not AmountBucket.ALL and buckets.bucket_of(snapshot.staked_amount) is not criteria.amount:
        return False

    if criteria.pool_id is not None and snapshot.pool_id != criteria.pool_id:
        return False

    term = criteria.search.strip().lower().lstrip("#")
    if term and term not in str(snapshot.pool_id) and term not in snapshot.token_symbol.lower():
        return False

    if criteria.quick is not None and not matches_quick_filter(snapshot, criteria.quick, buckets):
        return False

    return True


def filter_snapshots(
    snapshots: Iterable[AggregatedSnapshot],
    criteria: FilterCriteria,
    buckets: AmountBuckets = DEFAULT_BUCKETS,
) -> list[AggregatedSnapshot]:
    """Snapshots matching every filter in *criteria*, in input order."""
    return [s for s in snapshots if matches(s, criteria, buckets)]


def filter_counts(
    snapshots: Iterable[AggregatedSnapshot],
    buckets: AmountBuckets = DEFAULT_BUCKETS,
) -> dict[str, dict[str, int]]:
    """Per-status and per-bucket counts for filter option labels."""
    items = list(snapshots)
    status = {f.value: 0 for f in StatusFilter}
    amount = {b.value: 0 for b in AmountBucket}
    status[StatusFilter.ALL.value] = amount[AmountBucket.ALL.value] = len(items)
    for snap in items:
        status[snap.status.value] += 1
        amount[buckets.bucket_of(snap.staked_amount).value] += 1
    return {"status": status, "amount": amount}


def has_active_filters(criteria: FilterCriteria) -> bool:
    return (
        criteria.status is not StatusFilter.ALL
        or criteria.amount is not AmountBucket.ALL
        or criteria.pool_id is not None
        or bool(criteria.search.strip())
        or criteria.quick is not None
    )


def clear_filters() -> FilterCriteria:
    return FilterCriteria()
