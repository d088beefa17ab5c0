"""Bulk selection over the visible stake list."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator

from stakeflow.rewards.engine import AggregatedSnapshot, SnapshotStatus


@dataclass(frozen=True)
class SelectionSummary:
    count: int = 0
    total_staked: float = 0.0
    total_pending_rewards: float = 0.0
    claimable_count: int = 0
    matured_count: int = 0


class SelectionSet:
    """Set of selected pool ids.

    "Select all" always works on the snapshots passed in, which should be
    the currently filtered list rather than every stake.
    """

    def __init__(self, pool_ids: Iterable[int] = ()) -> None:
        self._ids: set[int] = set(pool_ids)

    def __contains__(self, pool_id: object) -> bool:
        return pool_id in self._ids

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._ids))

    def __len__(self) -> int:
        return len(self._ids)

    def toggle(self, pool_id: int) -> bool:
        """Flip *pool_id*; returns whether it is now selected."""
        if pool_id in self._ids:
            self._ids.discard(pool_id)
            return False
        self._ids.add(pool_id)
        return True

    def select_all(self, visible: Iterable[AggregatedSnapshot]) -> None:
        self._ids = {s.pool_id for s in visible}

    def all_selected(self, visible: Iterable[AggregatedSnapshot]) -> bool:
        ids = {s.pool_id for s in visible}
        return bool(ids) and ids <= self._ids

    def toggle_all(self, visible: Iterable[AggregatedSnapshot]) -> None:
        """Select every visible item, or clear if they are all selected already."""
        items = list(visible)
        if self.all_selected(items):
            self.clear()
        else:
            self.select_all(items)

    def clear(self) -> None:
        self._ids.clear()

    def retain(self, visible: Iterable[AggregatedSnapshot]) -> None:
        """Drop selections that are no longer visible."""
        self._ids &= {s.pool_id for s in visible}

    def selected(self, snapshots: Iterable[AggregatedSnapshot]) -> list[AggregatedSnapshot]:
        return [s for s in snapshots if s.pool_id in self._ids]


def summarize_selection(snapshots: Iterable[AggregatedSnapshot]) -> SelectionSummary:
    items = list(snapshots)
    return SelectionSummary(
        count=len(items),
        total_staked=sum(s.staked_amount for s in items),
        total_pending_rewards=sum(s.available_rewards for s in items),
        claimable_count=sum(1 for s in items if s.status is SnapshotStatus.CLAIMABLE),
        matured_count=sum(1 for s in items if s.is_matured),
    )
