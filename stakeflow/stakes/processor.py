"""Stake list state: current snapshots plus filters, sort and selection."""

from __future__ import annotations

import dataclasses
from typing import Any, Iterable, Mapping

from stakeflow.rewards.engine import AggregatedSnapshot, Loading
from stakeflow.stakes import export as export_mod
from stakeflow.stakes.filtering import (
    DEFAULT_BUCKETS,
    AmountBuckets,
    FilterCriteria,
    QuickFilter,
    filter_counts,
    filter_snapshots,
    has_active_filters,
)
from stakeflow.stakes.preferences import StakesPreferences
from stakeflow.stakes.selection import SelectionSet, SelectionSummary, summarize_selection
from stakeflow.stakes.sorting import SortField, SortState, sort_snapshots


class StakeListProcessor:
    """Filter, sort, select and export the acting user's stake snapshots.

    Loading snapshots are skipped; only pools with real data are listed.
    """

    def __init__(
        self,
        snapshots: Iterable[AggregatedSnapshot | Loading] = (),
        criteria: FilterCriteria | None = None,
        sort: SortState | None = None,
        buckets: AmountBuckets = DEFAULT_BUCKETS,
    ) -> None:
        self.criteria = criteria or FilterCriteria()
        self.sort_state = sort or SortState()
        self.buckets = buckets
        self.selection = SelectionSet()
        self._snapshots: list[AggregatedSnapshot] = []
        self.update(snapshots)

    @classmethod
    def from_preferences(
        cls,
        snapshots: Iterable[AggregatedSnapshot | Loading],
        prefs: StakesPreferences,
        buckets: AmountBuckets = DEFAULT_BUCKETS,
    ) -> StakeListProcessor:
        return cls(snapshots, criteria=prefs.criteria(), sort=prefs.sort_state(), buckets=buckets)

    # --- Data ----------------------------------------------------------

    def update(self, snapshots: Iterable[AggregatedSnapshot | Loading] | Mapping[int, Any]) -> None:
        """Replace the snapshot set, keeping selections that still exist."""
        values = snapshots.values() if isinstance(snapshots, Mapping) else snapshots
        self._snapshots = [s for s in values if isinstance(s, AggregatedSnapshot)]
        self.selection.retain(self._snapshots)

    @property
    def snapshots(self) -> list[AggregatedSnapshot]:
        return list(self._snapshots)

    def visible(self) -> list[AggregatedSnapshot]:
        """Filtered, then sorted, snapshots as displayed."""
        return sort_snapshots(filter_snapshots(self._snapshots, self.criteria, self.buckets), self.sort_state)

    # --- Filters -------------------------------------------------------

    def set_filters(self, **changes: Any) -> FilterCriteria:
        self.criteria = dataclasses.replace(self.criteria, **changes)
        return self.criteria

    def apply_quick_filter(self, quick: QuickFilter) -> FilterCriteria:
        """Activate *quick*, or switch it off if it is already active."""
        return self.set_filters(quick=None if self.criteria.quick is quick else quick)

    def clear_filters(self) -> None:
        self.criteria = FilterCriteria()

    @property
    def has_active_filters(self) -> bool:
        return has_active_filters(self.criteria)

    def filter_counts(self) -> dict[str, dict[str, int]]:
        return filter_counts(self._snapshots, self.buckets)

    # --- Sorting -------------------------------------------------------

    def toggle_sort(self, field: SortField | str) -> SortState:
        self.sort_state = self.sort_state.toggle(SortField(field))
        return self.sort_state

    # --- Selection -----------------------------------------------------

    def toggle_selection(self, pool_id: int) -> bool:
        return self.selection.toggle(pool_id)

    def select_all(self) -> None:
        """Select every *visible* snapshot (not the unfiltered set)."""
        self.selection.select_all(self.visible())

    def toggle_all(self) -> None:
        self.selection.toggle_all(self.visible())

    def clear_selection(self) -> None:
        self.selection.clear()

    def selected(self) -> list[AggregatedSnapshot]:
        return self.selection.selected(self.visible())

    def selection_summary(self) -> SelectionSummary:
        return summarize_selection(self.selected())

    # --- Export --------------------------------------------------------

    def export(
        self,
        fmt: export_mod.ExportFormat | str = export_mod.ExportFormat.CSV,
        selected_only: bool = False,
    ) -> bytes:
        rows = self.selected() if selected_only else self.visible()
        return export_mod.export_snapshots(rows, fmt)

    def summary(self) -> dict[str, Any]:
        return export_mod.generate_summary(self.visible())

    def preferences(self, base: StakesPreferences | None = None) -> StakesPreferences:
        return (base or StakesPreferences()).with_state(self.sort_state, self.criteria)
