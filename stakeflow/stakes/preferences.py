"""Persisted stake-list preferences (sort, filters, view options)."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

from stakeflow.stakes.filtering import AmountBucket, FilterCriteria, QuickFilter, StatusFilter
from stakeflow.stakes.sorting import SortField, SortOrder, SortState

logger = logging.getLogger(__name__)

VIEW_MODES = ("table", "cards")


@dataclass
class StakesPreferences:
    sort_field: str | None = SortField.AMOUNT.value
    sort_order: str | None = SortOrder.DESC.value
    status_filter: str = StatusFilter.ALL.value
    amount_filter: str = AmountBucket.ALL.value
    search: str = ""
    pool_id: int | None = None
    quick_filter: str | None = None
    view_mode: str = "table"
    items_per_page: int = 25
    auto_refresh: bool = False
    refresh_interval: int = 30  # Seconds

    def __post_init__(self) -> None:
        if self.view_mode not in VIEW_MODES:
            raise ValueError(f"view_mode must be one of {VIEW_MODES}")
        if self.items_per_page <= 0:
            raise ValueError("items_per_page must be positive")
        if self.refresh_interval <= 0:
            raise ValueError("refresh_interval must be positive")
        # Unknown enum values raise ValueError here rather than at first use
        self.sort_state()
        self.criteria()

    # --- Conversions ---------------------------------------------------

    def sort_state(self) -> SortState:
        return SortState(
            field=SortField(self.sort_field) if self.sort_field else None,
            order=SortOrder(self.sort_order) if self.sort_order else None,
        )

    def criteria(self) -> FilterCriteria:
        return FilterCriteria(
            status=StatusFilter(self.status_filter),
            amount=AmountBucket(self.amount_filter),
            search=self.search,
            pool_id=self.pool_id,
            quick=QuickFilter(self.quick_filter) if self.quick_filter else None,
        )

    def with_state(self, sort: SortState, criteria: FilterCriteria) -> StakesPreferences:
        data = asdict(self)
        data.update(
            sort_field=sort.field.value if sort.field else None,
            sort_order=sort.order.value if sort.order else None,
            status_filter=criteria.status.value,
            amount_filter=criteria.amount.value,
            search=criteria.search,
            pool_id=criteria.pool_id,
            quick_filter=criteria.quick.value if criteria.quick else None,
        )
        return StakesPreferences(**data)

    # --- Persistence ---------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StakesPreferences:
        """Merge *data* over the defaults, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        merged = asdict(cls())
        merged.update({k: v for k, v in data.items() if k in known})
        return cls(**merged)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def load(cls, path: str | Path) -> StakesPreferences:
        """Load from *path*; a missing or unreadable file gives the defaults."""
        path = Path(path)
        if not path.exists():
            return cls()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("preferences file must hold a JSON object")
            return cls.from_dict(data)
        except (OSError, TypeError, ValueError):
            logger.warning("Failed to load stake preferences from %s", path, exc_info=True)
            return cls()

    def save(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
