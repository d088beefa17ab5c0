"""Sort state and ordering of stake snapshots."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable

from stakeflow.rewards.engine import AggregatedSnapshot


class SortField(str, Enum):
    AMOUNT = "amount"
    APY = "apy"
    REWARDS = "rewards"
    EARNED = "earned"
    USD_VALUE = "usdValue"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


_KEYS: dict[SortField, Callable[[AggregatedSnapshot], float | None]] = {
    SortField.AMOUNT: lambda s: s.staked_amount,
    SortField.APY: lambda s: s.apy_percent,
    SortField.REWARDS: lambda s: s.available_rewards,
    SortField.EARNED: lambda s: s.total_earned,
    SortField.USD_VALUE: lambda s: s.usd_value,
}


@dataclass(frozen=True)
class SortState:
    """Current sort column and direction.

    ``order`` of None means the default (input) order.
    """

    field: SortField | None = None
    order: SortOrder | None = None

    @property
    def is_default(self) -> bool:
        return self.order is None

    def toggle(self, field: SortField) -> SortState:
        """Next state when the user clicks *field*.

        A new field starts descending.  Repeated clicks on the same field
        go desc -> default -> asc -> desc.
        """
        if field is not self.field:
            return SortState(field, SortOrder.DESC)
        if self.order is SortOrder.DESC:
            return SortState(field, None)
        if self.order is None:
            return SortState(field, SortOrder.ASC)
        return SortState(field, SortOrder.DESC)


def sort_snapshots(
    snapshots: Iterable[AggregatedSnapshot],
    state: SortState,
) -> list[AggregatedSnapshot]:
    """Stable sort by *state*; snapshots without a value (unknown APY) go last."""
    items = list(snapshots)
    if state.field is None or state.order is None:
        return items
    key = _KEYS[state.field]
    known = [s for s in items if key(s) is not None]
    unknown = [s for s in items if key(s) is None]
    known.sort(key=key, reverse=state.order is SortOrder.DESC)
    return known + unknown
