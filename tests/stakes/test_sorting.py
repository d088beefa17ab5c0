"""Tests for sort state cycling and ordering."""

import pytest

from stakeflow.stakes.sorting import SortField, SortOrder, SortState, sort_snapshots


def _ids(snapshots):
    return [s.pool_id for s in snapshots]


class TestSortState:
    def test_default(self) -> None:
        assert SortState().is_default

    def test_new_field_starts_descending(self) -> None:
        state = SortState().toggle(SortField.APY)
        assert state == SortState(SortField.APY, SortOrder.DESC)

    def test_cycle(self) -> None:
        state = SortState().toggle(SortField.AMOUNT)
        state = state.toggle(SortField.AMOUNT)
        assert state.is_default
        assert state.field is SortField.AMOUNT
        state = state.toggle(SortField.AMOUNT)
        assert state.order is SortOrder.ASC
        state = state.toggle(SortField.AMOUNT)
        assert state.order is SortOrder.DESC

    def test_switching_field_resets_order(self) -> None:
        state = SortState(SortField.AMOUNT, SortOrder.ASC).toggle(SortField.REWARDS)
        assert state == SortState(SortField.REWARDS, SortOrder.DESC)


class TestSortSnapshots:
    def test_default_keeps_input_order(self, five_snapshots) -> None:
        assert _ids(sort_snapshots(five_snapshots, SortState())) == [0, 1, 2, 3, 4]
        assert _ids(sort_snapshots(five_snapshots, SortState(SortField.AMOUNT, None))) == [0, 1, 2, 3, 4]

    @pytest.mark.parametrize(
        "field, order, expected",
        [
            (SortField.AMOUNT, SortOrder.DESC, [3, 1, 4, 0, 2]),
            (SortField.AMOUNT, SortOrder.ASC, [2, 0, 4, 1, 3]),
            (SortField.REWARDS, SortOrder.DESC, [1, 3, 0, 2, 4]),
            (SortField.EARNED, SortOrder.DESC, [1, 2, 3, 0, 4]),
            (SortField.USD_VALUE, SortOrder.ASC, [2, 4, 0, 3, 1]),
        ],
    )
    def test_order(self, five_snapshots, field, order, expected) -> None:
        assert _ids(sort_snapshots(five_snapshots, SortState(field, order))) == expected

    def test_unknown_apy_last_both_ways(self, five_snapshots) -> None:
        desc = sort_snapshots(five_snapshots, SortState(SortField.APY, SortOrder.DESC))
        asc = sort_snapshots(five_snapshots, SortState(SortField.APY, SortOrder.ASC))
        assert _ids(desc) == [1, 4, 0, 2, 3]
        assert _ids(asc) == [2, 0, 4, 1, 3]

    def test_does_not_mutate_input(self, five_snapshots) -> None:
        before = list(five_snapshots)
        sort_snapshots(five_snapshots, SortState(SortField.AMOUNT, SortOrder.DESC))
        assert five_snapshots == before
