"""Tests for persisted stake-list preferences."""

import json

import pytest

from stakeflow.stakes.filtering import AmountBucket, FilterCriteria, QuickFilter, StatusFilter
from stakeflow.stakes.preferences import StakesPreferences
from stakeflow.stakes.sorting import SortField, SortOrder, SortState


class TestDefaults:
    def test_defaults(self) -> None:
        prefs = StakesPreferences()
        assert prefs.sort_state() == SortState(SortField.AMOUNT, SortOrder.DESC)
        assert prefs.criteria() == FilterCriteria()
        assert prefs.items_per_page == 25

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"view_mode": "grid"},
            {"items_per_page": 0},
            {"refresh_interval": -1},
            {"status_filter": "bogus"},
            {"sort_field": "nope"},
        ],
    )
    def test_invalid(self, kwargs) -> None:
        with pytest.raises(ValueError):
            StakesPreferences(**kwargs)


class TestConversion:
    def test_with_state(self) -> None:
        sort = SortState(SortField.APY, None)
        criteria = FilterCriteria(
            status=StatusFilter.PENDING,
            amount=AmountBucket.LARGE,
            search="w3e",
            pool_id=2,
            quick=QuickFilter.HIGH_APY,
        )
        prefs = StakesPreferences(view_mode="cards").with_state(sort, criteria)
        assert prefs.sort_field == "apy"
        assert prefs.sort_order is None
        assert prefs.quick_filter == "high_apy"
        assert prefs.view_mode == "cards"
        assert prefs.sort_state() == sort
        assert prefs.criteria() == criteria

    def test_from_dict_ignores_unknown(self) -> None:
        prefs = StakesPreferences.from_dict({"search": "abc", "theme": "dark"})
        assert prefs.search == "abc"
        assert prefs.sort_field == "amount"


class TestPersistence:
    def test_save_and_load(self, tmp_path) -> None:
        path = tmp_path / "nested" / "prefs.json"
        StakesPreferences(search="#1", auto_refresh=True).save(path)
        loaded = StakesPreferences.load(path)
        assert loaded.search == "#1"
        assert loaded.auto_refresh is True

    def test_missing_file(self, tmp_path) -> None:
        assert StakesPreferences.load(tmp_path / "absent.json") == StakesPreferences()

    def test_corrupt_file(self, tmp_path) -> None:
        path = tmp_path / "prefs.json"
        path.write_text("{not json")
        assert StakesPreferences.load(path) == StakesPreferences()

    def test_non_object(self, tmp_path) -> None:
        path = tmp_path / "prefs.json"
        path.write_text(json.dumps([1, 2, 3]))
        assert StakesPreferences.load(path) == StakesPreferences()

    def test_bad_value_in_file(self, tmp_path) -> None:
        path = tmp_path / "prefs.json"
        path.write_text(json.dumps({"quick_filter": "moon"}))
        assert StakesPreferences.load(path) == StakesPreferences()
