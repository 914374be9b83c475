"""Tests for the tracking ledger (date → completed habit ids)."""

import pytest
from datetime import date

import ledger


D = date(2024, 1, 10)


@pytest.fixture
def sample():
    return {
        date(2024, 1, 8): frozenset({"a"}),
        date(2024, 1, 9): frozenset({"a", "b"}),
        date(2024, 1, 11): frozenset({"b"}),
    }


# ═══════════════════════════════════════════════════════════════════════════
# toggle
# ═══════════════════════════════════════════════════════════════════════════

class TestToggle:

    @pytest.mark.parametrize("habit_id,day", [
        ("a", date(2024, 1, 8)),   # removes the only id of a day
        ("a", date(2024, 1, 9)),   # removes one of two ids
        ("c", date(2024, 1, 9)),   # adds to an existing day
        ("a", date(2024, 2, 1)),   # adds a new day
    ])
    def test_self_inverse(self, sample, habit_id, day):
        assert ledger.toggle(ledger.toggle(sample, habit_id, day), habit_id, day) == sample

    def test_self_inverse_on_empty_ledger(self):
        assert ledger.toggle(ledger.toggle({}, "x", D), "x", D) == {}

    def test_copy_on_write(self, sample):
        before = dict(sample)
        updated = ledger.toggle(sample, "z", D)
        assert sample == before
        assert updated is not sample
        assert updated[D] == frozenset({"z"})

    def test_emptied_day_is_dropped(self, sample):
        updated = ledger.toggle(sample, "a", date(2024, 1, 8))
        assert date(2024, 1, 8) not in updated

    def test_unknown_ids_are_accepted(self):
        assert ledger.is_complete(ledger.toggle({}, "deleted-habit", D), "deleted-habit", D)


# ═══════════════════════════════════════════════════════════════════════════
# Queries
# ═══════════════════════════════════════════════════════════════════════════

class TestQueries:

    def test_is_complete(self, sample):
        assert ledger.is_complete(sample, "b", date(2024, 1, 9))
        assert not ledger.is_complete(sample, "b", date(2024, 1, 8))
        assert not ledger.is_complete(sample, "a", date(2030, 1, 1))

    def test_completed_days_sorted(self, sample):
        assert ledger.completed_days(sample, "b") == [date(2024, 1, 9), date(2024, 1, 11)]

    def test_count_completions_bounds_are_inclusive(self, sample):
        assert ledger.count_completions(sample, "a") == 2
        assert ledger.count_completions(sample, "b", date(2024, 1, 9), date(2024, 1, 11)) == 2
        assert ledger.count_completions(sample, "b", date(2024, 1, 10), None) == 1

    def test_ids_on_missing_day(self, sample):
        assert ledger.ids_on(sample, D) == frozenset()


# ═══════════════════════════════════════════════════════════════════════════
# Serialization helpers
# ═══════════════════════════════════════════════════════════════════════════

class TestLists:

    def test_to_lists_sorts_days_and_ids(self, sample):
        assert ledger.to_lists(sample) == {
            "2024-01-08": ["a"],
            "2024-01-09": ["a", "b"],
            "2024-01-11": ["b"],
        }
        assert list(ledger.to_lists(sample)) == ["2024-01-08", "2024-01-09", "2024-01-11"]

    def test_from_lists_drops_empty_days(self):
        raw = {date(2024, 1, 1): ["a"], date(2024, 1, 2): []}
        assert ledger.from_lists(raw) == {date(2024, 1, 1): frozenset({"a"})}
