"""Tests for loading and saving the persisted user documents."""

import json
import pytest
from datetime import date

from models import AppMode, TrackingType
from reconciler import (
    decode_habits, decode_settings, decode_tracking, default_habits,
    default_settings, load_state, serialize_state
)
from schemas import BuildHabit, QuitHabit


KEYS = ("habits", "data", "daily_logs", "finance", "settings")


def everywhere(text):
    return {key: text for key in KEYS}


# ═══════════════════════════════════════════════════════════════════════════
# load(serialize(load(x))) == load(x)
# ═══════════════════════════════════════════════════════════════════════════

@pytest.mark.parametrize("raw", [
    {},
    everywhere(""),
    everywhere("null"),
    everywhere("   "),
    everywhere("}{ definitely not json"),
    everywhere("[1, 2, 3]"),
    everywhere("42"),
    everywhere('"text"'),
    everywhere("NaN"),
    {
        "habits": json.dumps([
            {"id": "1", "name": "Walk"},
            {"id": "q", "name": "Smoking", "type": "QUIT", "quitDate": "2024-03-01T08:00:00Z",
             "originalQuitDate": "2024-02-01T08:00:00+01:00", "quitCostPerDay": 5,
             "quitHistory": [{"date": "2024-03-01T08:00:00Z", "durationSeconds": 100, "trigger": None}]},
        ]),
        "data": json.dumps({"2024-03-01": ["1", "q"], "2024-03-02": []}),
        "daily_logs": json.dumps({"2024-03-01": {"mood": 4, "text": "ok"}}),
        "finance": json.dumps({"expenses": [1.5, 2.25]}),
        "settings": json.dumps({"mode": "ZEN", "heroStats": {"xp": 900}, "accent": "violet", "pin": None}),
    },
    {"daily_logs": '{"a": 1e400}'},
    {"habits": '[{"id": "q", "name": "Soda", "type": "QUIT", "quitDate": "2024-03-01T08:00:00Z", "quitCostPerDay": 1e400}]'},
    {"settings": json.dumps({"heroStats": {"xp": 10**12, "nextLevelXp": 2}})},
])
def test_reconciliation_is_idempotent(raw, frozen_now):
    first = load_state(raw, frozen_now)
    second = load_state(serialize_state(first), frozen_now)
    assert second == first


def test_garbage_falls_back_to_defaults(frozen_now):
    state = load_state(everywhere("}{"), frozen_now)
    assert state.habits == default_habits(frozen_now)
    assert state.tracking == {}
    assert state.settings == default_settings()
    assert state.journal == {}
    assert state.finance == {}


def test_one_bad_key_does_not_affect_the_others(frozen_now):
    raw = {"habits": "oops", "data": json.dumps({"2024-01-01": ["1"]})}
    state = load_state(raw, frozen_now)
    assert state.habits == default_habits(frozen_now)
    assert state.tracking == {date(2024, 1, 1): frozenset({"1"})}


def test_numbers_beyond_float_range_are_corrupt(frozen_now):
    raw = {
        "habits": '[{"id": "q", "name": "Soda", "type": "QUIT", "quitDate": "2024-03-01T08:00:00Z", "quitCostPerDay": 1e400}]',
        "daily_logs": '{"a": 1e400}',
    }
    state = load_state(raw, frozen_now)
    assert state.habits == default_habits(frozen_now)
    assert state.journal == {}


# ═══════════════════════════════════════════════════════════════════════════
# Habits
# ═══════════════════════════════════════════════════════════════════════════

class TestHabits:

    def test_default_list(self, frozen_now):
        habits = default_habits(frozen_now)
        assert [h.id for h in habits] == ["1", "2", "3", "4", "5", "6", "q1", "q2"]
        assert all(isinstance(h, BuildHabit) for h in habits[:6])
        assert habits[4].name == "Meditation"
        assert habits[4].target_consistency == 100
        assert (frozen_now - habits[6].quit_date).days == 5
        assert (frozen_now - habits[7].quit_date).total_seconds() == 2.5 * 86400

    def test_legacy_record_without_type_is_build(self):
        habits = decode_habits(json.dumps([{"id": "7", "name": "Walk"}]), ())
        assert len(habits) == 1
        habit = habits[0]
        assert isinstance(habit, BuildHabit)
        assert habit.tracking_type == TrackingType.boolean
        assert habit.daily_target == 1
        assert habit.target_consistency == 100

    def test_build_record_drops_quit_fields(self):
        raw = json.dumps([{"id": "7", "name": "Walk", "type": "BUILD", "quitDate": "2024-01-01T00:00:00Z"}])
        habit = decode_habits(raw, ())[0]
        assert isinstance(habit, BuildHabit)
        assert not hasattr(habit, "quit_date")

    def test_quit_record(self):
        raw = json.dumps([{"id": "q", "name": "Smoking", "type": "QUIT", "quitDate": "2024-01-01T00:00:00Z"}])
        habit = decode_habits(raw, ())[0]
        assert isinstance(habit, QuitHabit)
        assert habit.quit_date.tzinfo is not None
        assert habit.quit_history == ()

    @pytest.mark.parametrize("bad_element", [
        {"id": "", "name": "Empty id"},
        {"id": "x", "name": "Quit without date", "type": "QUIT"},
        {"id": "x", "name": "Unknown type", "type": "MAYBE"},
        {"id": "x", "name": "Bad target", "targetConsistency": 150},
        "not an object",
    ])
    def test_one_invalid_element_discards_the_whole_list(self, bad_element):
        default = ("sentinel",)
        raw = json.dumps([{"id": "1", "name": "Fine"}, bad_element])
        assert decode_habits(raw, default) is default

    def test_serialized_with_camel_case(self, frozen_now):
        state = load_state({}, frozen_now)
        habits = json.loads(serialize_state(state, ["habits"])["habits"])
        assert habits[0]["targetConsistency"] == 85
        assert "quitDate" in habits[6]
        assert "quitDate" not in habits[0]


# ═══════════════════════════════════════════════════════════════════════════
# Tracking
# ═══════════════════════════════════════════════════════════════════════════

class TestTracking:

    def test_empty_days_are_dropped(self):
        raw = json.dumps({"2024-01-01": ["a"], "2024-01-02": []})
        assert decode_tracking(raw) == {date(2024, 1, 1): frozenset({"a"})}

    @pytest.mark.parametrize("raw", [
        json.dumps({"2024-01-01": ["a"], "not-a-date": ["b"]}),
        json.dumps({"2024-01-01": "a"}),
        json.dumps({"2024-01-01": [1, 2]}),
        json.dumps([["2024-01-01", ["a"]]]),
    ])
    def test_invalid_documents_start_empty(self, raw):
        assert decode_tracking(raw) == {}


# ═══════════════════════════════════════════════════════════════════════════
# Settings
# ═══════════════════════════════════════════════════════════════════════════

class TestSettings:

    def test_partial_document_is_merged_over_defaults(self):
        settings = decode_settings(json.dumps({"mode": "ZEN", "heroStats": {"xp": 40}}), default_settings())
        assert settings.mode == AppMode.zen
        assert settings.deep_work_interval == 90
        assert settings.hero_stats.xp == 40
        assert settings.hero_stats.hp == 100
        assert settings.hero_stats.next_level_xp == 500

    def test_overflowing_xp_is_normalised(self):
        settings = decode_settings(json.dumps({"heroStats": {"xp": 1200}}), default_settings())
        assert settings.hero_stats.level == 3
        assert settings.hero_stats.xp == 100

    def test_invalid_value_falls_back_to_defaults(self):
        default = default_settings()
        assert decode_settings(json.dumps({"mode": "party"}), default) is default

    @pytest.mark.parametrize("raw", [
        json.dumps({"heroStats": {"xp": 10**12, "nextLevelXp": 2}}),
        '{"heroStats": {"xp": 1' + "0" * 400 + '}}',
    ])
    def test_out_of_range_xp_falls_back_to_defaults(self, raw):
        default = default_settings()
        assert decode_settings(raw, default) is default

    def test_tiny_level_threshold_still_levels_up(self):
        settings = decode_settings(json.dumps({"heroStats": {"xp": 1000, "nextLevelXp": 1}}), default_settings())
        assert settings.hero_stats.level > 1
        assert settings.hero_stats.xp < settings.hero_stats.next_level_xp

    def test_unknown_fields_travel_through(self, frozen_now):
        raw = {"settings": json.dumps({"accent": "violet", "legacyFlag": None})}
        state = load_state(raw, frozen_now)
        saved = json.loads(serialize_state(state, ["settings"])["settings"])
        assert saved["accent"] == "violet"
        assert saved["legacyFlag"] is None
        assert saved["heroStats"]["nextLevelXp"] == 500
