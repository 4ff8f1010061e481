"""Tests for achievement unlock evaluation."""

from datetime import datetime, timezone

from rpg_tutor.achievements import (
    ACHIEVEMENTS,
    AchievementDef,
    Rarity,
    achievement_statuses,
    check_achievements,
    criteria_met,
    criteria_progress,
    get_closest_achievements,
    unlock_records,
)


def _ids(achievements):
    return {a.id for a in achievements}


class TestCriteria:
    def test_lessons_completed(self):
        criteria = {"type": "lessons_completed", "count": 3}
        assert criteria_met(criteria, {"lessons_completed": 3})
        assert not criteria_met(criteria, {"lessons_completed": 2})

    def test_subject_correct_answers(self):
        criteria = {"type": "subject_correct_answers", "subject": "mathematics", "count": 50}
        assert criteria_met(criteria, {"subject_correct_answers": {"mathematics": 50}})
        assert not criteria_met(criteria, {"subject_correct_answers": {"science": 99}})

    def test_character_level(self):
        assert criteria_met({"type": "character_level", "level": 10}, {"character_level": 12})

    def test_streak_days(self):
        assert criteria_met({"type": "streak_days", "count": 7}, {"streak_days": 7})

    def test_unknown_type_fails_closed(self):
        assert not criteria_met({"type": "moon_phase", "count": 1}, {"moon_phase": 100})

    def test_malformed_target_fails_closed(self):
        assert not criteria_met({"type": "lessons_completed"}, {"lessons_completed": 100})
        assert not criteria_met({"type": "lessons_completed", "count": "ten"}, {"lessons_completed": 100})

    def test_missing_counter_is_zero(self):
        assert not criteria_met({"type": "questions_answered", "count": 1}, {})

    def test_progress_capped(self):
        criteria = {"type": "questions_answered", "count": 100}
        assert criteria_progress(criteria, {"questions_answered": 25}) == 0.25
        assert criteria_progress(criteria, {"questions_answered": 500}) == 1.0
        assert criteria_progress({"type": "nope"}, {}) == 0.0


class TestCheckAchievements:
    def test_returns_newly_met(self):
        snapshot = {"lessons_completed": 1, "character_level": 10}
        newly = check_achievements("u1", snapshot, set())
        assert _ids(newly) == {"first_steps", "rising_star"}

    def test_skips_already_unlocked(self):
        snapshot = {"lessons_completed": 1, "character_level": 10}
        newly = check_achievements("u1", snapshot, {"first_steps"})
        assert _ids(newly) == {"rising_star"}

    def test_idempotent(self):
        snapshot = {"lessons_completed": 30, "streak_days": 8}
        first = check_achievements("u1", snapshot, set())
        second = check_achievements("u1", snapshot, _ids(first))
        assert second == []

    def test_does_not_mutate_unlocked_set(self):
        unlocked = frozenset({"first_steps"})
        check_achievements("u1", {"lessons_completed": 25}, unlocked)
        assert unlocked == frozenset({"first_steps"})
        already = {"first_steps"}
        check_achievements("u1", {"lessons_completed": 25}, already)
        assert already == {"first_steps"}

    def test_unknown_criteria_definition_stays_locked(self):
        broken = AchievementDef("broken", "Broken", "", Rarity.COMMON, {"type": "???", "count": 0})
        assert check_achievements("u1", {}, set(), [broken]) == []

    def test_empty_snapshot_unlocks_nothing(self):
        assert check_achievements("u1", {}, set()) == []


class TestStatuses:
    def test_unlocked_and_locked(self):
        statuses = achievement_statuses(
            {"questions_answered": 50},
            {"first_steps": "2026-03-01T10:00:00+00:00"},
        )
        by_id = {s.definition.id: s for s in statuses}
        assert by_id["first_steps"].unlocked
        assert by_id["first_steps"].progress == 1.0
        assert by_id["curious_mind"].progress == 0.5
        assert not by_id["curious_mind"].unlocked
        assert len(statuses) == len(ACHIEVEMENTS)

    def test_closest(self):
        statuses = achievement_statuses({"questions_answered": 90, "lessons_completed": 20}, {})
        closest = get_closest_achievements(statuses, n=2)
        assert [s.definition.id for s in closest] == ["first_steps", "curious_mind"]

    def test_unlock_records(self):
        now = datetime(2026, 3, 1, tzinfo=timezone.utc)
        records = unlock_records("u1", [ACHIEVEMENTS[0]], now)
        assert records[0].achievement_id == "first_steps"
        assert records[0].unlocked_at == now
        assert records[0].progress == 1.0

    def test_rarity_label(self):
        assert Rarity.LEGENDARY.label == "legendary"
