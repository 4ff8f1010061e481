"""Tests for quest progress, expiry and generation."""

import random
from datetime import datetime, timedelta, timezone

import pytest

from rpg_tutor.errors import Expired, InvalidArgument, NotFound
from rpg_tutor.quests import (
    DAILY_QUEST_TEMPLATES,
    WEEKLY_QUEST_TEMPLATES,
    Activity,
    ActivityKind,
    ObjectiveType,
    QuestKind,
    QuestObjective,
    UserQuest,
    apply_activity,
    check_quest_prerequisites,
    create_quest_from_template,
    generate_daily_quests,
    generate_weekly_quests,
    quest_expiry,
    select_quest_template,
    start_user_quest,
    update_quest_progress,
    user_quest_from_dict,
    user_quest_to_dict,
)

NOW = datetime(2026, 3, 10, 9, 30, tzinfo=timezone.utc)


def _quest(*objectives, expires_at=None):
    return UserQuest(
        user_id="u1",
        quest_id="q1",
        objectives=tuple(objectives),
        expires_at=expires_at or NOW + timedelta(days=1),
        started_at=NOW,
        title="Test Quest",
    )


def _objective(obj_id="a", target=5, current=0, type_=ObjectiveType.ANSWER_QUESTIONS, subject=None):
    return QuestObjective(obj_id, f"objective {obj_id}", type_, target, current, subject)


class TestUpdateQuestProgress:
    def test_advances_objective(self):
        updated = update_quest_progress(_quest(_objective()), "a", 2, NOW)
        assert updated.objectives[0].current_value == 2
        assert not updated.completed
        assert updated.completed_at is None

    def test_clamps_at_target(self):
        updated = update_quest_progress(_quest(_objective(target=3)), "a", 10, NOW)
        assert updated.objectives[0].current_value == 3
        assert updated.completed

    def test_completed_only_when_all_objectives_reached(self):
        quest = _quest(_objective("a", target=1), _objective("b", target=2))
        quest = update_quest_progress(quest, "a", 1, NOW)
        assert not quest.completed
        quest = update_quest_progress(quest, "b", 2, NOW)
        assert quest.completed
        assert quest.completed_at == NOW

    def test_completed_at_stamped_once(self):
        later = NOW + timedelta(hours=1)
        quest = update_quest_progress(_quest(_objective(target=1)), "a", 1, NOW)
        again = update_quest_progress(quest, "a", 1, later)
        assert again.completed_at == NOW

    def test_monotonic(self):
        quest = _quest(_objective(target=10))
        values = []
        for delta in (1, 0, 3, 2):
            quest = update_quest_progress(quest, "a", delta, NOW)
            values.append(quest.objectives[0].current_value)
        assert values == sorted(values)

    def test_original_not_modified(self):
        quest = _quest(_objective())
        update_quest_progress(quest, "a", 2, NOW)
        assert quest.objectives[0].current_value == 0

    def test_unknown_objective(self):
        with pytest.raises(NotFound):
            update_quest_progress(_quest(_objective()), "zzz", 1, NOW)

    def test_negative_delta(self):
        with pytest.raises(InvalidArgument):
            update_quest_progress(_quest(_objective()), "a", -1, NOW)

    def test_expired(self):
        quest = _quest(_objective(), expires_at=NOW)
        with pytest.raises(Expired):
            update_quest_progress(quest, "a", 1, NOW)

    def test_expiry_checked_before_objective_lookup(self):
        quest = _quest(_objective(), expires_at=NOW - timedelta(seconds=1))
        with pytest.raises(Expired):
            update_quest_progress(quest, "zzz", 1, NOW)


class TestApplyActivity:
    def test_answers_for_matching_subject(self):
        quest = _quest(_objective(subject="mathematics"))
        activity = Activity(ActivityKind.ANSWER_QUESTION, subject_id="mathematics", correct_answers=1)
        assert apply_activity(quest, activity, NOW).objectives[0].current_value == 1

    def test_other_subject_ignored(self):
        quest = _quest(_objective(subject="mathematics"))
        activity = Activity(ActivityKind.ANSWER_QUESTION, subject_id="science", correct_answers=1)
        assert apply_activity(quest, activity, NOW) == quest

    def test_lessons_and_xp(self):
        quest = _quest(
            _objective("l", target=3, type_=ObjectiveType.COMPLETE_LESSONS),
            _objective("x", target=100, type_=ObjectiveType.EARN_XP),
        )
        quest = apply_activity(quest, Activity(ActivityKind.COMPLETE_LESSON, subject_id="history"), NOW)
        quest = apply_activity(quest, Activity(ActivityKind.EARN_XP, xp_earned=40), NOW)
        assert [o.current_value for o in quest.objectives] == [1, 40]

    def test_accuracy_tracks_best_seen(self):
        quest = _quest(_objective("acc", target=90, type_=ObjectiveType.ACHIEVE_ACCURACY))
        quest = apply_activity(quest, Activity(ActivityKind.ANSWER_QUESTION, accuracy=0.8), NOW)
        quest = apply_activity(quest, Activity(ActivityKind.ANSWER_QUESTION, accuracy=0.5), NOW)
        assert quest.objectives[0].current_value == 80
        quest = apply_activity(quest, Activity(ActivityKind.ANSWER_QUESTION, accuracy=0.95), NOW)
        assert quest.completed

    def test_subject_accuracy_for_filtered_objective(self):
        quest = _quest(
            _objective("math", target=90, type_=ObjectiveType.ACHIEVE_ACCURACY, subject="mathematics"),
            _objective("all", target=95, type_=ObjectiveType.ACHIEVE_ACCURACY),
        )
        activity = Activity(
            ActivityKind.ANSWER_QUESTION, subject_id="mathematics", accuracy=0.95, subject_accuracy=0.0
        )
        quest = apply_activity(quest, activity, NOW)
        assert [o.current_value for o in quest.objectives] == [0, 95]
        assert not quest.completed

    def test_streak_objective(self):
        quest = _quest(_objective("s", target=7, type_=ObjectiveType.MAINTAIN_STREAK))
        quest = apply_activity(quest, Activity(ActivityKind.COMPLETE_LESSON, streak_days=4), NOW)
        assert quest.objectives[0].current_value == 4


class TestExpiry:
    def test_daily_expires_end_of_next_day(self):
        expires = quest_expiry(QuestKind.DAILY, NOW)
        assert expires.date() == (NOW + timedelta(days=1)).date()
        assert (expires.hour, expires.minute, expires.second) == (23, 59, 59)
        assert expires.tzinfo == NOW.tzinfo

    def test_weekly_expires_after_seven_days(self):
        assert quest_expiry(QuestKind.WEEKLY, NOW) == NOW + timedelta(days=7)


class TestTemplates:
    def test_minimum_level(self):
        explorer = next(t for t in WEEKLY_QUEST_TEMPLATES if t.id == "multi-world-explorer")
        assert not check_quest_prerequisites(explorer, 4)
        assert check_quest_prerequisites(explorer, 5)

    def test_select_prefers_matching_difficulty(self):
        templates = DAILY_QUEST_TEMPLATES["numerical-kingdom"]
        chosen = select_quest_template(templates, 1, random.Random(1))
        assert chosen.id == "math-mastery-basic"

    def test_select_none_available(self):
        explorer = next(t for t in WEEKLY_QUEST_TEMPLATES if t.id == "multi-world-explorer")
        assert select_quest_template([explorer], 1) is None

    def test_create_quest(self):
        template = DAILY_QUEST_TEMPLATES["laboratory-realm"][1]
        quest = create_quest_from_template(template, "u1", NOW)
        assert quest.template_id == template.id
        assert len(quest.objectives) == 2
        assert all(o.current_value == 0 for o in quest.objectives)
        assert len({o.id for o in quest.objectives}) == 2

    def test_start_user_quest(self):
        quest = create_quest_from_template(DAILY_QUEST_TEMPLATES["chronicle-citadel"][0], "u1", NOW)
        user_quest = start_user_quest(quest, "u1", NOW)
        assert user_quest.quest_id == quest.id
        assert user_quest.title == quest.title
        assert not user_quest.completed

    def test_generate_daily_one_per_world(self):
        quests = generate_daily_quests("u1", 1, ["numerical-kingdom", "laboratory-realm"], NOW, random.Random(3))
        assert [q.world_id for q in quests] == ["numerical-kingdom", "laboratory-realm"]
        assert all(q.kind is QuestKind.DAILY for q in quests)

    def test_generate_weekly_respects_level(self):
        quests = generate_weekly_quests("u1", 1, NOW, random.Random(3))
        assert [q.template_id for q in quests] == ["subject-specialist"]
        assert len(generate_weekly_quests("u1", 10, NOW, random.Random(3))) == 2


class TestSerialization:
    def test_dict_round_trip(self):
        quest = update_quest_progress(_quest(_objective(target=1)), "a", 1, NOW)
        assert user_quest_from_dict(user_quest_to_dict(quest)) == quest
