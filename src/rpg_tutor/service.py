"""Event glue: runs learning and game events through the rules core.

Each function loads what it needs from the Database, calls the pure rules
modules and writes the results back. Character progress is created on
first use.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Mapping

from rpg_tutor.achievements import FAST_ANSWER_SECONDS, AchievementDef, check_achievements, unlock_records
from rpg_tutor.db import Database
from rpg_tutor.errors import InvalidArgument, InvalidState
from rpg_tutor.game_modes import GameModeReward, get_game_mode
from rpg_tutor.inventory import MYSTERY_BOX_ID, CollectibleItem, draw_random_item, get_item
from rpg_tutor.levels import CharacterProgress, LevelUpResult, award_xp, check_progress
from rpg_tutor.log import get_logger
from rpg_tutor.quests import (
    DAILY_QUEST_TEMPLATES,
    Activity,
    ActivityKind,
    QuestReward,
    UserQuest,
    apply_activity,
    generate_daily_quests,
    generate_weekly_quests,
    is_quest_active,
    start_user_quest,
)
from rpg_tutor.sessions import (
    AnswerOutcome,
    GameSession,
    GameSessionSettings,
    cancel_game_session,
    create_game_session,
    distribute_rewards,
    join_game_session,
    signal_time_expired,
    start_game_session,
    submit_answer,
    use_power_up,
)
from rpg_tutor.stats import (
    StatBlock,
    allocate_stat_points,
    effective_stats,
    grant_stat_points,
    parse_specialization,
    respec,
)
from rpg_tutor.streaks import effective_streak, update_learning_streak
from rpg_tutor.xp import DEFAULT_TUNING, RewardTuning, XPReward, normalize_subject, relevant_stats_for_subject
from rpg_tutor.xp import time_bonus_for, xp_reward

logger = get_logger(__name__)

DAILY_TEMPLATE_IDS = frozenset(t.id for templates in DAILY_QUEST_TEMPLATES.values() for t in templates)
DEFAULT_WORLDS: tuple[str, ...] = tuple(DAILY_QUEST_TEMPLATES)
DEFAULT_TIME_LIMIT = 30.0


@dataclass(frozen=True)
class Character:
    user_id: str
    name: str
    progress: CharacterProgress
    stats: StatBlock
    specialization: str | None = None

    @property
    def effective_stats(self) -> StatBlock:
        return effective_stats(self.stats, self.specialization)


@dataclass
class EventResult:
    """What one learning event changed for a character."""

    character: Character
    xp: XPReward | None = None
    level_up: LevelUpResult | None = None
    unlocked: list[AchievementDef] = field(default_factory=list)
    completed_quests: list[UserQuest] = field(default_factory=list)
    streak_days: int = 0


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(tz=timezone.utc)


def get_character(db: Database, user_id: str) -> Character | None:
    row = db.get_character(user_id)
    if row is None:
        return None
    progress = CharacterProgress(level=row["level"], total_xp=row["total_xp"], current_xp=row["current_xp"])
    return Character(
        user_id=user_id,
        name=row["name"],
        progress=check_progress(progress),
        stats=row["stats"],
        specialization=row["specialization"],
    )


def save_character(db: Database, character: Character, now: datetime) -> None:
    p = character.progress
    db.upsert_character(
        character.user_id, character.name, p.level, p.total_xp, p.current_xp,
        character.stats, character.specialization, now.isoformat(),
    )


def get_or_create_character(db: Database, user_id: str, now: datetime | None = None, name: str | None = None) -> Character:
    character = get_character(db, user_id)
    if character is not None:
        return character
    now = _now(now)
    character = Character(
        user_id=user_id,
        name=name or user_id,
        progress=CharacterProgress.from_total_xp(0),
        stats=StatBlock(),
    )
    save_character(db, character, now)
    logger.debug("created character for %s", user_id)
    return character


def _split_counters(counters: Mapping[str, int]) -> dict[str, object]:
    """Turn flat "kind:subject" counter keys into nested per-subject dicts."""
    snapshot: dict[str, object] = {}
    for key, value in counters.items():
        if ":" in key:
            kind, subject = key.split(":", 1)
            nested = snapshot.setdefault(kind, {})
            nested[subject] = value
        else:
            snapshot[key] = value
    return snapshot


def snapshot_for(db: Database, user_id: str, now: datetime | None = None) -> dict[str, object]:
    """Progress counters in the shape achievement criteria read."""
    now = _now(now)
    snapshot = _split_counters(db.get_counters(user_id))
    character = get_character(db, user_id)
    if character is not None:
        snapshot["character_level"] = character.progress.level
        snapshot["total_xp"] = character.progress.total_xp
    snapshot["streak_days"] = effective_streak(db.get_learning_streak(user_id), now.date())
    return snapshot


def _gain_xp(character: Character, amount: int) -> tuple[Character, LevelUpResult]:
    result = award_xp(character.progress, amount)
    stats = character.stats
    if result.leveled_up:
        stats = grant_stat_points(stats, result.stat_points_awarded)
    return Character(character.user_id, character.name, result.progress, stats, character.specialization), result


def _advance_quests(db: Database, user_id: str, activities: Iterable[Activity], now: datetime) -> list[UserQuest]:
    completed: list[UserQuest] = []
    activities = list(activities)
    for user_quest in db.get_user_quests(user_id):
        if user_quest.completed or not is_quest_active(user_quest, now):
            continue
        updated = user_quest
        for activity in activities:
            updated = apply_activity(updated, activity, now)
        if updated != user_quest:
            db.save_user_quest(updated)
            if updated.completed:
                completed.append(updated)
    return completed


def _apply_rewards(
    db: Database, character: Character, rewards: Iterable[QuestReward | GameModeReward], now: datetime
) -> Character:
    """Grant quest or game rewards.

    XP (times any bonus multiplier) and stat points go to the character,
    items into the inventory, badges and achievement rewards become
    unlocked achievements. Titles and world unlocks are only reported.
    """
    xp = 0
    points = 0
    timestamp = now.isoformat()
    for reward in rewards:
        if reward.type == "xp":
            xp += round(reward.value * (getattr(reward, "bonus_multiplier", None) or 1))
        elif reward.type == "stat_points":
            points += reward.value
        elif reward.type == "item" and reward.item_id:
            db.add_inventory_item(character.user_id, get_item(reward.item_id).id, reward.value, timestamp)
        elif reward.type in ("badge", "achievement"):
            unlocked_id = getattr(reward, "badge_id", None) or getattr(reward, "achievement_id", None)
            if unlocked_id:
                db.unlock_achievement(character.user_id, unlocked_id, timestamp)
    if points:
        character = Character(
            character.user_id, character.name, character.progress,
            grant_stat_points(character.stats, points), character.specialization,
        )
    if xp:
        character, _ = _gain_xp(character, xp)
    return character


def _unlock_achievements(db: Database, user_id: str, now: datetime) -> list[AchievementDef]:
    already = set(db.get_unlocked_achievements(user_id))
    newly = check_achievements(user_id, snapshot_for(db, user_id, now), already)
    records = unlock_records(user_id, newly, now)
    return [
        a for a, record in zip(newly, records)
        if db.unlock_achievement(record.user_id, record.achievement_id, record.unlocked_at.isoformat())
    ]


def _touch_streak(db: Database, user_id: str, now: datetime) -> int:
    streak = update_learning_streak(db.get_learning_streak(user_id), now.date())
    db.save_learning_streak(user_id, streak)
    db.set_counter_max(user_id, "longest_streak", streak.longest_streak)
    return streak.current_streak


def record_answer(
    db: Database,
    user_id: str,
    subject: str,
    difficulty: int,
    is_correct: bool,
    time_spent: float,
    time_limit: float = DEFAULT_TIME_LIMIT,
    now: datetime | None = None,
    tuning: RewardTuning = DEFAULT_TUNING,
) -> EventResult:
    """A question was answered: award XP, advance quests, check achievements."""
    now = _now(now)
    if time_spent < 0:
        raise InvalidArgument(f"time_spent must be >= 0, got {time_spent}", {"time_spent": time_spent})
    subject = normalize_subject(subject)
    character = get_or_create_character(db, user_id, now)

    reward = xp_reward(
        difficulty,
        1.0 if is_correct else 0.0,
        time_bonus_for(time_spent, time_limit) if is_correct else 0.0,
        relevant_stats_for_subject(subject, character.effective_stats),
        tuning,
    )
    xp_gained = reward.total_xp if is_correct else 0

    counters = db.get_counters(user_id)
    streak = counters.get("correct_streak", 0) + 1 if is_correct else 0
    deltas = {"questions_answered": 1, f"subject_answered:{subject}": 1}
    if is_correct:
        deltas.update({"correct_answers": 1, f"subject_correct_answers:{subject}": 1})
        if time_spent <= FAST_ANSWER_SECONDS:
            deltas["fast_answers"] = 1
    if xp_gained:
        deltas[f"subject_xp:{subject}"] = xp_gained
    db.increment_counters(user_id, **deltas)
    db.set_counter(user_id, "correct_streak", streak)
    db.set_counter_max(user_id, "best_correct_streak", streak)

    character, level_up = _gain_xp(character, xp_gained)
    streak_days = _touch_streak(db, user_id, now)

    answered = counters.get("questions_answered", 0) + 1
    correct = counters.get("correct_answers", 0) + (1 if is_correct else 0)
    subject_answered = counters.get(f"subject_answered:{subject}", 0) + 1
    subject_correct = counters.get(f"subject_correct_answers:{subject}", 0) + (1 if is_correct else 0)
    activities = [
        Activity(
            ActivityKind.ANSWER_QUESTION,
            subject_id=subject,
            correct_answers=1 if is_correct else 0,
            accuracy=correct / answered,
            subject_accuracy=subject_correct / subject_answered,
        )
    ]
    if xp_gained:
        activities.append(Activity(ActivityKind.EARN_XP, subject_id=subject, xp_earned=xp_gained))
    completed = _advance_quests(db, user_id, activities, now)
    character = _apply_rewards(db, character, [r for quest in completed for r in quest.rewards], now)
    save_character(db, character, now)

    unlocked = _unlock_achievements(db, user_id, now)
    logger.debug("%s answered %s (correct=%s): +%d XP", user_id, subject, is_correct, xp_gained)
    return EventResult(
        character=character,
        xp=reward if is_correct else None,
        level_up=level_up,
        unlocked=unlocked,
        completed_quests=completed,
        streak_days=streak_days,
    )


def complete_lesson(
    db: Database,
    user_id: str,
    subject: str,
    difficulty: int,
    accuracy: float,
    now: datetime | None = None,
    tuning: RewardTuning = DEFAULT_TUNING,
) -> EventResult:
    """A lesson was finished with the given overall accuracy (0.0-1.0)."""
    now = _now(now)
    subject = normalize_subject(subject)
    character = get_or_create_character(db, user_id, now)

    reward = xp_reward(
        difficulty, accuracy, 0.0, relevant_stats_for_subject(subject, character.effective_stats), tuning
    )
    db.increment_counters(
        user_id,
        **{"lessons_completed": 1, f"subject_lessons:{subject}": 1, f"subject_xp:{subject}": reward.total_xp},
    )
    character, level_up = _gain_xp(character, reward.total_xp)
    streak_days = _touch_streak(db, user_id, now)

    activities = [Activity(ActivityKind.COMPLETE_LESSON, subject_id=subject, streak_days=streak_days)]
    if reward.total_xp:
        activities.append(Activity(ActivityKind.EARN_XP, subject_id=subject, xp_earned=reward.total_xp))
    completed = _advance_quests(db, user_id, activities, now)
    character = _apply_rewards(db, character, [r for quest in completed for r in quest.rewards], now)
    save_character(db, character, now)

    unlocked = _unlock_achievements(db, user_id, now)
    return EventResult(
        character=character,
        xp=reward,
        level_up=level_up,
        unlocked=unlocked,
        completed_quests=completed,
        streak_days=streak_days,
    )


def allocate_points(db: Database, user_id: str, allocations: Mapping[str, int], now: datetime | None = None) -> Character:
    now = _now(now)
    character = get_or_create_character(db, user_id, now)
    stats = allocate_stat_points(character.stats, allocations)
    character = Character(character.user_id, character.name, character.progress, stats, character.specialization)
    save_character(db, character, now)
    return character


def reset_stats(db: Database, user_id: str, now: datetime | None = None) -> Character:
    now = _now(now)
    character = get_or_create_character(db, user_id, now)
    character = Character(
        character.user_id, character.name, character.progress, respec(character.stats), character.specialization
    )
    save_character(db, character, now)
    return character


def choose_specialization(db: Database, user_id: str, specialization: str, now: datetime | None = None) -> Character:
    spec = parse_specialization(specialization)
    if spec is None:
        raise InvalidArgument(f"unknown specialization {specialization!r}", {"specialization": specialization})
    now = _now(now)
    character = get_or_create_character(db, user_id, now)
    character = Character(character.user_id, character.name, character.progress, character.stats, spec.value)
    save_character(db, character, now)
    return character


def _is_daily(user_quest: UserQuest) -> bool:
    return any(user_quest.quest_id.startswith(f"{template_id}-") for template_id in DAILY_TEMPLATE_IDS)


def refresh_quests(
    db: Database,
    user_id: str,
    now: datetime | None = None,
    worlds: Iterable[str] = DEFAULT_WORLDS,
    rng: random.Random | None = None,
) -> list[UserQuest]:
    """Hand out new daily and weekly quests when none of that kind is running.

    Returns every quest that is still active.
    """
    now = _now(now)
    character = get_or_create_character(db, user_id, now)
    active = [q for q in db.get_user_quests(user_id) if is_quest_active(q, now)]
    level = character.progress.level

    new_quests = []
    if not any(_is_daily(q) for q in active):
        new_quests += generate_daily_quests(user_id, level, worlds, now, rng)
    if not any(not _is_daily(q) for q in active):
        new_quests += generate_weekly_quests(user_id, level, now, rng)
    for quest in new_quests:
        user_quest = start_user_quest(quest, user_id, now)
        db.save_user_quest(user_quest)
        active.append(user_quest)
    if new_quests:
        logger.debug("gave %s %d new quest(s)", user_id, len(new_quests))
    return active


def create_game(
    db: Database,
    mode_id: str,
    host_id: str,
    now: datetime | None = None,
    question_count: int | None = None,
) -> GameSession:
    now = _now(now)
    mode = get_game_mode(mode_id)
    host = get_or_create_character(db, host_id, now)
    settings = GameSessionSettings.for_mode(mode, question_count=question_count)
    session = create_game_session(mode, host.user_id, host.name, host.progress.level, now, settings)
    db.insert_game_session(session)
    return session


def join_game(db: Database, session_id: str, user_id: str, now: datetime | None = None) -> GameSession:
    now = _now(now)
    session = db.get_game_session(session_id)
    expected = session.version
    player = get_or_create_character(db, user_id, now)
    join_game_session(session, player.user_id, player.name, player.progress.level, now)
    db.save_game_session(session, expected)
    return session


def start_game(db: Database, session_id: str, user_id: str, now: datetime | None = None) -> GameSession:
    now = _now(now)
    session = db.get_game_session(session_id)
    expected = session.version
    start_game_session(session, user_id, now)
    db.save_game_session(session, expected)
    return session


def _grant_game_rewards(db: Database, session: GameSession, now: datetime) -> dict[str, list[GameModeReward]]:
    rewards = distribute_rewards(session)
    for user_id, earned in rewards.items():
        character = _apply_rewards(db, get_or_create_character(db, user_id, now), earned, now)
        save_character(db, character, now)
        db.increment_counters(user_id, games_played=1)
    logger.debug("session %s rewards: %s", session.id, {u: len(r) for u, r in rewards.items()})
    return rewards


def answer_in_game(
    db: Database,
    session_id: str,
    user_id: str,
    is_correct: bool,
    time_spent: float,
    now: datetime | None = None,
) -> tuple[AnswerOutcome, dict[str, list[GameModeReward]] | None]:
    """Score an in-game answer. Rewards are returned once the answer ends the game."""
    now = _now(now)
    session = db.get_game_session(session_id)
    expected = session.version
    outcome = submit_answer(session, user_id, is_correct, time_spent, now)
    db.save_game_session(session, expected)
    rewards = _grant_game_rewards(db, session, now) if outcome.session_completed else None
    return outcome, rewards


def end_game_timer(db: Database, session_id: str, now: datetime | None = None) -> dict[str, list[GameModeReward]]:
    now = _now(now)
    session = db.get_game_session(session_id)
    expected = session.version
    signal_time_expired(session, now)
    db.save_game_session(session, expected)
    return _grant_game_rewards(db, session, now)


def cancel_game(
    db: Database, session_id: str, user_id: str, now: datetime | None = None, admin: bool = False
) -> GameSession:
    now = _now(now)
    session = db.get_game_session(session_id)
    expected = session.version
    cancel_game_session(session, user_id, now, admin=admin)
    db.save_game_session(session, expected)
    return session


def use_game_power_up(
    db: Database, session_id: str, user_id: str, power_up_id: str, now: datetime | None = None
) -> GameSession:
    now = _now(now)
    session = db.get_game_session(session_id)
    expected = session.version
    use_power_up(session, user_id, power_up_id, now)
    db.save_game_session(session, expected)
    return session


def open_mystery_box(
    db: Database, user_id: str, now: datetime | None = None, rng: random.Random | None = None
) -> CollectibleItem:
    """Spend one mystery box from the inventory for a rarity-weighted collectible."""
    now = _now(now)
    item = draw_random_item(rng)
    if item is None:
        raise InvalidState("no collectible items can drop")
    db.remove_inventory_item(user_id, MYSTERY_BOX_ID)
    db.add_inventory_item(user_id, item.id, 1, now.isoformat())
    logger.debug("%s opened a mystery box: %s (%s)", user_id, item.id, item.rarity.label)
    return item
