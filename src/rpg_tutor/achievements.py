"""Achievement definitions and unlock evaluation for rpg-tutor."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import AbstractSet, Callable, Iterable, Mapping

from rpg_tutor.log import get_logger

logger = get_logger(__name__)

# Correct answers at or under this many seconds count toward "fast_answers"
FAST_ANSWER_SECONDS = 10


class Rarity(int, Enum):
    COMMON = 1
    UNCOMMON = 2
    RARE = 3
    EPIC = 4
    LEGENDARY = 5

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class AchievementDef:
    id: str
    name: str
    description: str
    rarity: Rarity
    criteria: Mapping[str, object]
    category: str = "learning"


@dataclass
class AchievementStatus:
    definition: AchievementDef
    progress: float  # 0.0 to 1.0
    unlocked: bool
    unlocked_at: str | None  # ISO timestamp or None


@dataclass(frozen=True)
class UserAchievement:
    user_id: str
    achievement_id: str
    unlocked_at: datetime
    progress: float | None = None


ACHIEVEMENTS: list[AchievementDef] = [
    AchievementDef(
        id="first_steps",
        name="First Steps",
        description="Complete your first lesson",
        rarity=Rarity.COMMON,
        criteria={"type": "lessons_completed", "count": 1},
    ),
    AchievementDef(
        id="dedicated_learner",
        name="Dedicated Learner",
        description="Complete 25 lessons",
        rarity=Rarity.UNCOMMON,
        criteria={"type": "lessons_completed", "count": 25},
    ),
    AchievementDef(
        id="curious_mind",
        name="Curious Mind",
        description="Answer 100 questions",
        rarity=Rarity.COMMON,
        criteria={"type": "questions_answered", "count": 100},
    ),
    AchievementDef(
        id="number_cruncher",
        name="Number Cruncher",
        description="Answer 50 mathematics questions correctly",
        rarity=Rarity.RARE,
        criteria={"type": "subject_correct_answers", "subject": "mathematics", "count": 50},
        category="subject",
    ),
    AchievementDef(
        id="lab_regular",
        name="Lab Regular",
        description="Complete 10 science lessons",
        rarity=Rarity.UNCOMMON,
        criteria={"type": "subject_lessons", "subject": "science", "count": 10},
        category="subject",
    ),
    AchievementDef(
        id="quick_thinker",
        name="Quick Thinker",
        description=f"Answer 10 questions correctly in {FAST_ANSWER_SECONDS} seconds or less",
        rarity=Rarity.UNCOMMON,
        criteria={"type": "fast_answers", "count": 10},
        category="skill",
    ),
    AchievementDef(
        id="perfectionist",
        name="Perfectionist",
        description="Answer 20 questions correctly in a row",
        rarity=Rarity.EPIC,
        criteria={"type": "accuracy_streak", "count": 20},
        category="skill",
    ),
    AchievementDef(
        id="week_warrior",
        name="Week Warrior",
        description="Learn 7 days in a row",
        rarity=Rarity.UNCOMMON,
        criteria={"type": "streak_days", "count": 7},
        category="streak",
    ),
    AchievementDef(
        id="unstoppable",
        name="Unstoppable",
        description="Learn 30 days in a row",
        rarity=Rarity.EPIC,
        criteria={"type": "streak_days", "count": 30},
        category="streak",
    ),
    AchievementDef(
        id="rising_star",
        name="Rising Star",
        description="Reach character level 10",
        rarity=Rarity.RARE,
        criteria={"type": "character_level", "level": 10},
        category="character",
    ),
    AchievementDef(
        id="living_legend",
        name="Living Legend",
        description="Reach character level 41",
        rarity=Rarity.LEGENDARY,
        criteria={"type": "character_level", "level": 41},
        category="character",
    ),
]


def _count(snapshot: Mapping[str, object], key: str) -> float:
    value = snapshot.get(key, 0)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value


def _subject_count(snapshot: Mapping[str, object], key: str, subject: object) -> float:
    per_subject = snapshot.get(key) or {}
    if not isinstance(per_subject, Mapping) or not isinstance(subject, str):
        return 0
    value = per_subject.get(subject, 0)
    return value if isinstance(value, (int, float)) and not isinstance(value, bool) else 0


# criterion type -> (current value, target value)
_MEASURES: dict[str, Callable[[Mapping[str, object], Mapping[str, object]], tuple[float, object]]] = {
    "lessons_completed": lambda c, s: (_count(s, "lessons_completed"), c.get("count")),
    "questions_answered": lambda c, s: (_count(s, "questions_answered"), c.get("count")),
    "subject_correct_answers": lambda c, s: (
        _subject_count(s, "subject_correct_answers", c.get("subject")),
        c.get("count"),
    ),
    "subject_lessons": lambda c, s: (_subject_count(s, "subject_lessons", c.get("subject")), c.get("count")),
    "fast_answers": lambda c, s: (_count(s, "fast_answers"), c.get("count")),
    "accuracy_streak": lambda c, s: (_count(s, "best_correct_streak"), c.get("count")),
    "streak_days": lambda c, s: (_count(s, "streak_days"), c.get("count")),
    "daily_streak": lambda c, s: (_count(s, "streak_days"), c.get("count")),
    "character_level": lambda c, s: (_count(s, "character_level"), c.get("level")),
    "total_xp": lambda c, s: (_count(s, "total_xp"), c.get("amount")),
}


def _measure(criteria: Mapping[str, object], snapshot: Mapping[str, object]) -> tuple[float, float] | None:
    """Return (current, target), or None when the criteria cannot be evaluated."""
    measure = _MEASURES.get(str(criteria.get("type")))
    if measure is None:
        logger.warning("unknown achievement criterion %r; treating as locked", criteria.get("type"))
        return None
    current, target = measure(criteria, snapshot)
    if isinstance(target, bool) or not isinstance(target, (int, float)) or target <= 0:
        logger.warning("malformed achievement criterion %r; treating as locked", dict(criteria))
        return None
    return current, target


def criteria_met(criteria: Mapping[str, object], snapshot: Mapping[str, object]) -> bool:
    """Evaluate one criterion. Unknown or malformed criteria are never met."""
    measured = _measure(criteria, snapshot)
    if measured is None:
        return False
    current, target = measured
    return current >= target


def criteria_progress(criteria: Mapping[str, object], snapshot: Mapping[str, object]) -> float:
    """Progress toward a criterion as min(current / target, 1.0)."""
    measured = _measure(criteria, snapshot)
    if measured is None:
        return 0.0
    current, target = measured
    return min(max(current / target, 0.0), 1.0)


def check_achievements(
    user_id: str,
    snapshot: Mapping[str, object],
    already_unlocked: AbstractSet[str],
    definitions: Iterable[AchievementDef] = ACHIEVEMENTS,
) -> list[AchievementDef]:
    """Return the achievements whose criteria newly hold.

    snapshot is a read-only mapping of progress counters:
    - lessons_completed, questions_answered, fast_answers: int
    - subject_correct_answers, subject_lessons: dict[subject, int]
    - best_correct_streak, streak_days, character_level, total_xp: int

    Definitions already in ``already_unlocked`` are skipped; the set itself
    is not modified. Persisting the result is the caller's job.
    """
    newly: list[AchievementDef] = []
    for achievement in definitions:
        if achievement.id in already_unlocked:
            continue
        if criteria_met(achievement.criteria, snapshot):
            newly.append(achievement)
    if newly:
        logger.debug("user %s unlocked %s", user_id, [a.id for a in newly])
    return newly


def unlock_records(user_id: str, achievements: Iterable[AchievementDef], now: datetime) -> list[UserAchievement]:
    """Build UserAchievement facts for newly unlocked achievements."""
    return [
        UserAchievement(user_id=user_id, achievement_id=a.id, unlocked_at=now, progress=1.0)
        for a in achievements
    ]


def achievement_statuses(
    snapshot: Mapping[str, object],
    unlocked_at: Mapping[str, str],
    definitions: Iterable[AchievementDef] = ACHIEVEMENTS,
) -> list[AchievementStatus]:
    """Status of every achievement; ``unlocked_at`` maps id -> unlock timestamp."""
    results: list[AchievementStatus] = []
    for achievement in definitions:
        if achievement.id in unlocked_at:
            results.append(AchievementStatus(achievement, 1.0, True, unlocked_at[achievement.id]))
        else:
            progress = criteria_progress(achievement.criteria, snapshot)
            results.append(AchievementStatus(achievement, progress, False, None))
    return results


def get_closest_achievements(statuses: list[AchievementStatus], n: int = 3) -> list[AchievementStatus]:
    """Return the N achievements closest to being unlocked (highest progress < 1.0)."""
    in_progress = [s for s in statuses if not s.unlocked]
    in_progress.sort(key=lambda s: s.progress, reverse=True)
    return in_progress[:n]
