"""Quest templates, quest progress and expiry.

A Quest is generated from a QuestTemplate for one user and tracked by a
UserQuest, which holds the per-objective progress. All functions return
new values; nothing here touches storage.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, replace
from datetime import datetime, time, timedelta, timezone
from enum import Enum
from typing import Iterable, Mapping

from rpg_tutor.errors import Expired, InvalidArgument, NotFound
from rpg_tutor.log import get_logger

logger = get_logger(__name__)


class QuestKind(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"


class ObjectiveType(str, Enum):
    ANSWER_QUESTIONS = "answer_questions"
    EARN_XP = "earn_xp"
    COMPLETE_LESSONS = "complete_lessons"
    MAINTAIN_STREAK = "maintain_streak"
    ACHIEVE_ACCURACY = "achieve_accuracy"


class ActivityKind(str, Enum):
    ANSWER_QUESTION = "answer_question"
    COMPLETE_LESSON = "complete_lesson"
    EARN_XP = "earn_xp"


@dataclass(frozen=True)
class QuestReward:
    type: str  # xp | item | stat_points | world_unlock | achievement
    value: int
    item_id: str | None = None
    world_id: str | None = None
    achievement_id: str | None = None


@dataclass(frozen=True)
class ObjectiveTemplate:
    description: str
    type: ObjectiveType
    target_value: int
    subject_filter: str | None = None


@dataclass(frozen=True)
class QuestObjective:
    id: str
    description: str
    type: ObjectiveType
    target_value: int
    current_value: int = 0
    subject_filter: str | None = None

    @property
    def completed(self) -> bool:
        return self.current_value >= self.target_value


@dataclass(frozen=True)
class QuestTemplate:
    id: str
    title: str
    description: str
    kind: QuestKind
    difficulty: int
    objectives: tuple[ObjectiveTemplate, ...]
    rewards: tuple[QuestReward, ...]
    category: str = "learning"
    world_id: str | None = None
    subject_id: str | None = None
    estimated_minutes: int = 15
    minimum_level: int | None = None
    required_subject_xp: int | None = None


@dataclass(frozen=True)
class Quest:
    id: str
    template_id: str
    title: str
    description: str
    kind: QuestKind
    difficulty: int
    objectives: tuple[QuestObjective, ...]
    rewards: tuple[QuestReward, ...]
    expires_at: datetime
    created_at: datetime
    world_id: str | None = None
    subject_id: str | None = None


@dataclass(frozen=True)
class UserQuest:
    user_id: str
    quest_id: str
    objectives: tuple[QuestObjective, ...]
    expires_at: datetime
    started_at: datetime
    completed_at: datetime | None = None
    rewards: tuple[QuestReward, ...] = ()
    title: str = ""

    @property
    def completed(self) -> bool:
        return all(obj.completed for obj in self.objectives)


@dataclass(frozen=True)
class Activity:
    """A learning event that may advance quest objectives."""

    kind: ActivityKind
    subject_id: str | None = None
    correct_answers: int = 0
    xp_earned: int = 0
    accuracy: float | None = None  # 0.0 to 1.0, across all subjects
    subject_accuracy: float | None = None  # 0.0 to 1.0, within subject_id
    streak_days: int = 0


DAILY_QUEST_TEMPLATES: dict[str, list[QuestTemplate]] = {
    "numerical-kingdom": [
        QuestTemplate(
            id="math-mastery-basic",
            title="Numbers Dance",
            description="Solve mathematical problems to unlock the secrets of the Numerical Kingdom.",
            kind=QuestKind.DAILY,
            difficulty=1,
            world_id="numerical-kingdom",
            subject_id="mathematics",
            objectives=(
                ObjectiveTemplate("Answer 5 math questions correctly", ObjectiveType.ANSWER_QUESTIONS, 5, "mathematics"),
            ),
            rewards=(QuestReward("xp", 50), QuestReward("stat_points", 1)),
        ),
        QuestTemplate(
            id="calculation-champion",
            title="Calculation Champion",
            description="Demonstrate your mathematical prowess with near-perfect accuracy.",
            kind=QuestKind.DAILY,
            difficulty=3,
            world_id="numerical-kingdom",
            subject_id="mathematics",
            estimated_minutes=20,
            objectives=(
                ObjectiveTemplate("Reach 90% accuracy in mathematics", ObjectiveType.ACHIEVE_ACCURACY, 90, "mathematics"),
            ),
            rewards=(QuestReward("xp", 100), QuestReward("item", 1, item_id="golden-calculator")),
        ),
    ],
    "laboratory-realm": [
        QuestTemplate(
            id="experiment-explorer",
            title="Laboratory Explorer",
            description="Conduct scientific experiments and discover the wonders of nature.",
            kind=QuestKind.DAILY,
            difficulty=2,
            world_id="laboratory-realm",
            subject_id="science",
            estimated_minutes=18,
            objectives=(
                ObjectiveTemplate("Complete 3 science lessons", ObjectiveType.COMPLETE_LESSONS, 3, "science"),
            ),
            rewards=(QuestReward("xp", 75), QuestReward("item", 1, item_id="lab-goggles")),
        ),
        QuestTemplate(
            id="hypothesis-hero",
            title="Hypothesis Hero",
            description="Form and test hypotheses like a true scientist.",
            kind=QuestKind.DAILY,
            difficulty=3,
            world_id="laboratory-realm",
            subject_id="science",
            estimated_minutes=25,
            objectives=(
                ObjectiveTemplate("Answer 8 science questions correctly", ObjectiveType.ANSWER_QUESTIONS, 8, "science"),
                ObjectiveTemplate("Earn 100 XP from science", ObjectiveType.EARN_XP, 100, "science"),
            ),
            rewards=(QuestReward("xp", 120), QuestReward("stat_points", 2)),
        ),
    ],
    "chronicle-citadel": [
        QuestTemplate(
            id="time-traveler",
            title="Time Traveler's Quest",
            description="Journey through history and learn about ancient civilizations.",
            kind=QuestKind.DAILY,
            difficulty=2,
            world_id="chronicle-citadel",
            subject_id="history",
            estimated_minutes=20,
            objectives=(
                ObjectiveTemplate("Study 2 historical periods", ObjectiveType.COMPLETE_LESSONS, 2, "history"),
            ),
            rewards=(QuestReward("xp", 80), QuestReward("item", 1, item_id="ancient-scroll")),
        ),
    ],
    "wordsmith-workshop": [
        QuestTemplate(
            id="word-weaver",
            title="Word Weaver",
            description="Craft beautiful sentences and explore the power of language.",
            kind=QuestKind.DAILY,
            difficulty=2,
            world_id="wordsmith-workshop",
            subject_id="language-arts",
            objectives=(
                ObjectiveTemplate(
                    "Answer 4 language arts questions correctly", ObjectiveType.ANSWER_QUESTIONS, 4, "language-arts"
                ),
            ),
            rewards=(QuestReward("xp", 60), QuestReward("item", 1, item_id="enchanted-quill")),
        ),
    ],
}

WEEKLY_QUEST_TEMPLATES: list[QuestTemplate] = [
    QuestTemplate(
        id="multi-world-explorer",
        title="Multi-World Explorer",
        description="Complete lessons in at least three learning worlds.",
        kind=QuestKind.WEEKLY,
        category="achievement",
        difficulty=4,
        estimated_minutes=120,
        objectives=(ObjectiveTemplate("Complete 3 lessons", ObjectiveType.COMPLETE_LESSONS, 3),),
        rewards=(
            QuestReward("xp", 300),
            QuestReward("stat_points", 5),
            QuestReward("item", 1, item_id="world-explorer-badge"),
        ),
        minimum_level=5,
    ),
    QuestTemplate(
        id="knowledge-seeker",
        title="Knowledge Seeker",
        description="Demonstrate mastery across subjects with consistent practice.",
        kind=QuestKind.WEEKLY,
        difficulty=5,
        estimated_minutes=180,
        objectives=(
            ObjectiveTemplate("Answer 50 questions correctly", ObjectiveType.ANSWER_QUESTIONS, 50),
            ObjectiveTemplate("Maintain a 7-day learning streak", ObjectiveType.MAINTAIN_STREAK, 7),
        ),
        rewards=(
            QuestReward("xp", 500),
            QuestReward("stat_points", 8),
            QuestReward("achievement", 1, achievement_id="knowledge-master"),
        ),
        minimum_level=10,
    ),
    QuestTemplate(
        id="subject-specialist",
        title="Subject Specialist",
        description="Focus deeply on one subject and become a true expert.",
        kind=QuestKind.WEEKLY,
        difficulty=3,
        estimated_minutes=90,
        objectives=(
            ObjectiveTemplate("Earn 500 XP", ObjectiveType.EARN_XP, 500),
            ObjectiveTemplate("Reach 95% accuracy", ObjectiveType.ACHIEVE_ACCURACY, 95),
        ),
        rewards=(
            QuestReward("xp", 250),
            QuestReward("stat_points", 4),
            QuestReward("item", 1, item_id="specialist-crown"),
        ),
    ),
]


def is_quest_active(user_quest: UserQuest, now: datetime) -> bool:
    """A quest accepts progress only while ``now < expires_at``."""
    return now < user_quest.expires_at


def _find_objective(user_quest: UserQuest, objective_id: str) -> int:
    for index, objective in enumerate(user_quest.objectives):
        if objective.id == objective_id:
            return index
    raise NotFound(
        f"objective {objective_id!r} not found on quest {user_quest.quest_id!r}",
        {"quest_id": user_quest.quest_id, "objective_id": objective_id},
    )


def update_quest_progress(
    user_quest: UserQuest,
    objective_id: str,
    delta: int,
    now: datetime | None = None,
) -> UserQuest:
    """Advance one objective by ``delta``, clamped to its target.

    Raises Expired once the quest has expired, NotFound for an unknown
    objective and InvalidArgument for a negative delta. ``completed_at``
    is stamped by the update that completes the last objective.
    """
    now = now or datetime.now(tz=timezone.utc)
    if not is_quest_active(user_quest, now):
        raise Expired(
            f"quest {user_quest.quest_id!r} expired at {user_quest.expires_at.isoformat()}",
            {"quest_id": user_quest.quest_id, "expires_at": user_quest.expires_at.isoformat()},
        )
    index = _find_objective(user_quest, objective_id)
    if isinstance(delta, bool) or not isinstance(delta, int) or delta < 0:
        raise InvalidArgument(f"quest progress delta must be a non-negative integer, got {delta!r}", {"delta": delta})

    objective = user_quest.objectives[index]
    new_value = min(objective.current_value + delta, objective.target_value)
    objectives = list(user_quest.objectives)
    objectives[index] = replace(objective, current_value=max(new_value, objective.current_value))
    updated = replace(user_quest, objectives=tuple(objectives))

    if updated.completed and user_quest.completed_at is None:
        updated = replace(updated, completed_at=now)
        logger.debug("quest %s completed for %s", user_quest.quest_id, user_quest.user_id)
    return updated


def _objective_increment(objective: QuestObjective, activity: Activity) -> int:
    """How far an activity advances an objective (0 if it does not apply)."""
    if objective.completed:
        return 0
    if objective.subject_filter and activity.subject_id != objective.subject_filter:
        return 0

    if objective.type is ObjectiveType.ANSWER_QUESTIONS:
        if activity.kind is ActivityKind.ANSWER_QUESTION:
            return max(0, activity.correct_answers)
    elif objective.type is ObjectiveType.COMPLETE_LESSONS:
        if activity.kind is ActivityKind.COMPLETE_LESSON:
            return 1
    elif objective.type is ObjectiveType.EARN_XP:
        if activity.kind is ActivityKind.EARN_XP:
            return max(0, activity.xp_earned)
    elif objective.type is ObjectiveType.ACHIEVE_ACCURACY:
        accuracy = activity.subject_accuracy if objective.subject_filter else activity.accuracy
        if activity.kind is ActivityKind.ANSWER_QUESTION and accuracy is not None:
            return max(0, round(accuracy * 100) - objective.current_value)
    elif objective.type is ObjectiveType.MAINTAIN_STREAK:
        if activity.kind is ActivityKind.COMPLETE_LESSON:
            return max(0, activity.streak_days - objective.current_value)
    return 0


def apply_activity(user_quest: UserQuest, activity: Activity, now: datetime | None = None) -> UserQuest:
    """Route an activity to every objective it advances."""
    updated = user_quest
    for objective in user_quest.objectives:
        increment = _objective_increment(objective, activity)
        if increment > 0:
            updated = update_quest_progress(updated, objective.id, increment, now)
    return updated


def check_quest_prerequisites(
    template: QuestTemplate,
    character_level: int,
    subject_xp: Mapping[str, int] | None = None,
) -> bool:
    if template.minimum_level is not None and character_level < template.minimum_level:
        return False
    if template.required_subject_xp is not None and template.subject_id:
        if (subject_xp or {}).get(template.subject_id, 0) < template.required_subject_xp:
            return False
    return True


def select_quest_template(
    templates: Iterable[QuestTemplate],
    character_level: int,
    rng: random.Random | None = None,
    subject_xp: Mapping[str, int] | None = None,
) -> QuestTemplate | None:
    """Pick a template suited to the character level.

    Prefers templates whose difficulty roughly matches the level
    (|2 * difficulty - level| <= 3), else the first eligible one.
    """
    rng = rng or random.Random()
    available = [t for t in templates if check_quest_prerequisites(t, character_level, subject_xp)]
    if not available:
        return None
    appropriate = [t for t in available if abs(t.difficulty * 2 - character_level) <= 3]
    if appropriate:
        return rng.choice(appropriate)
    return available[0]


def quest_expiry(kind: QuestKind, now: datetime) -> datetime:
    """Daily quests expire at the end of the next day, weekly ones after 7 days."""
    if kind is QuestKind.DAILY:
        tomorrow = (now + timedelta(days=1)).date()
        return datetime.combine(tomorrow, time(23, 59, 59, 999000), tzinfo=now.tzinfo)
    return now + timedelta(days=7)


def create_quest_from_template(template: QuestTemplate, user_id: str, now: datetime) -> Quest:
    objectives = tuple(
        QuestObjective(
            id=f"{template.id}-obj-{index}",
            description=obj.description,
            type=obj.type,
            target_value=obj.target_value,
            subject_filter=obj.subject_filter,
        )
        for index, obj in enumerate(template.objectives)
    )
    return Quest(
        id=f"{template.id}-{user_id}-{int(now.timestamp() * 1000)}",
        template_id=template.id,
        title=template.title,
        description=template.description,
        kind=template.kind,
        difficulty=template.difficulty,
        objectives=objectives,
        rewards=template.rewards,
        expires_at=quest_expiry(template.kind, now),
        created_at=now,
        world_id=template.world_id,
        subject_id=template.subject_id,
    )


def start_user_quest(quest: Quest, user_id: str, now: datetime) -> UserQuest:
    return UserQuest(
        user_id=user_id,
        quest_id=quest.id,
        objectives=quest.objectives,
        expires_at=quest.expires_at,
        started_at=now,
        rewards=quest.rewards,
        title=quest.title,
    )


def generate_daily_quests(
    user_id: str,
    character_level: int,
    unlocked_worlds: Iterable[str],
    now: datetime,
    rng: random.Random | None = None,
    limit: int = 3,
) -> list[Quest]:
    """One quest per unlocked world, at most ``limit``."""
    rng = rng or random.Random()
    quests: list[Quest] = []
    for world in list(unlocked_worlds)[:limit]:
        template = select_quest_template(DAILY_QUEST_TEMPLATES.get(world, []), character_level, rng)
        if template is not None:
            quests.append(create_quest_from_template(template, user_id, now))
    return quests


def generate_weekly_quests(
    user_id: str,
    character_level: int,
    now: datetime,
    rng: random.Random | None = None,
    limit: int = 2,
) -> list[Quest]:
    """Up to ``limit`` distinct weekly quests the character qualifies for."""
    rng = rng or random.Random()
    eligible = [t for t in WEEKLY_QUEST_TEMPLATES if check_quest_prerequisites(t, character_level)]
    chosen = rng.sample(eligible, k=min(limit, len(eligible)))
    return [create_quest_from_template(t, user_id, now) for t in chosen]


def user_quest_to_dict(user_quest: UserQuest) -> dict:
    return {
        "user_id": user_quest.user_id,
        "quest_id": user_quest.quest_id,
        "title": user_quest.title,
        "expires_at": user_quest.expires_at.isoformat(),
        "started_at": user_quest.started_at.isoformat(),
        "completed_at": user_quest.completed_at.isoformat() if user_quest.completed_at else None,
        "objectives": [
            {
                "id": o.id,
                "description": o.description,
                "type": o.type.value,
                "target_value": o.target_value,
                "current_value": o.current_value,
                "subject_filter": o.subject_filter,
            }
            for o in user_quest.objectives
        ],
        "rewards": [
            {
                "type": r.type,
                "value": r.value,
                "item_id": r.item_id,
                "world_id": r.world_id,
                "achievement_id": r.achievement_id,
            }
            for r in user_quest.rewards
        ],
    }


def user_quest_from_dict(data: Mapping) -> UserQuest:
    completed_at = data.get("completed_at")
    return UserQuest(
        user_id=data["user_id"],
        quest_id=data["quest_id"],
        title=data.get("title", ""),
        expires_at=datetime.fromisoformat(data["expires_at"]),
        started_at=datetime.fromisoformat(data["started_at"]),
        completed_at=datetime.fromisoformat(completed_at) if completed_at else None,
        objectives=tuple(
            QuestObjective(
                id=o["id"],
                description=o["description"],
                type=ObjectiveType(o["type"]),
                target_value=o["target_value"],
                current_value=o.get("current_value", 0),
                subject_filter=o.get("subject_filter"),
            )
            for o in data.get("objectives", [])
        ),
        rewards=tuple(QuestReward(**r) for r in data.get("rewards", [])),
    )
