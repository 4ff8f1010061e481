"""Game mode rulesets, power-ups and rank-based rewards."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

from rpg_tutor.errors import InvalidArgument, NotFound


class GameModeType(str, Enum):
    COMPETITIVE = "competitive"
    COOPERATIVE = "cooperative"
    SOLO_CHALLENGE = "solo_challenge"
    TIMED = "timed"
    SURVIVAL = "survival"


class GameModeCategory(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    SPECIAL_EVENT = "special_event"
    PERMANENT = "permanent"


class RewardPosition(str, Enum):
    WINNER = "winner"
    TOP_3 = "top_3"
    TOP_10 = "top_10"
    PARTICIPANT = "participant"


class PowerUpType(str, Enum):
    TIME_FREEZE = "time_freeze"
    DOUBLE_POINTS = "double_points"
    HINT = "hint"
    SHIELD = "shield"
    STEAL_POINTS = "steal_points"
    EXTRA_LIFE = "extra_life"


CATEGORY_PRIORITY: dict[GameModeCategory, int] = {
    GameModeCategory.DAILY: 1,
    GameModeCategory.WEEKLY: 2,
    GameModeCategory.SPECIAL_EVENT: 3,
    GameModeCategory.PERMANENT: 4,
}

# Highest position (inclusive) that qualifies for each reward tier
POSITION_CUTOFFS: dict[RewardPosition, int | None] = {
    RewardPosition.WINNER: 1,
    RewardPosition.TOP_3: 3,
    RewardPosition.TOP_10: 10,
    RewardPosition.PARTICIPANT: None,
}

QUESTIONS_PER_ROUND = 5


@dataclass(frozen=True)
class GameModeReward:
    position: RewardPosition
    type: str  # xp | item | badge | title | stat_points | world_unlock
    value: int
    item_id: str | None = None
    badge_id: str | None = None
    title_id: str | None = None
    world_id: str | None = None
    bonus_multiplier: float | None = None

    @property
    def identity(self) -> tuple:
        """What the reward grants, regardless of which tier lists it."""
        return (self.type, self.value, self.item_id, self.badge_id, self.title_id, self.world_id, self.bonus_multiplier)


@dataclass(frozen=True)
class GameModeRule:
    id: str
    description: str
    type: str  # scoring | time_limit | lives | special_condition
    value: float | None = None


@dataclass(frozen=True)
class GameMode:
    id: str
    name: str
    description: str
    type: GameModeType
    category: GameModeCategory
    difficulty: int
    duration_minutes: int
    max_participants: int
    min_level: int
    rewards: tuple[GameModeReward, ...] = ()
    rules: tuple[GameModeRule, ...] = ()
    subject_id: str | None = None
    world_id: str | None = None
    # Scoring rules
    base_points: int = 10
    wrong_answer_penalty: int = 2
    max_answer_seconds: float = 30.0
    speed_bonus_points: float = 5.0
    streak_threshold: int = 3
    streak_bonus: float = 0.2
    lives: int = 3

    def __post_init__(self) -> None:
        if not 1 <= self.difficulty <= 5:
            raise InvalidArgument(f"game mode difficulty must be 1-5, got {self.difficulty}", {"mode": self.id})
        if self.max_participants < 1:
            raise InvalidArgument("max_participants must be >= 1", {"mode": self.id})

    @property
    def is_solo(self) -> bool:
        return self.max_participants == 1 or self.type is GameModeType.SOLO_CHALLENGE

    @property
    def min_participants(self) -> int:
        return 1 if self.is_solo else 2


@dataclass(frozen=True)
class PowerUp:
    id: str
    name: str
    description: str
    type: PowerUpType
    cooldown_seconds: int
    cost: int
    rarity: str
    value: float = 1
    duration_seconds: int | None = None


def _rewards(*specs: tuple) -> tuple[GameModeReward, ...]:
    return tuple(GameModeReward(RewardPosition(pos), kind, value, **extra) for pos, kind, value, extra in specs)


GAME_MODES: dict[str, GameMode] = {
    mode.id: mode
    for mode in (
        GameMode(
            id="lightning-round",
            name="Lightning Round",
            description="Answer as many questions as possible in 60 seconds.",
            type=GameModeType.TIMED,
            category=GameModeCategory.DAILY,
            difficulty=2,
            duration_minutes=1,
            max_participants=1,
            min_level=1,
            rewards=_rewards(("winner", "xp", 100, {}), ("participant", "xp", 25, {})),
            rules=(
                GameModeRule("time-limit", "Answer questions within 60 seconds", "time_limit", 60),
                GameModeRule("scoring", "Correct answers score, wrong answers cost 2 points", "scoring"),
                GameModeRule("speed-bonus", "Faster answers earn bonus points", "special_condition"),
            ),
        ),
        GameMode(
            id="math-duel",
            name="Math Duel",
            description="Face off against another student in a head-to-head mathematical battle.",
            type=GameModeType.COMPETITIVE,
            category=GameModeCategory.DAILY,
            difficulty=3,
            duration_minutes=10,
            max_participants=2,
            min_level=3,
            subject_id="mathematics",
            world_id="numerical-kingdom",
            rewards=_rewards(
                ("winner", "xp", 150, {"bonus_multiplier": 1.5}),
                ("participant", "xp", 50, {}),
                ("winner", "item", 1, {"item_id": "duel-champion-badge"}),
            ),
            rules=(
                GameModeRule("rounds", "Best of 10 questions wins", "special_condition", 10),
                GameModeRule("time-per-question", "30 seconds per question", "time_limit", 30),
            ),
        ),
        GameMode(
            id="knowledge-gauntlet",
            name="Knowledge Gauntlet",
            description="Survive waves of increasingly difficult questions across all subjects.",
            type=GameModeType.SURVIVAL,
            category=GameModeCategory.WEEKLY,
            difficulty=4,
            duration_minutes=20,
            max_participants=1,
            min_level=5,
            rewards=_rewards(
                ("winner", "xp", 300, {}),
                ("winner", "stat_points", 5, {}),
                ("winner", "badge", 1, {"badge_id": "gauntlet-survivor"}),
                ("participant", "xp", 100, {}),
            ),
            rules=(GameModeRule("lives", "Start with 3 lives, lose one for each wrong answer", "lives", 3),),
        ),
        GameMode(
            id="team-quest",
            name="Team Quest",
            description="Work together with other students to solve multi-step problems.",
            type=GameModeType.COOPERATIVE,
            category=GameModeCategory.WEEKLY,
            difficulty=3,
            duration_minutes=25,
            max_participants=4,
            min_level=4,
            rewards=_rewards(
                ("winner", "xp", 200, {}),
                ("winner", "item", 1, {"item_id": "team-player-medal"}),
                ("participant", "xp", 75, {}),
            ),
            rules=(GameModeRule("teamwork", "Every member answers the same questions", "special_condition"),),
        ),
        GameMode(
            id="speed-demon",
            name="Speed Demon",
            description="Race against time and other players to answer the fastest.",
            type=GameModeType.COMPETITIVE,
            category=GameModeCategory.DAILY,
            difficulty=2,
            duration_minutes=5,
            max_participants=8,
            min_level=2,
            rewards=_rewards(
                ("winner", "xp", 120, {}),
                ("top_3", "xp", 80, {}),
                ("participant", "xp", 30, {}),
                ("winner", "title", 1, {"title_id": "speed-demon"}),
            ),
            rules=(GameModeRule("power-ups-disabled", "No power-ups allowed", "special_condition"),),
        ),
        GameMode(
            id="world-championship",
            name="World Championship",
            description="Compete in the ultimate tournament across all learning worlds.",
            type=GameModeType.COMPETITIVE,
            category=GameModeCategory.SPECIAL_EVENT,
            difficulty=5,
            duration_minutes=45,
            max_participants=16,
            min_level=10,
            rewards=_rewards(
                ("winner", "xp", 500, {}),
                ("winner", "stat_points", 10, {}),
                ("winner", "badge", 1, {"badge_id": "world-champion"}),
                ("winner", "title", 1, {"title_id": "grand-champion"}),
                ("top_3", "xp", 300, {}),
                ("top_3", "stat_points", 5, {}),
                ("top_10", "xp", 150, {}),
                ("participant", "xp", 100, {}),
            ),
        ),
        GameMode(
            id="mystery-box",
            name="Mystery Box Challenge",
            description="Open mystery boxes by answering questions correctly.",
            type=GameModeType.SOLO_CHALLENGE,
            category=GameModeCategory.DAILY,
            difficulty=2,
            duration_minutes=15,
            max_participants=1,
            min_level=1,
            rewards=_rewards(
                ("winner", "item", 3, {"item_id": "mystery-box"}),
                ("participant", "xp", 50, {}),
            ),
        ),
        GameMode(
            id="boss-battle",
            name="Boss Battle",
            description="Team up to defeat powerful knowledge bosses.",
            type=GameModeType.COOPERATIVE,
            category=GameModeCategory.WEEKLY,
            difficulty=4,
            duration_minutes=30,
            max_participants=6,
            min_level=7,
            rewards=_rewards(
                ("winner", "xp", 250, {}),
                ("winner", "item", 1, {"item_id": "boss-slayer-weapon"}),
                ("winner", "badge", 1, {"badge_id": "boss-slayer"}),
                ("participant", "xp", 100, {}),
            ),
        ),
    )
}

POWER_UPS: dict[str, PowerUp] = {
    p.id: p
    for p in (
        PowerUp("time-freeze", "Time Freeze", "Freeze the timer for 10 seconds", PowerUpType.TIME_FREEZE,
                60, 50, "common", 10, duration_seconds=10),
        PowerUp("double-points", "Double Points", "Next correct answer is worth double points",
                PowerUpType.DOUBLE_POINTS, 45, 75, "rare", 2),
        PowerUp("hint", "Hint", "Get a hint for the current question", PowerUpType.HINT, 30, 25, "common"),
        PowerUp("shield", "Shield", "Ignore the next wrong answer penalty", PowerUpType.SHIELD, 90, 100, "epic"),
        PowerUp("steal-points", "Point Steal", "Steal 20% of points from the leading opponent",
                PowerUpType.STEAL_POINTS, 120, 150, "legendary", 0.2),
        PowerUp("extra-life", "Extra Life", "Gain an additional life in survival modes",
                PowerUpType.EXTRA_LIFE, 180, 200, "legendary"),
    )
}


def get_game_mode(mode_id: str) -> GameMode:
    try:
        return GAME_MODES[mode_id]
    except KeyError:
        raise NotFound(f"game mode {mode_id!r} not found", {"mode_id": mode_id}) from None


def get_power_up(power_up_id: str) -> PowerUp:
    try:
        return POWER_UPS[power_up_id]
    except KeyError:
        raise NotFound(f"power-up {power_up_id!r} not found", {"power_up_id": power_up_id}) from None


def available_game_modes(level: int, modes: dict[str, GameMode] | None = None) -> list[GameMode]:
    """Modes the character level qualifies for, by category priority then difficulty."""
    pool = GAME_MODES if modes is None else modes
    eligible = [m for m in pool.values() if level >= m.min_level]
    return sorted(eligible, key=lambda m: (CATEGORY_PRIORITY[m.category], m.difficulty))


def default_question_count(mode: GameMode) -> int:
    return {
        GameModeType.TIMED: 20,
        GameModeType.COMPETITIVE: 10,
        GameModeType.SURVIVAL: 50,
        GameModeType.COOPERATIVE: 15,
        GameModeType.SOLO_CHALLENGE: 12,
    }.get(mode.type, 10)


def default_time_per_question(mode: GameMode) -> int:
    return {1: 45, 2: 35, 3: 30, 4: 25, 5: 20}.get(mode.difficulty, 30)


def allows_power_ups(mode: GameMode) -> bool:
    return mode.type in (GameModeType.COMPETITIVE, GameModeType.SURVIVAL)


def total_rounds(mode: GameMode, question_count: int) -> int:
    """Timed modes are one round; others play QUESTIONS_PER_ROUND questions a round."""
    if mode.type is GameModeType.TIMED:
        return 1
    return max(1, math.ceil(question_count / QUESTIONS_PER_ROUND))


def qualifies(position: RewardPosition, rank: int) -> bool:
    cutoff = POSITION_CUTOFFS[position]
    return cutoff is None or rank <= cutoff


def rewards_for_position(mode: GameMode, rank: int) -> list[GameModeReward]:
    """Union of every reward tier a final rank qualifies for, deduplicated."""
    if rank < 1:
        raise InvalidArgument(f"rank must be >= 1, got {rank}", {"rank": rank})
    seen: set[tuple] = set()
    earned: list[GameModeReward] = []
    for reward in mode.rewards:
        if qualifies(reward.position, rank) and reward.identity not in seen:
            seen.add(reward.identity)
            earned.append(reward)
    return earned
