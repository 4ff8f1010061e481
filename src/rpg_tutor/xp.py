"""XP reward engine for rpg-tutor.

Pure functions that turn an answered question into XP points.
All results are integers (math.floor for rounding) and never negative.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, fields
from typing import Mapping

from rpg_tutor.errors import InvalidArgument
from rpg_tutor.stats import StatBlock


@dataclass(frozen=True)
class RewardTuning:
    """Coefficients of the XP reward formula. Overridable from config."""

    xp_per_difficulty: float = 10.0
    accuracy_weight: float = 0.5
    time_weight: float = 0.3
    stat_baseline: int = 10
    primary_stat_rate: float = 0.02
    secondary_stat_rate: float = 0.01
    # Stat bonus above this fraction earns at half rate
    diminishing_threshold: float = 0.5
    max_stat_penalty: float = 0.5

    @classmethod
    def from_dict(cls, overrides: Mapping[str, object] | None) -> RewardTuning:
        """Build tuning from a config mapping, ignoring unknown or non-numeric keys."""
        known = {f.name: f.type for f in fields(cls)}
        values: dict[str, float] = {}
        for key, value in (overrides or {}).items():
            if key not in known or isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            values[key] = value
        return cls(**values)


DEFAULT_TUNING = RewardTuning()

MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 5

# subject -> (primary stat, secondary stat)
SUBJECT_STATS: dict[str, tuple[str, str]] = {
    "mathematics": ("intelligence", "wisdom"),
    "biology": ("vitality", "intelligence"),
    "history": ("wisdom", "charisma"),
    "language-arts": ("charisma", "creativity"),
    "science": ("dexterity", "intelligence"),
    "art": ("creativity", "charisma"),
    "physical-education": ("vitality", "dexterity"),
    "music": ("creativity", "dexterity"),
    "geography": ("wisdom", "intelligence"),
    "computer-science": ("intelligence", "dexterity"),
}
DEFAULT_SUBJECT_STATS = ("intelligence", "wisdom")


@dataclass(frozen=True)
class XPReward:
    """XP breakdown for a single answered question."""

    base_xp: int
    accuracy_bonus: int
    time_bonus: int
    stat_bonus: int
    total_xp: int


def normalize_subject(subject: str) -> str:
    """'Language Arts' -> 'language-arts'."""
    return "-".join(subject.strip().lower().split())


def relevant_stats_for_subject(subject: str, stats: StatBlock) -> dict[str, int]:
    """Return {"primary": ..., "secondary": ...} stat values for a subject."""
    primary, secondary = SUBJECT_STATS.get(normalize_subject(subject), DEFAULT_SUBJECT_STATS)
    return {"primary": getattr(stats, primary), "secondary": getattr(stats, secondary)}


def time_bonus_for(time_spent: float, time_limit: float) -> float:
    """Fraction of the time limit left unused, in [0, 1]."""
    if time_limit <= 0:
        return 0.0
    return min(1.0, max(0.0, (time_limit - time_spent) / time_limit))


def _stat_multiplier(relevant_stats: Mapping[str, int | None], tuning: RewardTuning) -> float:
    """Return the stat multiplier: higher stats earn more, with diminishing returns."""
    primary = relevant_stats.get("primary")
    if isinstance(primary, bool) or not isinstance(primary, (int, float)):
        raise InvalidArgument("relevant_stats needs a numeric 'primary' stat", {"relevant_stats": dict(relevant_stats)})
    secondary = relevant_stats.get("secondary")

    bonus = (primary - tuning.stat_baseline) * tuning.primary_stat_rate
    if secondary is not None:
        bonus += (secondary - tuning.stat_baseline) * tuning.secondary_stat_rate

    if bonus > tuning.diminishing_threshold:
        bonus = tuning.diminishing_threshold + (bonus - tuning.diminishing_threshold) * 0.5
    bonus = max(bonus, -tuning.max_stat_penalty)
    return 1.0 + bonus


def xp_reward(
    base_difficulty: int,
    accuracy: float,
    time_bonus: float,
    relevant_stats: Mapping[str, int | None],
    tuning: RewardTuning = DEFAULT_TUNING,
) -> XPReward:
    """Calculate XP for an answered question.

    1. Base XP scales with difficulty (1-5).
    2. Accuracy (0.0-1.0) and time bonus add a share of the base.
    3. The sum is scaled by a multiplier derived from the relevant stats.
    4. Every component is floored; the total is never negative.
    """
    if isinstance(base_difficulty, bool) or not isinstance(base_difficulty, int):
        raise InvalidArgument(f"difficulty must be an integer, got {base_difficulty!r}")
    if not MIN_DIFFICULTY <= base_difficulty <= MAX_DIFFICULTY:
        raise InvalidArgument(
            f"difficulty must be between {MIN_DIFFICULTY} and {MAX_DIFFICULTY}, got {base_difficulty}",
            {"base_difficulty": base_difficulty},
        )
    if not 0.0 <= accuracy <= 1.0:
        raise InvalidArgument(f"accuracy must be within [0, 1], got {accuracy}", {"accuracy": accuracy})

    time_bonus = max(0.0, time_bonus)
    base_xp = base_difficulty * tuning.xp_per_difficulty
    accuracy_xp = accuracy * tuning.accuracy_weight * base_xp
    time_xp = time_bonus * tuning.time_weight * base_xp
    subtotal = base_xp + accuracy_xp + time_xp
    stat_xp = subtotal * (_stat_multiplier(relevant_stats, tuning) - 1)

    return XPReward(
        base_xp=math.floor(base_xp),
        accuracy_bonus=math.floor(accuracy_xp),
        time_bonus=math.floor(time_xp),
        stat_bonus=math.floor(stat_xp),
        total_xp=max(0, math.floor(subtotal + stat_xp)),
    )
