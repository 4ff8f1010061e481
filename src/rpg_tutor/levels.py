"""Level curve and XP partition. Pure functions, no side effects."""

from __future__ import annotations

from dataclasses import dataclass

from rpg_tutor.errors import InvalidArgument, InvalidState
from rpg_tutor.log import get_logger

logger = get_logger(__name__)

# (first_level, last_level, xp to advance from each level in the band)
LEVEL_TIERS: list[tuple[int, int | None, int]] = [
    (1, 10, 100),
    (11, 25, 150),
    (26, None, 200),
]

STAT_POINTS_PER_LEVEL = 3

TITLES: list[dict] = [
    {"levels": (1, 5), "name": "Novice", "color": "bronze"},
    {"levels": (6, 10), "name": "Apprentice", "color": "silver"},
    {"levels": (11, 15), "name": "Adept", "color": "gold"},
    {"levels": (16, 20), "name": "Scholar", "color": "teal"},
    {"levels": (21, 25), "name": "Sage", "color": "diamond"},
    {"levels": (26, 30), "name": "Master", "color": "purple"},
    {"levels": (31, 40), "name": "Archmage", "color": "crimson"},
    {"levels": (41, None), "name": "Legend", "color": "legendary"},
]


def _require_level(level: object) -> int:
    if isinstance(level, bool) or not isinstance(level, int):
        raise InvalidArgument(f"level must be an integer, got {level!r}", {"level": level})
    if level < 1:
        raise InvalidArgument(f"level must be >= 1, got {level}", {"level": level})
    return level


def _require_xp(total_xp: object) -> int:
    if isinstance(total_xp, bool) or not isinstance(total_xp, int):
        raise InvalidArgument(f"XP must be an integer, got {total_xp!r}", {"total_xp": total_xp})
    if total_xp < 0:
        raise InvalidArgument(f"XP must be >= 0, got {total_xp}", {"total_xp": total_xp})
    return total_xp


def xp_required_for_level(level: int) -> int:
    """XP needed to advance from ``level`` to ``level + 1``.

    Levels 1-10 cost 100, 11-25 cost 150, 26 and above cost 200.
    """
    level = _require_level(level)
    for first, last, cost in LEVEL_TIERS:
        if level >= first and (last is None or level <= last):
            return cost
    return LEVEL_TIERS[-1][2]


def cumulative_xp_for_level(level: int) -> int:
    """Total XP needed from 0 to reach ``level`` (level 1 needs 0)."""
    level = _require_level(level)
    total = 0
    for first, last, cost in LEVEL_TIERS:
        if level <= first:
            break
        top = level - 1 if last is None else min(level - 1, last)
        total += (top - first + 1) * cost
    return total


def level_from_total_xp(total_xp: int) -> int:
    """Highest level reachable by spending ``total_xp`` from level 1."""
    remaining = _require_xp(total_xp)
    level = 1
    for first, last, cost in LEVEL_TIERS:
        if last is None:
            level += remaining // cost
            break
        band = last - first + 1
        affordable = min(band, remaining // cost)
        level += affordable
        remaining -= affordable * cost
        if affordable < band:
            break
    return level


def current_xp_within_level(total_xp: int, level: int) -> int:
    """XP left over after the full levels below ``level`` are paid for.

    Raises InvalidState if ``level`` is not the level ``total_xp`` implies.
    """
    expected = level_from_total_xp(total_xp)
    if _require_level(level) != expected:
        raise InvalidState(
            f"level {level} does not match {total_xp} total XP (expected {expected})",
            {"total_xp": total_xp, "level": level, "expected_level": expected},
        )
    return total_xp - cumulative_xp_for_level(level)


def xp_progress_in_level(total_xp: int) -> tuple[int, int]:
    """Return (current_xp_in_level, xp_needed_for_next_level)."""
    level = level_from_total_xp(total_xp)
    return (current_xp_within_level(total_xp, level), xp_required_for_level(level))


def title_for_level(level: int) -> dict:
    """Return the cosmetic title dict (name, color) for a level."""
    level = _require_level(level)
    for title in TITLES:
        low, high = title["levels"]
        if level >= low and (high is None or level <= high):
            return title
    return TITLES[-1]


@dataclass(frozen=True)
class CharacterProgress:
    level: int
    total_xp: int
    current_xp: int

    @classmethod
    def from_total_xp(cls, total_xp: int) -> CharacterProgress:
        level = level_from_total_xp(total_xp)
        return cls(level=level, total_xp=total_xp, current_xp=current_xp_within_level(total_xp, level))


@dataclass(frozen=True)
class LevelUpResult:
    progress: CharacterProgress
    levels_gained: int
    stat_points_awarded: int

    @property
    def leveled_up(self) -> bool:
        return self.levels_gained > 0


def check_progress(progress: CharacterProgress) -> CharacterProgress:
    """Raise InvalidState unless level, total and current XP agree."""
    expected = CharacterProgress.from_total_xp(_require_xp(progress.total_xp))
    if expected != progress:
        raise InvalidState(
            "character progress is inconsistent",
            {
                "level": progress.level,
                "total_xp": progress.total_xp,
                "current_xp": progress.current_xp,
                "expected_level": expected.level,
                "expected_current_xp": expected.current_xp,
            },
        )
    return progress


def award_xp(progress: CharacterProgress, amount: int) -> LevelUpResult:
    """Add ``amount`` XP, cascading as many level-ups as it pays for."""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise InvalidArgument(f"XP award must be a non-negative integer, got {amount!r}", {"amount": amount})
    check_progress(progress)

    updated = CharacterProgress.from_total_xp(progress.total_xp + amount)
    gained = updated.level - progress.level
    if gained:
        logger.debug("level up: %d -> %d (+%d XP)", progress.level, updated.level, amount)
    return LevelUpResult(
        progress=updated,
        levels_gained=gained,
        stat_points_awarded=gained * STAT_POINTS_PER_LEVEL,
    )
