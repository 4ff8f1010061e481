"""Character stats, specializations and stat point allocation."""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Mapping

from rpg_tutor.errors import InvalidArgument

STAT_NAMES: tuple[str, ...] = (
    "intelligence",
    "vitality",
    "wisdom",
    "charisma",
    "dexterity",
    "creativity",
)
BASE_STAT_VALUE = 10


@dataclass(frozen=True)
class StatBlock:
    intelligence: int = BASE_STAT_VALUE
    vitality: int = BASE_STAT_VALUE
    wisdom: int = BASE_STAT_VALUE
    charisma: int = BASE_STAT_VALUE
    dexterity: int = BASE_STAT_VALUE
    creativity: int = BASE_STAT_VALUE
    available_points: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, int]) -> StatBlock:
        return cls(**{k: int(v) for k, v in data.items() if k in STAT_NAMES or k == "available_points"})


class Specialization(str, Enum):
    SCHOLAR = "scholar"
    EXPLORER = "explorer"
    GUARDIAN = "guardian"
    ARTIST = "artist"
    DIPLOMAT = "diplomat"
    INVENTOR = "inventor"


SPECIALIZATION_BONUSES: dict[Specialization, dict[str, int]] = {
    Specialization.SCHOLAR: {"intelligence": 2, "wisdom": 1},
    Specialization.EXPLORER: {"dexterity": 2, "vitality": 1},
    Specialization.GUARDIAN: {"vitality": 2, "charisma": 1},
    Specialization.ARTIST: {"creativity": 2, "charisma": 1},
    Specialization.DIPLOMAT: {"charisma": 2, "wisdom": 1},
    Specialization.INVENTOR: {"intelligence": 2, "dexterity": 1},
}


def parse_specialization(value: str | Specialization | None) -> Specialization | None:
    """Return the Specialization for a value, or None if it is not one."""
    if value is None or isinstance(value, Specialization):
        return value
    try:
        return Specialization(str(value).strip().lower())
    except ValueError:
        return None


def specialization_bonuses(specialization: str | Specialization | None) -> dict[str, int]:
    """Stat bonuses granted by a specialization ({} when unrecognized)."""
    spec = parse_specialization(specialization)
    if spec is None:
        return {}
    return dict(SPECIALIZATION_BONUSES[spec])


def effective_stats(base: StatBlock, specialization: str | Specialization | None = None) -> StatBlock:
    """Stats including specialization bonuses. ``base`` is never modified.

    An unrecognized specialization grants no bonus.
    """
    bonuses = specialization_bonuses(specialization)
    return replace(base, **{stat: getattr(base, stat) + bonus for stat, bonus in bonuses.items()})


def grant_stat_points(stats: StatBlock, points: int) -> StatBlock:
    """Add unspent points, e.g. after a level-up."""
    if points < 0:
        raise InvalidArgument(f"cannot grant negative stat points ({points})", {"points": points})
    return replace(stats, available_points=stats.available_points + points)


def allocate_stat_points(stats: StatBlock, allocations: Mapping[str, int]) -> StatBlock:
    """Spend available points on stats.

    Every stat name must be known, every amount non-negative, and the total
    must not exceed ``available_points``.
    """
    for stat, amount in allocations.items():
        if stat not in STAT_NAMES:
            raise InvalidArgument(f"unknown stat {stat!r}", {"stat": stat})
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise InvalidArgument(f"allocation for {stat} must be a non-negative integer", {"stat": stat, "amount": amount})

    spent = sum(allocations.values())
    if spent > stats.available_points:
        raise InvalidArgument(
            f"cannot spend {spent} points with only {stats.available_points} available",
            {"requested": spent, "available": stats.available_points},
        )

    changes = {stat: getattr(stats, stat) + amount for stat, amount in allocations.items()}
    return replace(stats, available_points=stats.available_points - spent, **changes)


def respec(stats: StatBlock) -> StatBlock:
    """Reset every stat to its base value, refunding points spent above it."""
    refunded = sum(max(0, getattr(stats, stat) - BASE_STAT_VALUE) for stat in STAT_NAMES)
    reset = {stat: min(getattr(stats, stat), BASE_STAT_VALUE) for stat in STAT_NAMES}
    return replace(stats, available_points=stats.available_points + refunded, **reset)
