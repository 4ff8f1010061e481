"""Daily learning streak tracking for rpg-tutor."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta


@dataclass(frozen=True)
class LearningStreak:
    current_streak: int
    longest_streak: int
    last_activity_date: str | None  # YYYY-MM-DD


def _parse_date(d: str) -> date:
    """Parse a YYYY-MM-DD string to a date object."""
    return date.fromisoformat(d)


def update_learning_streak(streak: LearningStreak | None, today: date) -> LearningStreak:
    """Record learning activity on ``today``.

    Rules:
    - First activity ever starts a streak of 1
    - Activity on the same day as the last one changes nothing
    - Activity the day after the last one extends the streak
    - Any longer gap restarts the streak at 1
    """
    today_str = today.isoformat()
    if streak is None or streak.last_activity_date is None:
        longest = streak.longest_streak if streak else 0
        return LearningStreak(current_streak=1, longest_streak=max(1, longest), last_activity_date=today_str)

    last = _parse_date(streak.last_activity_date)
    if last >= today:
        return streak

    if last == today - timedelta(days=1):
        current = streak.current_streak + 1
    else:
        current = 1

    return LearningStreak(
        current_streak=current,
        longest_streak=max(streak.longest_streak, current),
        last_activity_date=today_str,
    )


def effective_streak(streak: LearningStreak | None, today: date) -> int:
    """Current streak as of ``today``: 0 once a full day has been missed."""
    if streak is None or streak.last_activity_date is None:
        return 0
    last = _parse_date(streak.last_activity_date)
    if (today - last).days > 1:
        return 0
    return streak.current_streak

