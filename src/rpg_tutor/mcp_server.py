"""MCP server for rpg-tutor.

Exposes character progress and the game rules as MCP tools so a tutoring
assistant can query them mid-conversation.
Run via: python3 -m rpg_tutor.mcp_server
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from mcp.server.fastmcp import FastMCP

from rpg_tutor.errors import RulesError

mcp = FastMCP(name="rpg-tutor")


def _get_db():
    from rpg_tutor.config import get_db_path
    from rpg_tutor.db import Database
    return Database(get_db_path())


def _user(user_id: str) -> str:
    if user_id:
        return user_id
    from rpg_tutor.config import get_default_user
    return get_default_user()


@mcp.tool()
def get_character(user_id: str = "") -> dict[str, Any]:
    """Get a character: level, title, XP progress, stats, specialization and streak."""
    from rpg_tutor.levels import title_for_level, xp_progress_in_level
    from rpg_tutor.service import get_character as load_character
    from rpg_tutor.service import snapshot_for

    user_id = _user(user_id)
    db = _get_db()
    try:
        character = load_character(db, user_id)
        if character is None:
            return {"error": f"No character for {user_id} yet. Record an answer or lesson first."}
        progress = character.progress
        title = title_for_level(progress.level)
        current_xp, xp_for_next = xp_progress_in_level(progress.total_xp)
        snapshot = snapshot_for(db, user_id, datetime.now(tz=timezone.utc))
        return {
            "user_id": user_id,
            "name": character.name,
            "level": progress.level,
            "title": title["name"],
            "total_xp": progress.total_xp,
            "current_xp": current_xp,
            "xp_for_next": xp_for_next,
            "stats": character.stats.to_dict(),
            "effective_stats": character.effective_stats.to_dict(),
            "specialization": character.specialization,
            "streak_days": snapshot.get("streak_days", 0),
        }
    except RulesError as exc:
        return exc.to_dict()
    finally:
        db.close()


@mcp.tool()
def get_achievements(user_id: str = "") -> dict[str, Any]:
    """Get all achievements with unlock status and progress, plus the closest locked ones."""
    from rpg_tutor.achievements import ACHIEVEMENTS, achievement_statuses, get_closest_achievements
    from rpg_tutor.service import snapshot_for

    user_id = _user(user_id)
    db = _get_db()
    try:
        snapshot = snapshot_for(db, user_id, datetime.now(tz=timezone.utc))
        statuses = achievement_statuses(snapshot, db.get_unlocked_achievements(user_id), ACHIEVEMENTS)
        achievements = [
            {
                "id": s.definition.id,
                "name": s.definition.name,
                "description": s.definition.description,
                "rarity": s.definition.rarity.label,
                "category": s.definition.category,
                "unlocked": s.unlocked,
                "unlocked_at": s.unlocked_at,
                "progress_pct": int(s.progress * 100),
            }
            for s in statuses
        ]
        return {
            "achievements": achievements,
            "total_count": len(achievements),
            "unlocked_count": sum(1 for a in achievements if a["unlocked"]),
            "closest": [s.definition.id for s in get_closest_achievements(statuses)],
        }
    except RulesError as exc:
        return exc.to_dict()
    finally:
        db.close()


@mcp.tool()
def get_quests(user_id: str = "") -> dict[str, Any]:
    """Get the user's active quests with objective progress."""
    from rpg_tutor.quests import is_quest_active, user_quest_to_dict

    user_id = _user(user_id)
    now = datetime.now(tz=timezone.utc)
    db = _get_db()
    try:
        quests = []
        for quest in db.get_user_quests(user_id):
            if not is_quest_active(quest, now):
                continue
            entry = user_quest_to_dict(quest)
            entry["completed"] = quest.completed
            quests.append(entry)
        return {"quests": quests, "active_count": sum(1 for q in quests if not q["completed"])}
    except RulesError as exc:
        return exc.to_dict()
    finally:
        db.close()


@mcp.tool()
def get_inventory(user_id: str = "") -> dict[str, Any]:
    """Get the items a character has collected from quests, games and mystery boxes."""
    from rpg_tutor.inventory import ITEMS

    user_id = _user(user_id)
    db = _get_db()
    try:
        items = []
        for item_id, quantity in db.get_inventory(user_id).items():
            item = ITEMS.get(item_id)
            items.append({
                "id": item_id,
                "name": item.name if item else item_id,
                "rarity": item.rarity.label if item else None,
                "quantity": quantity,
            })
        return {"items": items, "total_count": sum(i["quantity"] for i in items)}
    except RulesError as exc:
        return exc.to_dict()
    finally:
        db.close()


@mcp.tool()
def list_game_modes(level: int = 1) -> dict[str, Any]:
    """List the game modes a character of the given level can play."""
    from rpg_tutor.game_modes import available_game_modes

    modes = [
        {
            "id": m.id,
            "name": m.name,
            "description": m.description,
            "type": m.type.value,
            "category": m.category.value,
            "difficulty": m.difficulty,
            "max_participants": m.max_participants,
            "min_level": m.min_level,
        }
        for m in available_game_modes(level)
    ]
    return {"level": level, "modes": modes}


@mcp.tool()
def preview_xp_reward(
    difficulty: int,
    accuracy: float = 1.0,
    time_bonus: float = 0.0,
    subject: str = "mathematics",
    user_id: str = "",
) -> dict[str, Any]:
    """Preview the XP a question would award, using the character's stats for the subject."""
    from rpg_tutor.config import get_reward_tuning
    from rpg_tutor.service import get_character as load_character
    from rpg_tutor.stats import StatBlock
    from rpg_tutor.xp import relevant_stats_for_subject, xp_reward

    user_id = _user(user_id)
    db = _get_db()
    try:
        character = load_character(db, user_id)
        stats = character.effective_stats if character else StatBlock()
        reward = xp_reward(
            difficulty, accuracy, time_bonus, relevant_stats_for_subject(subject, stats), get_reward_tuning()
        )
        return {
            "base_xp": reward.base_xp,
            "accuracy_bonus": reward.accuracy_bonus,
            "time_bonus": reward.time_bonus,
            "stat_bonus": reward.stat_bonus,
            "total_xp": reward.total_xp,
        }
    except RulesError as exc:
        return exc.to_dict()
    finally:
        db.close()


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
