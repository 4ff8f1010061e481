"""CLI entry point for rpg-tutor."""

from __future__ import annotations

import argparse
import logging
import random
import sys
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path

from rpg_tutor.achievements import ACHIEVEMENTS, achievement_statuses, get_closest_achievements
from rpg_tutor.config import get_db_path, get_default_user, get_log_level, get_reward_tuning, set_default_user
from rpg_tutor.db import Database
from rpg_tutor.display import (
    console,
    print_achievements,
    print_answer_outcome,
    print_closest,
    print_error,
    print_event_result,
    print_game_modes,
    print_inventory,
    print_profile,
    print_quests,
    print_rewards,
    print_session,
    print_session_list,
)
from rpg_tutor.errors import InvalidArgument, RulesError
from rpg_tutor.game_modes import available_game_modes
from rpg_tutor.inventory import ITEMS
from rpg_tutor.levels import title_for_level, xp_progress_in_level
from rpg_tutor.log import configure_logging
from rpg_tutor.quests import is_quest_active, user_quest_to_dict
from rpg_tutor.service import (
    EventResult,
    allocate_points,
    answer_in_game,
    cancel_game,
    choose_specialization,
    complete_lesson,
    create_game,
    end_game_timer,
    get_or_create_character,
    join_game,
    open_mystery_box,
    record_answer,
    refresh_quests,
    reset_stats,
    snapshot_for,
    start_game,
    use_game_power_up,
)
from rpg_tutor.sessions import GameSession, build_leaderboard
from rpg_tutor.stats import STAT_NAMES, specialization_bonuses


def build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    parser = argparse.ArgumentParser(
        prog="rpg-tutor",
        description="Level up your learning: XP, stats, quests and game modes",
    )
    parser.add_argument("--user", "-u", default=None, help="Player id (default from config)")
    parser.add_argument("--db", default=None, help="Path to the SQLite database")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("profile", help="Show the character sheet")

    answer_p = subparsers.add_parser("answer", help="Record an answered question")
    answer_p.add_argument("subject", help="Subject, e.g. mathematics")
    answer_p.add_argument("--difficulty", "-d", type=int, default=1, help="Question difficulty (1-5)")
    verdict = answer_p.add_mutually_exclusive_group(required=True)
    verdict.add_argument("--correct", dest="correct", action="store_true")
    verdict.add_argument("--wrong", dest="correct", action="store_false")
    answer_p.add_argument("--time", "-t", type=float, default=0.0, help="Seconds spent answering")
    answer_p.add_argument("--time-limit", type=float, default=30.0, help="Seconds allowed")

    lesson_p = subparsers.add_parser("lesson", help="Record a completed lesson")
    lesson_p.add_argument("subject")
    lesson_p.add_argument("--difficulty", "-d", type=int, default=1)
    lesson_p.add_argument("--accuracy", "-a", type=float, default=1.0, help="Lesson accuracy (0.0-1.0)")

    subparsers.add_parser("achievements", help="List all achievements")

    quests_p = subparsers.add_parser("quests", help="Show active quests")
    quests_p.add_argument("--refresh", action="store_true", help="Hand out new daily/weekly quests")

    allocate_p = subparsers.add_parser("allocate", help="Spend stat points, e.g. intelligence=2")
    allocate_p.add_argument("allocations", nargs="+", metavar="STAT=N")

    specialize_p = subparsers.add_parser("specialize", help="Choose a specialization")
    specialize_p.add_argument("specialization")

    subparsers.add_parser("respec", help="Reset stats and refund spent points")

    inventory_p = subparsers.add_parser("inventory", help="Show collected items")
    inventory_p.add_argument("--open", dest="open_box", action="store_true", help="Open a mystery box")

    player_p = subparsers.add_parser("player", help="Set the default player id")
    player_p.add_argument("player_id")

    game_p = subparsers.add_parser("game", help="Game modes and sessions")
    game_sub = game_p.add_subparsers(dest="game_command")
    game_sub.add_parser("modes", help="List game modes available at your level")
    list_p = game_sub.add_parser("list", help="List game sessions")
    list_p.add_argument("--status", choices=["waiting", "active", "completed", "cancelled"], default=None)
    create_p = game_sub.add_parser("create", help="Create a game session")
    create_p.add_argument("mode_id")
    create_p.add_argument("--questions", type=int, default=None, help="Question count override")
    for name, help_text in (
        ("join", "Join a waiting session"),
        ("start", "Start a session you host"),
        ("expire", "Signal that the session timer ran out"),
        ("show", "Show a session and its leaderboard"),
    ):
        game_sub.add_parser(name, help=help_text).add_argument("session_id")
    cancel_p = game_sub.add_parser("cancel", help="Cancel a session")
    cancel_p.add_argument("session_id")
    cancel_p.add_argument("--admin", action="store_true")
    game_answer_p = game_sub.add_parser("answer", help="Answer a question in a session")
    game_answer_p.add_argument("session_id")
    game_verdict = game_answer_p.add_mutually_exclusive_group(required=True)
    game_verdict.add_argument("--correct", dest="correct", action="store_true")
    game_verdict.add_argument("--wrong", dest="correct", action="store_false")
    game_answer_p.add_argument("--time", "-t", type=float, default=0.0)
    power_up_p = game_sub.add_parser("power-up", help="Use a power-up in a session")
    power_up_p.add_argument("session_id")
    power_up_p.add_argument("power_up_id")
    return parser


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def parse_allocations(items: list[str]) -> dict[str, int]:
    """['intelligence=2', 'wisdom=1'] -> {'intelligence': 2, 'wisdom': 1}."""
    allocations: dict[str, int] = {}
    for item in items:
        stat, sep, amount = item.partition("=")
        if not sep:
            raise InvalidArgument(f"expected STAT=N, got {item!r}", {"allocation": item})
        try:
            allocations[stat.strip().lower()] = allocations.get(stat.strip().lower(), 0) + int(amount)
        except ValueError:
            raise InvalidArgument(f"points must be an integer in {item!r}", {"allocation": item}) from None
    return allocations


def do_profile(db: Database, user_id: str) -> dict:
    """Show the character sheet."""
    now = _now()
    character = get_or_create_character(db, user_id, now)
    progress = character.progress
    title = title_for_level(progress.level)
    current_xp, xp_for_next = xp_progress_in_level(progress.total_xp)
    snapshot = snapshot_for(db, user_id, now)
    data = {
        "user_id": user_id,
        "name": character.name,
        "level": progress.level,
        "total_xp": progress.total_xp,
        "current_xp": current_xp,
        "xp_for_next": xp_for_next,
        "title": title["name"],
        "title_color": title["color"],
        "specialization": character.specialization,
        "stats": {stat: getattr(character.stats, stat) for stat in STAT_NAMES},
        "bonuses": specialization_bonuses(character.specialization),
        "available_points": character.stats.available_points,
        "streak_days": snapshot.get("streak_days", 0),
    }
    print_profile(data)
    return data


def _event_data(result: EventResult) -> dict:
    level_up = result.level_up
    return {
        "xp": asdict(result.xp) if result.xp else None,
        "level": result.character.progress.level,
        "total_xp": result.character.progress.total_xp,
        "levels_gained": level_up.levels_gained if level_up else 0,
        "stat_points_awarded": level_up.stat_points_awarded if level_up else 0,
        "streak_days": result.streak_days,
        "unlocked": [a.name for a in result.unlocked],
        "completed_quests": [q.title for q in result.completed_quests],
    }


def do_answer(
    db: Database,
    user_id: str,
    subject: str,
    difficulty: int,
    correct: bool,
    time_spent: float,
    time_limit: float = 30.0,
    config_path: Path | None = None,
) -> dict:
    result = record_answer(
        db, user_id, subject, difficulty, correct, time_spent, time_limit,
        now=_now(), tuning=get_reward_tuning(config_path),
    )
    data = _event_data(result)
    print_event_result(data)
    return data


def do_lesson(
    db: Database, user_id: str, subject: str, difficulty: int, accuracy: float, config_path: Path | None = None
) -> dict:
    result = complete_lesson(db, user_id, subject, difficulty, accuracy, now=_now(), tuning=get_reward_tuning(config_path))
    data = _event_data(result)
    print_event_result(data)
    return data


def do_achievements(db: Database, user_id: str) -> list[dict]:
    """Show all achievements with progress."""
    snapshot = snapshot_for(db, user_id, _now())
    statuses = achievement_statuses(snapshot, db.get_unlocked_achievements(user_id), ACHIEVEMENTS)
    achievements_data = [
        {
            "id": s.definition.id,
            "name": s.definition.name,
            "description": s.definition.description,
            "rarity": s.definition.rarity.label,
            "progress": s.progress,
            "unlocked": s.unlocked,
            "unlocked_at": s.unlocked_at,
        }
        for s in statuses
    ]
    print_achievements(achievements_data)
    print_closest([s.definition.name for s in get_closest_achievements(statuses)])
    return achievements_data


def do_quests(db: Database, user_id: str, refresh: bool = False) -> list[dict]:
    now = _now()
    if refresh:
        quests = refresh_quests(db, user_id, now)
    else:
        quests = [q for q in db.get_user_quests(user_id) if is_quest_active(q, now)]
    data = []
    for quest in quests:
        entry = user_quest_to_dict(quest)
        entry["completed"] = quest.completed
        data.append(entry)
    print_quests(data)
    return data


def do_allocate(db: Database, user_id: str, items: list[str]) -> dict:
    character = allocate_points(db, user_id, parse_allocations(items), _now())
    return do_profile(db, character.user_id)


def do_specialize(db: Database, user_id: str, specialization: str) -> dict:
    choose_specialization(db, user_id, specialization, _now())
    return do_profile(db, user_id)


def do_respec(db: Database, user_id: str) -> dict:
    reset_stats(db, user_id, _now())
    return do_profile(db, user_id)


def _item_data(item_id: str, quantity: int) -> dict:
    item = ITEMS.get(item_id)
    return {
        "id": item_id,
        "name": item.name if item else item_id,
        "rarity": item.rarity.label if item else None,
        "quantity": quantity,
    }


def do_inventory(db: Database, user_id: str, open_box: bool = False, rng: random.Random | None = None) -> dict:
    """Show the inventory, optionally opening one mystery box first."""
    opened = None
    if open_box:
        item = open_mystery_box(db, user_id, _now(), rng=rng)
        opened = {"id": item.id, "name": item.name, "rarity": item.rarity.label}
    items = [_item_data(item_id, quantity) for item_id, quantity in db.get_inventory(user_id).items()]
    print_inventory(items, opened)
    return {"items": items, "opened": opened}


def do_player(player_id: str, config_path: Path | None = None) -> str:
    set_default_user(player_id, config_path)
    console.print(f"Default player set to [bold]{player_id}[/]")
    return player_id


def do_game_modes(db: Database, user_id: str) -> list[dict]:
    character = get_or_create_character(db, user_id, _now())
    modes = [
        {
            "id": m.id,
            "name": m.name,
            "type": m.type.value,
            "category": m.category.value,
            "difficulty": m.difficulty,
            "max_participants": m.max_participants,
            "min_level": m.min_level,
        }
        for m in available_game_modes(character.progress.level)
    ]
    print_game_modes(modes)
    return modes


def session_data(session: GameSession) -> dict:
    lives = {p.user_id: p.lives for p in session.participants}
    return {
        "id": session.id,
        "mode_id": session.mode.id,
        "mode_name": session.mode.name,
        "status": session.status.value,
        "host_id": session.host_id,
        "current_round": session.current_round,
        "total_rounds": session.total_rounds,
        "version": session.version,
        "leaderboard": [
            {
                "position": e.position,
                "user_id": e.user_id,
                "username": e.username,
                "score": e.score,
                "correct_answers": e.correct_answers,
                "accuracy": e.accuracy,
                "lives": lives[e.user_id],
                "status": e.status.value,
            }
            for e in build_leaderboard(session)
        ],
    }


def _rewards_data(rewards: dict) -> dict:
    return {user: [asdict(r) for r in earned] for user, earned in rewards.items()}


def do_game(db: Database, user_id: str, args: argparse.Namespace) -> dict | list:
    """Dispatch a ``game`` subcommand."""
    command = getattr(args, "game_command", None) or "modes"
    if command == "modes":
        return do_game_modes(db, user_id)
    if command == "list":
        sessions = db.list_game_sessions(getattr(args, "status", None))
        print_session_list(sessions)
        return sessions

    now = _now()
    rewards = None
    if command == "create":
        session = create_game(db, args.mode_id, user_id, now, question_count=args.questions)
    elif command == "join":
        session = join_game(db, args.session_id, user_id, now)
    elif command == "start":
        session = start_game(db, args.session_id, user_id, now)
    elif command == "answer":
        outcome, rewards = answer_in_game(db, args.session_id, user_id, args.correct, args.time, now)
        print_answer_outcome(asdict(outcome))
        session = db.get_game_session(args.session_id)
    elif command == "expire":
        rewards = end_game_timer(db, args.session_id, now)
        session = db.get_game_session(args.session_id)
    elif command == "cancel":
        session = cancel_game(db, args.session_id, user_id, now, admin=args.admin)
    elif command == "power-up":
        session = use_game_power_up(db, args.session_id, user_id, args.power_up_id, now)
    else:
        session = db.get_game_session(args.session_id)

    data = session_data(session)
    print_session(data)
    if rewards:
        data["rewards"] = _rewards_data(rewards)
        print_rewards(data["rewards"])
    return data


def main(argv: list[str] | None = None) -> None:
    """Entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    command = args.command or "profile"

    configure_logging(logging.DEBUG if args.verbose else get_log_level())
    user_id = args.user or get_default_user()
    db = Database(Path(args.db) if args.db else get_db_path())

    try:
        if command == "profile":
            do_profile(db, user_id)
        elif command == "answer":
            do_answer(db, user_id, args.subject, args.difficulty, args.correct, args.time, args.time_limit)
        elif command == "lesson":
            do_lesson(db, user_id, args.subject, args.difficulty, args.accuracy)
        elif command == "achievements":
            do_achievements(db, user_id)
        elif command == "quests":
            do_quests(db, user_id, refresh=args.refresh)
        elif command == "allocate":
            do_allocate(db, user_id, args.allocations)
        elif command == "specialize":
            do_specialize(db, user_id, args.specialization)
        elif command == "respec":
            do_respec(db, user_id)
        elif command == "inventory":
            do_inventory(db, user_id, open_box=args.open_box)
        elif command == "player":
            do_player(args.player_id)
        elif command == "game":
            do_game(db, user_id, args)
    except RulesError as exc:
        print_error(exc.message)
        sys.exit(1)
    finally:
        db.close()
