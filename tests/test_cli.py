"""Tests for CLI commands."""

from __future__ import annotations

import argparse
import random

import pytest

from rpg_tutor.cli import (
    build_parser,
    do_achievements,
    do_allocate,
    do_answer,
    do_game,
    do_game_modes,
    do_inventory,
    do_lesson,
    do_player,
    do_profile,
    do_quests,
    do_respec,
    do_specialize,
    main,
    parse_allocations,
)
from rpg_tutor.db import Database
from rpg_tutor.config import get_default_user
from rpg_tutor.display import format_number
from rpg_tutor.errors import InvalidArgument, InvalidSessionState


@pytest.fixture
def db(tmp_path):
    """Create a temporary database for testing."""
    database = Database(db_path=tmp_path / "test.db")
    yield database
    database.close()


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / "config.json"


def _game_args(command, **extra):
    return argparse.Namespace(game_command=command, **extra)


class TestArgumentParsing:
    def test_no_args_defaults_to_none_command(self):
        args = build_parser().parse_args([])
        assert args.command is None

    def test_answer_command(self):
        args = build_parser().parse_args(["answer", "mathematics", "-d", "3", "--correct", "--time", "4.5"])
        assert args.command == "answer"
        assert args.subject == "mathematics"
        assert args.difficulty == 3
        assert args.correct is True
        assert args.time == 4.5

    def test_answer_requires_verdict(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["answer", "mathematics"])

    def test_wrong_flag(self):
        args = build_parser().parse_args(["answer", "science", "--wrong"])
        assert args.correct is False

    def test_global_options(self):
        args = build_parser().parse_args(["--user", "ada", "--db", "x.db", "-v", "profile"])
        assert args.user == "ada"
        assert args.db == "x.db"
        assert args.verbose

    def test_game_create(self):
        args = build_parser().parse_args(["game", "create", "math-duel", "--questions", "5"])
        assert args.game_command == "create"
        assert args.mode_id == "math-duel"
        assert args.questions == 5

    def test_game_power_up(self):
        args = build_parser().parse_args(["game", "power-up", "abc", "shield"])
        assert args.game_command == "power-up"
        assert args.power_up_id == "shield"

    def test_game_cancel_admin(self):
        args = build_parser().parse_args(["game", "cancel", "abc", "--admin"])
        assert args.session_id == "abc"
        assert args.admin

    def test_allocate(self):
        args = build_parser().parse_args(["allocate", "intelligence=2", "wisdom=1"])
        assert args.allocations == ["intelligence=2", "wisdom=1"]

    def test_inventory_open(self):
        assert build_parser().parse_args(["inventory"]).open_box is False
        assert build_parser().parse_args(["inventory", "--open"]).open_box is True

    def test_player(self):
        assert build_parser().parse_args(["player", "ada"]).player_id == "ada"


class TestParseAllocations:
    def test_parses_and_sums(self):
        assert parse_allocations(["Intelligence=2", "wisdom=1", "intelligence=1"]) == {
            "intelligence": 3, "wisdom": 1,
        }

    def test_missing_equals(self):
        with pytest.raises(InvalidArgument):
            parse_allocations(["intelligence"])

    def test_non_integer(self):
        with pytest.raises(InvalidArgument):
            parse_allocations(["intelligence=lots"])


class TestCommands:
    def test_profile_creates_character(self, db):
        data = do_profile(db, "ada")
        assert data["level"] == 1
        assert data["total_xp"] == 0
        assert data["xp_for_next"] == 100
        assert data["stats"]["intelligence"] == 10

    def test_answer(self, db, config_path):
        data = do_answer(db, "ada", "mathematics", 2, True, 30, config_path=config_path)
        assert data["total_xp"] == 30
        assert data["xp"]["total_xp"] == 30

    def test_lesson_unlocks_first_steps(self, db, config_path):
        data = do_lesson(db, "ada", "mathematics", 1, 1.0, config_path=config_path)
        assert data["unlocked"] == ["First Steps"]

    def test_achievements(self, db):
        data = do_achievements(db, "ada")
        assert data
        assert not any(a["unlocked"] for a in data)

    def test_quests_refresh(self, db):
        assert do_quests(db, "ada") == []
        quests = do_quests(db, "ada", refresh=True)
        assert quests
        assert all(not q["completed"] for q in quests)

    def test_allocate_without_points(self, db):
        with pytest.raises(InvalidArgument):
            do_allocate(db, "ada", ["intelligence=1"])

    def test_specialize_and_respec(self, db):
        data = do_specialize(db, "ada", "scholar")
        assert data["specialization"] == "scholar"
        assert data["bonuses"] == {"intelligence": 2, "wisdom": 1}
        assert do_respec(db, "ada")["available_points"] == 0

    def test_game_modes(self, db):
        ids = {m["id"] for m in do_game_modes(db, "ada")}
        assert ids == {"lightning-round", "mystery-box"}

    def test_profile_xp_within_level(self, db, config_path):
        for _ in range(4):
            do_answer(db, "ada", "mathematics", 2, True, 30, config_path=config_path)
        data = do_profile(db, "ada")
        assert data["level"] == 2
        assert data["current_xp"] == 20
        assert data["xp_for_next"] == 100

    def test_inventory_empty(self, db):
        assert do_inventory(db, "ada") == {"items": [], "opened": None}

    def test_inventory_open_box(self, db):
        db.add_inventory_item("ada", "mystery-box", 1, "2026-03-01T10:00:00")
        data = do_inventory(db, "ada", open_box=True, rng=random.Random(2))
        assert data["opened"] is not None
        assert [i["id"] for i in data["items"]] == [data["opened"]["id"]]
        assert data["items"][0]["quantity"] == 1

    def test_inventory_open_without_box(self, db):
        with pytest.raises(InvalidArgument):
            do_inventory(db, "ada", open_box=True)

    def test_player_sets_default(self, config_path):
        assert do_player("ada", config_path) == "ada"
        assert get_default_user(config_path) == "ada"


class TestGameCommand:
    def test_defaults_to_modes(self, db):
        data = do_game(db, "ada", argparse.Namespace())
        assert isinstance(data, list)

    def test_create_answer_and_expire(self, db):
        created = do_game(db, "ada", _game_args("create", mode_id="lightning-round", questions=None))
        assert created["status"] == "active"
        answered = do_game(db, "ada", _game_args("answer", session_id=created["id"], correct=True, time=0.0))
        assert answered["leaderboard"][0]["score"] == 25
        finished = do_game(db, "ada", _game_args("expire", session_id=created["id"]))
        assert finished["status"] == "completed"
        assert [r["value"] for r in finished["rewards"]["ada"]] == [100, 25]

    def test_show(self, db):
        created = do_game(db, "ada", _game_args("create", mode_id="mystery-box", questions=3))
        shown = do_game(db, "ada", _game_args("show", session_id=created["id"]))
        assert shown["total_rounds"] == 1
        assert shown["version"] == 1

    def test_list_sessions(self, db):
        created = do_game(db, "ada", _game_args("create", mode_id="mystery-box", questions=3))
        rows = do_game(db, "ada", _game_args("list", status=None))
        assert [r["id"] for r in rows] == [created["id"]]
        assert do_game(db, "ada", _game_args("list", status="completed")) == []

    def test_power_up_needs_a_mode_that_allows_them(self, db):
        created = do_game(db, "ada", _game_args("create", mode_id="mystery-box", questions=3))
        with pytest.raises(InvalidSessionState):
            do_game(db, "ada", _game_args("power-up", session_id=created["id"], power_up_id="shield"))


class TestMain:
    def test_error_exits_with_status_one(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main(["--user", "ada", "--db", str(tmp_path / "t.db"), "lesson", "math", "-d", "9"])
        assert exc_info.value.code == 1

    def test_profile_runs(self, tmp_path):
        main(["--user", "ada", "--db", str(tmp_path / "t.db"), "profile"])
        database = Database(db_path=tmp_path / "t.db")
        try:
            assert database.get_character("ada") is not None
        finally:
            database.close()


class TestFormatNumber:
    def test_small_numbers_use_commas(self):
        assert format_number(1200) == "1,200"

    def test_millions(self):
        assert format_number(1234567) == "1.2M"
