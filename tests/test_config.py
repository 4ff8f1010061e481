"""Tests for the config module."""
import json

from rpg_tutor.config import (
    DEFAULT_LOG_LEVEL,
    DEFAULT_USER,
    get_db_path,
    get_default_user,
    get_log_level,
    get_reward_tuning,
    load_config,
    save_config,
    set_default_user,
)
from rpg_tutor.xp import DEFAULT_TUNING


class TestLoadConfig:
    def test_missing_file_returns_empty(self, tmp_path):
        assert load_config(tmp_path / "nonexistent.json") == {}

    def test_invalid_json_returns_empty(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("not json", encoding="utf-8")
        assert load_config(path) == {}

    def test_non_object_returns_empty(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[1, 2]", encoding="utf-8")
        assert load_config(path) == {}

    def test_loads_valid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text('{"key": "value"}', encoding="utf-8")
        assert load_config(path) == {"key": "value"}


class TestSaveConfig:
    def test_creates_parent_dirs(self, tmp_path):
        path = tmp_path / "sub" / "dir" / "config.json"
        save_config({"nested": True}, path)
        assert json.loads(path.read_text()) == {"nested": True}

    def test_overwrites_existing(self, tmp_path):
        path = tmp_path / "config.json"
        save_config({"v": 1}, path)
        save_config({"v": 2}, path)
        assert json.loads(path.read_text()) == {"v": 2}


class TestSettings:
    def test_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        assert get_db_path(path) is None
        assert get_default_user(path) == DEFAULT_USER
        assert get_log_level(path) == DEFAULT_LOG_LEVEL
        assert get_reward_tuning(path) is DEFAULT_TUNING

    def test_db_path_expands_user(self, tmp_path):
        path = tmp_path / "config.json"
        save_config({"db_path": str(tmp_path / "game.db")}, path)
        assert get_db_path(path) == tmp_path / "game.db"

    def test_default_user_roundtrip_keeps_other_keys(self, tmp_path):
        path = tmp_path / "config.json"
        save_config({"log_level": "debug"}, path)
        set_default_user("ada", path)
        assert get_default_user(path) == "ada"
        assert get_log_level(path) == "DEBUG"

    def test_reward_tuning_overrides(self, tmp_path):
        path = tmp_path / "config.json"
        save_config({"reward_tuning": {"xp_per_difficulty": 20, "bogus": 1, "time_weight": "x"}}, path)
        tuning = get_reward_tuning(path)
        assert tuning.xp_per_difficulty == 20
        assert tuning.time_weight == DEFAULT_TUNING.time_weight
