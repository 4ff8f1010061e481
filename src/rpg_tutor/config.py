"""Configuration file management for rpg-tutor.

Reads and writes ~/.rpg-tutor/config.json for settings that don't belong in the DB
(database location, default player, log level, reward coefficients).
"""
from __future__ import annotations

import json
from pathlib import Path

from rpg_tutor.xp import DEFAULT_TUNING, RewardTuning

DEFAULT_CONFIG_PATH: Path = Path.home() / ".rpg-tutor" / "config.json"
DEFAULT_USER = "player"
DEFAULT_LOG_LEVEL = "WARNING"


def load_config(config_path: Path | None = None) -> dict:
    """Load config from JSON file. Returns {} if file missing or invalid."""
    path = config_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def save_config(data: dict, config_path: Path | None = None) -> None:
    """Write config dict to JSON file. Creates parent dirs if needed."""
    path = config_path or DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def get_db_path(config_path: Path | None = None) -> Path | None:
    """Return the configured database path, or None to use the default."""
    raw = load_config(config_path).get("db_path")
    if raw:
        return Path(raw).expanduser()
    return None


def get_default_user(config_path: Path | None = None) -> str:
    return str(load_config(config_path).get("user_id") or DEFAULT_USER)


def set_default_user(user_id: str, config_path: Path | None = None) -> None:
    """Persist the default player id to config."""
    config = load_config(config_path)
    config["user_id"] = user_id
    save_config(config, config_path)


def get_log_level(config_path: Path | None = None) -> str:
    return str(load_config(config_path).get("log_level") or DEFAULT_LOG_LEVEL).upper()


def get_reward_tuning(config_path: Path | None = None) -> RewardTuning:
    """Reward coefficients with any overrides from the ``reward_tuning`` key."""
    overrides = load_config(config_path).get("reward_tuning")
    if not isinstance(overrides, dict) or not overrides:
        return DEFAULT_TUNING
    return RewardTuning.from_dict(overrides)
