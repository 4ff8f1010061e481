"""Tests for the MCP server tool functions."""
from unittest.mock import MagicMock, patch

import pytest

from rpg_tutor.db import Database
from rpg_tutor.errors import InvalidState
from rpg_tutor.mcp_server import (
    get_achievements,
    get_character,
    get_inventory,
    get_quests,
    list_game_modes,
    preview_xp_reward,
)
from rpg_tutor.service import complete_lesson
from rpg_tutor.xp import DEFAULT_TUNING


@pytest.fixture
def db(tmp_path):
    database = Database(db_path=tmp_path / "test.db")
    yield database
    database.close()


class TestGetCharacter:
    @patch("rpg_tutor.mcp_server._get_db")
    def test_missing_character_returns_error(self, mock_get_db):
        mock_db = MagicMock()
        mock_db.get_character.return_value = None
        mock_get_db.return_value = mock_db
        result = get_character("ghost")
        assert "error" in result
        mock_db.close.assert_called_once()

    @patch("rpg_tutor.mcp_server._get_db")
    def test_reads_character(self, mock_get_db, db):
        complete_lesson(db, "ada", "mathematics", 1, 1.0)
        mock_get_db.return_value = MagicMock(wraps=db)
        result = get_character("ada")
        assert result["level"] == 1
        assert result["total_xp"] == 15
        assert result["current_xp"] == 15
        assert result["xp_for_next"] == 100
        assert result["stats"]["intelligence"] == 10
        assert result["streak_days"] == 1


class TestGetAchievements:
    @patch("rpg_tutor.mcp_server._get_db")
    def test_counts(self, mock_get_db, db):
        complete_lesson(db, "ada", "mathematics", 1, 1.0)
        mock_get_db.return_value = MagicMock(wraps=db)
        result = get_achievements("ada")
        assert result["unlocked_count"] == 1
        assert result["total_count"] == len(result["achievements"])
        first = next(a for a in result["achievements"] if a["id"] == "first_steps")
        assert first["unlocked"] is True
        assert first["progress_pct"] == 100
        assert "first_steps" not in result["closest"]
        assert len(result["closest"]) == 3

    @patch("rpg_tutor.mcp_server._get_db")
    def test_rules_error_returns_error_dict(self, mock_get_db):
        mock_db = MagicMock()
        mock_get_db.return_value = mock_db
        with patch("rpg_tutor.service.snapshot_for", side_effect=InvalidState("corrupt counters")):
            result = get_achievements("ada")
        assert result == {"error": "corrupt counters", "code": "invalid_state", "details": {}}
        mock_db.close.assert_called_once()


class TestGetQuests:
    @patch("rpg_tutor.mcp_server._get_db")
    def test_no_quests(self, mock_get_db):
        mock_db = MagicMock()
        mock_db.get_user_quests.return_value = []
        mock_get_db.return_value = mock_db
        assert get_quests("ada") == {"quests": [], "active_count": 0}
        mock_db.close.assert_called_once()

    @patch("rpg_tutor.mcp_server._get_db")
    def test_rules_error_returns_error_dict(self, mock_get_db):
        mock_db = MagicMock()
        mock_db.get_user_quests.side_effect = InvalidState("unreadable quest", {"quest_id": "q1"})
        mock_get_db.return_value = mock_db
        result = get_quests("ada")
        assert result["code"] == "invalid_state"
        assert result["details"] == {"quest_id": "q1"}
        mock_db.close.assert_called_once()


class TestGetInventory:
    @patch("rpg_tutor.mcp_server._get_db")
    def test_lists_items(self, mock_get_db, db):
        db.add_inventory_item("ada", "mystery-box", 3, "2026-03-01T10:00:00")
        db.add_inventory_item("ada", "golden-calculator", 1, "2026-03-02T10:00:00")
        mock_get_db.return_value = MagicMock(wraps=db)
        result = get_inventory("ada")
        assert result["total_count"] == 4
        assert result["items"][1] == {
            "id": "golden-calculator", "name": "Golden Calculator", "rarity": "rare", "quantity": 1,
        }


class TestListGameModes:
    def test_filters_by_level(self):
        result = list_game_modes(1)
        assert {m["id"] for m in result["modes"]} == {"lightning-round", "mystery-box"}

    def test_high_level_sees_everything(self):
        assert len(list_game_modes(50)["modes"]) == 8


class TestPreviewXpReward:
    @patch("rpg_tutor.mcp_server._get_db")
    def test_default_stats(self, mock_get_db):
        mock_db = MagicMock()
        mock_db.get_character.return_value = None
        mock_get_db.return_value = mock_db
        with patch("rpg_tutor.config.get_reward_tuning") as mock_tuning:
            mock_tuning.return_value = DEFAULT_TUNING
            result = preview_xp_reward(2)
        assert result["total_xp"] == 30

    @patch("rpg_tutor.mcp_server._get_db")
    def test_invalid_difficulty_returns_error(self, mock_get_db):
        mock_db = MagicMock()
        mock_db.get_character.return_value = None
        mock_get_db.return_value = mock_db
        result = preview_xp_reward(7)
        assert result["code"] == "invalid_argument"
        mock_db.close.assert_called_once()
