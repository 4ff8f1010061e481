"""SQLite database layer for rpg-tutor."""

import json
import sqlite3
from pathlib import Path

from rpg_tutor.errors import ConcurrentModification, InvalidArgument, NotFound
from rpg_tutor.log import get_logger
from rpg_tutor.quests import UserQuest, user_quest_from_dict, user_quest_to_dict
from rpg_tutor.sessions import GameSession, session_from_dict, session_to_dict
from rpg_tutor.stats import StatBlock
from rpg_tutor.streaks import LearningStreak

logger = get_logger(__name__)

DEFAULT_DB_PATH = Path.home() / ".rpg-tutor" / "data.db"


class Database:
    """SQLite database manager with WAL mode."""

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path or DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.init_db()

    def init_db(self) -> None:
        """Create tables if they do not exist."""
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS characters (
                user_id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                level INTEGER DEFAULT 1,
                total_xp INTEGER DEFAULT 0,
                current_xp INTEGER DEFAULT 0,
                stats TEXT NOT NULL,
                specialization TEXT,
                created_at TEXT,
                updated_at TEXT
            );

            CREATE TABLE IF NOT EXISTS counters (
                user_id TEXT NOT NULL,
                key TEXT NOT NULL,
                value INTEGER DEFAULT 0,
                PRIMARY KEY (user_id, key)
            );

            CREATE TABLE IF NOT EXISTS user_achievements (
                user_id TEXT NOT NULL,
                achievement_id TEXT NOT NULL,
                unlocked_at TEXT NOT NULL,
                progress REAL DEFAULT 1.0,
                PRIMARY KEY (user_id, achievement_id)
            );

            CREATE TABLE IF NOT EXISTS user_quests (
                user_id TEXT NOT NULL,
                quest_id TEXT NOT NULL,
                expires_at TEXT NOT NULL,
                completed_at TEXT,
                payload TEXT NOT NULL,
                PRIMARY KEY (user_id, quest_id)
            );

            CREATE TABLE IF NOT EXISTS learning_streaks (
                user_id TEXT PRIMARY KEY,
                current_streak INTEGER DEFAULT 0,
                longest_streak INTEGER DEFAULT 0,
                last_activity_date TEXT
            );

            CREATE TABLE IF NOT EXISTS user_inventory (
                user_id TEXT NOT NULL,
                item_id TEXT NOT NULL,
                quantity INTEGER NOT NULL DEFAULT 0,
                acquired_at TEXT NOT NULL,
                PRIMARY KEY (user_id, item_id)
            );

            CREATE TABLE IF NOT EXISTS game_sessions (
                id TEXT PRIMARY KEY,
                mode_id TEXT NOT NULL,
                host_id TEXT NOT NULL,
                status TEXT NOT NULL,
                version INTEGER NOT NULL DEFAULT 1,
                payload TEXT NOT NULL
            );
        """)
        self.conn.commit()

    def get_character(self, user_id: str) -> dict | None:
        """Get a character row, with ``stats`` decoded to a StatBlock."""
        row = self.conn.execute(
            "SELECT * FROM characters WHERE user_id = ?", (user_id,)
        ).fetchone()
        if row is None:
            return None
        character = dict(row)
        character["stats"] = StatBlock.from_dict(json.loads(character["stats"]))
        return character

    def upsert_character(
        self,
        user_id: str,
        name: str,
        level: int,
        total_xp: int,
        current_xp: int,
        stats: StatBlock,
        specialization: str | None,
        timestamp: str,
    ) -> None:
        """Insert or update a character (created_at is kept on update)."""
        self.conn.execute(
            "INSERT INTO characters "
            "(user_id, name, level, total_xp, current_xp, stats, specialization, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(user_id) DO UPDATE SET name = excluded.name, level = excluded.level, "
            "total_xp = excluded.total_xp, current_xp = excluded.current_xp, stats = excluded.stats, "
            "specialization = excluded.specialization, updated_at = excluded.updated_at",
            (
                user_id, name, level, total_xp, current_xp,
                json.dumps(stats.to_dict()), specialization, timestamp, timestamp,
            ),
        )
        self.conn.commit()

    def increment_counters(self, user_id: str, **deltas: int) -> None:
        """Add to named counters, creating them at 0 first."""
        for key, delta in deltas.items():
            self.conn.execute(
                "INSERT INTO counters (user_id, key, value) VALUES (?, ?, ?) "
                "ON CONFLICT(user_id, key) DO UPDATE SET value = value + excluded.value",
                (user_id, key, delta),
            )
        self.conn.commit()

    def set_counter(self, user_id: str, key: str, value: int) -> None:
        self.conn.execute(
            "INSERT INTO counters (user_id, key, value) VALUES (?, ?, ?) "
            "ON CONFLICT(user_id, key) DO UPDATE SET value = excluded.value",
            (user_id, key, value),
        )
        self.conn.commit()

    def set_counter_max(self, user_id: str, key: str, value: int) -> None:
        """Raise a counter to ``value`` if it is currently lower."""
        self.conn.execute(
            "INSERT INTO counters (user_id, key, value) VALUES (?, ?, ?) "
            "ON CONFLICT(user_id, key) DO UPDATE SET value = MAX(value, excluded.value)",
            (user_id, key, value),
        )
        self.conn.commit()

    def get_counters(self, user_id: str) -> dict[str, int]:
        rows = self.conn.execute(
            "SELECT key, value FROM counters WHERE user_id = ?", (user_id,)
        ).fetchall()
        return {row["key"]: row["value"] for row in rows}

    def unlock_achievement(self, user_id: str, achievement_id: str, timestamp: str) -> bool:
        """Record an unlock. Returns False if it was already unlocked (the
        original timestamp is kept)."""
        cursor = self.conn.execute(
            "INSERT OR IGNORE INTO user_achievements (user_id, achievement_id, unlocked_at, progress) "
            "VALUES (?, ?, ?, 1.0)",
            (user_id, achievement_id, timestamp),
        )
        self.conn.commit()
        return cursor.rowcount == 1

    def get_unlocked_achievements(self, user_id: str) -> dict[str, str]:
        """Return {achievement_id: unlocked_at} for a user."""
        rows = self.conn.execute(
            "SELECT achievement_id, unlocked_at FROM user_achievements WHERE user_id = ? ORDER BY unlocked_at",
            (user_id,),
        ).fetchall()
        return {row["achievement_id"]: row["unlocked_at"] for row in rows}

    def save_user_quest(self, user_quest: UserQuest) -> None:
        completed_at = user_quest.completed_at.isoformat() if user_quest.completed_at else None
        self.conn.execute(
            "INSERT INTO user_quests (user_id, quest_id, expires_at, completed_at, payload) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(user_id, quest_id) DO UPDATE SET completed_at = excluded.completed_at, "
            "payload = excluded.payload",
            (
                user_quest.user_id,
                user_quest.quest_id,
                user_quest.expires_at.isoformat(),
                completed_at,
                json.dumps(user_quest_to_dict(user_quest)),
            ),
        )
        self.conn.commit()

    def get_user_quests(self, user_id: str) -> list[UserQuest]:
        """All quests stored for a user, oldest expiry first."""
        rows = self.conn.execute(
            "SELECT payload FROM user_quests WHERE user_id = ? ORDER BY expires_at, quest_id",
            (user_id,),
        ).fetchall()
        return [user_quest_from_dict(json.loads(row["payload"])) for row in rows]

    def get_learning_streak(self, user_id: str) -> LearningStreak | None:
        row = self.conn.execute(
            "SELECT * FROM learning_streaks WHERE user_id = ?", (user_id,)
        ).fetchone()
        if row is None:
            return None
        return LearningStreak(
            current_streak=row["current_streak"],
            longest_streak=row["longest_streak"],
            last_activity_date=row["last_activity_date"],
        )

    def save_learning_streak(self, user_id: str, streak: LearningStreak) -> None:
        self.conn.execute(
            "INSERT INTO learning_streaks (user_id, current_streak, longest_streak, last_activity_date) "
            "VALUES (?, ?, ?, ?) "
            "ON CONFLICT(user_id) DO UPDATE SET current_streak = excluded.current_streak, "
            "longest_streak = excluded.longest_streak, last_activity_date = excluded.last_activity_date",
            (user_id, streak.current_streak, streak.longest_streak, streak.last_activity_date),
        )
        self.conn.commit()

    def add_inventory_item(self, user_id: str, item_id: str, quantity: int, timestamp: str) -> None:
        """Add ``quantity`` of an item, stacking onto any already held."""
        if quantity < 1:
            raise InvalidArgument(f"quantity must be >= 1, got {quantity}", {"item_id": item_id, "quantity": quantity})
        self.conn.execute(
            "INSERT INTO user_inventory (user_id, item_id, quantity, acquired_at) VALUES (?, ?, ?, ?) "
            "ON CONFLICT(user_id, item_id) DO UPDATE SET quantity = quantity + excluded.quantity",
            (user_id, item_id, quantity, timestamp),
        )
        self.conn.commit()

    def remove_inventory_item(self, user_id: str, item_id: str, quantity: int = 1) -> None:
        """Take ``quantity`` of an item away; the row goes once none are left."""
        held = self.get_inventory(user_id).get(item_id, 0)
        if quantity < 1 or held < quantity:
            raise InvalidArgument(
                f"cannot remove {quantity} x {item_id}, holding {held}",
                {"item_id": item_id, "quantity": quantity, "held": held},
            )
        if held == quantity:
            self.conn.execute(
                "DELETE FROM user_inventory WHERE user_id = ? AND item_id = ?", (user_id, item_id)
            )
        else:
            self.conn.execute(
                "UPDATE user_inventory SET quantity = quantity - ? WHERE user_id = ? AND item_id = ?",
                (quantity, user_id, item_id),
            )
        self.conn.commit()

    def get_inventory(self, user_id: str) -> dict[str, int]:
        """Return {item_id: quantity} for a user."""
        rows = self.conn.execute(
            "SELECT item_id, quantity FROM user_inventory WHERE user_id = ? ORDER BY acquired_at, item_id",
            (user_id,),
        ).fetchall()
        return {row["item_id"]: row["quantity"] for row in rows}

    def insert_game_session(self, session: GameSession) -> None:
        """Store a new session at version 1."""
        session.version = 1
        self.conn.execute(
            "INSERT INTO game_sessions (id, mode_id, host_id, status, version, payload) VALUES (?, ?, ?, ?, ?, ?)",
            (
                session.id, session.mode.id, session.host_id, session.status.value,
                session.version, json.dumps(session_to_dict(session)),
            ),
        )
        self.conn.commit()

    def save_game_session(self, session: GameSession, expected_version: int) -> None:
        """Compare-and-swap write: succeeds only if the stored version is
        still ``expected_version``. Bumps ``session.version`` on success."""
        new_version = expected_version + 1
        payload = session_to_dict(session)
        payload["version"] = new_version
        cursor = self.conn.execute(
            "UPDATE game_sessions SET status = ?, version = ?, payload = ? WHERE id = ? AND version = ?",
            (session.status.value, new_version, json.dumps(payload), session.id, expected_version),
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            row = self.conn.execute(
                "SELECT version FROM game_sessions WHERE id = ?", (session.id,)
            ).fetchone()
            if row is None:
                raise NotFound(f"game session {session.id} not found", {"session_id": session.id})
            logger.debug("session %s: version %d expected, found %d", session.id, expected_version, row["version"])
            raise ConcurrentModification(
                f"game session {session.id} was modified by another writer",
                {"session_id": session.id, "expected_version": expected_version, "actual_version": row["version"]},
            )
        session.version = new_version

    def get_game_session(self, session_id: str) -> GameSession:
        row = self.conn.execute(
            "SELECT version, payload FROM game_sessions WHERE id = ?", (session_id,)
        ).fetchone()
        if row is None:
            raise NotFound(f"game session {session_id} not found", {"session_id": session_id})
        session = session_from_dict(json.loads(row["payload"]))
        session.version = row["version"]
        return session

    def list_game_sessions(self, status: str | None = None) -> list[dict]:
        """Summary rows (id, mode, host, status, version), optionally filtered by status."""
        query = "SELECT id, mode_id, host_id, status, version FROM game_sessions"
        params: tuple = ()
        if status:
            query += " WHERE status = ?"
            params = (status,)
        rows = self.conn.execute(query + " ORDER BY id", params).fetchall()
        return [dict(row) for row in rows]

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()
