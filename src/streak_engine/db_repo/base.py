from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import closing, contextmanager
from datetime import datetime
from pathlib import Path

from streak_engine.db_constants import DEFAULT_BUSY_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


class BaseDatabase:
    def __init__(self, path: Path, busy_timeout: float = DEFAULT_BUSY_TIMEOUT_SECONDS) -> None:
        self.path = path
        self.busy_timeout = busy_timeout
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self, isolation_level: str | None = "") -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, timeout=self.busy_timeout, isolation_level=isolation_level)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _session(self, conn: sqlite3.Connection | None = None) -> Iterator[sqlite3.Connection]:
        """Reuse the caller's connection, or open a short-lived one that commits on exit."""
        if conn is not None:
            yield conn
            return
        with closing(self._connect()) as own, own:
            yield own

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Open a write transaction that holds the database write lock until it ends.

        BEGIN IMMEDIATE takes the lock up front, so two concurrent transactions
        never read the same state and then both write on top of it: the second
        one waits (up to busy_timeout) and reads what the first committed.
        """
        conn = self._connect(isolation_level=None)
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    @contextmanager
    def savepoint(self, conn: sqlite3.Connection, name: str) -> Iterator[sqlite3.Connection]:
        """Scope a group of writes so a failure undoes only that group, not the outer transaction."""
        conn.execute(f"SAVEPOINT {name}")
        try:
            yield conn
        except BaseException:
            conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
            conn.execute(f"RELEASE SAVEPOINT {name}")
            raise
        conn.execute(f"RELEASE SAVEPOINT {name}")

    def _init_db(self) -> None:
        with closing(self._connect()) as conn, conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
                """
            )
            current = {row["version"] for row in conn.execute("SELECT version FROM schema_migrations")}

            migrations: dict[int, str] = {
                1: """
                    CREATE TABLE habit_definitions (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        icon TEXT NOT NULL DEFAULT 'star',
                        color TEXT NOT NULL DEFAULT 'primary',
                        display_order INTEGER NOT NULL DEFAULT 0,
                        is_active INTEGER NOT NULL DEFAULT 1,
                        created_at TEXT NOT NULL
                    );

                    CREATE INDEX idx_habit_definitions_active_order
                    ON habit_definitions(is_active, display_order);

                    CREATE TABLE daily_habits (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id TEXT NOT NULL,
                        habit_id TEXT NOT NULL,
                        completed_date TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        UNIQUE(user_id, habit_id, completed_date)
                    );

                    CREATE INDEX idx_daily_habits_user_date ON daily_habits(user_id, completed_date);
                """,
                2: """
                    CREATE TABLE habit_streaks (
                        user_id TEXT PRIMARY KEY,
                        current_streak INTEGER NOT NULL DEFAULT 0 CHECK(current_streak >= 0),
                        best_streak INTEGER NOT NULL DEFAULT 0,
                        last_completed_date TEXT,
                        updated_at TEXT NOT NULL,
                        CHECK(best_streak >= current_streak)
                    );

                    CREATE TABLE habit_achievements (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id TEXT NOT NULL,
                        achievement_id TEXT NOT NULL,
                        achieved_at TEXT NOT NULL,
                        streak_days INTEGER NOT NULL DEFAULT 0,
                        UNIQUE(user_id, achievement_id)
                    );
                """,
                3: """
                    CREATE TABLE lesson_progress (
                        user_id TEXT NOT NULL,
                        lesson_id TEXT NOT NULL,
                        completed_at TEXT NOT NULL,
                        PRIMARY KEY(user_id, lesson_id)
                    );

                    CREATE TABLE reading_progress (
                        user_id TEXT NOT NULL,
                        plan_id TEXT NOT NULL,
                        day_number INTEGER NOT NULL CHECK(day_number > 0),
                        completed_at TEXT NOT NULL,
                        PRIMARY KEY(user_id, plan_id, day_number)
                    );

                    CREATE TABLE user_xp (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id TEXT NOT NULL,
                        amount INTEGER NOT NULL,
                        reason TEXT,
                        created_at TEXT NOT NULL
                    );

                    CREATE INDEX idx_user_xp_user ON user_xp(user_id);
                """,
            }

            now = datetime.now().isoformat(timespec="seconds")
            for version in sorted(migrations):
                if version in current:
                    continue
                conn.executescript(migrations[version])
                conn.execute(
                    "INSERT INTO schema_migrations(version, applied_at) VALUES (?, ?)",
                    (version, now),
                )
                logger.info("applied schema migration %s to %s", version, self.path)
