from __future__ import annotations

import sqlite3
import uuid
from contextlib import AbstractContextManager
from datetime import date, datetime
from typing import Protocol

from streak_engine.db_constants import DEFAULT_HABITS
from streak_engine.db_converters import _row_to_habit
from streak_engine.db_models import HabitDefinition


class DbProtocol(Protocol):
    def _session(self, conn: sqlite3.Connection | None = None) -> AbstractContextManager[sqlite3.Connection]: ...
    def list_active_habits(self, conn: sqlite3.Connection | None = None) -> list[HabitDefinition]: ...
    def add_habit_definition(
        self,
        name: str,
        icon: str,
        color: str,
        created_at: datetime,
        display_order: int | None = None,
    ) -> HabitDefinition: ...


class HabitMixin:
    def list_active_habits(self: DbProtocol, conn: sqlite3.Connection | None = None) -> list[HabitDefinition]:
        with self._session(conn) as c:
            rows = c.execute(
                """
                SELECT * FROM habit_definitions
                WHERE is_active = 1
                ORDER BY display_order, name, id
                """
            ).fetchall()
        return [_row_to_habit(row) for row in rows]

    def get_habit(self: DbProtocol, habit_id: str, conn: sqlite3.Connection | None = None) -> HabitDefinition | None:
        with self._session(conn) as c:
            row = c.execute("SELECT * FROM habit_definitions WHERE id = ?", (habit_id,)).fetchone()
        return _row_to_habit(row) if row else None

    def add_habit_definition(
        self: DbProtocol,
        name: str,
        icon: str,
        color: str,
        created_at: datetime,
        display_order: int | None = None,
    ) -> HabitDefinition:
        habit_id = uuid.uuid4().hex
        with self._session() as conn:
            if display_order is None:
                row = conn.execute(
                    "SELECT COALESCE(MAX(display_order) + 1, 0) AS next_order FROM habit_definitions WHERE is_active = 1"
                ).fetchone()
                display_order = int(row["next_order"])
            conn.execute(
                """
                INSERT INTO habit_definitions(id, name, icon, color, display_order, is_active, created_at)
                VALUES (?, ?, ?, ?, ?, 1, ?)
                """,
                (habit_id, name, icon, color, display_order, created_at.isoformat()),
            )
            row = conn.execute("SELECT * FROM habit_definitions WHERE id = ?", (habit_id,)).fetchone()
        assert row is not None
        return _row_to_habit(row)

    def deactivate_habit(self: DbProtocol, habit_id: str) -> bool:
        with self._session() as conn:
            cur = conn.execute("UPDATE habit_definitions SET is_active = 0 WHERE id = ?", (habit_id,))
        return cur.rowcount > 0

    def ensure_default_habits(self: DbProtocol, now: datetime) -> list[HabitDefinition]:
        existing = self.list_active_habits()
        if existing:
            return existing
        for order, (name, icon, color) in enumerate(DEFAULT_HABITS):
            self.add_habit_definition(name, icon, color, now, display_order=order)
        return self.list_active_habits()

    def completed_habit_ids(
        self: DbProtocol,
        user_id: str,
        day: date,
        conn: sqlite3.Connection | None = None,
    ) -> set[str]:
        with self._session(conn) as c:
            rows = c.execute(
                "SELECT habit_id FROM daily_habits WHERE user_id = ? AND completed_date = ?",
                (user_id, day.isoformat()),
            ).fetchall()
        return {str(row["habit_id"]) for row in rows}

    def count_completion_records(
        self: DbProtocol,
        user_id: str,
        habit_id: str,
        day: date,
        conn: sqlite3.Connection | None = None,
    ) -> int:
        with self._session(conn) as c:
            row = c.execute(
                """
                SELECT COUNT(*) AS n FROM daily_habits
                WHERE user_id = ? AND habit_id = ? AND completed_date = ?
                """,
                (user_id, habit_id, day.isoformat()),
            ).fetchone()
        return int(row["n"]) if row else 0

    def add_completion(
        self: DbProtocol,
        user_id: str,
        habit_id: str,
        day: date,
        created_at: datetime,
        conn: sqlite3.Connection | None = None,
    ) -> bool:
        with self._session(conn) as c:
            cur = c.execute(
                """
                INSERT OR IGNORE INTO daily_habits(user_id, habit_id, completed_date, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (user_id, habit_id, day.isoformat(), created_at.isoformat()),
            )
        return cur.rowcount > 0

    def delete_completion(
        self: DbProtocol,
        user_id: str,
        habit_id: str,
        day: date,
        conn: sqlite3.Connection | None = None,
    ) -> bool:
        with self._session(conn) as c:
            cur = c.execute(
                "DELETE FROM daily_habits WHERE user_id = ? AND habit_id = ? AND completed_date = ?",
                (user_id, habit_id, day.isoformat()),
            )
        return cur.rowcount > 0

    def count_all_completions(self: DbProtocol, user_id: str, conn: sqlite3.Connection | None = None) -> int:
        with self._session(conn) as c:
            row = c.execute("SELECT COUNT(*) AS n FROM daily_habits WHERE user_id = ?", (user_id,)).fetchone()
        return int(row["n"]) if row else 0
