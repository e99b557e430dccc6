from __future__ import annotations

import sqlite3
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Protocol

from streak_engine.db_converters import _row_to_streak
from streak_engine.db_models import StreakRecord


class DbProtocol(Protocol):
    def _session(self, conn: sqlite3.Connection | None = None) -> AbstractContextManager[sqlite3.Connection]: ...


class StreakMixin:
    def get_streak_record(self: DbProtocol, user_id: str, conn: sqlite3.Connection | None = None) -> StreakRecord | None:
        with self._session(conn) as c:
            row = c.execute(
                "SELECT user_id, current_streak, best_streak, last_completed_date FROM habit_streaks WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        return _row_to_streak(row) if row else None

    def save_streak(
        self: DbProtocol,
        record: StreakRecord,
        updated_at: datetime,
        conn: sqlite3.Connection | None = None,
    ) -> StreakRecord:
        last = record.last_completed_date.isoformat() if record.last_completed_date else None
        with self._session(conn) as c:
            c.execute(
                """
                INSERT INTO habit_streaks(user_id, current_streak, best_streak, last_completed_date, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    current_streak=excluded.current_streak,
                    best_streak=excluded.best_streak,
                    last_completed_date=excluded.last_completed_date,
                    updated_at=excluded.updated_at
                """,
                (record.user_id, record.current_streak, record.best_streak, last, updated_at.isoformat()),
            )
            row = c.execute(
                "SELECT user_id, current_streak, best_streak, last_completed_date FROM habit_streaks WHERE user_id = ?",
                (record.user_id,),
            ).fetchone()
        assert row is not None
        return _row_to_streak(row)
