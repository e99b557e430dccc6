from __future__ import annotations

import sqlite3
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Protocol


class DbProtocol(Protocol):
    def _session(self, conn: sqlite3.Connection | None = None) -> AbstractContextManager[sqlite3.Connection]: ...


class ProgressMixin:
    def record_lesson_completed(self: DbProtocol, user_id: str, lesson_id: str, completed_at: datetime) -> bool:
        with self._session() as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO lesson_progress(user_id, lesson_id, completed_at) VALUES (?, ?, ?)",
                (user_id, lesson_id, completed_at.isoformat()),
            )
        return cur.rowcount > 0

    def count_completed_lessons(self: DbProtocol, user_id: str, conn: sqlite3.Connection | None = None) -> int:
        with self._session(conn) as c:
            row = c.execute("SELECT COUNT(*) AS n FROM lesson_progress WHERE user_id = ?", (user_id,)).fetchone()
        return int(row["n"]) if row else 0

    def record_reading_day(
        self: DbProtocol,
        user_id: str,
        plan_id: str,
        day_number: int,
        completed_at: datetime,
    ) -> bool:
        with self._session() as conn:
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO reading_progress(user_id, plan_id, day_number, completed_at)
                VALUES (?, ?, ?, ?)
                """,
                (user_id, plan_id, day_number, completed_at.isoformat()),
            )
        return cur.rowcount > 0

    def count_reading_days(self: DbProtocol, user_id: str, conn: sqlite3.Connection | None = None) -> int:
        with self._session(conn) as c:
            row = c.execute("SELECT COUNT(*) AS n FROM reading_progress WHERE user_id = ?", (user_id,)).fetchone()
        return int(row["n"]) if row else 0

    def add_xp(self: DbProtocol, user_id: str, amount: int, created_at: datetime, reason: str | None = None) -> int:
        with self._session() as conn:
            conn.execute(
                "INSERT INTO user_xp(user_id, amount, reason, created_at) VALUES (?, ?, ?, ?)",
                (user_id, amount, reason, created_at.isoformat()),
            )
            row = conn.execute(
                "SELECT COALESCE(SUM(amount), 0) AS total FROM user_xp WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        return int(row["total"]) if row else 0

    def sum_xp(self: DbProtocol, user_id: str, conn: sqlite3.Connection | None = None) -> int:
        with self._session(conn) as c:
            row = c.execute(
                "SELECT COALESCE(SUM(amount), 0) AS total FROM user_xp WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        return max(0, int(row["total"])) if row else 0
