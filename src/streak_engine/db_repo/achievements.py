from __future__ import annotations

import sqlite3
from contextlib import AbstractContextManager
from typing import Protocol

from streak_engine.db_converters import _row_to_grant
from streak_engine.db_models import AchievementGrant


class DbProtocol(Protocol):
    def _session(self, conn: sqlite3.Connection | None = None) -> AbstractContextManager[sqlite3.Connection]: ...


class AchievementMixin:
    def list_grants(self: DbProtocol, user_id: str, conn: sqlite3.Connection | None = None) -> list[AchievementGrant]:
        with self._session(conn) as c:
            rows = c.execute(
                """
                SELECT user_id, achievement_id, achieved_at, streak_days
                FROM habit_achievements
                WHERE user_id = ?
                ORDER BY achieved_at, id
                """,
                (user_id,),
            ).fetchall()
        return [_row_to_grant(row) for row in rows]

    def granted_achievement_ids(self: DbProtocol, user_id: str, conn: sqlite3.Connection | None = None) -> set[str]:
        with self._session(conn) as c:
            rows = c.execute(
                "SELECT achievement_id FROM habit_achievements WHERE user_id = ?",
                (user_id,),
            ).fetchall()
        return {str(row["achievement_id"]) for row in rows}

    def add_grant(self: DbProtocol, grant: AchievementGrant, conn: sqlite3.Connection | None = None) -> bool:
        with self._session(conn) as c:
            cur = c.execute(
                """
                INSERT OR IGNORE INTO habit_achievements(user_id, achievement_id, achieved_at, streak_days)
                VALUES (?, ?, ?, ?)
                """,
                (grant.user_id, grant.achievement_id, grant.granted_at.isoformat(), grant.streak_days),
            )
        return cur.rowcount > 0

    def list_known_user_ids(self: DbProtocol) -> list[str]:
        with self._session() as conn:
            rows = conn.execute(
                """
                SELECT user_id FROM daily_habits
                UNION SELECT user_id FROM habit_streaks
                UNION SELECT user_id FROM lesson_progress
                UNION SELECT user_id FROM reading_progress
                UNION SELECT user_id FROM user_xp
                ORDER BY user_id
                """
            ).fetchall()
        return [str(row["user_id"]) for row in rows]
