from __future__ import annotations

import sqlite3
from datetime import date, datetime

from streak_engine.db_models import AchievementGrant, HabitDefinition, StreakRecord


def _row_to_habit(row: sqlite3.Row) -> HabitDefinition:
    return HabitDefinition(
        id=str(row["id"]),
        name=row["name"],
        icon=row["icon"] or "star",
        color=row["color"] or "primary",
        display_order=int(row["display_order"]),
        is_active=bool(row["is_active"]),
    )


def _row_to_streak(row: sqlite3.Row) -> StreakRecord:
    return StreakRecord(
        user_id=str(row["user_id"]),
        current_streak=int(row["current_streak"]),
        best_streak=int(row["best_streak"]),
        last_completed_date=date.fromisoformat(row["last_completed_date"]) if row["last_completed_date"] else None,
    )


def _row_to_grant(row: sqlite3.Row) -> AchievementGrant:
    return AchievementGrant(
        user_id=str(row["user_id"]),
        achievement_id=row["achievement_id"],
        granted_at=datetime.fromisoformat(row["achieved_at"]),
        streak_days=int(row["streak_days"]),
    )
