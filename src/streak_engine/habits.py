from __future__ import annotations

import sqlite3
from collections.abc import Sequence
from datetime import date, datetime

from streak_engine.db import Database
from streak_engine.db_models import HabitDefinition, HabitStatus
from streak_engine.errors import NotFoundError


def list_habits_for_day(
    db: Database,
    user_id: str,
    day: date,
    conn: sqlite3.Connection | None = None,
) -> list[HabitStatus]:
    habits = db.list_active_habits(conn=conn)
    if not habits:
        return []
    done = db.completed_habit_ids(user_id, day, conn=conn)
    return [HabitStatus(habit=habit, completed=habit.id in done) for habit in habits]


def is_day_complete(statuses: Sequence[HabitStatus]) -> bool:
    return bool(statuses) and all(status.completed for status in statuses)


def add_habit(
    db: Database,
    name: str,
    now: datetime,
    icon: str = "star",
    color: str = "primary",
    display_order: int | None = None,
) -> HabitDefinition:
    cleaned = name.strip()
    if not cleaned:
        raise ValueError("Habit name must not be empty")
    return db.add_habit_definition(cleaned, icon.strip() or "star", color.strip() or "primary", now, display_order=display_order)


def deactivate_habit(db: Database, habit_id: str) -> None:
    if not db.deactivate_habit(habit_id):
        raise NotFoundError("habit", habit_id)
