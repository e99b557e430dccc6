from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import date, datetime

from streak_engine.achievements import (
    DEFAULT_ACHIEVEMENTS,
    AchievementProgress,
    achievement_progress,
    build_progress_snapshot,
    find_definition,
    get_achievements as _get_achievements,
    sync_achievements,
)
from streak_engine.db import Database
from streak_engine.db_models import (
    AchievementDefinition,
    AchievementGrant,
    HabitDefinition,
    HabitStatus,
    StreakRecord,
)
from streak_engine.errors import ConsistencyViolation, NotFoundError, PersistenceFailure
from streak_engine.habits import add_habit, deactivate_habit, is_day_complete, list_habits_for_day
from streak_engine.streaks import advance_streak, effective_streak, get_streak as _get_streak

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToggleOutcome:
    habit_id: str
    completed: bool
    habits: list[HabitStatus]
    day_complete: bool
    streak: StreakRecord
    streak_advanced: bool
    new_grants: list[AchievementGrant] = field(default_factory=list)
    # First new grant of this toggle, for a single celebratory notice. Display only.
    celebration: AchievementDefinition | None = None


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as exc:
        logger.error("storage failure during %s: %s", action, exc)
        raise PersistenceFailure(f"{action} failed: {exc}") from exc


def toggle_habit(
    db: Database,
    user_id: str,
    habit_id: str,
    day: date,
    now: datetime,
    catalog: Sequence[AchievementDefinition] = DEFAULT_ACHIEVEMENTS,
) -> ToggleOutcome:
    """
    Mark a habit done for ``day``, or undo it if it already is.

    Everything runs inside one write transaction: the completion change, a
    fresh read of the whole day, and (only when that read shows every active
    habit complete after a mark) the streak update followed by achievement
    grants. Concurrent toggles for the same user queue on the write lock, so
    each one decides on the committed result of the previous one.

    Undoing a completion never touches the streak or the achievements.
    """
    with _storage_errors(f"toggle habit {habit_id} for user {user_id}"):
        with db.transaction() as conn:
            habit = db.get_habit(habit_id, conn=conn)
            if habit is None or not habit.is_active:
                raise NotFoundError("habit", habit_id)

            existing = db.count_completion_records(user_id, habit_id, day, conn=conn)
            if existing > 1:
                raise ConsistencyViolation(
                    f"{existing} completion records for user={user_id} habit={habit_id} day={day.isoformat()}"
                )

            if existing:
                db.delete_completion(user_id, habit_id, day, conn=conn)
                completed = False
            else:
                db.add_completion(user_id, habit_id, day, now, conn=conn)
                completed = True
            logger.debug("habit toggled user=%s habit=%s day=%s completed=%s", user_id, habit_id, day, completed)

            habits = list_habits_for_day(db, user_id, day, conn=conn)
            day_complete = is_day_complete(habits)
            streak_before = _get_streak(db, user_id, conn=conn)
            streak = streak_before
            grants: list[AchievementGrant] = []

            if completed and day_complete:
                streak = advance_streak(db, user_id, day, now, conn=conn)
                grants = sync_achievements(db, user_id, now, catalog=catalog, conn=conn)

    celebration = find_definition(grants[0].achievement_id, catalog) if grants else None
    return ToggleOutcome(
        habit_id=habit_id,
        completed=completed,
        habits=habits,
        day_complete=day_complete,
        streak=streak,
        streak_advanced=streak != streak_before,
        new_grants=grants,
        celebration=celebration,
    )


def habits_for_day(db: Database, user_id: str, day: date) -> list[HabitStatus]:
    with _storage_errors(f"list habits for user {user_id}"):
        return list_habits_for_day(db, user_id, day)


def get_streak(db: Database, user_id: str) -> StreakRecord:
    with _storage_errors(f"read streak for user {user_id}"):
        return _get_streak(db, user_id)


def get_achievements(
    db: Database,
    user_id: str,
    catalog: Sequence[AchievementDefinition] = DEFAULT_ACHIEVEMENTS,
) -> set[str]:
    with _storage_errors(f"read achievements for user {user_id}"):
        return _get_achievements(db, user_id, catalog)


def refresh_achievements(
    db: Database,
    user_id: str,
    now: datetime,
    catalog: Sequence[AchievementDefinition] = DEFAULT_ACHIEVEMENTS,
) -> list[AchievementGrant]:
    with _storage_errors(f"sync achievements for user {user_id}"):
        return sync_achievements(db, user_id, now, catalog=catalog)


@dataclass(frozen=True)
class AchievementView:
    granted: set[str]
    rows: list[AchievementProgress]


@dataclass(frozen=True)
class ProgressUpdate:
    recorded: bool
    total: int


def achievement_view(
    db: Database,
    user_id: str,
    today: date,
    catalog: Sequence[AchievementDefinition] = DEFAULT_ACHIEVEMENTS,
) -> AchievementView:
    """Granted ids plus per-definition progress; a lapsed streak counts as 0 toward progress."""
    with _storage_errors(f"read achievement progress for user {user_id}"):
        granted = _get_achievements(db, user_id, catalog)
        snapshot = build_progress_snapshot(db, user_id)
        streak = _get_streak(db, user_id)
        snapshot = replace(snapshot, streak=effective_streak(streak, today))
        rows = achievement_progress(snapshot, db.list_grants(user_id), catalog)
    return AchievementView(granted=granted, rows=rows)


def list_catalog(db: Database) -> list[HabitDefinition]:
    with _storage_errors("list habit catalog"):
        return db.list_active_habits()


def create_habit(
    db: Database,
    name: str,
    now: datetime,
    icon: str = "star",
    color: str = "primary",
    display_order: int | None = None,
) -> HabitDefinition:
    with _storage_errors(f"add habit {name!r}"):
        return add_habit(db, name, now, icon=icon, color=color, display_order=display_order)


def remove_habit(db: Database, habit_id: str) -> None:
    with _storage_errors(f"deactivate habit {habit_id}"):
        deactivate_habit(db, habit_id)


def record_lesson(db: Database, user_id: str, lesson_id: str, now: datetime) -> ProgressUpdate:
    with _storage_errors(f"record lesson {lesson_id} for user {user_id}"):
        recorded = db.record_lesson_completed(user_id, lesson_id, now)
        return ProgressUpdate(recorded=recorded, total=db.count_completed_lessons(user_id))


def record_reading_day(db: Database, user_id: str, plan_id: str, day_number: int, now: datetime) -> ProgressUpdate:
    with _storage_errors(f"record reading day {plan_id}/{day_number} for user {user_id}"):
        recorded = db.record_reading_day(user_id, plan_id, day_number, now)
        return ProgressUpdate(recorded=recorded, total=db.count_reading_days(user_id))


def add_xp(db: Database, user_id: str, amount: int, now: datetime, reason: str | None = None) -> ProgressUpdate:
    with _storage_errors(f"add xp for user {user_id}"):
        total = db.add_xp(user_id, amount, now, reason=reason)
        return ProgressUpdate(recorded=True, total=max(0, total))
