from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime

from streak_engine.db import Database
from streak_engine.db_models import StreakRecord
from streak_engine.time_utils import previous_day

logger = logging.getLogger(__name__)


def zero_streak(user_id: str) -> StreakRecord:
    return StreakRecord(user_id=user_id, current_streak=0, best_streak=0, last_completed_date=None)


def next_streak(record: StreakRecord, today: date) -> StreakRecord:
    """
    Apply one fully-completed day to a streak record.

    Continuing from yesterday extends the streak, completing the same day
    twice changes nothing, and any gap (or no history) restarts at 1.
    best_streak never decreases.
    """
    last = record.last_completed_date
    if last is not None and last >= today:
        return record

    if last == previous_day(today):
        current = record.current_streak + 1
    else:
        current = 1

    return StreakRecord(
        user_id=record.user_id,
        current_streak=current,
        best_streak=max(record.best_streak, current),
        last_completed_date=today,
    )


def effective_streak(record: StreakRecord, today: date) -> int:
    """Days a client should show: the stored run while it can still be continued, else 0."""
    last = record.last_completed_date
    if last is None or last < previous_day(today):
        return 0
    return record.current_streak


def get_streak(db: Database, user_id: str, conn: sqlite3.Connection | None = None) -> StreakRecord:
    return db.get_streak_record(user_id, conn=conn) or zero_streak(user_id)


def advance_streak(
    db: Database,
    user_id: str,
    today: date,
    now: datetime,
    conn: sqlite3.Connection | None = None,
) -> StreakRecord:
    before = get_streak(db, user_id, conn=conn)
    after = next_streak(before, today)
    if after == before:
        logger.debug("streak unchanged user=%s day=%s current=%s", user_id, today, before.current_streak)
        return before

    saved = db.save_streak(after, now, conn=conn)
    if saved.current_streak == 1 and before.current_streak > 0:
        logger.info("streak reset user=%s previous=%s last=%s", user_id, before.current_streak, before.last_completed_date)
    else:
        logger.info("streak advanced user=%s current=%s best=%s", user_id, saved.current_streak, saved.best_streak)
    return saved
