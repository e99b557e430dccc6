from __future__ import annotations

from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from streak_engine.db import Database
from streak_engine.db_models import StreakRecord
from streak_engine.streaks import advance_streak, effective_streak, get_streak, next_streak, zero_streak


def _dt(y: int, m: int, d: int, h: int = 10, minute: int = 0) -> datetime:
    return datetime(y, m, d, h, minute, tzinfo=ZoneInfo("America/Sao_Paulo"))


def _record(current: int, best: int, last: date | None) -> StreakRecord:
    return StreakRecord(user_id="u1", current_streak=current, best_streak=best, last_completed_date=last)


def test_continues_from_yesterday() -> None:
    today = date(2026, 3, 10)
    for current in (0, 1, 5, 29, 364):
        out = next_streak(_record(current, current, today - timedelta(days=1)), today)
        assert out.current_streak == current + 1
        assert out.last_completed_date == today


def test_resets_after_gap_or_no_history() -> None:
    today = date(2026, 3, 10)
    for gap in (2, 3, 10, 400):
        out = next_streak(_record(42, 42, today - timedelta(days=gap)), today)
        assert out.current_streak == 1
        assert out.best_streak == 42
    assert next_streak(zero_streak("u1"), today).current_streak == 1


def test_same_day_is_noop() -> None:
    today = date(2026, 3, 10)
    record = _record(5, 9, today)
    assert next_streak(record, today) == record


def test_last_date_in_future_is_left_alone() -> None:
    today = date(2026, 3, 10)
    record = _record(3, 3, date(2026, 3, 11))
    assert next_streak(record, today) == record


def test_three_day_gap_resets_high_streak() -> None:
    out = next_streak(_record(120, 120, date(2026, 3, 7)), date(2026, 3, 10))
    assert out.current_streak == 1
    assert out.best_streak == 120


def test_best_streak_never_decreases() -> None:
    record = zero_streak("u1")
    start = date(2026, 1, 1)
    # consecutive runs broken by gaps of varying length
    offsets = [0, 1, 2, 3, 6, 7, 8, 20, 21, 22, 23, 24, 25, 40]
    best_seen = 0
    for offset in offsets:
        record = next_streak(record, start + timedelta(days=offset))
        assert record.best_streak >= best_seen
        assert record.best_streak >= record.current_streak
        best_seen = record.best_streak
    assert best_seen == 6


def test_get_streak_defaults_to_zero_without_writing(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    streak = get_streak(db, "u1")
    assert streak == zero_streak("u1")
    assert db.get_streak_record("u1") is None


def test_advance_streak_persists_and_is_idempotent_per_day(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    first = advance_streak(db, "u1", date(2026, 3, 9), _dt(2026, 3, 9))
    second = advance_streak(db, "u1", date(2026, 3, 10), _dt(2026, 3, 10))
    again = advance_streak(db, "u1", date(2026, 3, 10), _dt(2026, 3, 10, 22))

    assert first.current_streak == 1
    assert second.current_streak == 2
    assert again == second
    stored = db.get_streak_record("u1")
    assert stored is not None
    assert stored.current_streak == 2
    assert stored.best_streak == 2
    assert stored.last_completed_date == date(2026, 3, 10)


def test_effective_streak_drops_to_zero_once_lapsed() -> None:
    today = date(2026, 3, 10)
    assert effective_streak(_record(4, 9, today), today) == 4
    assert effective_streak(_record(4, 9, date(2026, 3, 9)), today) == 4
    assert effective_streak(_record(4, 9, date(2026, 3, 8)), today) == 0
    assert effective_streak(zero_streak("u1"), today) == 0
