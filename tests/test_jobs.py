from __future__ import annotations

from datetime import date, datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from streak_engine.achievements import DEFAULT_ACHIEVEMENTS
from streak_engine.config import Settings
from streak_engine.db import Database
from streak_engine.db_models import StreakRecord
from streak_engine.jobs_runner import run_job, sync_all_achievements


def _dt(y: int, m: int, d: int, h: int = 10, minute: int = 0) -> datetime:
    return datetime(y, m, d, h, minute, tzinfo=ZoneInfo("America/Sao_Paulo"))


def _settings(tmp_path) -> Settings:
    return Settings(
        database_path=tmp_path / "app.db",
        tz="America/Sao_Paulo",
        achievements_config_path=tmp_path / "achievements.yaml",
        db_busy_timeout_seconds=1.0,
        api_token=None,
        api_host="127.0.0.1",
        api_port=8080,
    )


def test_sync_grants_missing_achievements_for_every_user(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    db.save_streak(StreakRecord("u1", 7, 7, date(2026, 3, 9)), _dt(2026, 3, 9))
    db.add_xp("u2", 600, _dt(2026, 3, 9))
    db.record_lesson_completed("u3", "l1", _dt(2026, 3, 9))

    report = sync_all_achievements(db, DEFAULT_ACHIEVEMENTS, "America/Sao_Paulo")
    assert report.users_checked == 3
    assert report.grants_written == 2
    assert report.users_failed == 0
    assert db.granted_achievement_ids("u1") == {"streak_7"}
    assert db.granted_achievement_ids("u2") == {"xp_500"}

    again = sync_all_achievements(db, DEFAULT_ACHIEVEMENTS, "America/Sao_Paulo")
    assert again.grants_written == 0


def test_sync_continues_past_failing_user(tmp_path, monkeypatch) -> None:
    import sqlite3

    db = Database(tmp_path / "app.db")
    db.add_xp("u1", 600, _dt(2026, 3, 9))
    db.add_xp("u2", 600, _dt(2026, 3, 9))
    original = db.sum_xp

    def flaky(user_id, conn=None):
        if user_id == "u1":
            raise sqlite3.OperationalError("database is locked")
        return original(user_id, conn=conn)

    monkeypatch.setattr(db, "sum_xp", flaky)
    report = sync_all_achievements(db, DEFAULT_ACHIEVEMENTS, "America/Sao_Paulo")
    assert report.users_failed == 1
    assert report.grants_written == 1
    assert db.granted_achievement_ids("u2") == {"xp_500"}


def test_run_job_uses_configured_catalog(tmp_path) -> None:
    settings = _settings(tmp_path)
    Path(settings.achievements_config_path).write_text(
        "achievements:\n  - id: xp_10\n    type: xp\n    requirement: 10\n"
    )
    db = Database(settings.database_path)
    db.add_xp("u1", 15, _dt(2026, 3, 9))

    run_job("sync_achievements", db, settings)
    assert db.granted_achievement_ids("u1") == {"xp_10"}


def test_unknown_job_exits(tmp_path) -> None:
    settings = _settings(tmp_path)
    with pytest.raises(SystemExit):
        run_job("nope", Database(settings.database_path), settings)
