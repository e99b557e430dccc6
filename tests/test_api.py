from __future__ import annotations

import sqlite3
from datetime import datetime
from zoneinfo import ZoneInfo

from fastapi.testclient import TestClient

from streak_engine.achievements import DEFAULT_ACHIEVEMENTS
from streak_engine.api_app import build_api_app
from streak_engine.db import Database


def _dt(y: int, m: int, d: int, h: int = 10, minute: int = 0) -> datetime:
    return datetime(y, m, d, h, minute, tzinfo=ZoneInfo("America/Sao_Paulo"))


def _client(tmp_path, token: str | None = None) -> tuple[TestClient, Database]:
    db = Database(tmp_path / "app.db")
    app = build_api_app(db, DEFAULT_ACHIEVEMENTS, token, "America/Sao_Paulo")
    return TestClient(app), db


def test_token_required_when_configured(tmp_path) -> None:
    client, _db = _client(tmp_path, token="secret")
    assert client.get("/api/habits").status_code == 401
    assert client.get("/api/habits", headers={"x-api-token": "secret"}).status_code == 200
    assert client.get("/api/habits?token=secret").status_code == 200


def test_habit_lifecycle_and_toggle(tmp_path) -> None:
    client, _db = _client(tmp_path)
    created = client.post("/api/habits", json={"name": "Prayer", "icon": "heart"})
    assert created.status_code == 201
    habit_id = created.json()["habit"]["id"]

    listed = client.get("/api/users/u1/habits", params={"day": "2026-03-10"}).json()
    assert listed["day"] == "2026-03-10"
    assert listed["habits"][0]["completed"] is False

    toggled = client.post(f"/api/users/u1/habits/{habit_id}/toggle", json={"day": "2026-03-10"})
    assert toggled.status_code == 200
    body = toggled.json()
    assert body["completed"] is True
    assert body["day_complete"] is True
    assert body["streak"]["current_streak"] == 1
    assert body["streak"]["last_completed_date"] == "2026-03-10"

    streak = client.get("/api/users/u1/streak").json()["streak"]
    assert streak["best_streak"] == 1

    assert client.delete(f"/api/habits/{habit_id}").status_code == 200
    assert client.get("/api/habits").json()["habits"] == []


def test_unknown_habit_maps_to_404(tmp_path) -> None:
    client, _db = _client(tmp_path)
    assert client.post("/api/users/u1/habits/missing/toggle", json={"day": "2026-03-10"}).status_code == 404
    assert client.delete("/api/habits/missing").status_code == 404


def test_blank_habit_name_is_rejected(tmp_path) -> None:
    client, _db = _client(tmp_path)
    assert client.post("/api/habits", json={"name": "  "}).status_code == 422


def test_storage_failure_maps_to_503(tmp_path, monkeypatch) -> None:
    client, db = _client(tmp_path)

    def broken(*args, **kwargs):
        raise sqlite3.OperationalError("database is locked")

    for name in (
        "get_streak_record",
        "list_grants",
        "list_active_habits",
        "add_habit_definition",
        "deactivate_habit",
        "add_xp",
        "record_lesson_completed",
        "record_reading_day",
    ):
        monkeypatch.setattr(db, name, broken)

    assert client.get("/api/users/u1/streak").status_code == 503
    assert client.get("/api/users/u1/achievements").status_code == 503
    assert client.get("/api/habits").status_code == 503
    assert client.post("/api/habits", json={"name": "Prayer"}).status_code == 503
    assert client.delete("/api/habits/some-id").status_code == 503
    assert client.post("/api/users/u1/xp", json={"amount": 10}).status_code == 503
    assert client.post("/api/users/u1/lessons/l1/complete").status_code == 503
    assert client.post("/api/users/u1/reading", json={"plan_id": "gospels", "day_number": 1}).status_code == 503


def test_unknown_grant_maps_to_500(tmp_path) -> None:
    from streak_engine.db_models import AchievementGrant

    client, db = _client(tmp_path)
    db.add_grant(AchievementGrant("u1", "retired_badge", _dt(2026, 3, 1), 3))
    assert client.get("/api/users/u1/achievements").status_code == 500


def test_evaluate_is_pure(tmp_path) -> None:
    client, db = _client(tmp_path)
    response = client.post(
        "/api/users/u1/achievements/evaluate",
        json={"streak": 7, "xp": 600, "already_granted": ["xp_500"]},
    )
    assert response.status_code == 200
    assert [g["achievement_id"] for g in response.json()["new_grants"]] == ["streak_7"]
    assert db.list_grants("u1") == []


def test_progress_endpoints_feed_sync(tmp_path) -> None:
    client, _db = _client(tmp_path)
    for lesson in ("l1", "l2", "l3", "l4", "l5", "l5"):
        client.post(f"/api/users/u1/lessons/{lesson}/complete")
    client.post("/api/users/u1/reading", json={"plan_id": "gospels", "day_number": 1})
    xp = client.post("/api/users/u1/xp", json={"amount": 500, "reason": "quiz"}).json()
    assert xp["xp"] == 500

    synced = client.post("/api/users/u1/achievements/sync").json()
    assert [g["achievement_id"] for g in synced["new_grants"]] == ["lessons_5", "xp_500"]
    assert client.post("/api/users/u1/achievements/sync").json()["new_grants"] == []

    view = client.get("/api/users/u1/achievements").json()
    assert view["granted"] == ["lessons_5", "xp_500"]
    rows = {row["id"]: row for row in view["achievements"]}
    assert rows["lessons_25"]["progress"] == 5
    assert rows["reading_7"]["progress"] == 1
    assert rows["lessons_5"]["unlocked"] is True


def test_reading_day_number_must_be_positive(tmp_path) -> None:
    client, _db = _client(tmp_path)
    response = client.post("/api/users/u1/reading", json={"plan_id": "gospels", "day_number": 0})
    assert response.status_code == 422


def test_lapsed_streak_reported_as_inactive(tmp_path) -> None:
    from datetime import date

    from streak_engine.db_models import StreakRecord

    client, db = _client(tmp_path)
    db.save_streak(StreakRecord("u1", 12, 20, date(2020, 1, 1)), _dt(2020, 1, 1))

    streak = client.get("/api/users/u1/streak").json()["streak"]
    assert streak["current_streak"] == 12
    assert streak["best_streak"] == 20
    assert streak["effective_streak"] == 0
    assert streak["active"] is False

    rows = {row["id"]: row for row in client.get("/api/users/u1/achievements").json()["achievements"]}
    assert rows["streak_7"]["progress"] == 0
