from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date, datetime
from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from streak_engine.achievements import evaluate_achievements, load_achievement_catalog
from streak_engine.config import load_settings
from streak_engine.db import Database
from streak_engine.db_models import (
    AchievementDefinition,
    AchievementGrant,
    HabitDefinition,
    HabitStatus,
    ProgressSnapshot,
    StreakRecord,
)
from streak_engine.errors import ConsistencyViolation, NotFoundError, PersistenceFailure
from streak_engine.logging_setup import setup_logging
from streak_engine.service import (
    achievement_view,
    add_xp,
    create_habit,
    get_achievements,
    get_streak,
    habits_for_day,
    list_catalog,
    record_lesson,
    record_reading_day,
    refresh_achievements,
    remove_habit,
    toggle_habit,
)
from streak_engine.streaks import effective_streak
from streak_engine.time_utils import now_local, today_local

logger = logging.getLogger(__name__)


def _require_auth(request: Request, token: str | None) -> None:
    if not token:
        return
    header = request.headers.get("x-api-token")
    query = request.query_params.get("token")
    if header == token or query == token:
        return
    raise HTTPException(status_code=401, detail="Unauthorized")


class HabitCreateRequest(BaseModel):
    name: str
    icon: str = "star"
    color: str = "primary"
    display_order: int | None = None


class ToggleRequest(BaseModel):
    day: date | None = None


class SnapshotRequest(BaseModel):
    streak: int = Field(default=0, ge=0)
    lessons_completed: int = Field(default=0, ge=0)
    reading_days_completed: int = Field(default=0, ge=0)
    habits_completed: int = Field(default=0, ge=0)
    xp: int = Field(default=0, ge=0)
    already_granted: list[str] | None = None


class ReadingDayRequest(BaseModel):
    plan_id: str
    day_number: int = Field(ge=1)


class XpRequest(BaseModel):
    amount: int
    reason: str | None = None


def _habit_json(habit: HabitDefinition) -> dict[str, Any]:
    return {
        "id": habit.id,
        "name": habit.name,
        "icon": habit.icon,
        "color": habit.color,
        "display_order": habit.display_order,
        "is_active": habit.is_active,
    }


def _status_json(status: HabitStatus) -> dict[str, Any]:
    return {**_habit_json(status.habit), "completed": status.completed}


def _streak_json(streak: StreakRecord, today: date) -> dict[str, Any]:
    effective = effective_streak(streak, today)
    return {
        "user_id": streak.user_id,
        "current_streak": streak.current_streak,
        "best_streak": streak.best_streak,
        "last_completed_date": streak.last_completed_date.isoformat() if streak.last_completed_date else None,
        "effective_streak": effective,
        "active": effective > 0,
    }


def _grant_json(grant: AchievementGrant) -> dict[str, Any]:
    return {
        "user_id": grant.user_id,
        "achievement_id": grant.achievement_id,
        "granted_at": grant.granted_at.isoformat(),
        "streak_days": grant.streak_days,
    }


def _definition_json(definition: AchievementDefinition) -> dict[str, Any]:
    return {
        "id": definition.id,
        "name": definition.name,
        "description": definition.description,
        "icon": definition.icon,
        "type": definition.type,
        "requirement": definition.requirement,
        "tier": definition.tier,
    }


def build_api_app(
    db: Database,
    catalog: Sequence[AchievementDefinition],
    api_token: str | None,
    tz: str,
) -> FastAPI:
    app = FastAPI(title="Habit Streak Engine", version="1.0.0")

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(PersistenceFailure)
    async def _persistence(request: Request, exc: PersistenceFailure) -> JSONResponse:
        return JSONResponse(status_code=503, content={"detail": "Storage unavailable, retry later"})

    @app.exception_handler(ConsistencyViolation)
    async def _consistency(request: Request, exc: ConsistencyViolation) -> JSONResponse:
        logger.error("consistency violation: %s", exc)
        return JSONResponse(status_code=500, content={"detail": "Stored data is inconsistent"})

    @app.get("/api/habits")
    async def api_list_habits(request: Request) -> dict[str, Any]:
        _require_auth(request, api_token)
        return {"habits": [_habit_json(h) for h in list_catalog(db)]}

    @app.post("/api/habits", status_code=201)
    async def api_add_habit(request: Request, payload: HabitCreateRequest) -> dict[str, Any]:
        _require_auth(request, api_token)
        try:
            habit = create_habit(
                db,
                payload.name,
                now_local(tz),
                icon=payload.icon,
                color=payload.color,
                display_order=payload.display_order,
            )
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return {"habit": _habit_json(habit)}

    @app.delete("/api/habits/{habit_id}")
    async def api_deactivate_habit(habit_id: str, request: Request) -> dict[str, Any]:
        _require_auth(request, api_token)
        remove_habit(db, habit_id)
        return {"ok": True}

    @app.get("/api/users/{user_id}/habits")
    async def api_user_habits(user_id: str, request: Request, day: date | None = None) -> dict[str, Any]:
        _require_auth(request, api_token)
        target = day or today_local(tz)
        habits = habits_for_day(db, user_id, target)
        return {"day": target.isoformat(), "habits": [_status_json(s) for s in habits]}

    @app.post("/api/users/{user_id}/habits/{habit_id}/toggle")
    async def api_toggle(user_id: str, habit_id: str, request: Request, payload: ToggleRequest | None = None) -> dict[str, Any]:
        _require_auth(request, api_token)
        target = payload.day if payload and payload.day else today_local(tz)
        outcome = toggle_habit(db, user_id, habit_id, target, now_local(tz), catalog=catalog)
        return {
            "day": target.isoformat(),
            "habit_id": outcome.habit_id,
            "completed": outcome.completed,
            "day_complete": outcome.day_complete,
            "habits": [_status_json(s) for s in outcome.habits],
            "streak": _streak_json(outcome.streak, target),
            "streak_advanced": outcome.streak_advanced,
            "new_grants": [_grant_json(g) for g in outcome.new_grants],
            "celebration": _definition_json(outcome.celebration) if outcome.celebration else None,
        }

    @app.get("/api/users/{user_id}/streak")
    async def api_streak(user_id: str, request: Request) -> dict[str, Any]:
        _require_auth(request, api_token)
        return {"streak": _streak_json(get_streak(db, user_id), today_local(tz))}

    @app.get("/api/users/{user_id}/achievements")
    async def api_achievements(user_id: str, request: Request) -> dict[str, Any]:
        _require_auth(request, api_token)
        view = achievement_view(db, user_id, today_local(tz), catalog=catalog)
        return {
            "granted": sorted(view.granted),
            "achievements": [
                {
                    **_definition_json(row.definition),
                    "progress": row.progress,
                    "unlocked": row.unlocked,
                    "unlocked_at": row.unlocked_at.isoformat() if row.unlocked_at else None,
                }
                for row in view.rows
            ],
        }

    @app.post("/api/users/{user_id}/achievements/evaluate")
    async def api_evaluate(user_id: str, request: Request, payload: SnapshotRequest) -> dict[str, Any]:
        _require_auth(request, api_token)
        snapshot = ProgressSnapshot(
            streak=payload.streak,
            lessons_completed=payload.lessons_completed,
            reading_days_completed=payload.reading_days_completed,
            habits_completed=payload.habits_completed,
            xp=payload.xp,
        )
        if payload.already_granted is None:
            granted: set[str] = get_achievements(db, user_id, catalog)
        else:
            granted = set(payload.already_granted)
        grants = evaluate_achievements(user_id, snapshot, granted, catalog=catalog, now=now_local(tz))
        return {"new_grants": [_grant_json(g) for g in grants]}

    @app.post("/api/users/{user_id}/achievements/sync")
    async def api_sync(user_id: str, request: Request) -> dict[str, Any]:
        _require_auth(request, api_token)
        grants = refresh_achievements(db, user_id, now_local(tz), catalog=catalog)
        return {"new_grants": [_grant_json(g) for g in grants]}

    @app.post("/api/users/{user_id}/lessons/{lesson_id}/complete")
    async def api_lesson_complete(user_id: str, lesson_id: str, request: Request) -> dict[str, Any]:
        _require_auth(request, api_token)
        update = record_lesson(db, user_id, lesson_id, now_local(tz))
        return {"ok": True, "recorded": update.recorded, "lessons_completed": update.total}

    @app.post("/api/users/{user_id}/reading")
    async def api_reading_day(user_id: str, request: Request, payload: ReadingDayRequest) -> dict[str, Any]:
        _require_auth(request, api_token)
        update = record_reading_day(db, user_id, payload.plan_id, payload.day_number, now_local(tz))
        return {"ok": True, "recorded": update.recorded, "reading_days_completed": update.total}

    @app.post("/api/users/{user_id}/xp")
    async def api_add_xp(user_id: str, request: Request, payload: XpRequest) -> dict[str, Any]:
        _require_auth(request, api_token)
        update = add_xp(db, user_id, payload.amount, now_local(tz), reason=payload.reason)
        return {"ok": True, "xp": update.total}

    return app


def run_api() -> None:
    setup_logging()
    settings = load_settings()
    db = Database(settings.database_path, busy_timeout=settings.db_busy_timeout_seconds)
    db.ensure_default_habits(datetime.now())
    catalog = load_achievement_catalog(settings.achievements_config_path)
    logger.info("loaded %s achievement definitions", len(catalog))
    app = build_api_app(db, catalog, settings.api_token, settings.tz)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
