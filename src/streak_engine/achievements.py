from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from streak_engine.db import Database
from streak_engine.db_constants import ACHIEVEMENT_TIERS, ACHIEVEMENT_TYPES
from streak_engine.db_models import AchievementDefinition, AchievementGrant, ProgressSnapshot
from streak_engine.errors import ConsistencyViolation
from streak_engine.streaks import get_streak

logger = logging.getLogger(__name__)


def _a(
    ident: str,
    name: str,
    description: str,
    icon: str,
    kind: str,
    requirement: int,
    tier: str,
) -> AchievementDefinition:
    return AchievementDefinition(
        id=ident,
        name=name,
        description=description,
        icon=icon,
        type=kind,
        requirement=requirement,
        tier=tier,
    )


DEFAULT_ACHIEVEMENTS: tuple[AchievementDefinition, ...] = (
    _a("streak_7", "First Week", "Complete 7 consecutive days", "flame", "streak", 7, "bronze"),
    _a("streak_30", "Month of Dedication", "Complete 30 consecutive days", "flame", "streak", 30, "silver"),
    _a("streak_90", "Quarter of Faith", "Complete 90 consecutive days", "flame", "streak", 90, "gold"),
    _a("streak_365", "Year of Commitment", "Complete 365 consecutive days", "crown", "streak", 365, "platinum"),
    _a("lessons_5", "First Step", "Complete 5 lessons", "book", "lessons", 5, "bronze"),
    _a("lessons_25", "Dedicated Student", "Complete 25 lessons", "book", "lessons", 25, "silver"),
    _a("lessons_50", "Master of Knowledge", "Complete 50 lessons", "graduation", "lessons", 50, "gold"),
    _a("lessons_100", "Sage", "Complete 100 lessons", "star", "lessons", 100, "platinum"),
    _a("reading_7", "Beginning Reader", "Complete 7 reading days", "target", "reading", 7, "bronze"),
    _a("reading_30", "Faithful Reader", "Complete 30 reading days", "target", "reading", 30, "silver"),
    _a("reading_100", "Devourer of Words", "Complete 100 reading days", "award", "reading", 100, "gold"),
    _a("habits_50", "Habits in Formation", "Complete 50 habits", "heart", "habits", 50, "bronze"),
    _a("habits_200", "Disciplined", "Complete 200 habits", "heart", "habits", 200, "silver"),
    _a("habits_500", "Way of Life", "Complete 500 habits", "shield", "habits", 500, "gold"),
    _a("xp_500", "Apprentice", "Earn 500 XP", "zap", "xp", 500, "bronze"),
    _a("xp_2000", "Experienced", "Earn 2000 XP", "zap", "xp", 2000, "silver"),
    _a("xp_5000", "Veteran", "Earn 5000 XP", "medal", "xp", 5000, "gold"),
    _a("xp_10000", "Legend", "Earn 10000 XP", "crown", "xp", 10000, "platinum"),
)


@dataclass(frozen=True)
class AchievementProgress:
    definition: AchievementDefinition
    progress: int
    unlocked: bool
    unlocked_at: datetime | None


def _parse_requirement(value: Any) -> int | None:
    # bool is an int subclass; floats must be whole numbers.
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and not value.is_integer():
        return None
    try:
        requirement = int(value)
    except (TypeError, ValueError):
        return None
    return requirement if requirement >= 0 else None


def _parse_definition(item: Any) -> AchievementDefinition | None:
    if not isinstance(item, dict):
        return None
    ident = str(item.get("id", "")).strip()
    kind = str(item.get("type", "")).strip()
    tier = str(item.get("tier", "bronze")).strip()
    if not ident or kind not in ACHIEVEMENT_TYPES or tier not in ACHIEVEMENT_TIERS:
        return None
    requirement = _parse_requirement(item.get("requirement", 0))
    if requirement is None:
        return None
    return AchievementDefinition(
        id=ident,
        name=str(item.get("name", ident)).strip() or ident,
        description=str(item.get("description", "")).strip(),
        icon=str(item.get("icon", "trophy")).strip() or "trophy",
        type=kind,
        requirement=requirement,
        tier=tier,
    )


def load_achievement_catalog(path: Path) -> tuple[AchievementDefinition, ...]:
    if not path.exists():
        return DEFAULT_ACHIEVEMENTS

    raw = yaml.safe_load(path.read_text()) or {}
    items = raw.get("achievements", []) if isinstance(raw, dict) else []
    if not isinstance(items, list):
        items = []

    catalog: list[AchievementDefinition] = []
    seen: set[str] = set()
    for item in items:
        definition = _parse_definition(item)
        if definition is None:
            logger.warning("skipping invalid achievement entry in %s: %r", path, item)
            continue
        if definition.id in seen:
            logger.warning("skipping duplicate achievement id in %s: %s", path, definition.id)
            continue
        seen.add(definition.id)
        catalog.append(definition)

    if not catalog:
        logger.warning("no valid achievements in %s, using defaults", path)
        return DEFAULT_ACHIEVEMENTS
    return tuple(catalog)


def metric_value(snapshot: ProgressSnapshot, kind: str) -> int | None:
    values = {
        "streak": snapshot.streak,
        "lessons": snapshot.lessons_completed,
        "reading": snapshot.reading_days_completed,
        "habits": snapshot.habits_completed,
        "xp": snapshot.xp,
    }
    return values.get(kind)


def evaluate_achievements(
    user_id: str,
    snapshot: ProgressSnapshot,
    already_granted: Iterable[str],
    catalog: Sequence[AchievementDefinition] = DEFAULT_ACHIEVEMENTS,
    now: datetime | None = None,
) -> list[AchievementGrant]:
    """
    Return a grant for every achievement the snapshot qualifies for and the user does not hold yet.

    The granted set is the only gate against re-granting: a metric that dropped
    and climbed back never produces a second grant. ``special`` achievements have
    no backing metric and never qualify here.
    """
    granted_at = now or datetime.now(timezone.utc)
    skip = set(already_granted)
    grants: list[AchievementGrant] = []
    for definition in catalog:
        if definition.id in skip:
            continue
        value = metric_value(snapshot, definition.type)
        if value is None or value < definition.requirement:
            continue
        skip.add(definition.id)
        grants.append(
            AchievementGrant(
                user_id=user_id,
                achievement_id=definition.id,
                granted_at=granted_at,
                streak_days=snapshot.streak,
            )
        )
    return grants


def build_progress_snapshot(db: Database, user_id: str, conn: sqlite3.Connection | None = None) -> ProgressSnapshot:
    return ProgressSnapshot(
        streak=get_streak(db, user_id, conn=conn).current_streak,
        lessons_completed=db.count_completed_lessons(user_id, conn=conn),
        reading_days_completed=db.count_reading_days(user_id, conn=conn),
        habits_completed=db.count_all_completions(user_id, conn=conn),
        xp=db.sum_xp(user_id, conn=conn),
    )


def persist_grants(
    db: Database,
    grants: Sequence[AchievementGrant],
    conn: sqlite3.Connection | None = None,
) -> list[AchievementGrant]:
    """
    Write each grant on its own; one failing insert does not stop the rest.

    Grants that fail stay missing from the granted set, so the next
    evaluation for the user picks them up again.
    """
    written: list[AchievementGrant] = []
    for grant in grants:
        try:
            if conn is None:
                inserted = db.add_grant(grant)
            else:
                with db.savepoint(conn, "achievement_grant"):
                    inserted = db.add_grant(grant, conn=conn)
        except sqlite3.Error:
            logger.warning(
                "failed to persist achievement %s for user %s",
                grant.achievement_id,
                grant.user_id,
                exc_info=True,
            )
            continue
        if inserted:
            logger.info("achievement granted user=%s id=%s streak=%s", grant.user_id, grant.achievement_id, grant.streak_days)
            written.append(grant)
    return written


def sync_achievements(
    db: Database,
    user_id: str,
    now: datetime,
    catalog: Sequence[AchievementDefinition] = DEFAULT_ACHIEVEMENTS,
    conn: sqlite3.Connection | None = None,
) -> list[AchievementGrant]:
    snapshot = build_progress_snapshot(db, user_id, conn=conn)
    granted = db.granted_achievement_ids(user_id, conn=conn)
    candidates = evaluate_achievements(user_id, snapshot, granted, catalog=catalog, now=now)
    if not candidates:
        return []
    return persist_grants(db, candidates, conn=conn)


def get_achievements(
    db: Database,
    user_id: str,
    catalog: Sequence[AchievementDefinition] = DEFAULT_ACHIEVEMENTS,
) -> set[str]:
    granted = db.granted_achievement_ids(user_id)
    known = {definition.id for definition in catalog}
    unknown = sorted(granted - known)
    if unknown:
        raise ConsistencyViolation(f"user {user_id} holds grants missing from the catalog: {', '.join(unknown)}")
    return granted


def achievement_progress(
    snapshot: ProgressSnapshot,
    grants: Sequence[AchievementGrant],
    catalog: Sequence[AchievementDefinition] = DEFAULT_ACHIEVEMENTS,
) -> list[AchievementProgress]:
    unlocked_at = {grant.achievement_id: grant.granted_at for grant in grants}
    rows: list[AchievementProgress] = []
    for definition in catalog:
        value = metric_value(snapshot, definition.type) or 0
        rows.append(
            AchievementProgress(
                definition=definition,
                progress=min(max(0, value), definition.requirement),
                unlocked=definition.id in unlocked_at,
                unlocked_at=unlocked_at.get(definition.id),
            )
        )
    return rows


def find_definition(
    achievement_id: str,
    catalog: Sequence[AchievementDefinition] = DEFAULT_ACHIEVEMENTS,
) -> AchievementDefinition | None:
    for definition in catalog:
        if definition.id == achievement_id:
            return definition
    return None
