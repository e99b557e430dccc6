from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from streak_engine.achievements import load_achievement_catalog
from streak_engine.config import Settings
from streak_engine.db import Database
from streak_engine.db_models import AchievementDefinition
from streak_engine.errors import PersistenceFailure
from streak_engine.service import refresh_achievements
from streak_engine.time_utils import now_local

logger = logging.getLogger(__name__)

JOB_NAMES = ("sync_achievements",)


@dataclass(frozen=True)
class SyncReport:
    users_checked: int
    grants_written: int
    users_failed: int


def sync_all_achievements(
    db: Database,
    catalog: Sequence[AchievementDefinition],
    tz: str,
) -> SyncReport:
    now = now_local(tz)
    checked = 0
    written = 0
    failed = 0
    for user_id in db.list_known_user_ids():
        checked += 1
        try:
            grants = refresh_achievements(db, user_id, now, catalog=catalog)
        except PersistenceFailure:
            logger.exception("achievement sync failed for user %s", user_id)
            failed += 1
            continue
        written += len(grants)
    logger.info("achievement sync: users=%s grants=%s failed=%s", checked, written, failed)
    return SyncReport(users_checked=checked, grants_written=written, users_failed=failed)


def run_job(job_name: str, db: Database, settings: Settings) -> None:
    if job_name == "sync_achievements":
        catalog = load_achievement_catalog(settings.achievements_config_path)
        sync_all_achievements(db, catalog, settings.tz)
        return
    raise SystemExit(f"Unknown job: {job_name}")
