from __future__ import annotations

from streak_engine.db_models import (
    AchievementDefinition,
    AchievementGrant,
    HabitDefinition,
    HabitStatus,
    ProgressSnapshot,
    StreakRecord,
)
from streak_engine.db_repo import (
    AchievementMixin,
    BaseDatabase,
    HabitMixin,
    ProgressMixin,
    StreakMixin,
)

__all__ = [
    "AchievementDefinition",
    "AchievementGrant",
    "Database",
    "HabitDefinition",
    "HabitStatus",
    "ProgressSnapshot",
    "StreakRecord",
]


class Database(
    HabitMixin,
    StreakMixin,
    AchievementMixin,
    ProgressMixin,
    BaseDatabase,
):
    pass
