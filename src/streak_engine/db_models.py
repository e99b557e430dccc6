from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime


@dataclass(frozen=True)
class HabitDefinition:
    id: str
    name: str
    icon: str
    color: str
    display_order: int
    is_active: bool


@dataclass(frozen=True)
class HabitStatus:
    habit: HabitDefinition
    completed: bool


@dataclass(frozen=True)
class StreakRecord:
    user_id: str
    current_streak: int
    best_streak: int
    last_completed_date: date | None


@dataclass(frozen=True)
class AchievementDefinition:
    id: str
    name: str
    description: str
    icon: str
    type: str
    requirement: int
    tier: str


@dataclass(frozen=True)
class AchievementGrant:
    user_id: str
    achievement_id: str
    granted_at: datetime
    streak_days: int


@dataclass(frozen=True)
class ProgressSnapshot:
    streak: int = 0
    lessons_completed: int = 0
    reading_days_completed: int = 0
    habits_completed: int = 0
    xp: int = 0
