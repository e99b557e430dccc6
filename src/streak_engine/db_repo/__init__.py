from .base import BaseDatabase
from .habits import HabitMixin
from .streaks import StreakMixin
from .achievements import AchievementMixin
from .progress import ProgressMixin

__all__ = [
    "BaseDatabase",
    "HabitMixin",
    "StreakMixin",
    "AchievementMixin",
    "ProgressMixin",
]
