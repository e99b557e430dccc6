from __future__ import annotations

# (name, icon, color) seeded when the habit catalog is empty.
DEFAULT_HABITS: list[tuple[str, str, str]] = [
    ("Bible reading", "book", "primary"),
    ("Prayer", "heart", "rose"),
]

ACHIEVEMENT_TYPES = ("streak", "lessons", "reading", "habits", "xp", "special")
ACHIEVEMENT_TIERS = ("bronze", "silver", "gold", "platinum")

DEFAULT_BUSY_TIMEOUT_SECONDS = 5.0
