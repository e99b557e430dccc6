from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from streak_engine.db_constants import DEFAULT_BUSY_TIMEOUT_SECONDS
from streak_engine.time_utils import DEFAULT_TZ


@dataclass(frozen=True)
class Settings:
    database_path: Path
    tz: str
    achievements_config_path: Path
    db_busy_timeout_seconds: float
    api_token: str | None
    api_host: str
    api_port: int


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text().splitlines():
        raw = line.strip()
        if not raw or raw.startswith("#") or "=" not in raw:
            continue
        key, value = raw.split("=", maxsplit=1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _parse_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _parse_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed >= 0 else default


def load_settings(env_file: Path = Path(".env")) -> Settings:
    _load_env_file(env_file)

    return Settings(
        database_path=Path(os.getenv("DATABASE_PATH", "./data/app.db")),
        tz=os.getenv("TZ", DEFAULT_TZ) or DEFAULT_TZ,
        achievements_config_path=Path(os.getenv("ACHIEVEMENTS_CONFIG", "./achievements.yaml")),
        db_busy_timeout_seconds=_parse_float(os.getenv("DB_BUSY_TIMEOUT_SECONDS"), DEFAULT_BUSY_TIMEOUT_SECONDS),
        api_token=os.getenv("API_TOKEN") or None,
        api_host=os.getenv("API_HOST", "127.0.0.1"),
        api_port=_parse_int(os.getenv("API_PORT"), 8080),
    )
