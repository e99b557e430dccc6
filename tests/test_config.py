from __future__ import annotations

from pathlib import Path

from streak_engine.config import load_settings
from streak_engine.db_constants import DEFAULT_BUSY_TIMEOUT_SECONDS
from streak_engine.time_utils import DEFAULT_TZ

_KEYS = (
    "DATABASE_PATH",
    "TZ",
    "ACHIEVEMENTS_CONFIG",
    "DB_BUSY_TIMEOUT_SECONDS",
    "API_TOKEN",
    "API_HOST",
    "API_PORT",
)


def _clear_env(monkeypatch) -> None:
    for key in _KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)


def test_defaults_without_env(tmp_path, monkeypatch) -> None:
    _clear_env(monkeypatch)
    settings = load_settings(env_file=tmp_path / "missing.env")
    assert settings.database_path == Path("./data/app.db")
    assert settings.tz == DEFAULT_TZ
    assert settings.db_busy_timeout_seconds == DEFAULT_BUSY_TIMEOUT_SECONDS
    assert settings.api_token is None
    assert settings.api_port == 8080


def test_env_file_values_and_bad_numbers(tmp_path, monkeypatch) -> None:
    _clear_env(monkeypatch)
    env = tmp_path / ".env"
    env.write_text(
        "\n".join(
            [
                "# local overrides",
                "DATABASE_PATH=/tmp/streaks.db",
                "TZ='Europe/Lisbon'",
                'API_TOKEN="abc"',
                "API_PORT=not-a-port",
                "DB_BUSY_TIMEOUT_SECONDS=-3",
            ]
        )
    )
    settings = load_settings(env_file=env)
    assert settings.database_path == Path("/tmp/streaks.db")
    assert settings.tz == "Europe/Lisbon"
    assert settings.api_token == "abc"
    assert settings.api_port == 8080
    assert settings.db_busy_timeout_seconds == DEFAULT_BUSY_TIMEOUT_SECONDS


def test_process_env_wins_over_env_file(tmp_path, monkeypatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("API_PORT", "9001")
    env = tmp_path / ".env"
    env.write_text("API_PORT=9002\n")
    assert load_settings(env_file=env).api_port == 9001
