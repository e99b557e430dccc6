from __future__ import annotations

from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo


DEFAULT_TZ = "America/Sao_Paulo"


def now_local(tz_name: str = DEFAULT_TZ) -> datetime:
    return datetime.now(tz=ZoneInfo(tz_name))


def today_local(tz_name: str = DEFAULT_TZ) -> date:
    return now_local(tz_name).date()


def previous_day(day: date) -> date:
    return day - timedelta(days=1)
