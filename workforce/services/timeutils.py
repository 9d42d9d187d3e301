from __future__ import annotations

from datetime import date, datetime, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo

from workforce.settings import get_settings

DEFAULT_TIMEZONE = "Europe/Madrid"


@lru_cache
def attendance_timezone() -> ZoneInfo:
    raw_name = (get_settings().attendance_timezone or "").strip() or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(raw_name)
    except Exception:
        return ZoneInfo(DEFAULT_TIMEZONE)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_ts(ts_utc: datetime | None) -> datetime:
    if ts_utc is None:
        return utc_now()

    # SQLite hands back naive datetimes; everything stored is UTC.
    if ts_utc.tzinfo is None:
        return ts_utc.replace(tzinfo=timezone.utc)

    return ts_utc.astimezone(timezone.utc)


def to_local(ts_utc: datetime) -> datetime:
    return normalize_ts(ts_utc).astimezone(attendance_timezone())


def minute_of_day(ts_utc: datetime) -> int:
    local = to_local(ts_utc)
    return local.hour * 60 + local.minute


def local_today(now_utc: datetime | None = None) -> date:
    return to_local(normalize_ts(now_utc)).date()
