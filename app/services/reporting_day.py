from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.settings import get_settings

DEFAULT_REPORT_TIMEZONE = "Asia/Kolkata"


def report_timezone() -> ZoneInfo:
    raw_name = (get_settings().report_timezone or "").strip() or DEFAULT_REPORT_TIMEZONE
    try:
        return ZoneInfo(raw_name)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_REPORT_TIMEZONE)


def _normalize_ts(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_day(ts: datetime, tz: ZoneInfo | None = None) -> date:
    return _normalize_ts(ts).astimezone(tz or report_timezone()).date()


def local_today(now_utc: datetime | None = None, tz: ZoneInfo | None = None) -> date:
    return local_day(now_utc or datetime.now(timezone.utc), tz)


def local_day_bounds_utc(day: date, tz: ZoneInfo | None = None) -> tuple[datetime, datetime]:
    zone = tz or report_timezone()
    local_start = datetime.combine(day, time.min, tzinfo=zone)
    local_end = local_start + timedelta(days=1)
    return local_start.astimezone(timezone.utc), local_end.astimezone(timezone.utc)


def same_day(left: date | None, right: date | None) -> bool:
    # Calendar days are compared by their YYYY-MM-DD form.
    if left is None or right is None:
        return False
    return left.isoformat() == right.isoformat()
