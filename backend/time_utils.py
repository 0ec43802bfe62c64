import os
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def _timezone() -> ZoneInfo:
    name = os.environ.get("APP_TIMEZONE", "UTC")
    return ZoneInfo(name)


def now_tz() -> datetime:
    return datetime.now(_timezone())


def today_tz() -> date:
    return now_tz().date()


def ensure_timezone(dt: datetime) -> datetime:
    tz = _timezone()
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def to_epoch(dt: Optional[datetime]) -> Optional[float]:
    # SQLite hands back naive values; both backends compare on the same clock
    if dt is None:
        return None
    return ensure_timezone(dt).astimezone(timezone.utc).timestamp()
