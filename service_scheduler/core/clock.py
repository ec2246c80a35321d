from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from service_scheduler.core.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes for timezone=True columns; they were written as UTC.
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def depot_tz() -> ZoneInfo:
    return ZoneInfo(settings.depot_timezone)


def to_depot(dt: datetime) -> datetime:
    return as_utc(dt).astimezone(depot_tz())


def depot_hour(dt: datetime) -> int:
    return to_depot(dt).hour
