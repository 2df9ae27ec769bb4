"""Timezone-aware local calendar day resolution."""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import Any

from dateutil import tz

from recurrence_scheduler.core.config import DEFAULT_TIMEZONE

logger = logging.getLogger(__name__)

UTC = datetime.timezone.utc
LOCAL_DAY_FORMAT = "%Y-%m-%d"


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(UTC)


def resolve_timezone(name: str | None) -> datetime.tzinfo:
    """Return the IANA zone for ``name``, falling back to the default zone."""
    candidate = (name or "").strip()
    if candidate:
        zone = tz.gettz(candidate)
        if zone is not None:
            return zone
        logger.debug("Unknown timezone %r, using %s", candidate, DEFAULT_TIMEZONE)
    # 日本語: 既定タイムゾーンの解決はここだけで行う / English: The default zone is only resolved here
    zone = tz.gettz(DEFAULT_TIMEZONE)
    if zone is None:
        raise RuntimeError(f"Default timezone {DEFAULT_TIMEZONE!r} is not in the tz database")
    return zone


def timezone_name(name: str | None) -> str:
    candidate = (name or "").strip()
    if candidate and tz.gettz(candidate) is not None:
        return candidate
    return DEFAULT_TIMEZONE


def as_utc(instant: datetime.datetime) -> datetime.datetime:
    # 日本語: naive な日時は UTC とみなす / English: Treat naive instants as UTC
    if instant.tzinfo is None:
        return instant.replace(tzinfo=UTC)
    return instant.astimezone(UTC)


def to_naive_utc(instant: datetime.datetime) -> datetime.datetime:
    # 日本語: DB の timestamp 列は naive UTC で保存 / English: Timestamp columns store naive UTC
    return as_utc(instant).replace(tzinfo=None)


def local_day(instant_utc: datetime.datetime, timezone: str | None) -> datetime.date:
    return as_utc(instant_utc).astimezone(resolve_timezone(timezone)).date()


def local_day_string(instant_utc: datetime.datetime, timezone: str | None) -> str:
    return local_day(instant_utc, timezone).strftime(LOCAL_DAY_FORMAT)


def parse_local_day(value: Any) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str):
        return datetime.datetime.strptime(value.strip(), LOCAL_DAY_FORMAT).date()
    raise ValueError(f"Invalid local day: {value!r}")


def format_local_day(value: datetime.date | None) -> str | None:
    if value is None:
        return None
    return value.strftime(LOCAL_DAY_FORMAT)


def weekday_index(value: datetime.date) -> int:
    """Weekday with 0=Sunday ... 6=Saturday."""
    return value.isoweekday() % 7


def start_of_local_day_utc(date_local: Any, timezone: str | None) -> datetime.datetime:
    """UTC instant at which ``date_local`` begins in ``timezone``."""
    day = parse_local_day(date_local)
    zone = resolve_timezone(timezone)
    local_midnight = datetime.datetime.combine(day, datetime.time.min, tzinfo=zone)
    # 日本語: DST で存在しない 0:00 は前方へ補正 / English: Shift nonexistent midnights (DST gaps) forward
    local_midnight = tz.resolve_imaginary(local_midnight)
    return local_midnight.astimezone(UTC)


@dataclass(frozen=True)
class LocalDay:
    timezone: str
    today: datetime.date
    yesterday: datetime.date
    starts_at_utc: datetime.datetime
    ends_at_utc: datetime.datetime

    def to_dict(self) -> dict:
        return {
            "timezone": self.timezone,
            "today": format_local_day(self.today),
            "yesterday": format_local_day(self.yesterday),
            "starts_at_utc": self.starts_at_utc.isoformat(),
            "ends_at_utc": self.ends_at_utc.isoformat(),
        }


def resolve_local_day(now_utc: datetime.datetime | None, timezone: str | None) -> LocalDay:
    now_utc = now_utc or utc_now()
    zone_name = timezone_name(timezone)
    today = local_day(now_utc, zone_name)
    tomorrow = today + datetime.timedelta(days=1)
    return LocalDay(
        timezone=zone_name,
        today=today,
        yesterday=today - datetime.timedelta(days=1),
        starts_at_utc=start_of_local_day_utc(today, zone_name),
        ends_at_utc=start_of_local_day_utc(tomorrow, zone_name),
    )


__all__ = [
    "UTC",
    "LocalDay",
    "utc_now",
    "resolve_timezone",
    "timezone_name",
    "as_utc",
    "to_naive_utc",
    "local_day",
    "local_day_string",
    "parse_local_day",
    "format_local_day",
    "weekday_index",
    "start_of_local_day_utc",
    "resolve_local_day",
]
