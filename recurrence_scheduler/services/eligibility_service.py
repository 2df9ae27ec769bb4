"""Recurrence rules and due-day evaluation."""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Tuple

from recurrence_scheduler.core.errors import InvalidRecurrenceError
from recurrence_scheduler.services.calendar_service import parse_local_day, weekday_index


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    CUSTOM = "custom"


WEEKDAY_NAMES = {
    "sunday": 0,
    "monday": 1,
    "tuesday": 2,
    "wednesday": 3,
    "thursday": 4,
    "friday": 5,
    "saturday": 6,
}
_WEEKDAY_ABBREVIATIONS = {name[:3]: value for name, value in WEEKDAY_NAMES.items()}


def _weekday_from_token(token: Any) -> int:
    if isinstance(token, bool):
        raise InvalidRecurrenceError(f"Invalid weekday: {token!r}")
    if isinstance(token, int):
        day = token
    elif isinstance(token, str):
        text = token.strip().casefold()
        if text in WEEKDAY_NAMES:
            return WEEKDAY_NAMES[text]
        if text in _WEEKDAY_ABBREVIATIONS:
            return _WEEKDAY_ABBREVIATIONS[text]
        try:
            day = int(text)
        except ValueError:
            raise InvalidRecurrenceError(f"Invalid weekday: {token!r}") from None
    else:
        raise InvalidRecurrenceError(f"Invalid weekday: {token!r}")
    if not 0 <= day <= 6:
        raise InvalidRecurrenceError(f"Weekday out of range 0-6: {day}")
    return day


def normalize_weekdays(value: Any) -> Tuple[int, ...]:
    """Normalize stored or submitted weekday sets to a sorted tuple of 0..6.

    Accepts ``None``, iterables of ints / numeric strings / English day names,
    and comma-joined strings such as ``"1,3,5"`` or ``"Monday,Wednesday"``.
    """
    if value is None:
        return ()
    if isinstance(value, str):
        tokens: Iterable[Any] = [part for part in value.split(",") if part.strip()]
    elif isinstance(value, (list, tuple, set, frozenset)):
        tokens = value
    else:
        raise InvalidRecurrenceError(f"Invalid weekdays value: {value!r}")
    return tuple(sorted({_weekday_from_token(token) for token in tokens}))


def parse_frequency(value: Any) -> Frequency:
    if isinstance(value, Frequency):
        return value
    text = str(value or "").strip().casefold()
    try:
        return Frequency(text)
    except ValueError:
        raise InvalidRecurrenceError(f"Unknown frequency: {value!r}") from None


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: Frequency
    weekdays: Tuple[int, ...] = ()

    @classmethod
    def parse(cls, frequency: Any, weekdays: Any = None) -> "RecurrenceRule":
        parsed = parse_frequency(frequency)
        # 日本語: daily は曜日指定を無視 / English: daily ignores any weekday set
        if parsed is Frequency.DAILY:
            return cls(parsed, ())
        return cls(parsed, normalize_weekdays(weekdays))

    def is_due(self, date_local: datetime.date) -> bool:
        if self.frequency is Frequency.DAILY:
            return True
        # 日本語: 曜日が空なら「一度も対象にならない」扱い(エラーではない) / English: An empty set means never eligible, not an error
        return weekday_index(date_local) in self.weekdays

    def stored_weekdays(self) -> list[int] | None:
        if self.frequency is Frequency.DAILY:
            return None
        return list(self.weekdays)


def is_eligible(date_local: Any, frequency: Any, weekdays: Any = None) -> bool:
    return RecurrenceRule.parse(frequency, weekdays).is_due(parse_local_day(date_local))


def count_eligible_days(start_local: Any, end_local: Any, frequency: Any, weekdays: Any = None) -> int:
    """Count eligible days between two local days, both inclusive."""
    rule = RecurrenceRule.parse(frequency, weekdays)
    current = parse_local_day(start_local)
    end = parse_local_day(end_local)
    count = 0
    while current <= end:
        if rule.is_due(current):
            count += 1
        current += datetime.timedelta(days=1)
    return count


def previous_eligible_day(date_local: datetime.date, rule: RecurrenceRule) -> datetime.date | None:
    for offset in range(1, 8):
        candidate = date_local - datetime.timedelta(days=offset)
        if rule.is_due(candidate):
            return candidate
    return None


__all__ = [
    "Frequency",
    "RecurrenceRule",
    "normalize_weekdays",
    "parse_frequency",
    "is_eligible",
    "count_eligible_days",
    "previous_eligible_day",
]
