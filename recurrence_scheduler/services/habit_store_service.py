"""Habit persistence queries shared by the materializer, metrics engine and toggle."""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Tuple

from sqlalchemy import and_, func, update
from sqlmodel import Session, select

from recurrence_scheduler.core.config import get_cas_retries
from recurrence_scheduler.core.errors import MetricsConflictError
from recurrence_scheduler.models import Habit
from recurrence_scheduler.services.calendar_service import (
    format_local_day,
    parse_local_day,
    to_naive_utc,
)
from recurrence_scheduler.services.eligibility_service import RecurrenceRule

logger = logging.getLogger(__name__)

# 日本語: 全インスタンス行で同一に保つ累積指標 / English: Cumulative fields kept identical across every row of a recurrence
METRIC_FIELDS = (
    "streak",
    "total_completed",
    "last_completed_date_local",
    "missed_days",
    "fail_by_weekday",
    "success_rate",
    "alert",
)


def compute_success_rate(total_completed: int, missed_days_count: int) -> float:
    attempts = total_completed + missed_days_count
    if attempts <= 0:
        return 0.0
    return round(total_completed / attempts * 100, 2)


def normalize_fail_by_weekday(value: Any) -> Dict[int, int]:
    counts = {day: 0 for day in range(7)}
    for key, count in (value or {}).items():
        try:
            day = int(key)
            counts[day] = counts.get(day, 0) + int(count or 0)
        except (TypeError, ValueError):
            continue
    return {day: counts[day] for day in range(7)}


def stored_fail_by_weekday(counts: Dict[int, int]) -> Dict[str, int]:
    # 日本語: JSON のキーは文字列 / English: JSON object keys are strings
    return {str(day): int(count) for day, count in sorted(counts.items()) if 0 <= day <= 6}


@dataclass(frozen=True)
class HabitState:
    """Snapshot of one habit instance row, detached from the session."""

    id: int
    recurrence_id: str
    user_id: str
    title: str
    description: str | None
    rule: RecurrenceRule
    paused: bool
    date_local: datetime.date
    completed_today: bool
    alert: bool
    last_completed_date_local: datetime.date | None
    streak: int
    total_completed: int
    missed_days: Tuple[str, ...]
    fail_by_weekday: Dict[int, int] = field(default_factory=dict)
    success_rate: float = 0.0
    metrics_version: int = 0

    @classmethod
    def from_row(cls, row: Habit) -> "HabitState":
        return cls(
            id=row.id,
            recurrence_id=row.recurrence_id,
            user_id=row.user_id,
            title=row.title,
            description=row.description,
            rule=RecurrenceRule.parse(row.frequency, row.weekdays),
            paused=bool(row.paused),
            date_local=parse_local_day(row.date_local),
            completed_today=bool(row.completed_today),
            alert=bool(row.alert),
            last_completed_date_local=(
                parse_local_day(row.last_completed_date_local)
                if row.last_completed_date_local
                else None
            ),
            streak=int(row.streak or 0),
            total_completed=int(row.total_completed or 0),
            missed_days=tuple(row.missed_days or ()),
            fail_by_weekday=normalize_fail_by_weekday(row.fail_by_weekday),
            success_rate=float(row.success_rate or 0.0),
            metrics_version=int(row.metrics_version or 0),
        )


def get_latest_habit_instances(
    db: Session, user_id: str, *, include_paused: bool = True
) -> List[Habit]:
    """Latest-dated instance per recurrence_id for one user."""
    latest = (
        select(Habit.recurrence_id, func.max(Habit.date_local).label("latest_date"))
        .where(Habit.user_id == user_id)
        .group_by(Habit.recurrence_id)
        .subquery()
    )
    statement = (
        select(Habit)
        .join(
            latest,
            and_(
                Habit.recurrence_id == latest.c.recurrence_id,
                Habit.date_local == latest.c.latest_date,
            ),
        )
        .where(Habit.user_id == user_id)
        .order_by(Habit.created_at, Habit.id)
        .execution_options(populate_existing=True)
    )
    if not include_paused:
        statement = statement.where(Habit.paused == False)  # noqa: E712
    return list(db.exec(statement).all())


def get_latest_instance(db: Session, recurrence_id: str, user_id: str) -> Habit | None:
    statement = (
        select(Habit)
        .where(Habit.recurrence_id == recurrence_id, Habit.user_id == user_id)
        .order_by(Habit.date_local.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return db.exec(statement).first()


def get_instance_for_day(
    db: Session, recurrence_id: str, date_local: datetime.date
) -> Habit | None:
    statement = (
        select(Habit)
        .where(Habit.recurrence_id == recurrence_id, Habit.date_local == date_local)
        .execution_options(populate_existing=True)
    )
    return db.exec(statement).first()


def write_metrics(
    db: Session,
    state: HabitState,
    changes: Dict[str, Any],
    now: datetime.datetime,
) -> bool:
    """Compare-and-set ``changes`` onto every row of the recurrence.

    The latest row is claimed by bumping ``metrics_version`` only if it still
    holds the version ``state`` was read at. Returns False when another writer
    got there first. Does not commit.
    """
    timestamp = to_naive_utc(now)
    next_version = state.metrics_version + 1
    claimed = db.exec(
        update(Habit)
        .where(Habit.id == state.id, Habit.metrics_version == state.metrics_version)
        .values(metrics_version=next_version, updated_at=timestamp)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount == 0:
        return False

    values = {key: value for key, value in changes.items() if key in METRIC_FIELDS}
    db.exec(
        update(Habit)
        .where(Habit.recurrence_id == state.recurrence_id)
        .values(**values, metrics_version=next_version, updated_at=timestamp)
        .execution_options(synchronize_session=False)
    )
    return True


def apply_metrics_with_retry(
    db: Session,
    recurrence_id: str,
    user_id: str,
    compute_changes: Callable[[HabitState], Dict[str, Any] | None],
    now: datetime.datetime,
) -> Tuple[HabitState | None, Dict[str, Any] | None]:
    """Re-read the latest state and apply ``compute_changes`` until the CAS wins.

    ``compute_changes`` returns None when nothing needs writing. The caller
    owns the commit.
    """
    attempts = get_cas_retries()
    for attempt in range(1, attempts + 1):
        latest_row = get_latest_instance(db, recurrence_id, user_id)
        if latest_row is None:
            return None, None
        state = HabitState.from_row(latest_row)
        changes = compute_changes(state)
        if not changes:
            return state, None
        if write_metrics(db, state, changes, now):
            return state, changes
        # 日本語: 競合時は最新状態を読み直して再計算 / English: On conflict, re-read the latest state and recompute
        logger.info(
            "Metrics conflict on recurrence %s (attempt %d/%d)", recurrence_id, attempt, attempts
        )
    raise MetricsConflictError(recurrence_id, attempts)


def serialize_habit(row: Habit) -> Dict[str, Any]:
    return {
        "id": row.id,
        "recurrence_id": row.recurrence_id,
        "user_id": row.user_id,
        "title": row.title,
        "description": row.description,
        "frequency": row.frequency,
        "weekdays": row.weekdays,
        "paused": row.paused,
        "date_local": format_local_day(row.date_local),
        "completed_today": row.completed_today,
        "alert": row.alert,
        "last_completed_date_local": format_local_day(row.last_completed_date_local),
        "streak": row.streak,
        "total_completed": row.total_completed,
        "missed_days": list(row.missed_days or []),
        "fail_by_weekday": {
            day: count for day, count in normalize_fail_by_weekday(row.fail_by_weekday).items()
        },
        "success_rate": row.success_rate,
    }


__all__ = [
    "METRIC_FIELDS",
    "HabitState",
    "compute_success_rate",
    "normalize_fail_by_weekday",
    "stored_fail_by_weekday",
    "get_latest_habit_instances",
    "get_latest_instance",
    "get_instance_for_day",
    "write_metrics",
    "apply_metrics_with_retry",
    "serialize_habit",
]
