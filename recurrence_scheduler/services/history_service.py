"""Habit history ledger writes and range summaries."""

from __future__ import annotations

import datetime
import logging
from typing import Any, Dict, List

from sqlalchemy.dialects import postgresql, sqlite
from sqlmodel import Session, select

from recurrence_scheduler.models import HabitHistory
from recurrence_scheduler.services.calendar_service import (
    format_local_day,
    parse_local_day,
    to_naive_utc,
    utc_now,
)
from recurrence_scheduler.services.eligibility_service import RecurrenceRule, count_eligible_days

logger = logging.getLogger(__name__)

_CONFLICT_COLUMNS = ["recurrence_id", "user_id", "date_local"]


def _insert_for(db: Session):
    # 日本語: 方言ごとの ON CONFLICT 対応 insert を選ぶ / English: Pick the dialect's ON CONFLICT-capable insert
    dialect_name = db.get_bind().dialect.name
    if dialect_name == "postgresql":
        return postgresql.insert
    if dialect_name == "sqlite":
        return sqlite.insert
    raise RuntimeError(f"History upsert is not supported on dialect {dialect_name!r}")


def upsert_history_entry(
    db: Session,
    *,
    recurrence_id: str,
    user_id: str,
    date_local: datetime.date,
    completed: bool,
    now: datetime.datetime | None = None,
) -> None:
    """Insert or overwrite the ledger row for one recurrence day. Does not commit."""
    timestamp = to_naive_utc(now or utc_now())
    insert = _insert_for(db)
    statement = insert(HabitHistory).values(
        recurrence_id=recurrence_id,
        user_id=user_id,
        date_local=date_local,
        completed=completed,
        created_at=timestamp,
        updated_at=timestamp,
    )
    statement = statement.on_conflict_do_update(
        index_elements=_CONFLICT_COLUMNS,
        set_={"completed": statement.excluded.completed, "updated_at": timestamp},
    )
    db.exec(statement)
    logger.debug(
        "History upserted recurrence=%s day=%s completed=%s", recurrence_id, date_local, completed
    )


def list_history(
    db: Session,
    recurrence_id: str,
    user_id: str,
    start: datetime.date | None = None,
    end: datetime.date | None = None,
) -> List[HabitHistory]:
    statement = select(HabitHistory).where(
        HabitHistory.recurrence_id == recurrence_id, HabitHistory.user_id == user_id
    )
    if start is not None:
        statement = statement.where(HabitHistory.date_local >= start)
    if end is not None:
        statement = statement.where(HabitHistory.date_local <= end)
    return list(db.exec(statement.order_by(HabitHistory.date_local)).all())


def summarize_history(
    entries: List[HabitHistory],
    rule: RecurrenceRule,
    start: Any,
    end: Any,
) -> Dict[str, Any]:
    start_day = parse_local_day(start)
    end_day = parse_local_day(end)
    eligible_days = count_eligible_days(start_day, end_day, rule.frequency, rule.weekdays)
    completed = sum(1 for entry in entries if entry.completed)
    missed = sum(1 for entry in entries if not entry.completed)
    success_rate = round(completed / eligible_days * 100, 2) if eligible_days else 0.0
    return {
        "start": format_local_day(start_day),
        "end": format_local_day(end_day),
        "eligible_days": eligible_days,
        "completed": completed,
        "missed": missed,
        "success_rate": success_rate,
    }


def serialize_history_entry(entry: HabitHistory) -> Dict[str, Any]:
    return {
        "recurrence_id": entry.recurrence_id,
        "user_id": entry.user_id,
        "date_local": format_local_day(entry.date_local),
        "completed": entry.completed,
    }


__all__ = [
    "upsert_history_entry",
    "list_history",
    "summarize_history",
    "serialize_history_entry",
]
