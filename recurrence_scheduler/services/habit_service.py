"""Habit definition management and day listings."""

from __future__ import annotations

import datetime
import logging
import uuid
from typing import Any, Dict, List

from sqlalchemy import delete, update
from sqlmodel import Session, select

from recurrence_scheduler.core.errors import InvalidRecurrenceError, RecordNotFoundError
from recurrence_scheduler.models import Habit, HabitHistory, UserProfile
from recurrence_scheduler.services.calendar_service import (
    resolve_local_day,
    to_naive_utc,
    utc_now,
)
from recurrence_scheduler.services.eligibility_service import RecurrenceRule
from recurrence_scheduler.services.habit_store_service import get_latest_habit_instances
from recurrence_scheduler.services.materializer_service import materialize_user_habits

logger = logging.getLogger(__name__)

_DEFINITION_FIELDS = {"title", "description", "frequency", "weekdays", "paused"}


def get_user_profile(db: Session, user_id: str) -> UserProfile:
    profile = db.get(UserProfile, user_id)
    if profile is None:
        raise RecordNotFoundError(f"User {user_id} not found")
    return profile


def _clean_title(value: Any) -> str:
    title = str(value or "").strip()
    if not title:
        raise InvalidRecurrenceError("title is required")
    return title[:200]


def create_habit(
    db: Session,
    user_id: str,
    payload: Dict[str, Any],
    now: datetime.datetime | None = None,
) -> Habit:
    """Create a recurrence and its first instance dated the user's local today."""
    now = now or utc_now()
    profile = get_user_profile(db, user_id)
    rule = RecurrenceRule.parse(payload.get("frequency", "daily"), payload.get("weekdays"))
    today = resolve_local_day(now, profile.timezone).today
    timestamp = to_naive_utc(now)

    habit = Habit(
        recurrence_id=str(uuid.uuid4()),
        user_id=user_id,
        title=_clean_title(payload.get("title")),
        description=payload.get("description"),
        frequency=rule.frequency.value,
        weekdays=rule.stored_weekdays(),
        paused=bool(payload.get("paused", False)),
        date_local=today,
        created_at=timestamp,
        updated_at=timestamp,
    )
    db.add(habit)
    db.commit()
    db.refresh(habit)
    logger.info("[User %s] Created habit %s (%s)", user_id, habit.recurrence_id, rule.frequency.value)
    return habit


def update_habit_definition(
    db: Session,
    user_id: str,
    recurrence_id: str,
    payload: Dict[str, Any],
    now: datetime.datetime | None = None,
) -> Habit:
    """Apply definition edits to every row so one policy exists at a time.

    Recorded metrics are left as they are; a new weekday set only affects
    eligibility from now on.
    """
    now = now or utc_now()
    latest = _get_latest_or_404(db, user_id, recurrence_id)

    values: Dict[str, Any] = {}
    if "title" in payload:
        values["title"] = _clean_title(payload["title"])
    if "description" in payload:
        values["description"] = payload["description"]
    if "paused" in payload:
        values["paused"] = bool(payload["paused"])
    if "frequency" in payload or "weekdays" in payload:
        rule = RecurrenceRule.parse(
            payload.get("frequency", latest.frequency),
            payload["weekdays"] if "weekdays" in payload else latest.weekdays,
        )
        values["frequency"] = rule.frequency.value
        values["weekdays"] = rule.stored_weekdays()

    unknown = set(payload) - _DEFINITION_FIELDS
    if unknown:
        raise InvalidRecurrenceError(f"Unsupported fields: {', '.join(sorted(unknown))}")

    if values:
        db.exec(
            update(Habit)
            .where(Habit.recurrence_id == recurrence_id, Habit.user_id == user_id)
            .values(**values, updated_at=to_naive_utc(now))
            .execution_options(synchronize_session=False)
        )
        db.commit()
    return _get_latest_or_404(db, user_id, recurrence_id)


def delete_habit(db: Session, user_id: str, recurrence_id: str) -> int:
    """Delete every instance and history entry of a recurrence."""
    _get_latest_or_404(db, user_id, recurrence_id)
    db.exec(
        delete(HabitHistory).where(
            HabitHistory.recurrence_id == recurrence_id, HabitHistory.user_id == user_id
        )
    )
    result = db.exec(
        delete(Habit).where(Habit.recurrence_id == recurrence_id, Habit.user_id == user_id)
    )
    db.commit()
    logger.info("[User %s] Deleted habit %s (%d instances)", user_id, recurrence_id, result.rowcount)
    return result.rowcount


def list_habit_definitions(db: Session, user_id: str) -> List[Habit]:
    get_user_profile(db, user_id)
    return get_latest_habit_instances(db, user_id)


def list_today_habits(
    db: Session, user_id: str, now: datetime.datetime | None = None
) -> List[Habit]:
    """Today's unpaused, due instances, materializing any that are missing."""
    now = now or utc_now()
    profile = get_user_profile(db, user_id)
    today = resolve_local_day(now, profile.timezone).today
    materialize_user_habits(db, user_id, today, now)

    rows = db.exec(
        select(Habit)
        .where(Habit.user_id == user_id, Habit.date_local == today, Habit.paused == False)  # noqa: E712
        .order_by(Habit.created_at, Habit.id)
    ).all()
    due = []
    for row in rows:
        try:
            if RecurrenceRule.parse(row.frequency, row.weekdays).is_due(today):
                due.append(row)
        except InvalidRecurrenceError:
            logger.warning("[User %s] Skipping habit %s with invalid rule", user_id, row.recurrence_id)
    return due


def _get_latest_or_404(db: Session, user_id: str, recurrence_id: str) -> Habit:
    latest = db.exec(
        select(Habit)
        .where(Habit.recurrence_id == recurrence_id, Habit.user_id == user_id)
        .order_by(Habit.date_local.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    ).first()
    if latest is None:
        raise RecordNotFoundError(f"Habit {recurrence_id} not found")
    return latest


__all__ = [
    "get_user_profile",
    "create_habit",
    "update_habit_definition",
    "delete_habit",
    "list_habit_definitions",
    "list_today_habits",
]
