"""User-triggered habit completion toggle."""

from __future__ import annotations

import datetime
import logging
from typing import Any, Dict

from sqlalchemy import update
from sqlmodel import Session, select

from recurrence_scheduler.core.errors import InvalidRecurrenceError, RecordNotFoundError
from recurrence_scheduler.models import Habit, UserProfile
from recurrence_scheduler.services.calendar_service import local_day, to_naive_utc, utc_now
from recurrence_scheduler.services.eligibility_service import previous_eligible_day
from recurrence_scheduler.services.habit_store_service import (
    HabitState,
    apply_metrics_with_retry,
    compute_success_rate,
)
from recurrence_scheduler.services.history_service import upsert_history_entry

logger = logging.getLogger(__name__)


def completion_changes(state: HabitState, day: datetime.date) -> Dict[str, Any] | None:
    """Metric deltas for marking ``day`` complete, None if already counted."""
    if state.last_completed_date_local == day:
        return None

    total_completed = state.total_completed + 1
    previous_day = previous_eligible_day(day, state.rule)
    if (
        state.last_completed_date_local is not None
        and previous_day is not None
        and state.last_completed_date_local == previous_day
    ):
        streak = state.streak + 1
    else:
        # 日本語: 初回または間隔が空いた場合は新しい連続記録を 1 から開始 / English: First completion or a gap starts a new streak at 1
        streak = 1

    return {
        "total_completed": total_completed,
        "last_completed_date_local": day,
        "streak": streak,
        "alert": False,
        "success_rate": compute_success_rate(total_completed, len(state.missed_days)),
    }


def undo_changes(state: HabitState, day: datetime.date) -> Dict[str, Any]:
    """Metric deltas for un-marking ``day``.

    Exact reconstruction of the previous streak is not attempted: undoing the
    day's completion zeroes the streak until the next batch cycle. Like a
    completion, an undo clears the alert.
    """
    total_completed = max(0, state.total_completed - 1)
    changes: Dict[str, Any] = {
        "total_completed": total_completed,
        "alert": False,
        "success_rate": compute_success_rate(total_completed, len(state.missed_days)),
    }
    if state.last_completed_date_local == day:
        changes["streak"] = 0
        changes["last_completed_date_local"] = None
    return changes


def _get_user_instance(db: Session, user_id: str, habit_id: int) -> Habit:
    instance = db.exec(
        select(Habit)
        .where(Habit.id == habit_id, Habit.user_id == user_id)
        .execution_options(populate_existing=True)
    ).first()
    if instance is None:
        raise RecordNotFoundError(f"Habit instance {habit_id} not found")
    return instance


def set_habit_completion(
    db: Session,
    user_id: str,
    habit_id: int,
    completed: bool,
    now: datetime.datetime | None = None,
) -> Habit:
    """Mark one habit instance complete or incomplete and commit."""
    now = now or utc_now()
    instance = _get_user_instance(db, user_id, habit_id)
    recurrence_id = instance.recurrence_id
    day = instance.date_local

    profile = db.get(UserProfile, user_id)
    today = local_day(now, profile.timezone if profile is not None else None)
    if day < today:
        # 日本語: 締め済みの過去日は切り替えない / English: Days before local today are owned by the nightly close-out
        raise InvalidRecurrenceError(f"Habit instance {habit_id} is dated {day}, before local today {today}")

    # 日本語: 二重クリックでは指標を変えない / English: A repeated click leaves metrics unchanged
    if bool(instance.completed_today) != completed:
        instance.completed_today = completed
        instance.updated_at = to_naive_utc(now)
        db.add(instance)
        db.flush()

        if completed:
            apply_metrics_with_retry(
                db, recurrence_id, user_id, lambda state: completion_changes(state, day), now
            )
        else:
            apply_metrics_with_retry(
                db, recurrence_id, user_id, lambda state: undo_changes(state, day), now
            )

    upsert_history_entry(
        db,
        recurrence_id=recurrence_id,
        user_id=user_id,
        date_local=day,
        completed=completed,
        now=now,
    )
    db.commit()
    logger.info(
        "[User %s] Habit %s on %s marked %s",
        user_id,
        recurrence_id,
        day,
        "complete" if completed else "incomplete",
    )
    return _get_user_instance(db, user_id, habit_id)


def acknowledge_alert(
    db: Session, user_id: str, recurrence_id: str, now: datetime.datetime | None = None
) -> int:
    """Clear the alert flag on every row of a recurrence. Returns rows touched."""
    now = now or utc_now()
    result = db.exec(
        update(Habit)
        .where(Habit.recurrence_id == recurrence_id, Habit.user_id == user_id)
        .values(alert=False, updated_at=to_naive_utc(now))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        raise RecordNotFoundError(f"Habit {recurrence_id} not found")
    db.commit()
    return result.rowcount


__all__ = [
    "completion_changes",
    "undo_changes",
    "set_habit_completion",
    "acknowledge_alert",
]
