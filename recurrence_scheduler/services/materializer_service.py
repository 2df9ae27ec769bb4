"""Per-day habit instance materialization."""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from typing import Dict, List

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

from recurrence_scheduler.core.errors import InvalidRecurrenceError
from recurrence_scheduler.models import Habit
from recurrence_scheduler.services.calendar_service import to_naive_utc, utc_now
from recurrence_scheduler.services.habit_store_service import (
    HabitState,
    compute_success_rate,
    get_latest_habit_instances,
    stored_fail_by_weekday,
)

logger = logging.getLogger(__name__)


@dataclass
class MaterializeResult:
    created: List[int] = field(default_factory=list)
    skipped: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)


def seed_alert(state: HabitState) -> bool:
    """Alert flag for a new instance.

    Stricter than "streak is 0": a habit with no completions and no misses
    yet starts without an alert, since there is no streak to have broken.
    """
    has_history = state.total_completed > 0 or bool(state.missed_days)
    return state.streak == 0 and has_history


def build_instance(state: HabitState, today: datetime.date, now: datetime.datetime) -> Habit:
    timestamp = to_naive_utc(now)
    return Habit(
        recurrence_id=state.recurrence_id,
        user_id=state.user_id,
        title=state.title,
        description=state.description,
        frequency=state.rule.frequency.value,
        weekdays=state.rule.stored_weekdays(),
        paused=state.paused,
        date_local=today,
        completed_today=False,
        alert=seed_alert(state),
        last_completed_date_local=state.last_completed_date_local,
        streak=state.streak,
        total_completed=state.total_completed,
        missed_days=list(state.missed_days),
        fail_by_weekday=stored_fail_by_weekday(state.fail_by_weekday),
        success_rate=compute_success_rate(state.total_completed, len(state.missed_days)),
        metrics_version=state.metrics_version,
        created_at=timestamp,
        updated_at=timestamp,
    )


def materialize_user_habits(
    db: Session,
    user_id: str,
    today: datetime.date,
    now: datetime.datetime | None = None,
) -> MaterializeResult:
    """Ensure one instance dated ``today`` exists for every due, unpaused recurrence."""
    now = now or utc_now()
    result = MaterializeResult()
    for state in _load_bases(db, user_id):
        # 日本語: 最新行が今日以降なら既に存在する / English: A latest row dated today or later means today's instance exists
        if state.date_local >= today or not state.rule.is_due(today):
            result.skipped += 1
            continue

        instance = build_instance(state, today, now)
        db.add(instance)
        try:
            db.commit()
        except IntegrityError:
            # 日本語: 同時実行で先に作られた場合は何もしない / English: Another run created it first; treat as a no-op
            db.rollback()
            result.skipped += 1
            logger.info(
                "[User %s] Instance for %s on %s already exists", user_id, state.recurrence_id, today
            )
            continue
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception(
                "[User %s] Failed to materialize recurrence %s", user_id, state.recurrence_id
            )
            result.errors.append({"recurrence_id": state.recurrence_id, "error": str(exc)})
            continue

        result.created.append(instance.id)

    if result.created:
        logger.info(
            "[User %s] Materialized %d habit instances for %s", user_id, len(result.created), today
        )
    return result


def _load_bases(db: Session, user_id: str) -> List[HabitState]:
    rows = get_latest_habit_instances(db, user_id, include_paused=False)
    valid = []
    for row in rows:
        try:
            state = HabitState.from_row(row)
        except InvalidRecurrenceError:
            logger.warning(
                "[User %s] Recurrence %s has an invalid rule, skipping", user_id, row.recurrence_id
            )
            continue
        valid.append(state)
    return valid


__all__ = ["MaterializeResult", "seed_alert", "build_instance", "materialize_user_habits"]
