"""Yesterday close-out: streak, missed-day ledger and weekday failure metrics."""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from recurrence_scheduler.core.errors import InvalidRecurrenceError, MetricsConflictError
from recurrence_scheduler.services.calendar_service import format_local_day, utc_now, weekday_index
from recurrence_scheduler.services.habit_store_service import (
    HabitState,
    apply_metrics_with_retry,
    compute_success_rate,
    get_instance_for_day,
    get_latest_habit_instances,
    stored_fail_by_weekday,
)
from recurrence_scheduler.services.history_service import upsert_history_entry

logger = logging.getLogger(__name__)

OUTCOME_MISSED = "missed"
OUTCOME_COMPLETED = "completed"
OUTCOME_NOT_DUE = "not_due"
OUTCOME_NO_INSTANCE = "no_instance"


@dataclass
class CloseOutResult:
    updated: List[str] = field(default_factory=list)
    history_written: int = 0
    outcomes: Dict[str, str] = field(default_factory=dict)
    errors: List[Dict[str, str]] = field(default_factory=list)


def missed_day_changes(state: HabitState, yesterday: datetime.date) -> Dict[str, Any] | None:
    """Metric deltas for a missed eligible day, or None if already recorded."""
    day_key = format_local_day(yesterday)
    # 日本語: 同じ日の再実行では何も変えない / English: Re-running for the same day changes nothing
    if day_key in state.missed_days:
        return None

    missed_days = [*state.missed_days, day_key]
    fail_by_weekday = dict(state.fail_by_weekday)
    weekday = weekday_index(yesterday)
    fail_by_weekday[weekday] = fail_by_weekday.get(weekday, 0) + 1

    # 日本語: 昨日より後に完了済みなら新しい連続記録を壊さない / English: A completion after yesterday has already started a new streak
    completed_since = (
        state.last_completed_date_local is not None
        and state.last_completed_date_local > yesterday
    )
    return {
        "streak": state.streak if completed_since else 0,
        "missed_days": missed_days,
        "fail_by_weekday": stored_fail_by_weekday(fail_by_weekday),
        "alert": not completed_since,
        "success_rate": compute_success_rate(state.total_completed, len(missed_days)),
    }


def close_out_recurrence(
    db: Session,
    user_id: str,
    recurrence_id: str,
    yesterday: datetime.date,
    now: datetime.datetime,
) -> tuple[str, bool, bool]:
    """Close out one recurrence's instance for ``yesterday``.

    Returns ``(outcome, metrics_written, history_written)``. Does not commit.
    """
    instance = get_instance_for_day(db, recurrence_id, yesterday)
    if instance is None:
        return OUTCOME_NO_INSTANCE, False, False

    day_state = HabitState.from_row(instance)
    if not day_state.rule.is_due(yesterday):
        return OUTCOME_NOT_DUE, False, False

    if day_state.completed_today:
        # 日本語: 昨日の行だけに残った警告も消す / English: Also clear an alert left only on yesterday's row
        _, changes = apply_metrics_with_retry(
            db,
            recurrence_id,
            user_id,
            lambda state: {"alert": False} if state.alert or day_state.alert else None,
            now,
        )
        return OUTCOME_COMPLETED, changes is not None, False

    if day_state.paused:
        return OUTCOME_NOT_DUE, False, False

    _, changes = apply_metrics_with_retry(
        db,
        recurrence_id,
        user_id,
        lambda state: missed_day_changes(state, yesterday),
        now,
    )
    upsert_history_entry(
        db,
        recurrence_id=recurrence_id,
        user_id=user_id,
        date_local=yesterday,
        completed=False,
        now=now,
    )
    return OUTCOME_MISSED, changes is not None, True


def close_out_yesterday(
    db: Session,
    user_id: str,
    yesterday: datetime.date,
    now: datetime.datetime | None = None,
) -> CloseOutResult:
    """Apply yesterday's outcome to every recurrence of one user.

    Each recurrence is committed on its own; a failure is logged and skipped.
    """
    now = now or utc_now()
    result = CloseOutResult()
    recurrence_ids = [row.recurrence_id for row in get_latest_habit_instances(db, user_id)]

    for recurrence_id in recurrence_ids:
        try:
            outcome, metrics_written, history_written = close_out_recurrence(
                db, user_id, recurrence_id, yesterday, now
            )
            db.commit()
        except (SQLAlchemyError, MetricsConflictError, InvalidRecurrenceError) as exc:
            db.rollback()
            logger.exception(
                "[User %s] Failed to close out recurrence %s for %s", user_id, recurrence_id, yesterday
            )
            result.errors.append({"recurrence_id": recurrence_id, "error": str(exc)})
            continue

        result.outcomes[recurrence_id] = outcome
        if metrics_written:
            result.updated.append(recurrence_id)
        if history_written:
            result.history_written += 1

    missed = sum(1 for outcome in result.outcomes.values() if outcome == OUTCOME_MISSED)
    logger.info(
        "[User %s] Closed out %s: %d recurrences, %d missed, %d updated",
        user_id,
        yesterday,
        len(result.outcomes),
        missed,
        len(result.updated),
    )
    return result


__all__ = [
    "OUTCOME_MISSED",
    "OUTCOME_COMPLETED",
    "OUTCOME_NOT_DUE",
    "OUTCOME_NO_INSTANCE",
    "CloseOutResult",
    "missed_day_changes",
    "close_out_recurrence",
    "close_out_yesterday",
]
