"""Daily reset batch across every user's local day."""

from __future__ import annotations

import datetime
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List

from sqlmodel import Session, select

from recurrence_scheduler.models import UserProfile
from recurrence_scheduler.services.calendar_service import as_utc, resolve_local_day, utc_now
from recurrence_scheduler.services.materializer_service import materialize_user_habits
from recurrence_scheduler.services.metrics_service import close_out_yesterday
from recurrence_scheduler.services.task_service import (
    instantiate_template_tasks,
    move_overdue_tasks,
    update_template_streaks,
)

logger = logging.getLogger(__name__)


@dataclass
class DailyResetSummary:
    started_at: str
    users_total: int = 0
    users_processed: int = 0
    instances_created: int = 0
    instances_updated: int = 0
    history_written: int = 0
    template_tasks_created: int = 0
    template_streaks_updated: int = 0
    tasks_moved_to_overdue: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)
    finished_at: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _record_error(summary: DailyResetSummary, user_id: str, stage: str, error: Any) -> None:
    summary.errors.append({"user_id": user_id, "stage": stage, "error": str(error)})


def _record_unit_errors(
    summary: DailyResetSummary, user_id: str, stage: str, errors: List[Dict[str, str]]
) -> None:
    for error in errors:
        _record_error(summary, user_id, stage, f"{error['recurrence_id']}: {error['error']}")


def run_daily_reset(db: Session, now: datetime.datetime | None = None) -> DailyResetSummary:
    """Run the daily cycle for every user.

    Failures are isolated per user; the run always reaches the overdue pass
    and returns a summary. Re-running on the same day changes nothing.
    """
    now = as_utc(now) if now is not None else utc_now()
    summary = DailyResetSummary(started_at=now.isoformat())

    profiles = db.exec(select(UserProfile).order_by(UserProfile.id)).all()
    users = [(profile.id, profile.timezone) for profile in profiles]
    summary.users_total = len(users)
    logger.info("Daily reset started for %d users", summary.users_total)

    for user_id, timezone in users:
        stage = "resolve_timezone"
        try:
            day = resolve_local_day(now, timezone)
            logger.info(
                "[User %s] Daily reset for %s (yesterday %s, %s)",
                user_id,
                day.today,
                day.yesterday,
                day.timezone,
            )

            stage = "materialize"
            materialized = materialize_user_habits(db, user_id, day.today, now)
            summary.instances_created += len(materialized.created)
            _record_unit_errors(summary, user_id, stage, materialized.errors)

            stage = "close_yesterday"
            closed = close_out_yesterday(db, user_id, day.yesterday, now)
            summary.instances_updated += len(closed.updated)
            summary.history_written += closed.history_written
            _record_unit_errors(summary, user_id, stage, closed.errors)

            stage = "template_tasks"
            summary.template_tasks_created += len(
                instantiate_template_tasks(db, user_id, day.today, now)
            )

            stage = "template_streaks"
            summary.template_streaks_updated += update_template_streaks(
                db, user_id, day.yesterday, now
            )
        except Exception as exc:  # noqa: BLE001
            db.rollback()
            logger.exception("[User %s] Daily reset failed during %s", user_id, stage)
            _record_error(summary, user_id, stage, exc)
            continue
        summary.users_processed += 1

    for user_id, timezone in users:
        today = resolve_local_day(now, timezone).today
        try:
            summary.tasks_moved_to_overdue += move_overdue_tasks(db, user_id, today, now)
        except Exception as exc:  # noqa: BLE001
            db.rollback()
            logger.exception("[User %s] Overdue rollover failed", user_id)
            _record_error(summary, user_id, "overdue_tasks", exc)

    summary.finished_at = utc_now().isoformat()
    logger.info(
        "Daily reset finished: %d/%d users, %d created, %d updated, %d overdue, %d errors",
        summary.users_processed,
        summary.users_total,
        summary.instances_created,
        summary.instances_updated,
        summary.tasks_moved_to_overdue,
        len(summary.errors),
    )
    return summary


__all__ = ["DailyResetSummary", "run_daily_reset"]
