"""Generic tasks: overdue rollover and recurring task templates."""

from __future__ import annotations

import calendar
import datetime
import logging
from typing import Any, Dict, List

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from recurrence_scheduler.core.errors import InvalidRecurrenceError, RecordNotFoundError
from recurrence_scheduler.models import OVERDUE_BOARD, RECURRING_BOARD, Task, UserProfile
from recurrence_scheduler.services.calendar_service import (
    format_local_day,
    parse_local_day,
    to_naive_utc,
    utc_now,
    weekday_index,
)
from recurrence_scheduler.services.eligibility_service import normalize_weekdays

logger = logging.getLogger(__name__)

TEMPLATE_TYPES = ("daily", "weekly", "monthly")
DEFAULT_BOARD = "general"


def _bool_from_value(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes", "on"}:
            return True
        if lowered in {"false", "0", "no", "off"}:
            return False
    if isinstance(value, (int, float)):
        return bool(value)
    return default


def _month_day_from_details(details: Any) -> int:
    try:
        day = int(str(details).strip())
    except (TypeError, ValueError):
        raise InvalidRecurrenceError(f"Invalid day of month: {details!r}") from None
    if not 1 <= day <= 31:
        raise InvalidRecurrenceError(f"Day of month out of range 1-31: {day}")
    return day


def normalize_recurrence_details(recurrence_type: str, details: Any) -> str | None:
    """Validate template details into their stored form.

    weekly -> ``"1,3,5"`` (0=Sunday), monthly -> ``"15"``, daily -> None.
    """
    if recurrence_type == "weekly":
        weekdays = normalize_weekdays(details)
        if not weekdays:
            raise InvalidRecurrenceError("weekly templates need at least one weekday")
        return ",".join(str(day) for day in weekdays)
    if recurrence_type == "monthly":
        return str(_month_day_from_details(details))
    return None


def is_template_due(template: Task, day: datetime.date) -> bool:
    recurrence_type = template.recurrence_type
    if recurrence_type == "daily":
        return True
    if recurrence_type == "weekly":
        return weekday_index(day) in normalize_weekdays(template.recurrence_details)
    if recurrence_type == "monthly":
        # 日本語: 31 日指定などは月末に丸める / English: Days past the month's end clamp to its last day
        last_day = calendar.monthrange(day.year, day.month)[1]
        return day.day == min(_month_day_from_details(template.recurrence_details), last_day)
    return False


def create_task(
    db: Session,
    user_id: str,
    payload: Dict[str, Any],
    now: datetime.datetime | None = None,
) -> Task:
    now = now or utc_now()
    if db.get(UserProfile, user_id) is None:
        raise RecordNotFoundError(f"User {user_id} not found")
    title = str(payload.get("title") or "").strip()
    if not title:
        raise InvalidRecurrenceError("title is required")

    recurrence_type = str(payload.get("recurrence_type") or "none").strip().lower()
    if recurrence_type != "none" and recurrence_type not in TEMPLATE_TYPES:
        raise InvalidRecurrenceError(f"Unknown recurrence_type: {recurrence_type!r}")

    board = str(payload.get("board") or DEFAULT_BOARD).strip() or DEFAULT_BOARD
    due_date = None
    if recurrence_type == "none" and payload.get("due_date"):
        due_date = parse_local_day(payload["due_date"])

    timestamp = to_naive_utc(now)
    task = Task(
        user_id=user_id,
        title=title[:200],
        description=payload.get("description"),
        due_date=due_date,
        is_completed=_bool_from_value(payload.get("is_completed")),
        current_board=board,
        origin_board=board,
        recurrence_type=recurrence_type,
        recurrence_details=normalize_recurrence_details(
            recurrence_type, payload.get("recurrence_details")
        ),
        created_at=timestamp,
        updated_at=timestamp,
    )
    if task.is_completed:
        task.completed_at = timestamp
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


def complete_task(
    db: Session, user_id: str, task_id: int, now: datetime.datetime | None = None
) -> Task:
    """Mark a task completed. The overdue flag is left as it is."""
    task = db.exec(select(Task).where(Task.id == task_id, Task.user_id == user_id)).first()
    if task is None:
        raise RecordNotFoundError(f"Task {task_id} not found")
    if not task.is_completed:
        timestamp = to_naive_utc(now or utc_now())
        task.is_completed = True
        task.completed_at = timestamp
        task.updated_at = timestamp
        db.add(task)
        db.commit()
        db.refresh(task)
    return task


def move_overdue_tasks(
    db: Session,
    user_id: str,
    today: datetime.date,
    now: datetime.datetime | None = None,
) -> int:
    """Move open tasks due before ``today`` onto the overdue board. Returns moved count."""
    timestamp = to_naive_utc(now or utc_now())
    result = db.exec(
        update(Task)
        .where(
            Task.user_id == user_id,
            Task.is_completed == False,  # noqa: E712
            Task.due_date.is_not(None),
            Task.due_date < today,
            Task.current_board != OVERDUE_BOARD,
        )
        .values(
            overdue=True,
            current_board=OVERDUE_BOARD,
            last_moved_to_overdue_at=timestamp,
            updated_at=timestamp,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount:
        logger.info("[User %s] Moved %d tasks to overdue", user_id, result.rowcount)
    return result.rowcount


def list_overdue_tasks(db: Session, user_id: str) -> List[Task]:
    return list(
        db.exec(
            select(Task)
            .where(Task.user_id == user_id, Task.current_board == OVERDUE_BOARD)
            .order_by(Task.due_date, Task.id)
            .execution_options(populate_existing=True)
        ).all()
    )


def _list_templates(db: Session, user_id: str, recurrence_type: str | None = None) -> List[Task]:
    statement = select(Task).where(
        Task.user_id == user_id,
        Task.parent_task_id.is_(None),
        Task.recurrence_type != "none",
    )
    if recurrence_type is not None:
        statement = statement.where(Task.recurrence_type == recurrence_type)
    return list(db.exec(statement.order_by(Task.id)).all())


def instantiate_template_tasks(
    db: Session,
    user_id: str,
    today: datetime.date,
    now: datetime.datetime | None = None,
) -> List[int]:
    """Create today's instance of every due template. Returns new task ids."""
    timestamp = to_naive_utc(now or utc_now())
    created: List[int] = []
    for template in _list_templates(db, user_id):
        try:
            due = is_template_due(template, today)
        except InvalidRecurrenceError:
            logger.warning("[User %s] Template %s has invalid details, skipping", user_id, template.id)
            continue
        if not due:
            continue

        existing = db.exec(
            select(Task.id).where(Task.parent_task_id == template.id, Task.due_date == today)
        ).first()
        if existing is not None:
            continue

        instance = Task(
            user_id=user_id,
            title=template.title,
            description=template.description,
            due_date=today,
            current_board=RECURRING_BOARD,
            origin_board=RECURRING_BOARD,
            recurrence_streak=template.recurrence_streak,
            parent_task_id=template.id,
            created_at=timestamp,
            updated_at=timestamp,
        )
        db.add(instance)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info("[User %s] Template %s already instantiated for %s", user_id, template.id, today)
            continue
        created.append(instance.id)

    if created:
        logger.info("[User %s] Instantiated %d template tasks for %s", user_id, len(created), today)
    return created


def update_template_streaks(
    db: Session,
    user_id: str,
    yesterday: datetime.date,
    now: datetime.datetime | None = None,
) -> int:
    """Close out yesterday's instance of each daily template, once per day.

    A completed instance extends the streak, an open one resets it and a
    missing one leaves it alone.
    """
    timestamp = to_naive_utc(now or utc_now())
    updated = 0
    for template in _list_templates(db, user_id, "daily"):
        if template.recurrence_streak_date is not None and template.recurrence_streak_date >= yesterday:
            continue
        instance = db.exec(
            select(Task).where(Task.parent_task_id == template.id, Task.due_date == yesterday)
        ).first()
        if instance is None:
            continue

        template.recurrence_streak = template.recurrence_streak + 1 if instance.is_completed else 0
        template.recurrence_streak_date = yesterday
        template.updated_at = timestamp
        db.add(template)
        updated += 1
    db.commit()
    return updated


def serialize_task(task: Task) -> Dict[str, Any]:
    return {
        "id": task.id,
        "user_id": task.user_id,
        "title": task.title,
        "description": task.description,
        "due_date": format_local_day(task.due_date),
        "is_completed": task.is_completed,
        "completed_at": task.completed_at.isoformat() if task.completed_at else None,
        "current_board": task.current_board,
        "origin_board": task.origin_board,
        "overdue": task.overdue,
        "recurrence_type": task.recurrence_type,
        "recurrence_details": task.recurrence_details,
        "recurrence_streak": task.recurrence_streak,
        "parent_task_id": task.parent_task_id,
    }


__all__ = [
    "normalize_recurrence_details",
    "is_template_due",
    "create_task",
    "complete_task",
    "move_overdue_tasks",
    "list_overdue_tasks",
    "instantiate_template_tasks",
    "update_template_streaks",
    "serialize_task",
]
