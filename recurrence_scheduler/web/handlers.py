"""HTTP handler implementations used by the routers."""

from __future__ import annotations

import datetime
import logging
import os
from typing import Any, Callable, Dict

from dateutil import parser as date_parser
from fastapi import HTTPException, Request
from sqlmodel import Session, select

from recurrence_scheduler.core.config import DAILY_RESET_TOKEN
from recurrence_scheduler.core.errors import MetricsConflictError, RecordNotFoundError
from recurrence_scheduler.models import Habit
from recurrence_scheduler.services.calendar_service import parse_local_day
from recurrence_scheduler.services.eligibility_service import RecurrenceRule
from recurrence_scheduler.services.habit_store_service import get_latest_instance, serialize_habit
from recurrence_scheduler.services.history_service import serialize_history_entry
from recurrence_scheduler.services.task_service import serialize_task

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_DAYS = 30


async def _json_payload(request: Request) -> Dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError:
        payload = {}
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="payload must be an object")
    return payload


def _call_service(fn: Callable[..., Any], *args, **kwargs):
    # 日本語: サービス例外を HTTP ステータスへ対応付け / English: Map service exceptions to HTTP status codes
    try:
        return fn(*args, **kwargs)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except MetricsConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def _parse_instant(value: Any) -> datetime.datetime | None:
    if not value:
        return None
    try:
        return date_parser.isoparse(str(value))
    except (ValueError, OverflowError):
        raise HTTPException(status_code=400, detail="now must be an ISO 8601 timestamp")


def _check_reset_token(request: Request) -> None:
    # 日本語: 実行時の DAILY_RESET_TOKEN を優先 / English: Prefer runtime DAILY_RESET_TOKEN override
    expected = os.getenv("DAILY_RESET_TOKEN", DAILY_RESET_TOKEN or "")
    if not expected:
        return
    if request.headers.get("X-Daily-Reset-Token") != expected:
        logger.warning("Rejected daily reset trigger with an invalid token")
        raise HTTPException(status_code=401, detail="invalid daily reset token")


async def daily_reset(request: Request, db: Session, *, run_daily_reset_fn):
    _check_reset_token(request)
    payload = await _json_payload(request)
    now = _parse_instant(payload.get("now") or request.query_params.get("now"))
    summary = run_daily_reset_fn(db, now)
    return summary.to_dict()


def local_day_view(user_id: str, db: Session, *, get_user_profile_fn, resolve_local_day_fn):
    profile = _call_service(get_user_profile_fn, db, user_id)
    day = resolve_local_day_fn(None, profile.timezone)
    return {"user_id": user_id, **day.to_dict()}


def list_habits(user_id: str, db: Session, *, list_habit_definitions_fn):
    rows = _call_service(list_habit_definitions_fn, db, user_id)
    return {"habits": [serialize_habit(row) for row in rows]}


async def create_habit(request: Request, user_id: str, db: Session, *, create_habit_fn):
    payload = await _json_payload(request)
    habit = _call_service(create_habit_fn, db, user_id, payload)
    return {"status": "ok", "habit": serialize_habit(habit)}


def list_today_habits(user_id: str, db: Session, *, list_today_habits_fn):
    rows = _call_service(list_today_habits_fn, db, user_id)
    return {"habits": [serialize_habit(row) for row in rows]}


async def update_habit(
    request: Request,
    user_id: str,
    recurrence_id: str,
    db: Session,
    *,
    update_habit_definition_fn,
):
    payload = await _json_payload(request)
    if not payload:
        raise HTTPException(status_code=400, detail="no fields to update")
    habit = _call_service(update_habit_definition_fn, db, user_id, recurrence_id, payload)
    return {"status": "ok", "habit": serialize_habit(habit)}


def delete_habit(user_id: str, recurrence_id: str, db: Session, *, delete_habit_fn):
    deleted = _call_service(delete_habit_fn, db, user_id, recurrence_id)
    return {"status": "ok", "deleted_instances": deleted}


def acknowledge_alert(user_id: str, recurrence_id: str, db: Session, *, acknowledge_alert_fn):
    _call_service(acknowledge_alert_fn, db, user_id, recurrence_id)
    return {"status": "ok", "recurrence_id": recurrence_id, "alert": False}


def habit_history(
    request: Request,
    user_id: str,
    recurrence_id: str,
    db: Session,
    *,
    get_user_profile_fn,
    resolve_local_day_fn,
    list_history_fn,
    summarize_history_fn,
):
    profile = _call_service(get_user_profile_fn, db, user_id)
    latest = get_latest_instance(db, recurrence_id, user_id)
    if latest is None:
        raise HTTPException(status_code=404, detail=f"Habit {recurrence_id} not found")

    try:
        end_param = request.query_params.get("end")
        start_param = request.query_params.get("start")
        end = parse_local_day(end_param) if end_param else resolve_local_day_fn(None, profile.timezone).today
        start = (
            parse_local_day(start_param)
            if start_param
            else end - datetime.timedelta(days=DEFAULT_HISTORY_DAYS - 1)
        )
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date format")
    if start > end:
        raise HTTPException(status_code=400, detail="start cannot be after end")

    rule = _call_service(RecurrenceRule.parse, latest.frequency, latest.weekdays)
    entries = list_history_fn(db, recurrence_id, user_id, start, end)
    return {
        "recurrence_id": recurrence_id,
        "entries": [serialize_history_entry(entry) for entry in entries],
        "summary": summarize_history_fn(entries, rule, start, end),
    }


async def toggle_habit_instance(
    request: Request,
    user_id: str,
    habit_id: int,
    db: Session,
    *,
    set_habit_completion_fn,
):
    payload = await _json_payload(request)
    if "completed" in payload:
        completed = payload["completed"]
        if not isinstance(completed, bool):
            raise HTTPException(status_code=400, detail="completed must be a boolean")
    else:
        # 日本語: 指定が無ければ現在の状態を反転 / English: Without an explicit value, flip the current state
        instance = db.exec(select(Habit).where(Habit.id == habit_id, Habit.user_id == user_id)).first()
        if instance is None:
            raise HTTPException(status_code=404, detail=f"Habit instance {habit_id} not found")
        completed = not instance.completed_today

    habit = _call_service(set_habit_completion_fn, db, user_id, habit_id, completed)
    return {"status": "ok", "habit": serialize_habit(habit)}


async def create_task(request: Request, user_id: str, db: Session, *, create_task_fn):
    payload = await _json_payload(request)
    task = _call_service(create_task_fn, db, user_id, payload)
    return {"status": "ok", "task": serialize_task(task)}


def list_overdue_tasks(user_id: str, db: Session, *, list_overdue_tasks_fn):
    tasks = list_overdue_tasks_fn(db, user_id)
    return {"tasks": [serialize_task(task) for task in tasks]}


def complete_task(user_id: str, task_id: int, db: Session, *, complete_task_fn):
    task = _call_service(complete_task_fn, db, user_id, task_id)
    return {"status": "ok", "task": serialize_task(task)}
