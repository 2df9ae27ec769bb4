"""Habit definition, instance and history routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlmodel import Session

from recurrence_scheduler.core.db import get_db
from recurrence_scheduler.services.calendar_service import resolve_local_day
from recurrence_scheduler.services.completion_service import acknowledge_alert, set_habit_completion
from recurrence_scheduler.services.habit_service import (
    create_habit,
    delete_habit,
    get_user_profile,
    list_habit_definitions,
    list_today_habits,
    update_habit_definition,
)
from recurrence_scheduler.services.history_service import list_history, summarize_history
from recurrence_scheduler.web import handlers as web_handlers

router = APIRouter()


@router.get("/api/users/{user_id}/habits", name="api_habits")
def api_habits(user_id: str, db: Session = Depends(get_db)):
    return web_handlers.list_habits(user_id, db, list_habit_definitions_fn=list_habit_definitions)


@router.post("/api/users/{user_id}/habits", name="api_create_habit", status_code=201)
async def api_create_habit(request: Request, user_id: str, db: Session = Depends(get_db)):
    return await web_handlers.create_habit(request, user_id, db, create_habit_fn=create_habit)


@router.get("/api/users/{user_id}/habits/today", name="api_today_habits")
def api_today_habits(user_id: str, db: Session = Depends(get_db)):
    return web_handlers.list_today_habits(user_id, db, list_today_habits_fn=list_today_habits)


@router.patch("/api/users/{user_id}/habits/{recurrence_id}", name="api_update_habit")
async def api_update_habit(
    request: Request, user_id: str, recurrence_id: str, db: Session = Depends(get_db)
):
    return await web_handlers.update_habit(
        request, user_id, recurrence_id, db, update_habit_definition_fn=update_habit_definition
    )


@router.delete("/api/users/{user_id}/habits/{recurrence_id}", name="api_delete_habit")
def api_delete_habit(user_id: str, recurrence_id: str, db: Session = Depends(get_db)):
    return web_handlers.delete_habit(user_id, recurrence_id, db, delete_habit_fn=delete_habit)


@router.post("/api/users/{user_id}/habits/{recurrence_id}/acknowledge", name="api_acknowledge_alert")
def api_acknowledge_alert(user_id: str, recurrence_id: str, db: Session = Depends(get_db)):
    return web_handlers.acknowledge_alert(
        user_id, recurrence_id, db, acknowledge_alert_fn=acknowledge_alert
    )


@router.get("/api/users/{user_id}/habits/{recurrence_id}/history", name="api_habit_history")
def api_habit_history(
    request: Request, user_id: str, recurrence_id: str, db: Session = Depends(get_db)
):
    return web_handlers.habit_history(
        request,
        user_id,
        recurrence_id,
        db,
        get_user_profile_fn=get_user_profile,
        resolve_local_day_fn=resolve_local_day,
        list_history_fn=list_history,
        summarize_history_fn=summarize_history,
    )


@router.post("/api/users/{user_id}/habit-instances/{habit_id}/toggle", name="api_toggle_habit")
async def api_toggle_habit(
    request: Request, user_id: str, habit_id: int, db: Session = Depends(get_db)
):
    return await web_handlers.toggle_habit_instance(
        request, user_id, habit_id, db, set_habit_completion_fn=set_habit_completion
    )
