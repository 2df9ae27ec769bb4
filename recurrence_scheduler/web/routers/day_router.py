"""Local day API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlmodel import Session

from recurrence_scheduler.core.db import get_db
from recurrence_scheduler.services.calendar_service import resolve_local_day
from recurrence_scheduler.services.habit_service import get_user_profile
from recurrence_scheduler.web import handlers as web_handlers

router = APIRouter()


@router.get("/api/users/{user_id}/day", name="api_local_day")
def api_local_day(user_id: str, db: Session = Depends(get_db)):
    return web_handlers.local_day_view(
        user_id,
        db,
        get_user_profile_fn=get_user_profile,
        resolve_local_day_fn=resolve_local_day,
    )
