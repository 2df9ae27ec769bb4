"""Daily reset trigger route."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlmodel import Session

from recurrence_scheduler.core.db import get_db
from recurrence_scheduler.services.daily_reset_service import run_daily_reset
from recurrence_scheduler.web import handlers as web_handlers

router = APIRouter()


@router.post("/api/daily-reset", name="api_daily_reset")
async def api_daily_reset(request: Request, db: Session = Depends(get_db)):
    return await web_handlers.daily_reset(request, db, run_daily_reset_fn=run_daily_reset)
