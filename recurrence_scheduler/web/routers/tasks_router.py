"""Task routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlmodel import Session

from recurrence_scheduler.core.db import get_db
from recurrence_scheduler.services.task_service import complete_task, create_task, list_overdue_tasks
from recurrence_scheduler.web import handlers as web_handlers

router = APIRouter()


@router.post("/api/users/{user_id}/tasks", name="api_create_task", status_code=201)
async def api_create_task(request: Request, user_id: str, db: Session = Depends(get_db)):
    return await web_handlers.create_task(request, user_id, db, create_task_fn=create_task)


@router.get("/api/users/{user_id}/tasks/overdue", name="api_overdue_tasks")
def api_overdue_tasks(user_id: str, db: Session = Depends(get_db)):
    return web_handlers.list_overdue_tasks(user_id, db, list_overdue_tasks_fn=list_overdue_tasks)


@router.post("/api/users/{user_id}/tasks/{task_id}/complete", name="api_complete_task")
def api_complete_task(user_id: str, task_id: int, db: Session = Depends(get_db)):
    return web_handlers.complete_task(user_id, task_id, db, complete_task_fn=complete_task)
