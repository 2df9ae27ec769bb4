"""Task SQLModel models."""

import datetime

from sqlalchemy import Column, Text, UniqueConstraint
from sqlmodel import Field, SQLModel

from .habit_models import _utcnow

OVERDUE_BOARD = "overdue"
RECURRING_BOARD = "recurring"


# 日本語: 単発タスク、繰り返しテンプレート、テンプレートから生成された日付付きタスク / English: One-off tasks, recurring templates and the dated tasks instantiated from them
class Task(SQLModel, table=True):
    __tablename__ = "tasks"
    __table_args__ = (
        UniqueConstraint("parent_task_id", "due_date", name="uq_tasks_parent_due_date"),
    )

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="profiles.id", max_length=64, index=True)
    title: str = Field(max_length=200)
    description: str | None = Field(default=None, sa_column=Column(Text))
    due_date: datetime.date | None = Field(default=None, index=True)
    is_completed: bool = Field(default=False)
    completed_at: datetime.datetime | None = Field(default=None)

    current_board: str = Field(default="general", max_length=50)
    origin_board: str = Field(default="general", max_length=50)
    overdue: bool = Field(default=False)
    last_moved_to_overdue_at: datetime.datetime | None = Field(default=None)

    # 日本語: none / daily / weekly / monthly。weekly は曜日、monthly は日付を details に保持 / English: none / daily / weekly / monthly; details hold weekdays (weekly) or day of month (monthly)
    recurrence_type: str = Field(default="none", max_length=20)
    recurrence_details: str | None = Field(default=None, max_length=100)
    recurrence_streak: int = Field(default=0)
    recurrence_streak_date: datetime.date | None = Field(default=None)
    parent_task_id: int | None = Field(default=None, foreign_key="tasks.id", index=True)

    created_at: datetime.datetime = Field(default_factory=_utcnow)
    updated_at: datetime.datetime = Field(default_factory=_utcnow)
