"""Habit, history and user registry SQLModel models."""

import datetime
from typing import Dict, List

from sqlalchemy import JSON, Column, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


# 日本語: 外部ユーザー台帳の写し(ID とタイムゾーンのみ参照) / English: Mirror of the external user registry (id + timezone only)
class UserProfile(SQLModel, table=True):
    __tablename__ = "profiles"

    id: str = Field(primary_key=True, max_length=64)
    timezone: str | None = Field(default=None, max_length=64)
    display_name: str | None = Field(default=None, max_length=100)


# 日本語: 習慣の日次インスタンス。最新日付の行が定義と累積指標の正 / English: Per-day habit instance; the latest-dated row is the definition and metric source of truth
class Habit(SQLModel, table=True):
    __tablename__ = "habits"
    __table_args__ = (
        UniqueConstraint("recurrence_id", "date_local", name="uq_habits_recurrence_day"),
    )

    id: int | None = Field(default=None, primary_key=True)
    recurrence_id: str = Field(max_length=36, index=True)
    user_id: str = Field(foreign_key="profiles.id", max_length=64, index=True)
    title: str = Field(max_length=200)
    description: str | None = Field(default=None, sa_column=Column(Text))
    # 日本語: daily / weekly / custom。weekdays は 0=日 ... 6=土 / English: daily / weekly / custom; weekdays use 0=Sun ... 6=Sat
    frequency: str = Field(default="daily", max_length=20)
    weekdays: List[int] | None = Field(default=None, sa_column=Column(JSON))
    paused: bool = Field(default=False)

    date_local: datetime.date = Field(index=True)
    completed_today: bool = Field(default=False)
    alert: bool = Field(default=False)

    last_completed_date_local: datetime.date | None = Field(default=None)
    streak: int = Field(default=0)
    total_completed: int = Field(default=0)
    missed_days: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    fail_by_weekday: Dict[str, int] = Field(
        default_factory=dict, sa_column=Column(JSON, nullable=False)
    )
    success_rate: float = Field(default=0.0)
    metrics_version: int = Field(default=0)

    created_at: datetime.datetime = Field(default_factory=_utcnow)
    updated_at: datetime.datetime = Field(default_factory=_utcnow)


# 日本語: 完了/未完了の監査台帳。(recurrence_id, user_id, date_local) で一意 / English: Completion audit ledger, unique per (recurrence_id, user_id, date_local)
class HabitHistory(SQLModel, table=True):
    __tablename__ = "habit_history"
    __table_args__ = (
        UniqueConstraint("recurrence_id", "user_id", "date_local", name="uq_habit_history_day"),
    )

    id: int | None = Field(default=None, primary_key=True)
    recurrence_id: str = Field(max_length=36, index=True)
    user_id: str = Field(foreign_key="profiles.id", max_length=64)
    date_local: datetime.date
    completed: bool = Field(default=False)
    created_at: datetime.datetime = Field(default_factory=_utcnow)
    updated_at: datetime.datetime = Field(default_factory=_utcnow)
