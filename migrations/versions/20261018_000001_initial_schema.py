"""Initial schema.

Revision ID: 20261018_000001
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261018_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=True),
        sa.Column("display_name", sa.String(length=100), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "habits",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("recurrence_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("frequency", sa.String(length=20), nullable=False),
        sa.Column("weekdays", sa.JSON(), nullable=True),
        sa.Column("paused", sa.Boolean(), nullable=False),
        sa.Column("date_local", sa.Date(), nullable=False),
        sa.Column("completed_today", sa.Boolean(), nullable=False),
        sa.Column("alert", sa.Boolean(), nullable=False),
        sa.Column("last_completed_date_local", sa.Date(), nullable=True),
        sa.Column("streak", sa.Integer(), nullable=False),
        sa.Column("total_completed", sa.Integer(), nullable=False),
        sa.Column("missed_days", sa.JSON(), nullable=False),
        sa.Column("fail_by_weekday", sa.JSON(), nullable=False),
        sa.Column("success_rate", sa.Float(), nullable=False),
        sa.Column("metrics_version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("recurrence_id", "date_local", name="uq_habits_recurrence_day"),
    )
    op.create_index("ix_habits_recurrence_id", "habits", ["recurrence_id"])
    op.create_index("ix_habits_user_id", "habits", ["user_id"])
    op.create_index("ix_habits_date_local", "habits", ["date_local"])
    op.create_table(
        "habit_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("recurrence_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("date_local", sa.Date(), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "recurrence_id", "user_id", "date_local", name="uq_habit_history_day"
        ),
    )
    op.create_index("ix_habit_history_recurrence_id", "habit_history", ["recurrence_id"])
    op.create_table(
        "tasks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("is_completed", sa.Boolean(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("current_board", sa.String(length=50), nullable=False),
        sa.Column("origin_board", sa.String(length=50), nullable=False),
        sa.Column("overdue", sa.Boolean(), nullable=False),
        sa.Column("last_moved_to_overdue_at", sa.DateTime(), nullable=True),
        sa.Column("recurrence_type", sa.String(length=20), nullable=False),
        sa.Column("recurrence_details", sa.String(length=100), nullable=True),
        sa.Column("recurrence_streak", sa.Integer(), nullable=False),
        sa.Column("recurrence_streak_date", sa.Date(), nullable=True),
        sa.Column("parent_task_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"]),
        sa.ForeignKeyConstraint(["parent_task_id"], ["tasks.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("parent_task_id", "due_date", name="uq_tasks_parent_due_date"),
    )
    op.create_index("ix_tasks_user_id", "tasks", ["user_id"])
    op.create_index("ix_tasks_due_date", "tasks", ["due_date"])
    op.create_index("ix_tasks_parent_task_id", "tasks", ["parent_task_id"])


def downgrade() -> None:
    op.drop_index("ix_tasks_parent_task_id", table_name="tasks")
    op.drop_index("ix_tasks_due_date", table_name="tasks")
    op.drop_index("ix_tasks_user_id", table_name="tasks")
    op.drop_table("tasks")
    op.drop_index("ix_habit_history_recurrence_id", table_name="habit_history")
    op.drop_table("habit_history")
    op.drop_index("ix_habits_date_local", table_name="habits")
    op.drop_index("ix_habits_user_id", table_name="habits")
    op.drop_index("ix_habits_recurrence_id", table_name="habits")
    op.drop_table("habits")
    op.drop_table("profiles")
