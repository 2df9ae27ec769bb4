"""SQLModel exports for Recurrence Scheduler."""

from .habit_models import Habit, HabitHistory, UserProfile
from .task_models import OVERDUE_BOARD, RECURRING_BOARD, Task

__all__ = [
    "UserProfile",
    "Habit",
    "HabitHistory",
    "Task",
    "OVERDUE_BOARD",
    "RECURRING_BOARD",
]
