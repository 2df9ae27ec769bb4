"""Service-layer exports."""

from .calendar_service import LocalDay, local_day, resolve_local_day, resolve_timezone, utc_now
from .completion_service import acknowledge_alert, set_habit_completion
from .daily_reset_service import DailyResetSummary, run_daily_reset
from .eligibility_service import (
    Frequency,
    RecurrenceRule,
    count_eligible_days,
    is_eligible,
    normalize_weekdays,
)
from .habit_service import (
    create_habit,
    delete_habit,
    get_user_profile,
    list_habit_definitions,
    list_today_habits,
    update_habit_definition,
)
from .habit_store_service import get_latest_habit_instances, serialize_habit
from .history_service import (
    list_history,
    serialize_history_entry,
    summarize_history,
    upsert_history_entry,
)
from .materializer_service import MaterializeResult, materialize_user_habits
from .metrics_service import CloseOutResult, close_out_yesterday
from .task_service import (
    complete_task,
    create_task,
    instantiate_template_tasks,
    list_overdue_tasks,
    move_overdue_tasks,
    serialize_task,
    update_template_streaks,
)

__all__ = [
    "LocalDay",
    "local_day",
    "resolve_local_day",
    "resolve_timezone",
    "utc_now",
    "acknowledge_alert",
    "set_habit_completion",
    "DailyResetSummary",
    "run_daily_reset",
    "Frequency",
    "RecurrenceRule",
    "count_eligible_days",
    "is_eligible",
    "normalize_weekdays",
    "create_habit",
    "delete_habit",
    "get_user_profile",
    "list_habit_definitions",
    "list_today_habits",
    "update_habit_definition",
    "get_latest_habit_instances",
    "serialize_habit",
    "list_history",
    "serialize_history_entry",
    "summarize_history",
    "upsert_history_entry",
    "MaterializeResult",
    "materialize_user_habits",
    "CloseOutResult",
    "close_out_yesterday",
    "complete_task",
    "create_task",
    "instantiate_template_tasks",
    "list_overdue_tasks",
    "move_overdue_tasks",
    "serialize_task",
    "update_template_streaks",
]
