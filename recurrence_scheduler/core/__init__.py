"""Core package exports."""

from .config import (
    BASE_DIR,
    DAILY_RESET_TOKEN,
    DATABASE_URL,
    DEFAULT_TIMEZONE,
    PROXY_PREFIX,
    get_cas_retries,
    get_db_pool_size,
    get_log_level,
)
from .db import Session, create_session, get_db, get_engine
from .errors import (
    InvalidRecurrenceError,
    MetricsConflictError,
    RecordNotFoundError,
    RecurrenceSchedulerError,
)

__all__ = [
    "BASE_DIR",
    "DATABASE_URL",
    "DAILY_RESET_TOKEN",
    "DEFAULT_TIMEZONE",
    "PROXY_PREFIX",
    "get_cas_retries",
    "get_db_pool_size",
    "get_log_level",
    "get_engine",
    "Session",
    "create_session",
    "get_db",
    "RecurrenceSchedulerError",
    "InvalidRecurrenceError",
    "RecordNotFoundError",
    "MetricsConflictError",
]
