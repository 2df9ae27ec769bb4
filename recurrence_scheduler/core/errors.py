"""Domain exceptions shared by services and the web layer."""

from __future__ import annotations


class RecurrenceSchedulerError(Exception):
    """Base class for expected scheduler failures."""


class InvalidRecurrenceError(RecurrenceSchedulerError, ValueError):
    """A frequency or weekday set failed boundary validation."""


class RecordNotFoundError(RecurrenceSchedulerError, LookupError):
    """The requested habit, instance or task does not exist for the user."""


class MetricsConflictError(RecurrenceSchedulerError, RuntimeError):
    """Compare-and-set on a recurrence's metrics kept losing to another writer."""

    def __init__(self, recurrence_id: str, attempts: int):
        super().__init__(
            f"metrics for recurrence {recurrence_id} changed concurrently ({attempts} attempts)"
        )
        self.recurrence_id = recurrence_id
        self.attempts = attempts
