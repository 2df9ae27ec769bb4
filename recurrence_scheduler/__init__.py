"""Recurrence Scheduler: per-user habit recurrence, streak metrics and daily reset."""

__version__ = "0.1.0"
