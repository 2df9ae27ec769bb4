#!/usr/bin/env python3
"""Run the daily reset batch once (for cron)."""

from __future__ import annotations

from recurrence_scheduler.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
