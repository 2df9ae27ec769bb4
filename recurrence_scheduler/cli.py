"""Cron entrypoint for the daily reset batch."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List

from dateutil import parser as date_parser

from recurrence_scheduler.core.config import get_log_level
from recurrence_scheduler.core.db import create_session
from recurrence_scheduler.services.daily_reset_service import run_daily_reset

logger = logging.getLogger(__name__)


def main(argv: List[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the daily habit and task reset for every user")
    parser.add_argument(
        "--now",
        default=None,
        help="Override the current instant (ISO 8601, UTC if no offset)",
    )
    parser.add_argument(
        "--log-level",
        default=get_log_level(),
        help="Logging level (default: LOG_LEVEL or INFO)",
    )

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    now = None
    if args.now:
        try:
            now = date_parser.isoparse(args.now)
        except ValueError:
            print(f"Invalid --now value: {args.now}", file=sys.stderr)
            return 2

    with create_session() as db:
        summary = run_daily_reset(db, now)

    print(json.dumps(summary.to_dict(), ensure_ascii=False, indent=2))
    if summary.errors:
        # 日本語: 一部ユーザーの失敗は終了コード 1 で通知 / English: Partial failures exit with status 1
        logger.warning("Daily reset finished with %d errors", len(summary.errors))
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
