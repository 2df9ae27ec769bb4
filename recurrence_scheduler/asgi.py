"""ASGI entrypoint (``uvicorn recurrence_scheduler.asgi:app``)."""

import logging

from recurrence_scheduler.core.config import get_log_level

logging.basicConfig(
    level=get_log_level(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

from .application import app, create_app  # noqa: E402

__all__ = ["app", "create_app"]
