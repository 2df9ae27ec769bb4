"""Alembic migration environment for Recurrence Scheduler."""

from __future__ import annotations

import os

from alembic import context
from sqlalchemy import engine_from_config, pool
from sqlmodel import SQLModel

from recurrence_scheduler import models as _models  # noqa: F401
from recurrence_scheduler.core.config import DATABASE_URL

config = context.config
target_metadata = SQLModel.metadata


def _configured_url() -> str:
    # 日本語: alembic CLI 直接実行時は DATABASE_URL を使う / English: Fall back to DATABASE_URL when run from the alembic CLI
    database_url = config.get_main_option("sqlalchemy.url") or os.getenv("DATABASE_URL") or DATABASE_URL
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql+psycopg2://", 1)
    return database_url


def run_migrations_offline() -> None:
    """Emit SQL for the habit, history and task tables without a connection."""
    context.configure(
        url=_configured_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    configuration = config.get_section(config.config_ini_section, {})
    configuration["sqlalchemy.url"] = _configured_url()
    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
