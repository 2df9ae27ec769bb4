"""Database engine and session helpers."""

from __future__ import annotations

import logging
import os
import threading
from typing import Iterator

from sqlalchemy.engine import Engine
from sqlmodel import Session, create_engine

from recurrence_scheduler.core.config import DATABASE_URL, get_db_pool_size
from recurrence_scheduler.core.migrations import upgrade_to_head

logger = logging.getLogger(__name__)


def _normalize_database_url(database_url: str) -> str:
    # 日本語: 旧 postgres:// を SQLAlchemy 推奨形式へ正規化 / English: Normalize legacy postgres:// URL to SQLAlchemy-friendly form
    normalized_url = (database_url or "").strip()
    if normalized_url.startswith("postgres://"):
        normalized_url = normalized_url.replace("postgres://", "postgresql+psycopg2://", 1)
    if not normalized_url.startswith("postgresql"):
        raise ValueError("DATABASE_URL must be PostgreSQL (postgresql+psycopg2://...).")
    return normalized_url


def _build_engine(database_url: str) -> Engine:
    # 日本語: バッチは長時間走るため切断済み接続を事前検出 / English: Batch runs are long; detect dropped connections before use
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=get_db_pool_size(),
        max_overflow=get_db_pool_size(),
    )


def _database_url_from_env() -> str:
    # 日本語: 実行時環境変数を優先 / English: Prefer runtime environment override
    return _normalize_database_url(os.getenv("DATABASE_URL") or DATABASE_URL)


_current_database_url = _database_url_from_env()
engine = _build_engine(_current_database_url)
_db_initialized = False
_db_init_lock = threading.Lock()


def refresh_engine_from_env() -> None:
    """Rebuild the engine if DATABASE_URL changed after import."""
    global engine, _db_initialized, _current_database_url

    latest_database_url = _database_url_from_env()
    if latest_database_url == _current_database_url:
        return

    with _db_init_lock:
        engine.dispose()
        engine = _build_engine(latest_database_url)
        _current_database_url = latest_database_url
        _db_initialized = False
    logger.info("Database engine rebuilt for a new DATABASE_URL")


def get_engine() -> Engine:
    refresh_engine_from_env()
    return engine


def _ensure_db_initialized() -> None:
    global _db_initialized
    if _db_initialized:
        return
    # 日本語: マイグレーションはプロセス内で一度だけ実行 / English: Run migrations once per process with lock protection
    with _db_init_lock:
        if _db_initialized:
            return
        logger.info("Applying database migrations")
        upgrade_to_head(_current_database_url)
        _db_initialized = True


def _init_db() -> None:
    refresh_engine_from_env()
    _ensure_db_initialized()


def create_session() -> Session:
    """Standalone session for the cron batch; the caller closes it."""
    _init_db()
    return Session(engine)


def get_db() -> Iterator[Session]:
    # 日本語: FastAPI Depends 用のセッション供給器 / English: Dependency provider for FastAPI routes
    _ensure_db_initialized()
    with Session(get_engine()) as db:
        yield db
