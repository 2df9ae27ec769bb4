"""FastAPI application assembly."""

from __future__ import annotations

import os

from fastapi import FastAPI

from recurrence_scheduler.core.config import PROXY_PREFIX
from recurrence_scheduler.core.db import _init_db
from recurrence_scheduler.web.routers import day_router, habits_router, reset_router, tasks_router


def create_app() -> FastAPI:
    # 日本語: 逆プロキシ配下運用を想定して root_path を環境変数から解決 / English: Resolve root_path from env for reverse-proxy deployments
    proxy_prefix = os.getenv("PROXY_PREFIX", PROXY_PREFIX)

    app = FastAPI(title="Recurrence Scheduler", root_path=proxy_prefix)

    # 日本語: 機能別ルーターを順次登録 / English: Register feature routers
    app.include_router(reset_router)
    app.include_router(day_router)
    app.include_router(habits_router)
    app.include_router(tasks_router)

    @app.on_event("startup")
    def _startup_init_db() -> None:
        # 日本語: 起動時にマイグレーション適用を保証 / English: Ensure migrations are applied on startup
        _init_db()

    return app


# 日本語: import 時点で既定アプリを構築 / English: Build default app instance at import time
app = create_app()
