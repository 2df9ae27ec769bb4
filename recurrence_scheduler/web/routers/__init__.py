"""Router exports."""

# 日本語: 各機能ルーターを集約して application.py から一括 import 可能にする / English: Re-export feature routers for centralized app wiring
from .day_router import router as day_router
from .habits_router import router as habits_router
from .reset_router import router as reset_router
from .tasks_router import router as tasks_router

__all__ = [
    "day_router",
    "habits_router",
    "reset_router",
    "tasks_router",
]
