# src/task_sync/tasks/task_api.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from ..core.ports import TaskRepo
from ..core.state import AppState
from .task_models import Task
from .task_repository import TaskRepository
from .task_store import JsonTaskStorage

logger = logging.getLogger(__name__)


def ensure_task_repository(state: AppState, db_path: str | Path | None = None) -> TaskRepo:
    """
    Lazy init the task repository in AppState.
    If db_path is None -> use settings.db_path.
    """
    repo = state.task_repo
    if repo is not None:
        return repo

    path = db_path or getattr(state.settings, "db_path", None) or "db.json"
    repo = TaskRepository(JsonTaskStorage(path))
    state.task_repo = repo
    logger.info("TaskRepository initialized db=%s", path)
    return repo


class AsyncTaskRepository:
    """
    asyncio facade over a blocking TaskRepo.

    Each call runs in the default thread pool, so an async transport can await
    store operations without stalling its event loop. No timeouts or retries here:
    callers own those.
    """

    def __init__(self, repo: TaskRepo) -> None:
        self._repo = repo

    async def get_all(self) -> list[Task]:
        return await asyncio.to_thread(self._repo.get_all)

    async def get_by_id(self, task_id: str) -> Task | None:
        return await asyncio.to_thread(self._repo.get_by_id, task_id)

    async def get_by_filter(
        self,
        *,
        user_id: Any = None,
        modified_since: int | None = None,
    ) -> list[Task]:
        return await asyncio.to_thread(
            self._repo.get_by_filter, user_id=user_id, modified_since=modified_since
        )

    async def upsert(self, task: Task | Mapping[str, Any]) -> Task | Mapping[str, Any]:
        return await asyncio.to_thread(self._repo.upsert, task)

    async def delete(self, task_id: str) -> bool:
        return await asyncio.to_thread(self._repo.delete, task_id)

    async def get_high_water_mark(self) -> int:
        return await asyncio.to_thread(self._repo.get_high_water_mark)
