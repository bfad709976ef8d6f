# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from task_sync.core.state import AppState
from task_sync.tasks.task_repository import TaskRepository
from task_sync.tasks.task_store import InMemoryTaskStorage, JsonTaskStorage

from .fakes import FakeClock


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the CLI commands.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated from the environment.
    """
    return SimpleNamespace(
        app_name="task-sync-test",
        log_level="DEBUG",
        log_to_file=False,
        data_dir=tmp_path,
        db_path=tmp_path / "data" / "db.json",
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(now_ms=50_000)


@pytest.fixture()
def memory_storage() -> InMemoryTaskStorage:
    return InMemoryTaskStorage()


@pytest.fixture()
def repo(memory_storage: InMemoryTaskStorage, clock: FakeClock) -> TaskRepository:
    return TaskRepository(memory_storage, clock=clock)


@pytest.fixture()
def file_repo(settings: SimpleNamespace, clock: FakeClock) -> TaskRepository:
    """
    Repository over the real JSON file, because its atomic write path is part of
    what we want to test.
    """
    return TaskRepository(JsonTaskStorage(settings.db_path), clock=clock)


@pytest.fixture()
def state(settings: SimpleNamespace, file_repo: TaskRepository) -> AppState:
    return AppState(settings=settings, task_repo=file_repo)
