# src/task_sync/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the task subsystem.

The repository depends on Protocols instead of concrete storage.
This keeps the JSON file swappable for an in-memory double in tests.
"""

from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any, Mapping, Protocol

if TYPE_CHECKING:
    from ..tasks.task_models import Task, TaskCollection


class TaskStorage(Protocol):
    """Whole-collection snapshot storage (atomic load/save + single-writer lock)."""

    def load(self) -> TaskCollection: ...
    def save(self, collection: TaskCollection) -> None: ...
    def write_lock(self) -> AbstractContextManager[None]: ...


class TaskRepo(Protocol):
    # Reads
    def get_all(self) -> list[Task]: ...
    def get_by_id(self, task_id: str) -> Task | None: ...
    def get_by_filter(
            self,
            *,
            user_id: Any = None,
            modified_since: int | None = None,
    ) -> list[Task]: ...
    def get_high_water_mark(self) -> int: ...

    # Writes
    def upsert(self, task: Task | Mapping[str, Any]) -> Task | Mapping[str, Any]: ...
    def delete(self, task_id: str) -> bool: ...
