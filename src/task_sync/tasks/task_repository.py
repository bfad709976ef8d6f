# src/task_sync/tasks/task_repository.py

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

from ..core.ports import TaskStorage
from .task_models import Task

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def should_replace(existing: Task, incoming: Task) -> bool:
    """
    Last-write-wins rule.

    incoming replaces existing iff
      incoming.version > existing.version, or
      versions are equal and incoming.updated_at > existing.updated_at.

    A missing/malformed version on either side never wins: the existing record is kept.
    Same for a missing timestamp when the tie-break is needed.
    """
    new_v, old_v = incoming.version_key, existing.version_key
    if new_v is None or old_v is None:
        return False
    if new_v != old_v:
        return new_v > old_v
    new_ts, old_ts = incoming.updated_at_ms, existing.updated_at_ms
    if new_ts is None or old_ts is None:
        return False
    return new_ts > old_ts


class TaskRepository:
    """
    Record-level operations on top of a whole-collection TaskStorage.

    Every call loads the full snapshot. Mutating calls run load -> decide -> save
    under storage.write_lock(), so two concurrent upserts of the same id are
    resolved by the LWW rule rather than by whichever save lands last.
    """

    def __init__(self, storage: TaskStorage, *, clock: Callable[[], int] = _now_ms) -> None:
        self._storage = storage
        self._clock = clock

    @property
    def storage(self) -> TaskStorage:
        return self._storage

    # ---- reads ----

    def get_all(self) -> list[Task]:
        return self._storage.load().tasks

    def count(self) -> int:
        return len(self.get_all())

    def get_by_id(self, task_id: str) -> Task | None:
        for task in self.get_all():
            if task.id == task_id:
                return task
        return None

    def get_by_filter(
        self,
        *,
        user_id: Any = None,
        modified_since: int | None = None,
    ) -> list[Task]:
        """
        Tasks matching every given constraint:
        - user_id: exact owner match (None or "" -> no owner constraint),
        - modified_since: updated_at strictly greater (None -> no time constraint).
        """
        use_since = isinstance(modified_since, int) and not isinstance(modified_since, bool)

        out: list[Task] = []
        for task in self.get_all():
            if user_id and task.user_id != user_id:
                continue
            ts = task.updated_at_ms
            if use_since and (ts is None or ts <= modified_since):
                continue
            out.append(task)
        return out

    def get_high_water_mark(self) -> int:
        return self._storage.load().last_task_update

    # ---- writes ----

    def upsert(self, task: Task | Mapping[str, Any]) -> Task | Mapping[str, Any]:
        """
        Insert or LWW-merge `task`, then persist the whole collection.

        Returns the argument as given, whether or not it was stored.
        Re-fetch with get_by_id() for the authoritative record.
        """
        incoming = task if isinstance(task, Task) else Task.from_dict(task)

        with self._storage.write_lock():
            data = self._storage.load()
            idx = data.index_of(incoming.id)

            if idx == -1:
                data.tasks.append(incoming)
                logger.debug("Task inserted id=%s version=%s", incoming.id, incoming.version)
            else:
                existing = data.tasks[idx]
                if should_replace(existing, incoming):
                    data.tasks[idx] = incoming
                    logger.debug(
                        "Task replaced id=%s version %s->%s updatedAt %s->%s",
                        incoming.id,
                        existing.version,
                        incoming.version,
                        existing.updated_at,
                        incoming.updated_at,
                    )
                else:
                    logger.info(
                        "Stale write dropped id=%s incoming=(%s, %s) existing=(%s, %s)",
                        incoming.id,
                        incoming.version,
                        incoming.updated_at,
                        existing.version,
                        existing.updated_at,
                    )

            # Counts attempts, not acceptances: a rejected write can still raise the mark.
            seen = incoming.updated_at_ms
            if seen is None:
                seen = self._clock()
            data.last_task_update = max(data.last_task_update, seen)

            self._storage.save(data)

        return task

    def delete(self, task_id: str) -> bool:
        """Remove the task with `task_id`. Returns False (and writes nothing) on a miss."""
        with self._storage.write_lock():
            data = self._storage.load()
            idx = data.index_of(task_id)
            if idx == -1:
                return False
            del data.tasks[idx]
            self._storage.save(data)

        logger.debug("Task deleted id=%s", task_id)
        return True
