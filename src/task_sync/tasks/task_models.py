# src/task_sync/tasks/task_models.py

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .errors import MalformedStoreError

# Persisted (camelCase) keys the store understands. Everything else is payload.
_ID = "id"
_USER_ID = "userId"
_VERSION = "version"
_UPDATED_AT = "updatedAt"
_KNOWN_KEYS = frozenset({_ID, _USER_ID, _VERSION, _UPDATED_AT})

_TASKS = "tasks"
_LAST_TASK_UPDATE = "lastTaskUpdate"


def as_counter(raw: Any) -> int | None:
    """
    Normalize a version/timestamp value for comparison.

    Non-negative ints count, and so do whole-number floats (1000.0 -> 1000).
    bool is rejected even though it is an int subclass. Anything else reads as absent.
    """
    if isinstance(raw, bool):
        return None
    if isinstance(raw, float):
        if not raw.is_integer():
            return None
        raw = int(raw)
    if not isinstance(raw, int) or raw < 0:
        return None
    return raw


@dataclass(slots=True)
class Task:
    """
    One stored task.

    user_id, version and updated_at hold whatever the writer sent, so a record is
    written back exactly as received. Comparisons go through version_key and
    updated_at_ms, which read malformed values as absent.
    """

    id: str
    user_id: Any = None
    version: Any = None
    updated_at: Any = None  # epoch milliseconds, set by the writer

    # Opaque fields (title, done, ...). Never inspected by the store.
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def version_key(self) -> int | None:
        return as_counter(self.version)

    @property
    def updated_at_ms(self) -> int | None:
        return as_counter(self.updated_at)

    @classmethod
    def from_dict(cls, raw: Any) -> Task:
        if not isinstance(raw, Mapping):
            raise MalformedStoreError(f"task must be an object, got {type(raw).__name__}")
        task_id = raw.get(_ID)
        if not isinstance(task_id, str) or not task_id:
            raise MalformedStoreError("task is missing a string 'id'")

        # An explicit null stays in payload so to_dict writes it back.
        payload = {
            k: copy.deepcopy(v)
            for k, v in raw.items()
            if k != _ID and (k not in _KNOWN_KEYS or v is None)
        }
        return cls(
            id=task_id,
            user_id=copy.deepcopy(raw.get(_USER_ID)),
            version=copy.deepcopy(raw.get(_VERSION)),
            updated_at=copy.deepcopy(raw.get(_UPDATED_AT)),
            payload=payload,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {_ID: self.id}
        if self.user_id is not None:
            out[_USER_ID] = self.user_id
        if self.version is not None:
            out[_VERSION] = self.version
        if self.updated_at is not None:
            out[_UPDATED_AT] = self.updated_at
        for k, v in self.payload.items():
            out.setdefault(k, copy.deepcopy(v))
        return out


@dataclass(slots=True)
class TaskCollection:
    """
    The whole persisted aggregate.

    Invariants maintained by TaskRepository:
    - at most one task per id,
    - last_task_update never decreases (not even on delete).
    """

    tasks: list[Task] = field(default_factory=list)
    last_task_update: int = 0

    @classmethod
    def empty(cls) -> TaskCollection:
        return cls(tasks=[], last_task_update=0)

    @classmethod
    def from_dict(cls, raw: Any) -> TaskCollection:
        if not isinstance(raw, Mapping):
            raise MalformedStoreError(f"snapshot must be an object, got {type(raw).__name__}")
        tasks_raw = raw.get(_TASKS)
        if not isinstance(tasks_raw, list):
            raise MalformedStoreError("snapshot is missing a 'tasks' list")

        last_raw = raw.get(_LAST_TASK_UPDATE)
        if last_raw is None:
            last = 0
        else:
            last = as_counter(last_raw)
            if last is None:
                raise MalformedStoreError(f"'lastTaskUpdate' must be a non-negative integer: {last_raw!r}")

        tasks = [Task.from_dict(t) for t in tasks_raw]
        seen: set[str] = set()
        for task in tasks:
            if task.id in seen:
                raise MalformedStoreError(f"snapshot has more than one task with id {task.id!r}")
            seen.add(task.id)

        return cls(tasks=tasks, last_task_update=last)

    def to_dict(self) -> dict[str, Any]:
        return {
            _TASKS: [t.to_dict() for t in self.tasks],
            _LAST_TASK_UPDATE: self.last_task_update,
        }

    def copy(self) -> TaskCollection:
        return copy.deepcopy(self)

    def index_of(self, task_id: str) -> int:
        for i, task in enumerate(self.tasks):
            if task.id == task_id:
                return i
        return -1
