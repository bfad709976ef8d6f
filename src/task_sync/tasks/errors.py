# src/task_sync/tasks/errors.py

from __future__ import annotations


class TaskStoreError(Exception):
    """Base class for task store failures surfaced to callers."""


class StoreIOError(TaskStoreError):
    """Reading or writing the persisted snapshot failed (anything but "not found")."""

    def __init__(self, message: str, *, path: object | None = None) -> None:
        super().__init__(message)
        self.path = path


class MalformedStoreError(StoreIOError):
    """The persisted snapshot exists but is not a valid task collection."""
