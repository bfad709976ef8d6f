# src/task_sync/tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import os
import sys
import tempfile
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from .errors import MalformedStoreError, StoreIOError
from .task_models import TaskCollection

if sys.platform != "win32":
    import fcntl

# flock is POSIX-only; on Windows write_lock() covers threads of one process only.
FILE_LOCKING = sys.platform != "win32"

logger = logging.getLogger(__name__)

_PREVIEW_CHARS = 500


def _preview(text: str) -> str:
    return text[:_PREVIEW_CHARS] + ("..." if len(text) > _PREVIEW_CHARS else "")


class JsonTaskStorage:
    """
    JSON snapshot storage for the whole task collection.

    Layout: one file with exactly two top-level keys, "tasks" and "lastTaskUpdate".

    Write path:
    - mkdir parents,
    - write a unique temp file next to the target, fsync,
    - os.replace over the target.
    A reader therefore sees either the old or the new snapshot, never a mix.

    Locking:
    - write_lock() serializes read-modify-write cycles across threads (RLock)
      and, on POSIX, across processes (flock on a sidecar "<name>.lock" file).
    """

    def __init__(self, path: str | Path = "db.json") -> None:
        self._path = Path(path)
        self._lock_path = self._path.with_name(self._path.name + ".lock")
        self._thread_lock = threading.RLock()
        self._depth = 0
        self._lock_file: Any = None
        logger.info("JsonTaskStorage ready path=%s", self._path.resolve())

    @property
    def path(self) -> Path:
        return self._path

    # ---- locking ----

    @contextlib.contextmanager
    def write_lock(self) -> Iterator[None]:
        with self._thread_lock:
            # Re-entrant: only the outermost holder touches the file lock.
            if self._depth == 0:
                self._acquire_file_lock()
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
                if self._depth == 0:
                    self._release_file_lock()

    def _acquire_file_lock(self) -> None:
        if not FILE_LOCKING:
            return
        try:
            self._lock_path.parent.mkdir(parents=True, exist_ok=True)
            f = self._lock_path.open("a+")
        except OSError as exc:
            logger.error("Cannot open lock file %s: %s", self._lock_path, exc)
            raise StoreIOError(f"cannot open lock file: {exc}", path=self._lock_path) from exc
        try:
            fcntl.flock(f, fcntl.LOCK_EX)
        except OSError as exc:
            f.close()
            raise StoreIOError(f"cannot lock {self._lock_path}: {exc}", path=self._lock_path) from exc
        self._lock_file = f

    def _release_file_lock(self) -> None:
        f, self._lock_file = self._lock_file, None
        if f is None:
            return
        try:
            fcntl.flock(f, fcntl.LOCK_UN)
        finally:
            f.close()

    # ---- snapshot I/O ----

    def load(self) -> TaskCollection:
        """
        Read the persisted collection.

        Missing file -> the default collection is written in place and returned.
        Any other read error, or content that is not a valid collection -> StoreIOError.
        """
        try:
            raw = self._path.read_text("utf-8")
        except FileNotFoundError:
            return self._create_default()
        except OSError as exc:
            logger.error("Unexpected error reading %s: %s", self._path, exc)
            raise StoreIOError(f"cannot read task DB: {exc}", path=self._path) from exc

        logger.debug("Read %s (%d bytes): %s", self._path, len(raw), _preview(raw))

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.error("Task DB %s is not valid JSON: %s", self._path, exc)
            raise MalformedStoreError(f"task DB is not valid JSON: {exc}", path=self._path) from exc

        try:
            return TaskCollection.from_dict(data)
        except MalformedStoreError as exc:
            logger.error("Task DB %s has an unexpected shape: %s", self._path, exc)
            exc.path = self._path
            raise

    def _create_default(self) -> TaskCollection:
        with self.write_lock():
            # Another writer may have created it while we waited for the lock.
            if self._path.exists():
                return self.load()
            logger.warning("Task DB not found, creating a new one: %s", self._path)
            default = TaskCollection.empty()
            self.save(default)
            return default

    def save(self, collection: TaskCollection) -> None:
        """Replace the persisted snapshot with `collection` in one atomic rename."""
        payload = json.dumps(collection.to_dict(), ensure_ascii=False, indent=2)

        tmp_name: str | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self._path)
            tmp_name = None
        except OSError as exc:
            logger.error("Failed to write task DB %s: %s", self._path, exc)
            raise StoreIOError(f"cannot write task DB: {exc}", path=self._path) from exc
        finally:
            if tmp_name is not None:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)

        logger.debug(
            "Wrote %s tasks=%d lastTaskUpdate=%d: %s",
            self._path,
            len(collection.tasks),
            collection.last_task_update,
            _preview(payload),
        )


class InMemoryTaskStorage:
    """
    Same contract as JsonTaskStorage, kept in process memory.

    Every load/save copies, so callers never alias the stored snapshot.
    """

    def __init__(self, initial: TaskCollection | None = None) -> None:
        self._data: TaskCollection | None = initial.copy() if initial is not None else None
        self._lock = threading.RLock()
        self.saves = 0

    @contextlib.contextmanager
    def write_lock(self) -> Iterator[None]:
        with self._lock:
            yield

    def load(self) -> TaskCollection:
        if self._data is None:
            self.save(TaskCollection.empty())
        assert self._data is not None
        return self._data.copy()

    def save(self, collection: TaskCollection) -> None:
        self._data = collection.copy()
        self.saves += 1
