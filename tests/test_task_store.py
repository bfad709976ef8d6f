# tests/test_task_store.py

from __future__ import annotations

import json
import os
import threading
from pathlib import Path

import pytest

from task_sync.tasks import task_store
from task_sync.tasks.errors import MalformedStoreError, StoreIOError
from task_sync.tasks.task_models import Task, TaskCollection
from task_sync.tasks.task_repository import TaskRepository
from task_sync.tasks.task_store import InMemoryTaskStorage, JsonTaskStorage


def _collection() -> TaskCollection:
    return TaskCollection(
        tasks=[
            Task(id="t1", user_id="u1", version=1, updated_at=1000, payload={"title": "a"}),
            Task(id="t2", user_id="u2", version=3, updated_at=2000, payload={"done": True}),
        ],
        last_task_update=2000,
    )


def test_load_creates_default_file_when_missing(tmp_path: Path) -> None:
    db = tmp_path / "nested" / "dir" / "db.json"
    storage = JsonTaskStorage(db)

    loaded = storage.load()

    assert loaded.tasks == []
    assert loaded.last_task_update == 0
    assert json.loads(db.read_text("utf-8")) == {"tasks": [], "lastTaskUpdate": 0}


def test_save_then_load_preserves_snapshot(tmp_path: Path) -> None:
    storage = JsonTaskStorage(tmp_path / "db.json")
    storage.save(_collection())

    on_disk = json.loads((tmp_path / "db.json").read_text("utf-8"))
    assert set(on_disk) == {"tasks", "lastTaskUpdate"}
    assert on_disk["tasks"][0] == {
        "id": "t1",
        "userId": "u1",
        "version": 1,
        "updatedAt": 1000,
        "title": "a",
    }
    assert storage.load() == _collection()


def test_load_reads_snapshot_written_by_another_writer(tmp_path: Path) -> None:
    db = tmp_path / "db.json"
    db.write_text(
        json.dumps(
            {
                "tasks": [{"id": "x", "userId": "u9", "version": 2, "updatedAt": 5, "tags": ["a"]}],
                "lastTaskUpdate": 42,
            }
        ),
        "utf-8",
    )

    loaded = JsonTaskStorage(db).load()
    assert loaded.last_task_update == 42
    assert loaded.tasks[0].payload == {"tags": ["a"]}


def test_missing_high_water_mark_reads_as_zero(tmp_path: Path) -> None:
    db = tmp_path / "db.json"
    db.write_text('{"tasks": []}', "utf-8")
    assert JsonTaskStorage(db).load().last_task_update == 0


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        "[]",
        '{"lastTaskUpdate": 3}',
        '{"tasks": {}, "lastTaskUpdate": 3}',
        '{"tasks": [{"title": "no id"}], "lastTaskUpdate": 3}',
        '{"tasks": [], "lastTaskUpdate": "soon"}',
        '{"tasks": [{"id": "t1"}, {"id": "t1"}], "lastTaskUpdate": 3}',
    ],
)
def test_malformed_content_is_surfaced_not_reset(tmp_path: Path, content: str) -> None:
    db = tmp_path / "db.json"
    db.write_text(content, "utf-8")

    with pytest.raises(MalformedStoreError) as excinfo:
        JsonTaskStorage(db).load()

    assert excinfo.value.path == db
    assert db.read_text("utf-8") == content


def test_unexpected_read_error_is_io_failure(tmp_path: Path) -> None:
    db = tmp_path / "db.json"
    db.mkdir()

    with pytest.raises(StoreIOError) as excinfo:
        JsonTaskStorage(db).load()
    assert not isinstance(excinfo.value, MalformedStoreError)


def test_failed_write_keeps_previous_snapshot(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    db = tmp_path / "db.json"
    storage = JsonTaskStorage(db)
    storage.save(_collection())
    before = db.read_text("utf-8")

    def broken_replace(src, dst):
        raise OSError("simulated crash before rename")

    monkeypatch.setattr(os, "replace", broken_replace)

    with pytest.raises(StoreIOError):
        storage.save(TaskCollection.empty())

    assert db.read_text("utf-8") == before
    assert sorted(p.name for p in tmp_path.iterdir()) == ["db.json"]


def test_write_into_unusable_directory_is_io_failure(tmp_path: Path) -> None:
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x", "utf-8")

    with pytest.raises(StoreIOError):
        JsonTaskStorage(blocker / "db.json").save(TaskCollection.empty())


def test_write_lock_is_reentrant(tmp_path: Path) -> None:
    storage = JsonTaskStorage(tmp_path / "db.json")
    with storage.write_lock():
        with storage.write_lock():
            storage.save(_collection())
    assert (tmp_path / "db.json.lock").exists()
    assert storage.load() == _collection()


def test_concurrent_upserts_resolve_by_version_not_write_order(tmp_path: Path) -> None:
    repo = TaskRepository(JsonTaskStorage(tmp_path / "db.json"))
    start = threading.Barrier(4)

    def writer(versions: range) -> None:
        start.wait()
        for v in versions:
            repo.upsert(Task(id="shared", version=v, updated_at=v, payload={"v": v}))

    threads = [
        threading.Thread(target=writer, args=(range(k, 40, 4),)) for k in range(4)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    stored = repo.get_by_id("shared")
    assert stored is not None
    assert stored.version == 39
    assert repo.get_high_water_mark() == 39
    assert repo.count() == 1


def test_in_memory_storage_does_not_alias_callers() -> None:
    storage = InMemoryTaskStorage(_collection())

    loaded = storage.load()
    loaded.tasks.clear()
    loaded.last_task_update = 0

    again = storage.load()
    assert len(again.tasks) == 2
    assert again.last_task_update == 2000


def test_write_lock_without_file_locking_still_serializes(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(task_store, "FILE_LOCKING", False)
    storage = JsonTaskStorage(tmp_path / "db.json")

    with storage.write_lock():
        with storage.write_lock():
            storage.save(_collection())

    assert not (tmp_path / "db.json.lock").exists()
    assert storage.load() == _collection()


@pytest.mark.parametrize(
    "record",
    [
        {"id": "t1", "userId": "u1", "version": 1, "updatedAt": 1000, "title": "a"},
        {"id": "t1", "userId": 42, "version": 1, "updatedAt": 1000},
        {"id": "t1", "userId": {"org": "x"}, "version": 2, "updatedAt": 5, "tags": ["a", "b"]},
        {"id": "t1", "version": "7", "updatedAt": 1000},
        {"id": "t1", "version": 1, "updatedAt": 1000.0},
        {"id": "t1", "version": -1, "updatedAt": -5, "done": False},
        {"id": "t1", "userId": None, "version": None, "updatedAt": None},
        {"id": "t1", "nested": {"a": [1, {"b": None}]}},
    ],
)
def test_upserted_record_survives_reload_unchanged(tmp_path: Path, record: dict) -> None:
    db = tmp_path / "db.json"
    TaskRepository(JsonTaskStorage(db)).upsert(dict(record))

    stored = TaskRepository(JsonTaskStorage(db)).get_by_id("t1")
    assert stored is not None
    assert stored.to_dict() == record
    assert json.loads(db.read_text("utf-8"))["tasks"] == [record]
