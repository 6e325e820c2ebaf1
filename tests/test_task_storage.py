# tests/test_task_storage.py

from __future__ import annotations

import errno
import json
from pathlib import Path

import pytest

from steeb_core.errors import StorageUnavailable
from steeb_core.tasks.task_storage import InMemoryTaskStorage, JsonFileTaskStorage


def test_missing_file_loads_empty(tmp_path: Path) -> None:
    assert JsonFileTaskStorage(tmp_path / "nope.json").load() == []


def test_save_then_load(tmp_path: Path) -> None:
    storage = JsonFileTaskStorage(tmp_path / "nested" / "tasks.json")
    assert storage.save([{"task_id": "a", "title": "Café"}]) is True
    assert storage.load() == [{"task_id": "a", "title": "Café"}]
    assert not (tmp_path / "nested" / "tasks.tmp").exists()


def test_corrupt_file_raises_storage_unavailable(tmp_path: Path) -> None:
    path = tmp_path / "tasks.json"
    path.write_text("{not json", "utf-8")
    with pytest.raises(StorageUnavailable):
        JsonFileTaskStorage(path).load()

    path.write_text(json.dumps({"task_id": "a"}), "utf-8")
    with pytest.raises(StorageUnavailable):
        JsonFileTaskStorage(path).load()


def test_non_dict_records_are_skipped(tmp_path: Path) -> None:
    path = tmp_path / "tasks.json"
    path.write_text(json.dumps([{"task_id": "a"}, "junk", 3]), "utf-8")
    assert JsonFileTaskStorage(path).load() == [{"task_id": "a"}]


def test_read_only_filesystem_is_not_fatal(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    storage = JsonFileTaskStorage(tmp_path / "tasks.json")

    def _erofs(*_args, **_kwargs):
        raise OSError(errno.EROFS, "Read-only file system")

    monkeypatch.setattr("steeb_core.tasks.task_storage.os.replace", _erofs)
    assert storage.save([{"task_id": "a"}]) is False
    assert not (tmp_path / "tasks.tmp").exists()


def test_other_write_errors_raise(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    storage = JsonFileTaskStorage(tmp_path / "tasks.json")

    def _full(*_args, **_kwargs):
        raise OSError(errno.ENOSPC, "No space left on device")

    monkeypatch.setattr("steeb_core.tasks.task_storage.os.replace", _full)
    with pytest.raises(StorageUnavailable):
        storage.save([{"task_id": "a"}])


def test_in_memory_storage_copies_records() -> None:
    records = [{"task_id": "a", "labels": ["x"]}]
    storage = InMemoryTaskStorage(records)
    records[0]["labels"].append("y")

    loaded = storage.load()
    assert loaded == [{"task_id": "a", "labels": ["x"]}]
    loaded[0]["labels"].append("z")
    assert storage.load() == [{"task_id": "a", "labels": ["x"]}]

    assert storage.save([]) is True
    assert storage.saves == 1
    assert storage.load() == []
