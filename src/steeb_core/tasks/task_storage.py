# src/steeb_core/tasks/task_storage.py

from __future__ import annotations

import contextlib
import copy
import errno
import json
import logging
import os
from pathlib import Path
from typing import Any

from ..errors import StorageUnavailable

logger = logging.getLogger(__name__)


class JsonFileTaskStorage:
    """
    Whole-collection JSON persistence for task records.

    load():
    - missing file -> []
    - unreadable / corrupt file -> StorageUnavailable

    save():
    - atomic replace (tmp file + os.replace)
    - read-only filesystem -> warning, returns False (callers keep their in-memory state)
    - any other OS error -> StorageUnavailable
    """

    def __init__(self, path: str | Path = "tasks.json") -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[dict[str, Any]]:
        if not self._path.exists():
            return []
        try:
            data = json.loads(self._path.read_text("utf-8") or "[]")
        except (OSError, ValueError) as e:
            raise StorageUnavailable(f"Failed to read tasks from {self._path}: {e}") from e
        if not isinstance(data, list):
            raise StorageUnavailable(f"Unexpected task file shape in {self._path}: {type(data).__name__}")
        return [r for r in data if isinstance(r, dict)]

    def save(self, records: list[dict[str, Any]]) -> bool:
        tmp = self._path.with_suffix(".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(records, ensure_ascii=False, indent=2), "utf-8")
            os.replace(tmp, self._path)
        except OSError as e:
            with contextlib.suppress(OSError):
                tmp.unlink()
            if e.errno == errno.EROFS:
                logger.warning("Read-only file system detected; skipping task write to %s", self._path)
                return False
            raise StorageUnavailable(f"Failed to write tasks to {self._path}: {e}") from e
        logger.debug("Saved %d task records to %s", len(records), self._path)
        return True


class InMemoryTaskStorage:
    """Process-local storage; nothing survives a restart."""

    def __init__(self, records: list[dict[str, Any]] | None = None) -> None:
        self._records: list[dict[str, Any]] = copy.deepcopy(records or [])
        self.saves = 0

    def load(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self._records)

    def save(self, records: list[dict[str, Any]]) -> bool:
        self._records = copy.deepcopy(records)
        self.saves += 1
        return True
