from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """A named record could not be read or written."""


class RecordStorage:
    """Interface for durable named-record storage."""

    async def read(self, name: str) -> dict[str, Any] | None:
        # Return the stored record, or None when it was never written
        raise NotImplementedError

    async def write(self, name: str, data: dict[str, Any]) -> None:
        raise NotImplementedError


class InMemoryStorage(RecordStorage):
    """Process-local storage, used in tests and when no data dir is wanted."""

    def __init__(self, records: dict[str, dict[str, Any]] | None = None) -> None:
        self._records: dict[str, dict[str, Any]] = copy.deepcopy(records or {})

    async def read(self, name: str) -> dict[str, Any] | None:
        record = self._records.get(name)
        return copy.deepcopy(record) if record is not None else None

    async def write(self, name: str, data: dict[str, Any]) -> None:
        self._records[name] = copy.deepcopy(data)


class JsonFileStorage(RecordStorage):
    """One JSON file per record under ``directory``.

    Writes go to a temporary sibling first and are renamed into place, so a
    reader never sees a half-written file.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def _path(self, name: str) -> Path:
        return self.directory / f"{name}.json"

    def _read_sync(self, name: str) -> dict[str, Any] | None:
        path = self._path(name)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"failed to read record '{name}' from {path}") from exc
        if not isinstance(data, dict):
            raise PersistenceError(f"record '{name}' in {path} is not a JSON object")
        return data

    def _write_sync(self, name: str, data: dict[str, Any]) -> None:
        path = self._path(name)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(f"failed to write record '{name}' to {path}") from exc

    async def read(self, name: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._read_sync, name)

    async def write(self, name: str, data: dict[str, Any]) -> None:
        await asyncio.to_thread(self._write_sync, name, data)
