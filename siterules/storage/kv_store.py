"""
Key-value stores for state that outlives a process (usage history).

Stores hold JSON-serializable values. Every failure is reported as
PersistenceError so callers can degrade to in-memory state.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol

from siterules.errors import PersistenceError
from siterules.utils.logging import get_logger

logger = get_logger(__name__)


class KeyValueStore(Protocol):
    """Minimal persistent key-value store interface."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, *keys: str) -> None: ...


class MemoryStore:
    """In-process store. Values are deep-copied through JSON on write."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Any | None:
        raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        try:
            self._data[key] = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise PersistenceError("set", key, str(e)) from e

    def delete(self, *keys: str) -> None:
        for key in keys:
            self._data.pop(key, None)


class JsonFileStore:
    """Store backed by a single JSON document on disk.

    Writes go to a temporary file in the same directory and replace the
    document atomically, so a crash never leaves a half-written file.
    """

    def __init__(self, path: Path | str):
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError("get", None, f"cannot read {self._path}: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError("get", None, f"{self._path} does not hold a JSON object")
        return data

    def _write(self, data: dict[str, Any], key: str | None) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError("set", key, f"cannot write {self._path}: {e}") from e

    def get(self, key: str) -> Any | None:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data, key)
            logger.debug("Store updated", path=str(self._path), key=key)

    def delete(self, *keys: str) -> None:
        with self._lock:
            data = self._read()
            removed = [k for k in keys if data.pop(k, None) is not None]
            if removed:
                self._write(data, removed[0])
