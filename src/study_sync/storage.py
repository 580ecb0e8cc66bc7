"""Local persistence port used by the sync engine.

The engine only ever needs three synchronous operations on string
values: ``get``, ``set`` and ``remove``.  ``MemoryStore`` backs tests;
``JsonFileStore`` keeps every key in a single JSON file and writes it
atomically so readers never see partial data.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

CREDENTIAL_KEY = "credential"
DOCUMENT_ID_KEY = "document_id"
RATE_LIMIT_KEY = "rate_limited_until"
PROGRESS_KEY = "progress"


class KeyValueStore(Protocol):
    """Narrow persistence interface consumed by the sync engine."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStore:
    """In-memory ``KeyValueStore``."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileStore:
    """``KeyValueStore`` persisted as a flat JSON object on disk.

    The whole file is rewritten on every mutation.  Writes go to a
    temporary file in the same directory followed by ``os.replace()``.
    Mutations are serialized with a lock; the rate-limit tracker writes
    from the worker threads that run HTTP calls.

    Args:
        path: Location of the JSON file.  Parent directories are created
            on first write.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path).expanduser()
        self._lock = threading.Lock()
        self._data: dict[str, str] = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value
            self._save()

    def remove(self, key: str) -> None:
        with self._lock:
            if key in self._data:
                del self._data[key]
                self._save()

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        with open(self._path, encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError(
                f"State file {self._path} must contain a JSON object"
            )
        return {str(k): str(v) for k, v in data.items()}

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._path.parent), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(self._data, fh, indent=2, sort_keys=True)
            os.replace(tmp_path, self._path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        logger.debug("State written to %s", self._path)
