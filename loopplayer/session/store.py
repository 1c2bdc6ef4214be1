"""Asynchronous key-value stores backing session persistence.

The persistence coordinator only needs ``get``/``put``. ``JsonFileStore``
keeps one pretty-printed JSON file per key in the per-user data directory;
``MemoryStore`` is for tests and ``--no-persist`` runs.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from ..errors import PersistenceReadFailed, PersistenceWriteFailed, StorageUnavailable
from ..platform_paths import ensure_dir, get_store_dir

logger = logging.getLogger(__name__)

SESSION_KEY = "session"

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


def _check_key(key: str) -> str:
    if not isinstance(key, str) or not _KEY_PATTERN.match(key) or key in (".", ".."):
        raise ValueError(f"Invalid store key: {key!r}")
    return key


class KeyValueStore(ABC):
    """Async get/put contract. Values are JSON-compatible objects."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None when the key was never written."""

    @abstractmethod
    async def put(self, key: str, value: Any) -> None:
        """Store *value* under *key*, replacing any previous value."""


class MemoryStore(KeyValueStore):
    """In-process store; values are round-tripped through JSON like on disk."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self.put_count = 0

    async def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(_check_key(key))
        if raw is None:
            return None
        return json.loads(raw)

    async def put(self, key: str, value: Any) -> None:
        try:
            raw = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise PersistenceWriteFailed(f"Value for {key!r} is not serializable: {exc}") from exc
        self._data[_check_key(key)] = raw
        self.put_count += 1


class JsonFileStore(KeyValueStore):
    """One ``<key>.json`` file per key, replaced atomically on every put."""

    def __init__(self, directory: Optional[Path] = None) -> None:
        self.directory = Path(directory) if directory is not None else get_store_dir()
        try:
            ensure_dir(self.directory)
        except OSError as exc:
            raise StorageUnavailable(f"Cannot use store directory {self.directory}: {exc}") from exc
        logger.info("JsonFileStore initialized: %s", self.directory)

    def path_for(self, key: str) -> Path:
        return self.directory / f"{_check_key(key)}.json"

    async def get(self, key: str) -> Optional[Any]:
        return await asyncio.to_thread(self._read, self.path_for(key))

    async def put(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self._write, self.path_for(key), value)

    @staticmethod
    def _read(path: Path) -> Optional[Any]:
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as exc:
            raise PersistenceReadFailed(f"Invalid JSON in {path.name}: {exc}") from exc
        except OSError as exc:
            raise PersistenceReadFailed(f"Cannot read {path}: {exc}") from exc

    @staticmethod
    def _write(path: Path, value: Any) -> None:
        try:
            payload = json.dumps(value, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise PersistenceWriteFailed(f"Value for {path.stem!r} is not serializable: {exc}") from exc
        tmp_name: Optional[str] = None
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}.", suffix=".tmp", dir=path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as exc:
            raise PersistenceWriteFailed(f"Cannot write {path}: {exc}") from exc
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
        logger.debug("Wrote %s (%d bytes)", path.name, len(payload))
