"""
Keyed record stores with pluggable backends.

Values are JSON-compatible objects. Writes are last-write-wins per key; no
transactional guarantees are offered across keys.
"""

import asyncio
import json
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from ..config.settings import StorageConfig
from ..errors import StoreError
from ..observability.logging import get_logger

log = get_logger(__name__)


class KeyValueStore(ABC):
    """Abstract async interface for a durable keyed record store."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the stored value, or None if the key is absent."""
        ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove a key; returns whether it existed."""
        ...

    @abstractmethod
    async def keys(self, prefix: str = "") -> list[str]:
        ...

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None


class InMemoryStore(KeyValueStore):
    """Process-local store; values are copied through JSON like a real backend."""

    def __init__(self):
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> Any | None:
        raw = self._data.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise StoreError(f"Corrupt record under key {key!r}") from e

    async def set(self, key: str, value: Any) -> None:
        try:
            self._data[key] = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise StoreError(f"Value for key {key!r} is not JSON serializable") from e

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))

    def put_raw(self, key: str, raw: str) -> None:
        """Store raw text as-is, bypassing encoding."""
        self._data[key] = raw


_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class LocalStore(KeyValueStore):
    """One JSON file per key under a root directory."""

    suffix = ".json"

    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        log.info("Local record store initialized", root=str(self.root))

    def _path(self, key: str) -> Path:
        if not key or _UNSAFE_CHARS.search(key) or key.startswith("."):
            raise StoreError(f"Invalid store key: {key!r}")
        return self.root / f"{key}{self.suffix}"

    def _read(self, path: Path) -> Any | None:
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StoreError(f"Failed to read {path.name}: {e}") from e
        try:
            return json.loads(text)
        except ValueError as e:
            raise StoreError(f"Corrupt record in {path.name}") from e

    def _write(self, path: Path, text: str) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=".tmp-", suffix=self.suffix)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_name, path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise StoreError(f"Failed to write {path.name}: {e}") from e

    def _remove(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StoreError(f"Failed to delete {path.name}: {e}") from e
        return True

    def _list(self, prefix: str) -> list[str]:
        return sorted(
            p.name[: -len(self.suffix)]
            for p in self.root.glob(f"*{self.suffix}")
            if not p.name.startswith(".") and p.name.startswith(prefix)
        )

    async def get(self, key: str) -> Any | None:
        return await asyncio.to_thread(self._read, self._path(key))

    async def set(self, key: str, value: Any) -> None:
        try:
            text = json.dumps(value, indent=2)
        except (TypeError, ValueError) as e:
            raise StoreError(f"Value for key {key!r} is not JSON serializable") from e
        await asyncio.to_thread(self._write, self._path(key), text)
        log.debug("Saved record", key=key, size=len(text))

    async def delete(self, key: str) -> bool:
        removed = await asyncio.to_thread(self._remove, self._path(key))
        if removed:
            log.debug("Deleted record", key=key)
        return removed

    async def keys(self, prefix: str = "") -> list[str]:
        return await asyncio.to_thread(self._list, prefix)


def create_store(config: StorageConfig | None = None) -> KeyValueStore:
    """Build the store selected by configuration."""
    config = config or StorageConfig()
    if config.backend == "memory":
        return InMemoryStore()
    return LocalStore(config.directory)
