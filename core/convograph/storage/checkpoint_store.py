"""
Checkpoint Store - key to snapshot-bytes persistence.

The engine only ever calls ``get`` and ``set``. Writes are last-write-wins per
key; the engine serializes access to a single key itself (see
``convograph.storage.locks``), so a store needs no transactional guarantees.
"""

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import quote, unquote

logger = logging.getLogger(__name__)


@runtime_checkable
class CheckpointStore(Protocol):
    """Protocol for checkpoint persistence backends.

    ``get`` returns ``None`` when nothing is stored under the key (an empty
    ``bytes`` value is a stored snapshot). Failures are raised.
    """

    async def get(self, key: str) -> bytes | None: ...

    async def set(self, key: str, data: bytes) -> None: ...


class InMemoryCheckpointStore:
    """
    Checkpoint store backed by a plain dict.

    Suitable for a single process. Snapshots are lost on restart; stale keys
    are kept until ``delete`` is called.
    """

    def __init__(self):
        self._data: dict[str, bytes] = {}

    async def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    async def set(self, key: str, data: bytes) -> None:
        self._data[key] = bytes(data)
        logger.debug(f"Stored checkpoint '{key}' ({len(data)} bytes)")

    async def delete(self, key: str) -> bool:
        """
        Remove a snapshot.

        Returns:
            True if deleted, False if not found
        """
        return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        return list(self._data.keys())

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


class FileCheckpointStore:
    """
    Checkpoint store with one file per key, written atomically.

    Snapshots survive restarts and can be shared between processes on one
    host, so a suspended conversation can be resumed by a different process.

    Directory structure:
        {base_path}/
            {quoted key}.json
    """

    def __init__(self, base_path: Path | str):
        self.base_path = Path(base_path)

    def _path(self, key: str) -> Path:
        # Keys are free-form; quote them into a single safe file name
        return self.base_path / f"{quote(key, safe='')}.json"

    async def get(self, key: str) -> bytes | None:
        def _read() -> bytes | None:
            path = self._path(key)
            if not path.exists():
                return None
            return path.read_bytes()

        return await asyncio.to_thread(_read)

    async def set(self, key: str, data: bytes) -> None:
        def _write() -> None:
            self.base_path.mkdir(parents=True, exist_ok=True)
            path = self._path(key)
            fd, tmp = tempfile.mkstemp(dir=self.base_path, prefix=".tmp_", suffix=".json")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp, path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise

        await asyncio.to_thread(_write)
        logger.debug(f"Saved checkpoint '{key}' to {self.base_path}")

    async def delete(self, key: str) -> bool:
        """
        Remove a snapshot file.

        Returns:
            True if deleted, False if not found
        """

        def _delete() -> bool:
            path = self._path(key)
            if not path.exists():
                return False
            path.unlink()
            return True

        return await asyncio.to_thread(_delete)

    def keys(self) -> list[str]:
        if not self.base_path.exists():
            return []
        return sorted(
            unquote(p.stem)
            for p in self.base_path.glob("*.json")
            if not p.name.startswith(".tmp_")
        )
