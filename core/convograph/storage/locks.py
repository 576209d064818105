"""Per-key mutual exclusion for checkpoint read-modify-write cycles."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


class KeyedLock:
    """
    One ``asyncio.Lock`` per key, created on demand.

    Holders of different keys never block each other. A key's lock is dropped
    once nobody holds or waits for it, so the map only grows with the number
    of keys in flight.

    Example:
        locks = KeyedLock()
        async with locks.acquire("session-123"):
            ...  # load, execute, save
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}  # holders + waiters per key

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        if lock.locked():
            logger.debug(f"Waiting for lock on '{key}'")
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
