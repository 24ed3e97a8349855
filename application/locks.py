"""Keyed asyncio locks serialising writers per room type (and per physical room)"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List


def room_type_key(room_type_id: str) -> str:
    return f"room-type:{room_type_id}"


def room_key(room_id: str) -> str:
    return f"room:{room_id}"


class KeyedLocks:
    """One asyncio.Lock per key, created on first use

    ``hold`` takes several keys in sorted order so two writers asking for the
    same pair can never deadlock. Locks are never dropped: the map holds
    one entry per room type and physical room ever written.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        acquired: List[asyncio.Lock] = []
        try:
            for key in sorted(set(keys)):
                lock = self.lock_for(key)
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
