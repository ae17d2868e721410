"""SessionLockRegistry — in-process per-session locks.

No two turns for the same session may run at once; turns for different
sessions run freely.  Entries are dropped when their last holder or waiter
leaves, so the registry does not grow with the number of sessions seen.

Usage::

    locks = SessionLockRegistry()
    async with locks.hold((client_id, session_id)):
        ...  # load, turn, save
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable


class SessionLockRegistry:
    """Acquire per-session ``asyncio.Lock`` objects keyed by any hashable."""

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """Context manager holding the lock for ``key``."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]
