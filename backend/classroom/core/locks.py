import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable


# Key under which session-code generation is serialized across all sessions.
CODE_GENERATION_KEY = "session-code-generation"


class SessionLocks:
    """One asyncio.Lock per classroom session.

    Seat claims, name claims, chat appends and reaction appends of a session
    run check -> write -> commit while holding that session's lock.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        # Holders plus waiters per key.
        self._users: dict[str, int] = {}

    def get(self, key: Hashable) -> asyncio.Lock:
        key = str(key)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        key = str(key)
        lock = self.get(key)
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]

    def discard(self, key: Hashable) -> None:
        """Drop the lock of a finished session unless someone holds or awaits it."""
        key = str(key)
        if key not in self._users:
            self._locks.pop(key, None)

    def __contains__(self, key: Hashable) -> bool:
        return str(key) in self._locks

    def __len__(self) -> int:
        return len(self._locks)


session_locks = SessionLocks()
