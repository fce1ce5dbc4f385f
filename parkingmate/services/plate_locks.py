# parkingmate/services/plate_locks.py
"""
Per-plate mutual exclusion.

Camera events and guest confirmations for the same (org, plate) hold one
asyncio.Lock while their blocking read-decide-write step runs in the
threadpool, so a second caller for that plate waits on the event loop and
different plates never wait on each other. Locks are dropped again once
nobody holds or waits on them. The registry is only touched from the event
loop thread.

This covers a single worker process. Across processes the partial unique
indexes on guests / parking_sessions are the backstop.
"""

import asyncio
from contextlib import asynccontextmanager


class PlateLockRegistry:
    def __init__(self):
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._users: dict[tuple[str, str], int] = {}

    @asynccontextmanager
    async def hold(self, org_id: str, plate: str):
        key = (org_id, plate)
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

    def __len__(self):
        return len(self._locks)


plate_locks = PlateLockRegistry()
