"""Per-athlete locks serializing agent cycles and data deletion.

One asyncio.Lock per athlete while anyone holds or waits for it. Work for
different athletes never contends. An entry is dropped once its last holder
or waiter leaves, so the registry only tracks athletes with work in flight.
In-process only: a multi-worker deployment needs a database-level lock
(e.g. pg_advisory_xact_lock) instead.
"""

import asyncio
import uuid
from contextlib import asynccontextmanager


class AthleteLockRegistry:
    def __init__(self) -> None:
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}
        # holders + waiters per athlete
        self._users: dict[uuid.UUID, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, athlete_id: uuid.UUID) -> bool:
        lock = self._locks.get(athlete_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, athlete_id: uuid.UUID):
        # No await between lookup and registration, so no other task can
        # drop the entry in between.
        lock = self._locks.get(athlete_id)
        if lock is None:
            lock = self._locks[athlete_id] = asyncio.Lock()
        self._users[athlete_id] = self._users.get(athlete_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._users[athlete_id] - 1
            if remaining:
                self._users[athlete_id] = remaining
            else:
                del self._users[athlete_id]
                del self._locks[athlete_id]


athlete_locks = AthleteLockRegistry()
