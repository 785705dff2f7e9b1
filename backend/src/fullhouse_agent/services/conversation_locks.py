"""Per-conversation serialization for pipeline executions.

Two inbound messages on the same conversation never run the pipeline
concurrently inside one process. Locks are created on first use and
dropped once nobody holds or waits on them.
"""

import asyncio
from contextlib import asynccontextmanager


class ConversationLockRegistry:
    """Map of conversation id -> asyncio.Lock with reference counting."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def lock(self, conversation_id: str):
        lock = self._locks.setdefault(conversation_id, asyncio.Lock())
        self._waiters[conversation_id] = self._waiters.get(conversation_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[conversation_id] -= 1
            if self._waiters[conversation_id] == 0:
                del self._waiters[conversation_id]
                self._locks.pop(conversation_id, None)

    def is_locked(self, conversation_id: str) -> bool:
        lock = self._locks.get(conversation_id)
        return bool(lock and lock.locked())

    def __len__(self) -> int:
        return len(self._locks)


conversation_locks = ConversationLockRegistry()
