"""
Named mutual exclusion for read-modify-write sequences on a document
"""

import asyncio
import inspect
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, TypeVar, Union

T = TypeVar("T")


class LockManager:
    """One asyncio.Lock per resource name, created on first use.

    Waiters block instead of polling and are woken in arrival order.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def get(self, name: str) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[name] = lock
        return lock

    def locked(self, name: str) -> bool:
        lock = self._locks.get(name)
        return bool(lock and lock.locked())

    @asynccontextmanager
    async def lock(self, name: str) -> AsyncIterator[None]:
        async with self.get(name):
            yield

    async def with_lock(self, name: str, action: Callable[[], Union[T, Awaitable[T]]]) -> T:
        """Run action while holding the named lock and return its result"""
        async with self.get(name):
            result: Any = action()
            if inspect.isawaitable(result):
                result = await result
            return result
