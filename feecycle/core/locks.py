"""
Per-student serialization of fee and credit mutations within one process.

Locks live in a WeakValueDictionary: a lock exists only while some task holds it or waits for
it, so sweeping thousands of students does not leave a lock behind for each of them.
"""

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable
from uuid import UUID

_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def _lock_for(student_id: UUID) -> asyncio.Lock:
    key = str(student_id)
    lock = _locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _locks[key] = lock
    return lock


@asynccontextmanager
async def student_lock(student_id: UUID) -> AsyncIterator[None]:
    lock = _lock_for(student_id)
    async with lock:
        yield


@asynccontextmanager
async def student_locks(student_ids: Iterable[UUID]) -> AsyncIterator[None]:
    """Acquire several student locks in a stable order so two bulk calls cannot deadlock."""
    ordered = sorted({str(sid) for sid in student_ids})
    acquired = []
    try:
        for sid in ordered:
            lock = _lock_for(sid)
            await lock.acquire()
            acquired.append(lock)
        yield
    finally:
        for lock in reversed(acquired):
            lock.release()
