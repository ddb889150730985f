"""In-memory TTL read-through cache for expensive list calls.

Guards a single shared payload (e.g. a provider's full server list).
Readers run in parallel under the read lock; a miss takes the write lock,
re-checks, fetches and stores. Any successful mutating provider call must
call ``invalidate()`` so a known mutation is never followed by a stale read.

Example:
    servers = TTLCache[list[dict]](ttl=300, name="ximera-servers")

    listing = await servers.get_or_fetch(client.list_servers)
    ...
    await client.delete_server(server_id)
    await servers.invalidate()
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass

from loguru import logger


class AsyncRWLock:
    """Writer-preferring read/write lock for asyncio.

    Any number of readers may hold the lock together. A writer holds it
    alone, and once a writer is waiting new readers queue behind it, so a
    steady stream of readers cannot starve it.
    """

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and not self._waiting_writers)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            self._waiting_writers += 1
            try:
                await self._cond.wait_for(lambda: not self._writer and not self._readers)
            finally:
                self._waiting_writers -= 1
                self._cond.notify_all()
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


@dataclass(frozen=True, slots=True)
class CacheEntry[T]:
    """A cached payload and the monotonic time it was captured."""

    payload: T
    captured_at: float

    def is_valid(self, now: float, ttl: float) -> bool:
        return self.payload is not None and now - self.captured_at < ttl


class TTLCache[T]:
    """Single-slot read-through cache with a time-to-live.

    Args:
        ttl: Seconds an entry stays valid.
        name: Label used in log lines.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        ttl: float,
        *,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entry: CacheEntry[T] | None = None
        self._lock = AsyncRWLock()
        self._log = logger.bind(component="cache", cache=name)

    def _valid_payload(self) -> T | None:
        entry = self._entry
        if entry is not None and entry.is_valid(self._clock(), self.ttl):
            return entry.payload
        return None

    async def get_or_fetch(self, fetch: Callable[[], Awaitable[T]]) -> T:
        """Return the cached payload, calling ``fetch`` only on a miss.

        Fetch errors propagate and leave the cache untouched.
        """
        async with self._lock.read():
            payload = self._valid_payload()
        if payload is not None:
            self._log.debug("Cache hit")
            return payload

        async with self._lock.write():
            # Another task may have filled the slot while we waited.
            payload = self._valid_payload()
            if payload is not None:
                self._log.debug("Cache hit after wait")
                return payload

            self._log.debug("Cache miss, fetching")
            payload = await fetch()
            if payload is not None:
                self._entry = CacheEntry(payload=payload, captured_at=self._clock())
            return payload

    async def invalidate(self) -> None:
        """Drop the cached payload unconditionally."""
        async with self._lock.write():
            self._entry = None
        self._log.debug("Cache invalidated")

    @property
    def entry(self) -> CacheEntry[T] | None:
        return self._entry


__all__ = ["AsyncRWLock", "CacheEntry", "TTLCache"]
