"""Time-windowed value cache and identity cache with single-flight fetches."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from cpenctl.core.broadcaster import StateBroadcaster
from cpenctl.core.model import ValueCacheEntry

LOGGER = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[str]]


class ValueCache:
    """Holds the primary value for ``ttl_s`` seconds and the device identity.

    Overlapping callers for the same item await one shared fetch task.
    ``invalidate()`` drops both items. A fetch that was started before the
    invalidation does not write its result back, and callers that arrive
    afterwards start a new fetch instead of joining it.
    """

    def __init__(
        self,
        broadcaster: StateBroadcaster,
        *,
        ttl_s: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._broadcaster = broadcaster
        self._ttl_s = ttl_s
        self._clock = clock
        self._entry: ValueCacheEntry | None = None
        self._identity: str | None = None
        self._value_fetch: asyncio.Task[str] | None = None
        self._identity_fetch: asyncio.Task[str] | None = None
        self._generation = 0

    @property
    def entry(self) -> ValueCacheEntry | None:
        return self._entry

    @property
    def identity(self) -> str | None:
        return self._identity

    def peek(self) -> str | None:
        if self._entry is None:
            return None
        if not self._entry.is_fresh(self._clock()):
            LOGGER.debug("Cached value expired after %.1fs", self._clock() - self._entry.fetched_at)
            return None
        return self._entry.value

    async def get_value(self, fetch: Fetcher) -> str:
        cached = self.peek()
        if cached is not None:
            LOGGER.debug("Serving cached value")
            return cached

        if self._value_fetch is None:
            self._value_fetch = self._spawn(self._fetch_value(fetch, self._generation))
            self._value_fetch.add_done_callback(self._clear_value_fetch)
        else:
            LOGGER.debug("Joining in-flight value fetch")
        return await asyncio.shield(self._value_fetch)

    async def get_identity(
        self,
        fetch: Fetcher,
        on_stored: Callable[[str], None] | None = None,
    ) -> str:
        """Return the cached identity, fetching it once if needed.

        ``on_stored`` runs only when the fetched identity is kept, so a fetch
        overtaken by ``invalidate()`` never reports a result.
        """
        if self._identity is not None:
            return self._identity

        if self._identity_fetch is None:
            self._identity_fetch = self._spawn(self._fetch_identity(fetch, self._generation, on_stored))
            self._identity_fetch.add_done_callback(self._clear_identity_fetch)
        return await asyncio.shield(self._identity_fetch)

    def invalidate(self) -> None:
        self._generation += 1
        # In-flight fetches keep running for their own awaiters; later callers start fresh.
        self._value_fetch = None
        self._identity_fetch = None
        had_value = self._entry is not None
        self._entry = None
        self._identity = None
        if had_value:
            self._broadcaster.value_changed(None)

    async def _fetch_value(self, fetch: Fetcher, generation: int) -> str:
        value = await fetch()
        if generation != self._generation:
            LOGGER.debug("Discarding value fetched before cache invalidation")
            return value
        self._entry = ValueCacheEntry(value=value, fetched_at=self._clock(), ttl=self._ttl_s)
        LOGGER.debug("Value cached for %.0fs", self._ttl_s)
        self._broadcaster.value_changed(value)
        return value

    async def _fetch_identity(
        self,
        fetch: Fetcher,
        generation: int,
        on_stored: Callable[[str], None] | None,
    ) -> str:
        device_id = await fetch()
        if generation != self._generation:
            LOGGER.debug("Discarding identity fetched before cache invalidation")
            return device_id
        self._identity = device_id
        if on_stored is not None:
            on_stored(device_id)
        return device_id

    @staticmethod
    def _spawn(coro: Awaitable[str]) -> asyncio.Task[str]:
        return asyncio.get_running_loop().create_task(coro)

    def _clear_value_fetch(self, task: asyncio.Task[str]) -> None:
        if self._value_fetch is task:
            self._value_fetch = None
        _consume_result(task)

    def _clear_identity_fetch(self, task: asyncio.Task[str]) -> None:
        if self._identity_fetch is task:
            self._identity_fetch = None
        _consume_result(task)


def _consume_result(task: asyncio.Task[str]) -> None:
    # Awaiters may all have left via their own timeout; mark the exception as seen.
    if not task.cancelled():
        task.exception()
