"""Coalesced persistence of in-memory state."""

import asyncio
from collections.abc import Awaitable, Callable

from loguru import logger


class DebouncedSave:
    """Coalesce repeated save requests into one write.

    ``schedule()`` (re)arms a timer so that a burst of mutations results in a
    single write once the burst is over; ``save_now()`` bypasses the timer for
    callers which cannot tolerate the debounce window. Write failures are
    logged, never raised: the in-memory state stays authoritative.
    """

    def __init__(
        self,
        save: Callable[[], Awaitable[None]],
        delay_ms: int,
        name: str,
    ) -> None:
        self._save = save
        self._delay_sec = max(delay_ms, 0) / 1000
        self._name = name
        self._handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._delay_sec, self._fire)

    async def save_now(self) -> None:
        self._cancel_timer()
        await self._run()

    async def flush(self) -> None:
        """Write out a pending save and wait for in-flight writes."""
        if self._handle is not None:
            await self.save_now()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def cancel(self) -> None:
        self._cancel_timer()

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        task = asyncio.ensure_future(self._run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self) -> None:
        try:
            await self._save()
        except Exception as e:
            logger.warning(f"Failed to persist {self._name}: {e}")
