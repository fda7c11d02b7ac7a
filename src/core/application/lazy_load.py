"""Single-flight lazy initialization."""

import asyncio
from collections.abc import Awaitable, Callable


class LazyLoader:
    """Run an async loader once, no matter how many callers race for it.

    Every caller awaiting ``wait()`` while the load is in progress is released
    when it completes. A failed load is forgotten so the next caller retries.
    """

    def __init__(self, load: Callable[[], Awaitable[None]]) -> None:
        self._load = load
        self._task: asyncio.Future[None] | None = None
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    async def wait(self) -> None:
        if self._ready:
            return
        if self._task is None:
            self._task = asyncio.ensure_future(self._run())
        await asyncio.shield(self._task)

    async def _run(self) -> None:
        try:
            await self._load()
        except BaseException:
            self._task = None
            raise
        self._ready = True
