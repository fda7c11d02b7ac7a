"""Background asset updater.

One update cycle walks the source registry and refreshes, one asset at a time,
every asset whose cache entry is missing or obsolete. Attempts are spaced by an
inter-fetch delay which callers may shrink while a cycle runs.
"""

import asyncio
from enum import StrEnum

from loguru import logger

from src.core.config import Settings, settings as default_settings
from src.core.domain.clock import Clock, now_ms
from src.core.domain.events import ObserverBus
from src.core.infrastructure.logging import BusinessEvents
from src.modules.assets.application.cache_registry import AssetCacheRegistry
from src.modules.assets.application.content_loader import AssetContentLoader
from src.modules.assets.application.source_registry import AssetSourceRegistry
from src.modules.assets.domain.entities import AssetCacheEntry, AssetSource
from src.modules.assets.domain.events import (
    AssetUpdateFailedEvent,
    BeforeAssetUpdateEvent,
    UpdateCycleFinishedEvent,
    UpdateCycleStartedEvent,
)
from src.modules.assets.domain.matcher import Matcher


class UpdaterStatus(StrEnum):
    IDLE = "idle"
    UPDATING = "updating"


class AssetUpdater:
    """Drive update cycles over the registered asset sources."""

    def __init__(
        self,
        sources: AssetSourceRegistry,
        cache: AssetCacheRegistry,
        loader: AssetContentLoader,
        bus: ObserverBus,
        *,
        config: Settings | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self.sources = sources
        self.cache = cache
        self.loader = loader
        self.bus = bus
        self.config = config or default_settings
        self.clock = clock

        self.default_delay_ms = self.config.UPDATER_ASSET_DELAY_MS
        self.delay_ms = self.default_delay_ms
        self.status = UpdaterStatus.IDLE
        # 本周期内已尝试（或被否决）的资源
        self.attempted: set[str] = set()
        self.updated: list[str] = []
        self.cycle_started_at = 0

        self._generation = 0
        self._timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def is_updating(self) -> bool:
        return self.status is UpdaterStatus.UPDATING

    def start(self, delay_ms: int | None = None) -> None:
        """Start a cycle, or hurry up the one already running."""
        requested = delay_ms if delay_ms is not None else self.default_delay_ms
        previous = self.delay_ms
        self.delay_ms = min(previous, requested)

        if self.is_updating:
            if requested < previous and self._timer is not None:
                self._hurry_timer(self._generation)
            return

        self.status = UpdaterStatus.UPDATING
        self.attempted.clear()
        self.updated = []
        self.cycle_started_at = self.clock()
        self._generation += 1
        logger.info(f"Asset update cycle started (delay={self.delay_ms}ms)")
        self.bus.publish(UpdateCycleStartedEvent())
        self._spawn(self._generation)

    def stop(self) -> None:
        """Prevent further attempts. An in-flight fetch is left to complete."""
        self._cancel_timer()
        if self.is_updating:
            self._finish()

    async def aclose(self) -> None:
        self.stop()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _attempt_next(self, generation: int) -> None:
        asset_key = await self._find_candidate()
        if generation != self._generation:
            return
        if asset_key is None:
            self._finish()
            return

        self.attempted.add(asset_key)
        logger.info(f"Updating asset {asset_key}")
        result = await self.loader.get_remote(asset_key)
        # stop() 之后到达的结果不再影响调度
        if generation != self._generation:
            return

        if result.found:
            self.updated.append(asset_key)
            if asset_key == self.config.ASSETS_MANIFEST_KEY:
                await self.sources.reconcile(result.content)
        else:
            logger.warning(f"Asset {asset_key} could not be updated")
            self.bus.publish(AssetUpdateFailedEvent(asset_key=asset_key))

        if generation != self._generation:
            return
        if await self._has_candidate():
            self._schedule_next(generation)
        else:
            self._finish()

    async def _has_candidate(self) -> bool:
        sources = await self.sources.entries()
        cache = await self.cache.entries()
        now = self.clock()
        return any(
            self._is_due(key, source, cache.get(key), now)
            for key, source in sources.items()
        )

    async def _find_candidate(self) -> str | None:
        sources = await self.sources.entries()
        cache = await self.cache.entries()
        now = self.clock()
        for asset_key, source in sources.items():
            entry = cache.get(asset_key)
            if not self._is_due(asset_key, source, entry, now):
                continue
            veto = self.bus.publish(
                BeforeAssetUpdateEvent(asset_key=asset_key, content_kind=source.content)
            )
            if not veto:
                return asset_key
            logger.debug(f"Update of {asset_key} vetoed")
            self.attempted.add(asset_key)
            if entry is not None and entry.read_time < self.cycle_started_at:
                await self.cache.remove(Matcher.exact(asset_key))
        return None

    def _is_due(
        self,
        asset_key: str,
        source: AssetSource,
        entry: AssetCacheEntry | None,
        now: int,
    ) -> bool:
        if not source.has_remote_url:
            return False
        if asset_key in self.attempted:
            return False
        if asset_key in self.config.no_remote_asset_keys:
            return False
        return entry is None or entry.is_obsolete(source.update_after, now)

    def _schedule_next(self, generation: int) -> None:
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.delay_ms / 1000, self._on_timer, generation)

    def _hurry_timer(self, generation: int) -> None:
        """Move the pending attempt earlier; never later than already planned."""
        if self._timer is None:
            return
        loop = asyncio.get_running_loop()
        when = loop.time() + self.delay_ms / 1000
        if when >= self._timer.when():
            return
        self._timer.cancel()
        self._timer = loop.call_at(when, self._on_timer, generation)

    def _on_timer(self, generation: int) -> None:
        self._timer = None
        self._spawn(generation)

    def _finish(self) -> None:
        self._cancel_timer()
        updated_keys = list(self.updated)
        attempted = len(self.attempted)
        self._generation += 1
        self.status = UpdaterStatus.IDLE
        self.delay_ms = self.default_delay_ms
        self.attempted.clear()
        self.updated = []
        BusinessEvents.update_cycle_finished(updated_keys=updated_keys, attempted=attempted)
        self.bus.publish(UpdateCycleFinishedEvent(updated_keys=updated_keys))

    def _spawn(self, generation: int) -> None:
        task = asyncio.ensure_future(self._attempt_next(generation))
        self._tasks.add(task)
        task.add_done_callback(lambda done: self._on_task_done(done, generation))

    def _on_task_done(self, task: asyncio.Task[None], generation: int) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        logger.opt(exception=exc).error("Asset update attempt failed unexpectedly")
        if generation == self._generation and self.is_updating:
            self._finish()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
