"""Asset cache registry.

Tracks every asset persisted into the local cache: when it was written, when
it was last read and which remote URL it came from. Content lives in the store
under ``cache/<asset key>``, the registry itself under ``assetCacheRegistry``.
"""

from collections.abc import Iterable

import pydantic
from loguru import logger

from src.core.application.debounce import DebouncedSave
from src.core.application.lazy_load import LazyLoader
from src.core.config import settings
from src.core.domain.clock import Clock, now_ms
from src.core.domain.events import ObserverBus
from src.core.domain.ports.key_value_store import KeyValueStore
from src.core.infrastructure.logging import BusinessEvents
from src.modules.assets.domain.entities import AssetCacheEntry, AssetContent
from src.modules.assets.domain.events import AssetUpdatedEvent
from src.modules.assets.domain.matcher import Matcher, MatcherLike, as_matcher
from src.modules.assets.infrastructure.codec import ContentTransform

CACHE_REGISTRY_STORE_KEY = "assetCacheRegistry"
CACHE_CONTENT_PREFIX = "cache/"


def content_store_key(asset_key: str) -> str:
    return f"{CACHE_CONTENT_PREFIX}{asset_key}"


class AssetCacheRegistry:
    """In-memory view of the cache registry, persisted through a key-value store."""

    def __init__(
        self,
        store: KeyValueStore,
        bus: ObserverBus,
        *,
        transform: ContentTransform | None = None,
        clock: Clock = now_ms,
        save_delay_ms: int | None = None,
    ) -> None:
        self.store = store
        self.bus = bus
        self.transform = transform
        self.clock = clock
        self._entries: dict[str, AssetCacheEntry] = {}
        self._loader = LazyLoader(self._load)
        self._saver = DebouncedSave(
            self._save,
            save_delay_ms if save_delay_ms is not None else settings.REGISTRY_SAVE_DELAY_MS,
            name=CACHE_REGISTRY_STORE_KEY,
        )

    async def ensure_loaded(self) -> None:
        await self._loader.wait()

    async def entries(self) -> dict[str, AssetCacheEntry]:
        """Return a snapshot of the registry."""
        await self.ensure_loaded()
        return {key: entry.model_copy() for key, entry in self._entries.items()}

    async def get_entry(self, asset_key: str) -> AssetCacheEntry | None:
        await self.ensure_loaded()
        return self._entries.get(asset_key)

    async def read(self, asset_key: str) -> AssetContent:
        """Read cached content, stamping the entry's read time on success."""
        await self.ensure_loaded()
        internal_key = content_store_key(asset_key)
        stored = await self.store.get(internal_key)
        if internal_key not in stored:
            return AssetContent.not_found(asset_key)
        entry = self._entries.get(asset_key)
        if entry is None:
            return AssetContent.not_found(asset_key)

        entry.read_time = self.clock()
        self._saver.schedule()

        value = stored[internal_key]
        if self.transform is not None:
            value = await self.transform.decode(internal_key, value)
        # 无法解码的二进制内容视为缓存缺失
        if not isinstance(value, str) or value == "":
            return AssetContent.not_found(asset_key)
        return AssetContent(asset_key=asset_key, content=value, url=entry.remote_url)

    async def write(
        self,
        asset_key: str,
        content: str,
        source_url: str | None = None,
    ) -> AssetContent:
        """Persist content; empty content removes the entry instead."""
        if not content:
            await self.remove(Matcher.exact(asset_key))
            return AssetContent.not_found(asset_key)

        await self.ensure_loaded()
        now = self.clock()
        entry = self._entries.setdefault(asset_key, AssetCacheEntry())
        entry.write_time = now
        entry.read_time = now
        if source_url is not None:
            entry.remote_url = source_url

        internal_key = content_store_key(asset_key)
        value = content
        if self.transform is not None:
            value = await self.transform.encode(internal_key, content)

        await self._persist({internal_key: value})
        BusinessEvents.asset_updated(
            asset_key=asset_key,
            remote_url=entry.remote_url,
            size=len(content),
        )
        self.bus.publish(AssetUpdatedEvent(asset_key=asset_key, content=content))
        return AssetContent(asset_key=asset_key, content=content, url=entry.remote_url)

    async def remove(self, matcher: MatcherLike) -> list[str]:
        """Drop every matching entry with its stored content."""
        await self.ensure_loaded()
        match = as_matcher(matcher)
        removed = [key for key in self._entries if match(key)]
        if not removed:
            return []

        for key in removed:
            del self._entries[key]
        try:
            await self.store.remove([content_store_key(key) for key in removed])
        except Exception as e:
            logger.warning(f"Failed to remove cached content: {e}")
        await self._persist()
        logger.info(f"Removed {len(removed)} cached asset(s) matching {match!r}")

        for key in removed:
            self.bus.publish(AssetUpdatedEvent(asset_key=key))
        return removed

    async def mark_dirty(
        self,
        matcher: MatcherLike | None = None,
        exclude: MatcherLike | None = None,
    ) -> list[str]:
        """Force matching entries to be considered obsolete."""
        await self.ensure_loaded()
        match = as_matcher(matcher) if matcher is not None else Matcher.everything()
        skip = as_matcher(exclude) if exclude is not None else None

        dirtied: list[str] = []
        for key, entry in self._entries.items():
            if not match(key):
                continue
            if skip is not None and skip(key):
                continue
            if not entry.write_time:
                continue
            entry.write_time = 0
            dirtied.append(key)

        if dirtied:
            await self._persist()
        return dirtied

    def keys(self) -> Iterable[str]:
        return list(self._entries)

    async def flush(self) -> None:
        await self._saver.flush()

    async def _load(self) -> None:
        stored = await self.store.get(CACHE_REGISTRY_STORE_KEY)
        records = stored.get(CACHE_REGISTRY_STORE_KEY)
        entries: dict[str, AssetCacheEntry] = {}
        if isinstance(records, dict):
            for key, record in records.items():
                if not isinstance(record, dict):
                    continue
                try:
                    entries[key] = AssetCacheEntry.model_validate(record)
                except pydantic.ValidationError as e:
                    logger.warning(f"Dropping cache entry {key!r}: {e}")
        self._entries = entries
        logger.debug(f"Cache registry loaded with {len(entries)} entries")

    async def _save(self) -> None:
        await self.store.set({CACHE_REGISTRY_STORE_KEY: self._snapshot()})

    async def _persist(self, extra: dict[str, object] | None = None) -> None:
        """Write the registry now, together with any content values."""
        self._saver.cancel()
        items: dict[str, object] = {CACHE_REGISTRY_STORE_KEY: self._snapshot()}
        if extra:
            items.update(extra)
        try:
            await self.store.set(items)
        except Exception as e:
            logger.warning(f"Failed to persist {CACHE_REGISTRY_STORE_KEY}: {e}")

    def _snapshot(self) -> dict[str, dict]:
        return {key: entry.to_record() for key, entry in self._entries.items()}
