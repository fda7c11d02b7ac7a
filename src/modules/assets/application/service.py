"""Asset service - the public entry point of the asset core."""

from collections.abc import Mapping
from typing import Any

from loguru import logger

from src.core.config import Settings, settings as default_settings
from src.core.domain.clock import Clock, now_ms
from src.core.domain.events import Observer, ObserverBus
from src.core.domain.ports.key_value_store import KeyValueStore
from src.core.infrastructure.logging import get_business_logger
from src.modules.assets.application.cache_registry import AssetCacheRegistry
from src.modules.assets.application.content_loader import AssetContentLoader
from src.modules.assets.application.source_registry import AssetSourceRegistry
from src.modules.assets.application.updater import AssetUpdater
from src.modules.assets.application.user_assets import UserAssetStore
from src.modules.assets.domain.entities import AssetContent, AssetMetadata, AssetSource
from src.modules.assets.domain.fetcher import TextFetcher
from src.modules.assets.domain.matcher import Matcher, MatcherLike
from src.modules.assets.infrastructure.codec import ContentTransform


class AssetService:
    """Owns the registries and the updater of one asset store."""

    def __init__(
        self,
        store: KeyValueStore,
        fetcher: TextFetcher,
        *,
        user_store: KeyValueStore | None = None,
        transform: ContentTransform | None = None,
        bus: ObserverBus | None = None,
        config: Settings | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self.config = config or default_settings
        self.store = store
        self.fetcher = fetcher
        self.transform = transform
        self.bus = bus or ObserverBus()
        self.clock = clock
        self.business_log = get_business_logger()

        self.cache = AssetCacheRegistry(
            store,
            self.bus,
            transform=transform,
            clock=clock,
            save_delay_ms=self.config.REGISTRY_SAVE_DELAY_MS,
        )
        self.sources = AssetSourceRegistry(
            store,
            fetcher,
            self.cache,
            self.bus,
            config=self.config,
            clock=clock,
        )
        self.user_assets = UserAssetStore(
            user_store or store, prefix=self.config.USER_ASSET_PREFIX
        )
        self.loader = AssetContentLoader(
            self.sources,
            self.cache,
            fetcher,
            self.user_assets,
            clock=clock,
        )
        self.updater = AssetUpdater(
            self.sources,
            self.cache,
            self.loader,
            self.bus,
            config=self.config,
            clock=clock,
        )

    async def initialize(self) -> None:
        """Load both registries ahead of the first request."""
        await self.cache.ensure_loaded()
        sources = await self.sources.entries()
        self.business_log.info(
            "asset_service_initialized",
            sources=len(sources),
            cached=len(list(self.cache.keys())),
        )
        logger.info(f"Asset service initialized with {len(sources)} sources")

    async def shutdown(self) -> None:
        await self.updater.aclose()
        await self.sources.flush()
        await self.cache.flush()
        if self.transform is not None:
            self.transform.close()
        aclose = getattr(self.fetcher, "aclose", None)
        if aclose is not None:
            await aclose()
        close_store = getattr(self.store, "close", None)
        if close_store is not None:
            await close_store()
        logger.info("Asset service shut down")

    # Content

    async def get(self, asset_key: str, dont_cache: bool = False) -> AssetContent:
        return await self.loader.get(asset_key, dont_cache=dont_cache)

    async def put(self, asset_key: str, content: str) -> AssetContent:
        if self.user_assets.is_user_asset(asset_key):
            return await self.user_assets.write(asset_key, content)
        return await self.cache.write(asset_key, content)

    async def metadata(self) -> dict[str, AssetMetadata]:
        """Per-asset view of source and cache state."""
        sources = await self.sources.entries()
        cache = await self.cache.entries()
        now = self.clock()
        result: dict[str, AssetMetadata] = {}
        for asset_key, source in sources.items():
            entry = cache.get(asset_key)
            if entry is not None:
                result[asset_key] = AssetMetadata(
                    asset_key=asset_key,
                    source=source,
                    cached=True,
                    obsolete=entry.is_obsolete(source.update_after, now),
                    write_time=entry.write_time,
                    remote_url=entry.remote_url,
                )
            else:
                result[asset_key] = AssetMetadata(
                    asset_key=asset_key,
                    source=source,
                    obsolete=bool(source.content_url),
                )
        return result

    # Cache maintenance

    async def remove(self, matcher: MatcherLike) -> list[str]:
        return await self.cache.remove(matcher)

    async def mark_dirty(
        self,
        matcher: MatcherLike | None = None,
        exclude: MatcherLike | None = None,
    ) -> list[str]:
        return await self.cache.mark_dirty(matcher, exclude)

    purge = mark_dirty

    async def rmrf(self) -> list[str]:
        """Remove every cached asset."""
        return await self.cache.remove(Matcher.everything())

    # Updater

    def update_start(self, delay_ms: int | None = None) -> None:
        self.updater.start(delay_ms)

    def update_stop(self) -> None:
        self.updater.stop()

    # Sources

    async def register_source(self, asset_key: str, record: Mapping[str, Any]) -> AssetSource:
        return await self.sources.register(asset_key, record)

    async def unregister_source(self, asset_key: str) -> None:
        await self.sources.unregister(asset_key)

    # Observers

    def add_observer(self, observer: Observer) -> None:
        self.bus.subscribe(observer)

    def remove_observer(self, observer: Observer) -> None:
        self.bus.unsubscribe(observer)
