"""Asset content retrieval.

``get`` serves from the cache and falls back to the asset's configured
locations; ``get_remote`` always goes to the network and is what the updater
uses to refresh an asset.
"""

from loguru import logger

from src.core.domain.clock import Clock, now_ms
from src.core.infrastructure.logging import BusinessEvents
from src.modules.assets.application.cache_registry import AssetCacheRegistry
from src.modules.assets.application.source_registry import AssetSourceRegistry
from src.modules.assets.application.user_assets import UserAssetStore
from src.modules.assets.domain.entities import (
    AssetContent,
    AssetSource,
    ContentKind,
    SourceError,
)
from src.modules.assets.domain.exceptions import AssetNotFoundError
from src.modules.assets.domain.fetcher import TextFetcher, TextFetchResult
from src.modules.assets.domain.urls import is_external_url
from src.modules.assets.infrastructure.fetchers.filter_list import FilterListAssembler


class AssetContentLoader:
    """Load asset content from the cache or from the asset's sources."""

    def __init__(
        self,
        sources: AssetSourceRegistry,
        cache: AssetCacheRegistry,
        fetcher: TextFetcher,
        user_assets: UserAssetStore,
        *,
        assembler: FilterListAssembler | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self.sources = sources
        self.cache = cache
        self.fetcher = fetcher
        self.user_assets = user_assets
        self.assembler = assembler or FilterListAssembler(fetcher)
        self.clock = clock

    async def get(self, asset_key: str, dont_cache: bool = False) -> AssetContent:
        if self.user_assets.is_user_asset(asset_key):
            return await self.user_assets.read(asset_key)

        cached = await self.cache.read(asset_key)
        if cached.found:
            return cached

        source = await self.sources.get(asset_key)
        if source is not None:
            for url in source.content_url:
                external = is_external_url(url)
                # 存在本地副本时只尝试本地路径
                if external and source.has_local_url:
                    continue
                result = await self._fetch(source, url)
                if not result.is_success:
                    logger.debug(f"[{asset_key}] {url} unavailable: {result.error_message}")
                    continue
                if external and not dont_cache:
                    await self.cache.write(asset_key, result.content, source_url=url)
                await self.sources.set_error(asset_key, None)
                return AssetContent(asset_key=asset_key, content=result.content, url=url)

        await self.sources.set_error(
            asset_key,
            SourceError(time=self.clock(), message=AssetNotFoundError.error_code),
        )
        logger.info(f"Asset {asset_key} not found in cache or at any location")
        return AssetContent.not_found(asset_key)

    async def get_remote(self, asset_key: str) -> AssetContent:
        """Fetch an asset from its remote URLs, in order, caching the first hit."""
        source = await self.sources.get(asset_key)
        if source is None:
            return AssetContent.not_found(asset_key)

        for url in source.remote_urls:
            result = await self._fetch(source, url)
            if not result.is_success:
                message = result.error_message or "No content"
                await self.sources.set_error(
                    asset_key, SourceError(time=self.clock(), message=message)
                )
                BusinessEvents.asset_fetch_failed(asset_key=asset_key, url=url, error=message)
                continue
            await self.cache.write(asset_key, result.content, source_url=url)
            await self.sources.set_error(asset_key, None)
            return AssetContent(asset_key=asset_key, content=result.content, url=url)

        return AssetContent.not_found(asset_key)

    async def _fetch(self, source: AssetSource, url: str) -> TextFetchResult:
        if source.content == ContentKind.FILTER_LIST:
            return await self.assembler.fetch_filter_list(url)
        return await self.fetcher.fetch_text(url)
