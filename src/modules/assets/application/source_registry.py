"""Asset source registry.

Keeps, for every asset key, where the asset can be loaded from (one or more
local or remote URLs), after how many days it becomes obsolete, what kind of
content it holds and who submitted it. The registry is seeded from the
bootstrap manifest on first run and reconciled with every newer manifest.
"""

import json
from collections.abc import Mapping
from typing import Any

import pydantic
from loguru import logger

from src.core.application.debounce import DebouncedSave
from src.core.application.lazy_load import LazyLoader
from src.core.config import Settings, settings as default_settings
from src.core.domain.clock import Clock, now_ms
from src.core.domain.events import ObserverBus
from src.core.domain.exceptions import ValidationError
from src.core.domain.ports.key_value_store import KeyValueStore
from src.core.infrastructure.logging import BusinessEvents
from src.modules.assets.application.cache_registry import AssetCacheRegistry
from src.modules.assets.domain.entities import AssetSource, SourceError
from src.modules.assets.domain.events import SourceAddedEvent
from src.modules.assets.domain.exceptions import ManifestParseError
from src.modules.assets.domain.fetcher import TextFetcher
from src.modules.assets.domain.matcher import Matcher
from src.modules.assets.domain.urls import classify_urls

SOURCE_REGISTRY_STORE_KEY = "assetSourceRegistry"


def parse_manifest(json_text: str) -> dict[str, Any]:
    """Decode a manifest into ``{asset key: source record}``."""
    try:
        data = json.loads(json_text)
    except (TypeError, ValueError) as e:
        raise ManifestParseError(str(e)) from e
    if not isinstance(data, dict):
        raise ManifestParseError(f"expected an object, got {type(data).__name__}")
    return data


class AssetSourceRegistry:
    """Registry of asset sources, persisted through a key-value store."""

    def __init__(
        self,
        store: KeyValueStore,
        fetcher: TextFetcher,
        cache: AssetCacheRegistry,
        bus: ObserverBus,
        *,
        config: Settings | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.cache = cache
        self.bus = bus
        self.config = config or default_settings
        self.clock = clock
        # 以原始记录保存，保证清单中的未知字段原样持久化
        self._records: dict[str, dict[str, Any]] = {}
        self._loader = LazyLoader(self._load)
        self._saver = DebouncedSave(
            self._save,
            self.config.REGISTRY_SAVE_DELAY_MS,
            name=SOURCE_REGISTRY_STORE_KEY,
        )

    async def ensure_loaded(self) -> None:
        await self._loader.wait()

    async def entries(self) -> dict[str, AssetSource]:
        """Return every source, in registration order."""
        await self.ensure_loaded()
        return {
            key: AssetSource.model_validate(record)
            for key, record in self._records.items()
        }

    async def get(self, asset_key: str) -> AssetSource | None:
        await self.ensure_loaded()
        record = self._records.get(asset_key)
        if record is None:
            return None
        return AssetSource.model_validate(record)

    async def register(self, asset_key: str, details: Mapping[str, Any]) -> AssetSource:
        """Add or update a source. Raises ValidationError for a malformed record."""
        await self.ensure_loaded()
        source = self._register(asset_key, details)
        self._saver.schedule()
        return source

    async def unregister(self, asset_key: str) -> None:
        await self.ensure_loaded()
        await self._unregister(asset_key)
        self._saver.schedule()

    async def reconcile(self, json_text: str, silent: bool = False) -> bool:
        """Bring the registry in line with a manifest.

        Returns False when the manifest could not be parsed, in which case the
        registry is left untouched.
        """
        await self.ensure_loaded()
        return await self._reconcile(json_text, silent)

    async def set_error(self, asset_key: str, error: SourceError | None) -> None:
        """Record (or clear, with None) the last failure of a source."""
        await self.ensure_loaded()
        record = self._records.get(asset_key)
        if record is None:
            return
        if error is None:
            if "lastError" not in record:
                return
            del record["lastError"]
        else:
            record["lastError"] = error.model_dump()
        self._saver.schedule()

    async def flush(self) -> None:
        await self._saver.flush()

    def _register(self, asset_key: str, details: Mapping[str, Any]) -> AssetSource:
        """Merge ``details`` into the stored record of ``asset_key``.

        The merge happens on a copy; the registry only changes once the merged
        record validates.
        """
        record = dict(self._records.get(asset_key, {}))
        for prop, value in details.items():
            if value is None:
                record.pop(prop, None)
            else:
                record[prop] = value

        if "contentURL" in details:
            content_url = record.get("contentURL")
            if isinstance(content_url, str):
                content_url = [content_url]
            elif not isinstance(content_url, list):
                content_url = []
            content_url = [url for url in content_url if isinstance(url, str)]
            record["contentURL"] = content_url
            has_local, has_remote = classify_urls(content_url)
            record["hasLocalURL"] = has_local
            record["hasRemoteURL"] = has_remote
        elif "contentURL" not in record:
            record["contentURL"] = []

        update_after = record.get("updateAfter")
        if (
            isinstance(update_after, bool)
            or not isinstance(update_after, int | float)
            or update_after < 0
        ):
            record["updateAfter"] = self.config.DEFAULT_UPDATE_AFTER_DAYS

        if record.get("submitter"):
            record["submitTime"] = self.clock()

        try:
            source = AssetSource.model_validate(record)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid source record for {asset_key!r}: {e}") from e
        self._records[asset_key] = record
        return source

    async def _unregister(self, asset_key: str) -> None:
        await self.cache.remove(Matcher.exact(asset_key))
        self._records.pop(asset_key, None)

    async def _reconcile(self, json_text: str, silent: bool) -> bool:
        try:
            manifest = parse_manifest(json_text)
        except ManifestParseError as e:
            logger.warning(f"Ignoring asset manifest: {e.message}")
            return False

        removed = 0
        for asset_key in list(self._records):
            if asset_key in manifest:
                continue
            if self._records[asset_key].get("submitter") is not None:
                continue
            await self._unregister(asset_key)
            removed += 1

        added = 0
        for asset_key, details in manifest.items():
            if not isinstance(details, dict):
                logger.warning(f"Skipping malformed manifest entry {asset_key!r}")
                continue
            is_new = asset_key not in self._records
            try:
                self._register(asset_key, details)
            except ValidationError as e:
                logger.warning(f"Skipping manifest entry: {e.message}")
                continue
            if is_new:
                added += 1
                if not silent:
                    self.bus.publish(SourceAddedEvent(asset_key=asset_key, record=details))

        await self._saver.save_now()
        BusinessEvents.source_registry_reconciled(
            added=added,
            removed=removed,
            total=len(self._records),
        )
        return True

    async def _load(self) -> None:
        stored = await self.store.get(SOURCE_REGISTRY_STORE_KEY)
        records = stored.get(SOURCE_REGISTRY_STORE_KEY)
        if isinstance(records, dict) and records:
            self._records = {}
            for key, record in records.items():
                if not isinstance(record, dict):
                    continue
                try:
                    AssetSource.model_validate(record)
                except pydantic.ValidationError as e:
                    logger.warning(f"Dropping stored source {key!r}: {e}")
                    continue
                self._records[key] = dict(record)
            logger.debug(f"Source registry loaded with {len(self._records)} entries")
            return

        location = self.config.ASSETS_BOOTSTRAP_LOCATION
        logger.info(f"Seeding source registry from {location}")
        result = await self.fetcher.fetch_text(location)
        if not result.is_success:
            logger.error(
                f"Cannot load bootstrap manifest {location}: {result.error_message}"
            )
            return
        await self._reconcile(result.content, silent=True)

    async def _save(self) -> None:
        await self.store.set({SOURCE_REGISTRY_STORE_KEY: self._records})
