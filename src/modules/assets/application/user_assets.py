"""User-authored assets.

User assets are stored as-is under their own key. They never go through the
cache registry and the updater never refreshes them.
"""

import re

from loguru import logger

from src.core.config import settings
from src.core.domain.ports.key_value_store import KeyValueStore
from src.modules.assets.domain.entities import AssetContent


class UserAssetStore:
    """Read and write user assets directly against a key-value store."""

    def __init__(self, store: KeyValueStore, prefix: str | None = None) -> None:
        self.store = store
        self.prefix = prefix if prefix is not None else settings.USER_ASSET_PREFIX
        self._re_user_asset = re.compile(rf"^{re.escape(self.prefix)}")

    def is_user_asset(self, asset_key: str) -> bool:
        return self._re_user_asset.match(asset_key) is not None

    async def read(self, asset_key: str) -> AssetContent:
        stored = await self.store.get(asset_key)
        content = stored.get(asset_key)
        if not isinstance(content, str):
            content = ""
        return AssetContent(asset_key=asset_key, content=content)

    async def write(self, asset_key: str, content: str) -> AssetContent:
        await self.store.set({asset_key: content})
        logger.debug(f"Saved user asset {asset_key} ({len(content)} chars)")
        return AssetContent(asset_key=asset_key, content=content)
