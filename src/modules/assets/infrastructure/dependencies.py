"""Asset module dependencies."""

from loguru import logger

from src.core.config import Settings, settings as default_settings
from src.core.domain.ports.key_value_store import KeyValueStore
from src.core.infrastructure.logging import setup_logging
from src.core.infrastructure.redis import RedisClient
from src.core.infrastructure.storage.memory import InMemoryKeyValueStore
from src.core.infrastructure.storage.redis_store import RedisKeyValueStore
from src.modules.assets.application.service import AssetService
from src.modules.assets.domain.fetcher import TextFetcher
from src.modules.assets.infrastructure.codec import ContentTransform, ZlibCodec
from src.modules.assets.infrastructure.fetchers.text import HttpTextFetcher


def get_key_value_store(config: Settings | None = None) -> KeyValueStore:
    config = config or default_settings
    if config.STORE_BACKEND == "redis":
        return RedisKeyValueStore(RedisClient(config.REDIS_URL), namespace=config.PROJECT_NAME)
    return InMemoryKeyValueStore()


def get_content_transform(config: Settings | None = None) -> ContentTransform | None:
    config = config or default_settings
    if not config.CACHE_STORAGE_COMPRESSION:
        return None
    return ContentTransform(
        ZlibCodec,
        min_size=config.COMPRESSION_MIN_SIZE,
        idle_ttl_sec=config.CODEC_IDLE_TTL_SEC,
    )


def build_asset_service(
    config: Settings | None = None,
    store: KeyValueStore | None = None,
    fetcher: TextFetcher | None = None,
) -> AssetService:
    config = config or default_settings
    setup_logging(config)
    store = store if store is not None else get_key_value_store(config)
    fetcher = fetcher or HttpTextFetcher(
        base_dir=config.ASSETS_BASE_DIR,
        timeout_sec=config.asset_fetch_timeout_sec,
        cache_bust_window_ms=config.CACHE_BUST_WINDOW_MS,
    )
    logger.debug(f"Building asset service with {config.STORE_BACKEND} store")
    return AssetService(
        store,
        fetcher,
        transform=get_content_transform(config),
        config=config,
    )
