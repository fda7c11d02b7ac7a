"""Application configuration."""

from typing import Annotated, Any, Literal

from pydantic import BeforeValidator, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_key_list(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    # Application
    PROJECT_NAME: str = "assetKeeper"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    LOG_LEVEL: str = "INFO"

    # Asset locations
    ASSETS_BASE_DIR: str = "."  # 非外部路径（如 assets/ublock/filters.txt）相对于此目录
    ASSETS_BOOTSTRAP_LOCATION: str = "assets/assets.json"
    ASSETS_MANIFEST_KEY: str = "assets.json"
    USER_ASSET_PREFIX: str = "user-"

    # Fetcher
    ASSET_FETCH_TIMEOUT_SEC: float = 30.0  # 无进度超时，而非总时长
    CACHE_BUST_WINDOW_MS: int = 2 * 60 * 60 * 1000  # 2 hours
    FETCHER_USER_AGENT: str = "Mozilla/5.0 (compatible; assetKeeper/1.0)"

    # Registries
    DEFAULT_UPDATE_AFTER_DAYS: int = 5
    REGISTRY_SAVE_DELAY_MS: int = 500

    # Updater
    UPDATER_ASSET_DELAY_MS: int = 120_000
    NO_REMOTE_ASSET_KEYS: Annotated[list[str] | str, BeforeValidator(parse_key_list)] = []

    # Cache storage compression（默认关闭）
    CACHE_STORAGE_COMPRESSION: bool = False
    COMPRESSION_MIN_SIZE: int = 4096
    CODEC_IDLE_TTL_SEC: float = 60.0

    # Key-value store
    STORE_BACKEND: Literal["memory", "redis"] = "memory"
    REDIS_URL: str = "redis://localhost:6379/0"

    @computed_field
    @property
    def no_remote_asset_keys(self) -> frozenset[str]:
        """Asset keys which must never be refreshed from a remote location."""
        return frozenset(self.NO_REMOTE_ASSET_KEYS)

    @computed_field
    @property
    def asset_fetch_timeout_sec(self) -> float:
        if self.ASSET_FETCH_TIMEOUT_SEC <= 0:
            return 30.0
        return self.ASSET_FETCH_TIMEOUT_SEC


settings = Settings()
