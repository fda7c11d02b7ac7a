"""
pytest 配置和共享 fixtures。

测试分层：
- unit/: 单元测试（不依赖外部服务，网络与存储均为内存替身）

使用方法：
    # 运行所有测试
    uv run pytest

    # 只运行单元测试
    uv run pytest tests/unit/

    # 运行带覆盖率
    uv run pytest --cov=src --cov-report=html
"""

import asyncio
from collections.abc import AsyncGenerator, Iterable, Mapping
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.core.config import Settings
from src.core.domain.events import ObserverBus
from src.core.domain.exceptions import DomainException
from src.core.infrastructure.storage.memory import InMemoryKeyValueStore
from src.modules.assets.application.service import AssetService
from src.modules.assets.domain.exceptions import AssetNetworkError
from src.modules.assets.domain.fetcher import TextFetchResult

# 2024-01-01T00:00:00Z
START_MS = 1_704_067_200_000


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


# ============================================
# 配置 Fixtures
# ============================================


@pytest.fixture
def test_settings() -> Settings:
    """测试环境配置：缩短所有定时器。"""
    return Settings(
        ENVIRONMENT="local",
        REGISTRY_SAVE_DELAY_MS=10,
        UPDATER_ASSET_DELAY_MS=20,
        STORE_BACKEND="memory",
        NO_REMOTE_ASSET_KEYS=[],
        CACHE_STORAGE_COMPRESSION=False,
    )


# ============================================
# 时钟 / 抓取 / 存储替身
# ============================================


class FakeClock:
    """Manually advanced epoch-ms clock."""

    def __init__(self, now: int = START_MS) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeFetcher:
    """Serve canned responses keyed by URL and record every request.

    A response is either the text to return or a DomainException to fail
    with; unknown URLs fail with HTTP 404.
    """

    def __init__(
        self,
        responses: dict[str, str | DomainException] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.responses: dict[str, str | DomainException] = dict(responses or {})
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def fetch_text(self, url: str) -> TextFetchResult:
        self.calls.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            response = self.responses.get(url)
            if response is None:
                error = AssetNetworkError(url, "HTTP 404", status_code=404)
                return TextFetchResult.failed(url, error, status_code=404)
            if isinstance(response, DomainException):
                return TextFetchResult.failed(url, response)
            return TextFetchResult.success(url, response)
        finally:
            self.in_flight -= 1

    async def aclose(self) -> None:
        self.closed = True


class FailingKeyValueStore(InMemoryKeyValueStore):
    """In-memory store whose writes and deletes can be switched to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_set = False
        self.fail_remove = False

    async def set(self, items: Mapping[str, Any]) -> None:
        if self.fail_set:
            raise OSError("store is read-only")
        await super().set(items)

    async def remove(self, keys: str | Iterable[str]) -> None:
        if self.fail_remove:
            raise OSError("store is read-only")
        await super().remove(keys)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def failing_store() -> FailingKeyValueStore:
    return FailingKeyValueStore()


@pytest.fixture
def bus() -> ObserverBus:
    return ObserverBus()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def recorder() -> list[tuple[str, object]]:
    """Observer target collecting (topic, payload) pairs."""
    return []


@pytest.fixture
async def asset_service(
    store: InMemoryKeyValueStore,
    fetcher: FakeFetcher,
    clock: FakeClock,
    test_settings: Settings,
) -> AsyncGenerator[AssetService, None]:
    """AssetService over in-memory storage with an empty bootstrap manifest."""
    fetcher.responses.setdefault(test_settings.ASSETS_BOOTSTRAP_LOCATION, "{}")
    service = AssetService(store, fetcher, config=test_settings, clock=clock)
    yield service
    await service.shutdown()


# ============================================
# Redis Fixtures
# ============================================


@pytest.fixture
def mock_redis_client() -> MagicMock:
    """Mock Redis 客户端（基于字典模拟 mget/mset/delete）。"""
    from src.core.infrastructure.redis.client import RedisClient

    data: dict[str, bytes] = {}

    async def mget(keys: list[str]) -> list[bytes | None]:
        return [data.get(key) for key in keys]

    async def mset(mapping: dict[str, bytes]) -> bool:
        data.update(mapping)
        return True

    async def delete(*keys: str) -> int:
        return sum(1 for key in keys if data.pop(key, None) is not None)

    client = MagicMock(spec=RedisClient)
    client.data = data
    client.mget = AsyncMock(side_effect=mget)
    client.mset = AsyncMock(side_effect=mset)
    client.delete = AsyncMock(side_effect=delete)
    client.close = AsyncMock()
    return client
