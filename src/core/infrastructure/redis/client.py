"""Redis 客户端封装。

提供统一的 Redis 访问接口，支持：
- 连接池管理（延迟初始化）
- 按命名空间的批量读写
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import redis.asyncio as aioredis

if TYPE_CHECKING:
    from redis.asyncio import Redis

from src.core.config import settings


class RedisClient:
    """Redis 客户端封装类。"""

    def __init__(self, url: str | None = None):
        """初始化 Redis 客户端。

        Args:
            url: Redis 连接 URL，默认使用配置中的 REDIS_URL
        """
        self._url = url or settings.REDIS_URL
        self._client: Redis | None = None

    @property
    def client(self) -> Redis:
        """获取 Redis 客户端实例（延迟初始化）。

        资源内容可能是压缩后的二进制数据，因此不做 decode_responses。
        """
        if self._client is None:
            self._client = aioredis.from_url(
                self._url,
                decode_responses=False,
                socket_timeout=10.0,  # 读写超时 10 秒
                socket_connect_timeout=5.0,  # 连接超时 5 秒
                retry_on_timeout=True,  # 超时后重试
            )
        return self._client

    async def close(self) -> None:
        """关闭 Redis 连接。"""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ============ 批量操作 ============

    async def mget(self, keys: list[str]) -> list[bytes | None]:
        """批量获取原始值。"""
        if not keys:
            return []
        return await self.client.mget(keys)

    async def mset(self, mapping: dict[str, bytes]) -> bool:
        """批量设置原始值。"""
        if not mapping:
            return True
        return await self.client.mset(mapping)

    async def delete(self, *keys: str) -> int:
        """删除一个或多个键。"""
        if not keys:
            return 0
        return await self.client.delete(*keys)
