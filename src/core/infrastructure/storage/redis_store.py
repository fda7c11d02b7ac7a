"""Redis-backed key-value store."""

import json
from collections.abc import Iterable, Mapping
from typing import Any

from src.core.domain.ports.key_value_store import normalize_keys
from src.core.infrastructure.redis.client import RedisClient
from src.core.infrastructure.redis.keys import RedisKeys

# 值类型标记：JSON 文本或原始二进制（压缩后的资源内容）
_JSON_TAG = b"j:"
_BYTES_TAG = b"b:"


def pack_value(value: Any) -> bytes:
    if isinstance(value, bytes | bytearray):
        return _BYTES_TAG + bytes(value)
    return _JSON_TAG + json.dumps(value, ensure_ascii=False).encode("utf-8")


def unpack_value(raw: bytes) -> Any:
    if raw.startswith(_BYTES_TAG):
        return raw[len(_BYTES_TAG) :]
    if raw.startswith(_JSON_TAG):
        return json.loads(raw[len(_JSON_TAG) :].decode("utf-8"))
    raise ValueError("Unrecognized value encoding in key-value store")


class RedisKeyValueStore:
    """Key-value store persisting every value under a namespaced Redis key."""

    def __init__(self, client: RedisClient, namespace: str) -> None:
        self._client = client
        self._namespace = namespace

    def _redis_key(self, key: str) -> str:
        return RedisKeys.store(self._namespace, key)

    async def get(self, keys: str | Iterable[str]) -> dict[str, Any]:
        requested = normalize_keys(keys)
        raw_values = await self._client.mget([self._redis_key(k) for k in requested])
        result: dict[str, Any] = {}
        for key, raw in zip(requested, raw_values, strict=True):
            if raw is None:
                continue
            result[key] = unpack_value(raw)
        return result

    async def set(self, items: Mapping[str, Any]) -> None:
        await self._client.mset(
            {self._redis_key(key): pack_value(value) for key, value in items.items()}
        )

    async def remove(self, keys: str | Iterable[str]) -> None:
        await self._client.delete(*(self._redis_key(k) for k in normalize_keys(keys)))

    async def close(self) -> None:
        await self._client.close()
