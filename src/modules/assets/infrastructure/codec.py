"""Optional compression of cached asset content.

The codec is acquired on first use and released again once it has been idle
for a while. When no codec can be acquired, or a codec call fails, values
pass through untouched: running without compression is always valid.
"""

import asyncio
import struct
import zlib
from collections.abc import Callable
from typing import Any

from loguru import logger

from src.core.config import settings
from src.core.domain.ports.codec import Codec
from src.core.infrastructure.logging import BusinessEvents

# 编码后的值：MAGIC + 原始字节长度（小端 uint32）+ 压缩数据
CONTENT_MAGIC = b"AKZ\x01"
_HEADER = struct.Struct("<4sI")


class ZlibCodec:
    """Codec backed by zlib."""

    name = "zlib"

    def __init__(self, level: int = 6) -> None:
        self.level = level

    def encode(self, data: bytes) -> bytes:
        return zlib.compress(data, self.level)

    def decode(self, data: bytes) -> bytes:
        return zlib.decompress(data)


CodecFactory = Callable[[], Codec | None]


class ContentTransform:
    """Encode large string content before storage and decode it after reads."""

    def __init__(
        self,
        codec_factory: CodecFactory | None,
        *,
        min_size: int | None = None,
        idle_ttl_sec: float | None = None,
    ) -> None:
        self._codec_factory = codec_factory
        self.min_size = min_size if min_size is not None else settings.COMPRESSION_MIN_SIZE
        self.idle_ttl_sec = (
            idle_ttl_sec if idle_ttl_sec is not None else settings.CODEC_IDLE_TTL_SEC
        )
        self._codec: Codec | None = None
        self._unavailable = codec_factory is None
        self._users = 0
        self._release_handle: asyncio.TimerHandle | None = None

    @property
    def codec_loaded(self) -> bool:
        return self._codec is not None

    async def encode(self, key: str, value: Any) -> Any:
        if not isinstance(value, str) or len(value) < self.min_size:
            return value
        codec = self._acquire()
        try:
            if codec is None:
                return value
            raw = value.encode("utf-8")
            try:
                encoded = codec.encode(raw)
            except Exception as e:
                logger.warning(f"[{key}] {codec.name} encode failed: {e}")
                return value
            logger.debug(f"[{key}] compressed {len(raw)} bytes into {len(encoded)} bytes")
            return _HEADER.pack(CONTENT_MAGIC, len(raw)) + encoded
        finally:
            self._release()

    async def decode(self, key: str, value: Any) -> Any:
        if not isinstance(value, bytes | bytearray):
            return value
        if len(value) < _HEADER.size or value[:4] != CONTENT_MAGIC:
            return value
        codec = self._acquire()
        try:
            if codec is None:
                return value
            _, expected_size = _HEADER.unpack_from(value)
            try:
                raw = codec.decode(bytes(value[_HEADER.size :]))
            except Exception as e:
                logger.warning(f"[{key}] {codec.name} decode failed: {e}")
                return value
            if len(raw) != expected_size:
                logger.warning(f"[{key}] decoded size mismatch: {len(raw)} != {expected_size}")
                return value
            return raw.decode("utf-8")
        finally:
            self._release()

    def close(self) -> None:
        """Drop the codec immediately."""
        self._cancel_release_timer()
        self._codec = None
        self._users = 0

    def _acquire(self) -> Codec | None:
        self._cancel_release_timer()
        self._users += 1
        if self._codec is not None or self._unavailable:
            return self._codec
        try:
            self._codec = self._codec_factory() if self._codec_factory else None
        except Exception as e:
            self._codec = None
            logger.warning(f"Content codec unavailable: {e}")
        if self._codec is None:
            self._unavailable = True
            BusinessEvents.feature_degraded(
                feature="cache_storage_compression",
                reason="codec unavailable",
            )
        return self._codec

    def _release(self) -> None:
        self._users = max(self._users - 1, 0)
        if self._users > 0 or self._codec is None:
            return
        self._cancel_release_timer()
        loop = asyncio.get_running_loop()
        self._release_handle = loop.call_later(self.idle_ttl_sec, self._drop_idle_codec)

    def _drop_idle_codec(self) -> None:
        self._release_handle = None
        if self._users == 0 and self._codec is not None:
            logger.info(f"Releasing idle content codec {self._codec.name}")
            self._codec = None

    def _cancel_release_timer(self) -> None:
        if self._release_handle is not None:
            self._release_handle.cancel()
            self._release_handle = None
