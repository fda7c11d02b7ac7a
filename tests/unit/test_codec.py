"""Tests for cached content compression."""

import asyncio

import pytest

from src.modules.assets.infrastructure.codec import (
    CONTENT_MAGIC,
    ContentTransform,
    ZlibCodec,
)

pytestmark = pytest.mark.anyio

LARGE = "||ads.example^\n" * 500


async def test_large_content_is_compressed_and_restored() -> None:
    transform = ContentTransform(ZlibCodec, min_size=100, idle_ttl_sec=60)

    encoded = await transform.encode("cache/easylist", LARGE)

    assert isinstance(encoded, bytes)
    assert encoded.startswith(CONTENT_MAGIC)
    assert len(encoded) < len(LARGE)
    assert await transform.decode("cache/easylist", encoded) == LARGE
    transform.close()


async def test_small_content_is_left_alone() -> None:
    transform = ContentTransform(ZlibCodec, min_size=100, idle_ttl_sec=60)

    assert await transform.encode("cache/tiny", "short") == "short"
    assert not transform.codec_loaded


async def test_unavailable_codec_degrades_to_plain_values() -> None:
    def no_codec():
        raise RuntimeError("codec missing")

    transform = ContentTransform(no_codec, min_size=10, idle_ttl_sec=60)

    assert await transform.encode("cache/easylist", LARGE) == LARGE
    blob = CONTENT_MAGIC + b"\x00\x00\x00\x00garbage"
    assert await transform.decode("cache/easylist", blob) == blob


async def test_corrupt_blob_is_returned_unchanged() -> None:
    transform = ContentTransform(ZlibCodec, min_size=10, idle_ttl_sec=60)
    blob = CONTENT_MAGIC + b"\x10\x00\x00\x00not-zlib"

    assert await transform.decode("cache/easylist", blob) == blob
    assert await transform.decode("cache/easylist", b"raw bytes") == b"raw bytes"


async def test_idle_codec_is_released() -> None:
    transform = ContentTransform(ZlibCodec, min_size=10, idle_ttl_sec=0.01)

    await transform.encode("cache/easylist", LARGE)
    assert transform.codec_loaded

    await asyncio.sleep(0.05)
    assert not transform.codec_loaded
