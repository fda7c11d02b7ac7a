"""Plain-text asset fetcher.

远程地址通过 httpx 获取，本地路径从资源目录读取。无论来源如何，
空内容和看起来像 HTML 页面的内容都被视为失败。
"""

import asyncio
import time
from pathlib import Path

import httpx
from loguru import logger

from src.core.config import settings
from src.core.domain.clock import Clock, now_ms
from src.core.domain.exceptions import DomainException
from src.modules.assets.domain.exceptions import (
    AssetNetworkError,
    InvalidAssetContentError,
)
from src.modules.assets.domain.fetcher import TextFetchResult
from src.modules.assets.domain.urls import is_external_url


class HttpTextFetcher:
    """Fetch raw text from remote URLs or packaged local paths.

    The timeout is an inactivity timeout: httpx applies the read timeout to
    every individual network read, so a slow transfer that keeps delivering
    bytes is never aborted, while a stalled one is aborted after
    ``timeout_sec`` without progress.
    """

    ACCEPT = "text/plain, */*"

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        base_dir: str | Path | None = None,
        timeout_sec: float | None = None,
        cache_bust_window_ms: int | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self.timeout_sec = timeout_sec or settings.asset_fetch_timeout_sec
        self.cache_bust_window_ms = (
            cache_bust_window_ms or settings.CACHE_BUST_WINDOW_MS
        )
        self.base_dir = Path(base_dir or settings.ASSETS_BASE_DIR)
        self._clock = clock
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_sec),
                follow_redirects=True,
            )
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch_text(self, url: str) -> TextFetchResult:
        """执行抓取。"""
        start_time = time.time()
        status_code: int | None = None
        try:
            if is_external_url(url):
                status_code, text = await self._fetch_remote(url)
            else:
                text = await asyncio.get_event_loop().run_in_executor(
                    None, self._read_local, url
                )
            self._check_content(url, text)
        except DomainException as e:
            duration_ms = int((time.time() - start_time) * 1000)
            logger.warning(f"Asset fetch failed for {url}: {e.message}")
            return TextFetchResult.failed(
                url,
                e,
                status_code=getattr(e, "status_code", status_code),
                duration_ms=duration_ms,
            )

        duration_ms = int((time.time() - start_time) * 1000)
        return TextFetchResult.success(
            url,
            text,
            status_code=status_code or 200,
            duration_ms=duration_ms,
        )

    def with_cache_buster(self, url: str) -> str:
        """Append a query value which only changes once per time window.

        Repeated fetches inside one window stay cacheable by intermediate
        caches; the first fetch of a new window bypasses them.
        """
        bucket = self._clock() // self.cache_bust_window_ms
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}_={bucket}"

    async def _fetch_remote(self, url: str) -> tuple[int, str]:
        actual_url = self.with_cache_buster(url)
        try:
            async with self.client.stream(
                "GET",
                actual_url,
                headers={
                    "User-Agent": settings.FETCHER_USER_AGENT,
                    "Accept": self.ACCEPT,
                },
                timeout=httpx.Timeout(self.timeout_sec),
            ) as response:
                if not 200 <= response.status_code < 300:
                    raise AssetNetworkError(
                        url,
                        f"HTTP {response.status_code}",
                        status_code=response.status_code,
                    )
                await response.aread()
                return response.status_code, response.text
        except httpx.TimeoutException as e:
            raise AssetNetworkError(url, f"no progress for {self.timeout_sec}s") from e
        except httpx.HTTPError as e:
            raise AssetNetworkError(url, f"network error: {e}") from e

    def _read_local(self, path: str) -> str:
        try:
            return (self.base_dir / path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise AssetNetworkError(path, f"cannot read local file: {e}") from e

    @staticmethod
    def _check_content(url: str, text: str) -> None:
        if not text:
            raise InvalidAssetContentError(url, "empty response")
        # 只下载纯文本：HTML 文档通常是服务器返回的错误页
        stripped = text.strip()
        if stripped.startswith("<") and stripped.endswith(">"):
            raise InvalidAssetContentError(url, "response looks like an HTML document")
