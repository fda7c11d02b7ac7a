"""Fetcher domain interfaces and models."""

from dataclasses import dataclass
from typing import Protocol

from src.core.domain.exceptions import DomainException


@dataclass
class TextFetchResult:
    """抓取结果封装。"""

    url: str
    content: str = ""
    status_code: int | None = None
    error_code: str | None = None
    error_message: str | None = None
    duration_ms: int = 0

    @property
    def is_success(self) -> bool:
        return self.error_code is None and self.content != ""

    @classmethod
    def success(
        cls,
        url: str,
        content: str,
        status_code: int | None = 200,
        duration_ms: int = 0,
    ) -> "TextFetchResult":
        return cls(
            url=url,
            content=content,
            status_code=status_code,
            duration_ms=duration_ms,
        )

    @classmethod
    def failed(
        cls,
        url: str,
        error: DomainException,
        status_code: int | None = None,
        duration_ms: int = 0,
    ) -> "TextFetchResult":
        return cls(
            url=url,
            status_code=status_code,
            error_code=error.error_code,
            error_message=error.message,
            duration_ms=duration_ms,
        )


class TextFetcher(Protocol):
    """Retrieve the raw text found at a URL or local asset path."""

    async def fetch_text(self, url: str) -> TextFetchResult: ...
