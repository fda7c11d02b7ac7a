"""Classification of asset content locations."""

import re

# scheme:// 前缀即视为外部（远程）地址，其余为本地打包路径
_RE_EXTERNAL_PATH = re.compile(r"^(?:[a-z-]+)://")


def is_external_url(url: str) -> bool:
    return _RE_EXTERNAL_PATH.match(url) is not None


def classify_urls(urls: list[str]) -> tuple[bool, bool]:
    """Return ``(has_local_url, has_remote_url)`` for a candidate URL list."""
    remote_count = sum(1 for url in urls if is_external_url(url))
    return remote_count != len(urls), remote_count != 0
