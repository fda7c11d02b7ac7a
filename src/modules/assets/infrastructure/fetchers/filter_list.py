"""Filter list assembler.

Expands ``!#include <path>`` directives into one merged document. Included
documents are fetched concurrently through the plain-text fetcher, and each one
is spliced right after the directive line that first referenced it, framed by
marker lines naming its URL.
"""

import asyncio
import posixpath
import re
from pathlib import PurePosixPath
from urllib.parse import urljoin, urlparse

from loguru import logger

from src.modules.assets.domain.exceptions import AssetNetworkError
from src.modules.assets.domain.fetcher import TextFetcher, TextFetchResult
from src.modules.assets.domain.urls import is_external_url

RE_INCLUDE_DIRECTIVE = re.compile(r"^!#include +(\S+)")

SUBLIST_BEGIN_MARKER = "! >>>>>>>> {url}"
SUBLIST_END_MARKER = "! <<<<<<<< {url}"


def resolve_include_path(root_url: str, path: str) -> str | None:
    """Resolve an include path against the root document's directory.

    Returns None for paths which must never be expanded: absolute or external
    references and paths containing a parent-directory segment.
    """
    if urlparse(path).scheme or path.startswith(("/", "\\")):
        return None
    if ".." in PurePosixPath(path.replace("\\", "/")).parts:
        return None
    if is_external_url(root_url):
        return urljoin(root_url, path)
    return posixpath.normpath(posixpath.join(posixpath.dirname(root_url), path))


class FilterListAssembler:
    """Fetch a filter list and every sub-list it includes."""

    def __init__(self, fetcher: TextFetcher) -> None:
        self.fetcher = fetcher

    async def fetch_filter_list(self, root_url: str) -> TextFetchResult:
        return await _Assembly(root_url, self.fetcher).run()


class _Assembly:
    """State of one filter list assembly."""

    def __init__(self, root_url: str, fetcher: TextFetcher) -> None:
        self.root_url = root_url
        self.fetcher = fetcher
        # pending 与 loaded 互斥：防止重复抓取以及循环包含
        self.pending: set[str] = set()
        self.loaded: set[str] = set()
        self.documents: dict[str, list[str]] = {}
        # url -> {行号: 该行引入的子列表 url}
        self.expansions: dict[str, dict[int, str]] = {}
        self.errored = False
        self._tasks: dict[asyncio.Task[TextFetchResult], str] = {}

    async def run(self) -> TextFetchResult:
        self._schedule(self.root_url)
        try:
            while self._tasks:
                done, _ = await asyncio.wait(
                    self._tasks, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    url = self._tasks.pop(task)
                    result = self._task_result(task, url)
                    if not result.is_success:
                        # 第一个失败即终止整个组装，其余抓取被取消，不会重复报告
                        return self._fail(result)
                    self._on_loaded(url, result.content)
        finally:
            for task in self._tasks:
                task.cancel()
            self._tasks.clear()

        merged = "\n".join(self._render(self.root_url)).strip()
        return TextFetchResult.success(self.root_url, merged)

    def _schedule(self, url: str) -> None:
        self.pending.add(url)
        task = asyncio.ensure_future(self.fetcher.fetch_text(url))
        self._tasks[task] = url

    @staticmethod
    def _task_result(task: asyncio.Task[TextFetchResult], url: str) -> TextFetchResult:
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error(f"Unexpected error while fetching {url}")
            return TextFetchResult.failed(url, AssetNetworkError(url, str(exc)))
        return task.result()

    def _fail(self, result: TextFetchResult) -> TextFetchResult:
        self.errored = True
        if result.url != self.root_url:
            logger.warning(
                f"Aborting assembly of {self.root_url}: sub-list {result.url} failed"
            )
        return TextFetchResult(
            url=self.root_url,
            status_code=result.status_code,
            error_code=result.error_code,
            error_message=result.error_message,
            duration_ms=result.duration_ms,
        )

    def _on_loaded(self, url: str, content: str) -> None:
        self.pending.discard(url)
        self.loaded.add(url)
        lines = content.strip().split("\n")
        self.documents[url] = lines
        expansions: dict[int, str] = {}
        for index, line in enumerate(lines):
            match = RE_INCLUDE_DIRECTIVE.match(line)
            if match is None:
                continue
            sub_url = resolve_include_path(self.root_url, match.group(1))
            if sub_url is None:
                logger.debug(f"Ignoring include directive in {url}: {line}")
                continue
            if sub_url in self.pending or sub_url in self.loaded:
                continue
            expansions[index] = sub_url
            self._schedule(sub_url)
        self.expansions[url] = expansions

    def _render(self, url: str) -> list[str]:
        output: list[str] = []
        expansions = self.expansions.get(url, {})
        for index, line in enumerate(self.documents[url]):
            output.append(line)
            sub_url = expansions.get(index)
            if sub_url is None:
                continue
            output.append("")
            output.append(SUBLIST_BEGIN_MARKER.format(url=sub_url))
            output.extend(self._render(sub_url))
            output.append(SUBLIST_END_MARKER.format(url=sub_url))
        return output
