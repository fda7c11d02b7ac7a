"""Tests for the plain-text asset fetcher."""

import threading
from pathlib import Path

import httpx
import pytest

from src.modules.assets.infrastructure.fetchers.text import HttpTextFetcher

pytestmark = pytest.mark.anyio

WINDOW_MS = 7_200_000
NOW_MS = 3 * WINDOW_MS + 5


def _fetcher(handler, tmp_path: Path | None = None) -> HttpTextFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpTextFetcher(
        client,
        base_dir=tmp_path,
        timeout_sec=5,
        cache_bust_window_ms=WINDOW_MS,
        clock=lambda: NOW_MS,
    )


def test_cache_buster_uses_time_window() -> None:
    fetcher = HttpTextFetcher(cache_bust_window_ms=WINDOW_MS, clock=lambda: NOW_MS)

    assert fetcher.with_cache_buster("https://a.example/list.txt") == (
        "https://a.example/list.txt?_=3"
    )
    assert fetcher.with_cache_buster("https://a.example/list.txt?v=1") == (
        "https://a.example/list.txt?v=1&_=3"
    )


async def test_fetch_remote_success_sends_cache_buster() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="||ads.example^\n")

    fetcher = _fetcher(handler)
    result = await fetcher.fetch_text("https://a.example/list.txt")

    assert result.is_success
    assert result.content == "||ads.example^\n"
    assert result.status_code == 200
    assert seen[0].url.params["_"] == "3"
    assert seen[0].headers["Accept"] == HttpTextFetcher.ACCEPT


@pytest.mark.parametrize(
    "body",
    ["<html><body>Not found</body></html>", "  <!DOCTYPE html><p>x</p>\n"],
)
async def test_html_body_is_rejected(body: str) -> None:
    fetcher = _fetcher(lambda request: httpx.Response(200, text=body))

    result = await fetcher.fetch_text("https://a.example/list.txt")

    assert not result.is_success
    assert result.error_code == "E_INVALID_CONTENT"


async def test_empty_body_is_rejected() -> None:
    fetcher = _fetcher(lambda request: httpx.Response(200, content=b""))

    result = await fetcher.fetch_text("https://a.example/list.txt")

    assert not result.is_success
    assert result.error_code == "E_INVALID_CONTENT"


async def test_non_2xx_status_is_network_error() -> None:
    fetcher = _fetcher(lambda request: httpx.Response(503, text="busy"))

    result = await fetcher.fetch_text("https://a.example/list.txt")

    assert result.error_code == "E_NETWORK"
    assert result.status_code == 503
    assert "HTTP 503" in (result.error_message or "")


async def test_transport_error_is_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    result = await _fetcher(handler).fetch_text("https://a.example/list.txt")

    assert result.error_code == "E_NETWORK"


async def test_stalled_transfer_is_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("stalled", request=request)

    result = await _fetcher(handler).fetch_text("https://a.example/list.txt")

    assert result.error_code == "E_NETWORK"
    assert "no progress" in (result.error_message or "")


async def test_local_path_is_read_from_base_dir(tmp_path: Path) -> None:
    (tmp_path / "assets").mkdir()
    (tmp_path / "assets" / "filters.txt").write_text("! local\n", encoding="utf-8")

    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("local paths must not hit the network")

    fetcher = _fetcher(handler, tmp_path)

    found = await fetcher.fetch_text("assets/filters.txt")
    missing = await fetcher.fetch_text("assets/missing.txt")

    assert found.content == "! local\n"
    assert missing.error_code == "E_NETWORK"


async def test_local_read_runs_off_event_loop_thread(tmp_path: Path) -> None:
    (tmp_path / "filters.txt").write_text("! local\n", encoding="utf-8")
    fetcher = _fetcher(lambda request: httpx.Response(500), tmp_path)
    read_threads: list[int] = []
    original = fetcher._read_local

    def tracking_read(path: str) -> str:
        read_threads.append(threading.get_ident())
        return original(path)

    fetcher._read_local = tracking_read  # type: ignore[method-assign]

    result = await fetcher.fetch_text("filters.txt")

    assert result.content == "! local\n"
    assert read_threads and read_threads[0] != threading.get_ident()


async def test_aclose_keeps_injected_client_open() -> None:
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    fetcher = HttpTextFetcher(client)

    await fetcher.aclose()

    assert not client.is_closed
    await client.aclose()
