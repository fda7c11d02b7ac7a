"""Tests for the asset service facade."""

import pytest

from src.modules.assets.domain.entities import DAY_MS
from src.modules.assets.domain.exceptions import InvalidAssetContentError
from src.modules.assets.infrastructure.dependencies import build_asset_service
from src.modules.assets.infrastructure.fetchers.text import HttpTextFetcher

pytestmark = pytest.mark.anyio

REMOTE = "https://lists.example/easylist.txt"
MIRROR = "https://mirror.example/easylist.txt"


async def test_get_caches_remote_content(asset_service, fetcher) -> None:
    fetcher.responses[REMOTE] = "||ads.example^"
    await asset_service.register_source("easylist", {"contentURL": REMOTE})

    first = await asset_service.get("easylist")
    second = await asset_service.get("easylist")

    assert first.content == second.content == "||ads.example^"
    assert fetcher.calls.count(REMOTE) == 1
    assert second.url == REMOTE


async def test_get_falls_through_remote_urls_in_order(asset_service, fetcher) -> None:
    fetcher.responses[REMOTE] = InvalidAssetContentError(REMOTE, "empty response")
    fetcher.responses[MIRROR] = "||mirror^"
    await asset_service.register_source("easylist", {"contentURL": [REMOTE, MIRROR]})

    result = await asset_service.get("easylist")

    assert result.content == "||mirror^"
    assert result.url == MIRROR
    assert (await asset_service.metadata())["easylist"].remote_url == MIRROR


async def test_get_prefers_local_urls_and_does_not_cache_them(asset_service, fetcher) -> None:
    fetcher.responses.update({"assets/easylist.txt": "||local^", REMOTE: "||remote^"})
    await asset_service.register_source(
        "easylist", {"contentURL": [REMOTE, "assets/easylist.txt"]}
    )

    result = await asset_service.get("easylist")

    assert result.content == "||local^"
    assert REMOTE not in fetcher.calls
    assert "easylist" not in asset_service.cache.keys()


async def test_dont_cache_skips_cache_write(asset_service, fetcher) -> None:
    fetcher.responses[REMOTE] = "||ads.example^"
    await asset_service.register_source("easylist", {"contentURL": REMOTE})

    result = await asset_service.get("easylist", dont_cache=True)

    assert result.found
    assert "easylist" not in asset_service.cache.keys()


async def test_get_unknown_asset_is_not_found(asset_service) -> None:
    result = await asset_service.get("nothing")

    assert result.error == "E_NOTFOUND"
    assert result.content == ""


async def test_get_failure_records_last_error(asset_service) -> None:
    await asset_service.register_source("easylist", {"contentURL": REMOTE})

    result = await asset_service.get("easylist")

    assert result.error == "E_NOTFOUND"
    metadata = await asset_service.metadata()
    assert metadata["easylist"].last_error.message == "E_NOTFOUND"


async def test_filter_list_source_expands_includes(asset_service, fetcher) -> None:
    fetcher.responses.update(
        {
            REMOTE: "! EasyList\n!#include easylist_adservers.txt\n",
            "https://lists.example/easylist_adservers.txt": "||adserver.example^",
        }
    )
    await asset_service.register_source(
        "easylist", {"content": "filters", "contentURL": REMOTE}
    )

    result = await asset_service.get("easylist")

    assert "||adserver.example^" in result.content
    assert "! >>>>>>>> https://lists.example/easylist_adservers.txt" in result.content


async def test_metadata_reports_cache_state(asset_service, fetcher, clock) -> None:
    fetcher.responses[REMOTE] = "||ads.example^"
    await asset_service.register_source("easylist", {"contentURL": REMOTE, "updateAfter": 1})
    await asset_service.register_source("local", {"contentURL": []})
    await asset_service.register_source("missing", {"contentURL": MIRROR})
    await asset_service.get("easylist")
    written = clock.now

    clock.advance(23 * 3_600_000)
    fresh = await asset_service.metadata()
    clock.advance(2 * 3_600_000)
    stale = await asset_service.metadata()

    assert fresh["easylist"].cached
    assert fresh["easylist"].write_time == written
    assert not fresh["easylist"].obsolete
    assert stale["easylist"].obsolete
    assert stale["missing"].obsolete and stale["missing"].write_time == 0
    assert not stale["local"].obsolete and not stale["local"].cached


async def test_mark_dirty_makes_asset_obsolete(asset_service, fetcher) -> None:
    fetcher.responses[REMOTE] = "||ads.example^"
    await asset_service.register_source("easylist", {"contentURL": REMOTE})
    await asset_service.get("easylist")

    assert await asset_service.purge("easylist") == ["easylist"]

    metadata = await asset_service.metadata()
    assert metadata["easylist"].obsolete
    # 内容仍在缓存中，直到被更新覆盖
    assert (await asset_service.get("easylist")).content == "||ads.example^"


async def test_rmrf_and_remove_clear_cache(asset_service, clock) -> None:
    await asset_service.put("easylist", "a")
    await asset_service.put("easyprivacy", "b")
    await asset_service.put("ublock-filters", "c")

    assert await asset_service.remove("easylist") == ["easylist"]
    assert sorted(await asset_service.rmrf()) == ["easyprivacy", "ublock-filters"]
    assert list(asset_service.cache.keys()) == []


async def test_user_assets_bypass_cache_registry(asset_service, store) -> None:
    await asset_service.put("user-filters", "||mine.example^")

    result = await asset_service.get("user-filters")

    assert result.content == "||mine.example^"
    assert store.keys().count("user-filters") == 1
    assert "user-filters" not in asset_service.cache.keys()
    assert (await asset_service.get("user-empty")).content == ""


async def test_unregister_source_drops_cached_content(asset_service, fetcher, store) -> None:
    fetcher.responses[REMOTE] = "||ads.example^"
    await asset_service.register_source("easylist", {"contentURL": REMOTE})
    await asset_service.get("easylist")

    await asset_service.unregister_source("easylist")

    assert "easylist" not in await asset_service.metadata()
    assert "cache/easylist" not in store


async def test_observers_can_be_removed(asset_service, recorder) -> None:
    def observer(topic: str, payload: object) -> None:
        recorder.append((topic, payload))

    asset_service.add_observer(observer)
    await asset_service.put("easylist", "a")
    asset_service.remove_observer(observer)
    await asset_service.put("easylist", "b")

    assert [topic for topic, _ in recorder] == ["asset-updated"]


async def test_build_asset_service_uses_memory_store(test_settings) -> None:
    service = build_asset_service(test_settings)

    assert isinstance(service.fetcher, HttpTextFetcher)
    assert service.transform is None
    await service.shutdown()


async def test_old_cache_not_refetched_by_get(asset_service, fetcher, clock) -> None:
    fetcher.responses[REMOTE] = "||ads.example^"
    await asset_service.register_source("easylist", {"contentURL": REMOTE, "updateAfter": 1})
    await asset_service.get("easylist")
    clock.advance(10 * DAY_MS)

    result = await asset_service.get("easylist")

    assert result.content == "||ads.example^"
    assert fetcher.calls.count(REMOTE) == 1


async def test_initialize_seeds_registry_from_bootstrap(
    asset_service, fetcher, test_settings
) -> None:
    fetcher.responses[test_settings.ASSETS_BOOTSTRAP_LOCATION] = (
        '{"easylist": {"content": "filters", "contentURL": "%s"}}' % REMOTE
    )

    await asset_service.initialize()

    metadata = await asset_service.metadata()
    assert list(metadata) == ["easylist"]
    assert metadata["easylist"].source.has_remote_url
