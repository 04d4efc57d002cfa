import asyncio
from unittest import mock

import pytest
import pytest_asyncio

from feedengine.api.loader.service import LoaderService
from feedengine.config.constants import LoadStrategy
from feedengine.shared.core_cache import ResourceCache
from feedengine.shared.exceptions import ContentNotFoundError, ContentStoreError

PRODUCTS = [
    {"id": "1", "name": "Lamp", "price": 30, "category": "home", "createdAt": "2026-02-01T00:00:00Z"},
    {"id": "2", "name": "Chair", "price": 80, "category": "home", "views": 120},
]


@pytest.fixture
def content_store():
    store = mock.AsyncMock()
    store.get_json.return_value = {"ok": True}
    return store


@pytest_asyncio.fixture
async def loader(content_store):
    service = LoaderService(ResourceCache(max_cache_bytes=10_000), content_store, ttl=60)
    yield service
    await service.aclose()


@pytest.mark.asyncio
class TestInstantLoad:
    async def test_miss_fetches_and_caches(self, loader, content_store):
        assert await loader.instant_load("/api/stats") == {"ok": True}
        assert await loader.instant_load("/api/stats") == {"ok": True}

        content_store.get_json.assert_awaited_once_with("/api/stats", preload=False)
        assert loader.cache_hits == 1
        assert loader.cache_misses == 1

    @pytest.mark.parametrize("url", ["", "/", "   "])
    async def test_invalid_url_returns_none(self, loader, content_store, url):
        assert await loader.instant_load(url) is None
        content_store.get_json.assert_not_awaited()

    async def test_not_found_returns_none(self, loader, content_store):
        content_store.get_json.side_effect = ContentNotFoundError("/api/gone")

        assert await loader.instant_load("/api/gone") is None
        assert loader.failures == 1

    async def test_transport_failure_returns_none(self, loader, content_store):
        content_store.get_json.side_effect = ContentStoreError("/api/down")

        assert await loader.instant_load("/api/down") is None

    async def test_low_priority_results_are_not_cached(self, loader, content_store):
        await loader.instant_load("/api/ads", LoadStrategy.LOW)
        await loader.instant_load("/api/ads", LoadStrategy.LOW)

        assert content_store.get_json.await_count == 2
        assert not loader._cache.contains("/api/ads")

    async def test_unknown_strategy_raises(self, loader):
        with pytest.raises(ValueError):
            await loader.instant_load("/api/stats", "urgent")

    async def test_route_entry_preloads_critical_resources(self, loader, content_store):
        await loader.instant_load("/product/42")
        await loader.drain()

        fetched = {call.args[0] for call in content_store.get_json.await_args_list}
        assert fetched == {"/product/42", "/api/products", "/api/categories", "/api/reviews"}
        assert loader._cache.contains("/api/reviews")


@pytest.mark.asyncio
class TestPreload:
    async def test_preload_caches_result(self, loader, content_store):
        task = loader.preload("/api/categories", LoadStrategy.CRITICAL)
        assert loader.is_in_flight("/api/categories")
        await task

        assert not loader.is_in_flight("/api/categories")
        content_store.get_json.assert_awaited_once_with("/api/categories", preload=True)
        assert await loader.instant_load("/api/categories") == {"ok": True}
        assert content_store.get_json.await_count == 1

    async def test_in_flight_preload_is_not_duplicated(self, loader, content_store):
        first = loader.preload("/api/products", LoadStrategy.IMPORTANT)
        assert loader.preload("/api/products", LoadStrategy.IMPORTANT) is None
        await first

        assert content_store.get_json.await_count == 1

    async def test_cached_resource_is_not_preloaded(self, loader, content_store):
        await loader.preload("/api/products", LoadStrategy.CRITICAL)
        assert loader.preload("/api/products", LoadStrategy.CRITICAL) is None

    @pytest.mark.parametrize("strategy", [LoadStrategy.NORMAL, LoadStrategy.LOW])
    async def test_non_preloading_strategies_do_nothing(self, loader, content_store, strategy):
        assert loader.preload("/api/products", strategy) is None
        content_store.get_json.assert_not_awaited()

    async def test_failed_preload_clears_in_flight(self, loader, content_store):
        content_store.get_json.side_effect = ContentStoreError("/api/products")

        await loader.preload("/api/products", LoadStrategy.CRITICAL)

        assert not loader.is_in_flight("/api/products")
        assert loader.failures == 1

    async def test_hover_and_visibility_triggers(self, loader, content_store):
        assert loader.on_hover(None) is None
        loader.on_hover("/api/products/9")
        loader.on_visible(["/img/1.png", "", "/img/2.png"])
        await loader.drain()

        fetched = {call.args[0] for call in content_store.get_json.await_args_list}
        assert fetched == {"/api/products/9", "/img/1.png", "/img/2.png"}

    async def test_aclose_cancels_outstanding_preloads(self, content_store):
        started = asyncio.Event()

        async def slow_fetch(path, preload=False):
            started.set()
            await asyncio.sleep(10)

        content_store.get_json.side_effect = slow_fetch
        loader = LoaderService(ResourceCache(), content_store)
        task = loader.preload("/api/products", LoadStrategy.CRITICAL)
        await started.wait()

        await loader.aclose()

        assert task.cancelled()
        assert not loader.is_in_flight("/api/products")


class TestCriticalResources:
    @pytest.mark.parametrize(
        "route,expected",
        [
            ("/", ["/api/products", "/api/categories", "/api/realtime/stats"]),
            ("/product/7", ["/api/products", "/api/categories", "/api/reviews"]),
            ("/profile/me", ["/api/user/posts", "/api/user/followers"]),
            ("/checkout", []),
        ],
    )
    def test_route_lists(self, route, expected):
        assert LoaderService.critical_resources_for(route) == expected


@pytest.mark.asyncio
class TestLoadCandidates:
    async def test_wrapped_list_is_parsed(self, loader, content_store):
        content_store.get_json.return_value = {"products": PRODUCTS + [{"name": "no id"}]}

        items = await loader.load_candidates("/api/products")

        assert [item.id for item in items] == ["1", "2"]
        assert items[1].view_count == 120
        assert items[0].created_at is not None

    async def test_plain_list_is_parsed(self, loader, content_store):
        content_store.get_json.return_value = PRODUCTS

        assert len(await loader.load_candidates("/api/products")) == 2

    async def test_unavailable_store_gives_no_candidates(self, loader, content_store):
        content_store.get_json.side_effect = ContentStoreError("/api/products")

        assert await loader.load_candidates("/api/products") == []
