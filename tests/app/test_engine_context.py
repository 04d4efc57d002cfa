from unittest import mock

import pytest

from feedengine.api.realtime.models import Topic
from feedengine.config.constants import ChannelState, InteractionKind
from feedengine.config.settings import Settings
from feedengine.context import EngineContext, content_store_poller
from feedengine.models.content_models import ContentItem
from feedengine.shared.exceptions import ContentStoreError
from feedengine.shared.storage import MemoryKeyValueStore


@pytest.fixture
def config():
    config = Settings()
    config.REALTIME_WS_URL = None
    config.CACHE_PERSIST = True
    config.FEED_BATCH_SIZE = 4
    return config


@pytest.fixture
def content_store():
    store = mock.AsyncMock()
    store.get_json.return_value = [{"id": str(i), "category": "home"} for i in range(10)]
    return store


@pytest.mark.asyncio
class TestEngineContext:
    async def test_from_settings_wires_components(self, config, content_store):
        storage = MemoryKeyValueStore()
        engine = EngineContext.from_settings(config, storage=storage, content_store=content_store)

        await engine.start()
        try:
            assert engine.channel.state == ChannelState.DEGRADED_POLLING
            feed = await engine.get_feed()
            assert len(feed) == 4
            assert any(key.startswith("feed_cache_") for key in storage.keys())
        finally:
            await engine.stop()

        content_store.aclose.assert_awaited_once()

    async def test_recorded_interaction_shapes_next_batch(self, config, content_store):
        engine = EngineContext.from_settings(config, storage=MemoryKeyValueStore(), content_store=content_store)
        candidates = [
            ContentItem(id="a", category="books"),
            ContentItem(id="b", category="garden"),
        ]

        engine.record_interaction(ContentItem(id="liked", category="garden"), InteractionKind.CART_ADD)
        feed = await engine.get_feed(batch_size=2, candidates=candidates)

        assert [scored.item.id for scored in feed] == ["b", "a"]
        assert feed[0].breakdown.category == 15.0


@pytest.mark.asyncio
class TestContentStorePoller:
    async def test_reads_topic_poll_path(self, content_store):
        content_store.get_json.return_value = {"count": 2}
        poll = content_store_poller(content_store)

        assert await poll(Topic(data_type="likes", param="p1")) == {"count": 2}
        content_store.get_json.assert_awaited_once_with("/api/realtime/likes/p1")

    async def test_failures_read_as_no_data(self, content_store):
        content_store.get_json.side_effect = ContentStoreError("/api/realtime/likes")

        assert await content_store_poller(content_store)(Topic(data_type="likes")) is None
