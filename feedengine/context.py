import logging
from typing import Any, List, Optional, Sequence

from feedengine.api.interactions.models import Interaction
from feedengine.api.interactions.service import InteractionService
from feedengine.api.loader.service import LoaderService
from feedengine.api.personalization.service import PersonalizationService
from feedengine.api.ranking.models import ScoredItem
from feedengine.api.ranking.service import RankingService
from feedengine.api.realtime.models import Topic
from feedengine.api.realtime.service import LiveUpdateChannel, Poller
from feedengine.config.constants import InteractionKind
from feedengine.config.settings import Settings, settings as default_settings
from feedengine.integrations.content_store import ContentStoreClient
from feedengine.integrations.push_transport import PushTransport
from feedengine.models.content_models import ContentItem
from feedengine.shared.core_cache import ResourceCache
from feedengine.shared.error_handler import ErrorHandler
from feedengine.shared.storage import FileKeyValueStore, KeyValueStore, MemoryKeyValueStore


def content_store_poller(content_store: ContentStoreClient) -> Poller:
    """Build a poller that reads a topic's current value from the Content Store"""
    error_handler = ErrorHandler(__name__)

    async def poll(topic: Topic) -> Optional[Any]:
        try:
            return await content_store.get_json(topic.poll_path)
        except Exception as e:
            error_handler.handle_transient_error(e, f"polling {topic.poll_path}")
            return None

    return poll


class EngineContext:
    """
    Owns one instance of every engine component and their lifecycles.

    Handles:
    - Wiring the log, profile, ranking, cache, loader and live-update channel
    - Starting and stopping background work (cache sweeper, push connection)
    - Cross-component entry points used by the HTTP routes
    """

    def __init__(
        self,
        storage: KeyValueStore,
        content_store: ContentStoreClient,
        cache: Optional[ResourceCache] = None,
        channel: Optional[LiveUpdateChannel] = None,
        feed_source_path: Optional[str] = None,
        feed_batch_size: Optional[int] = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.storage = storage
        self.content_store = content_store
        self.cache = cache if cache is not None else ResourceCache()
        self.interactions = InteractionService(storage)
        self.personalization = PersonalizationService(self.interactions)
        self.ranking = RankingService(self.personalization)
        self.loader = LoaderService(self.cache, content_store)
        self.channel = (
            channel
            if channel is not None
            else LiveUpdateChannel(None, poller=content_store_poller(content_store))
        )
        self.feed_source_path = feed_source_path or default_settings.FEED_SOURCE_PATH
        self.feed_batch_size = feed_batch_size or default_settings.FEED_BATCH_SIZE

    @classmethod
    def from_settings(
        cls,
        config: Settings = default_settings,
        storage: Optional[KeyValueStore] = None,
        content_store: Optional[ContentStoreClient] = None,
        push_transport: Optional[PushTransport] = None,
    ) -> "EngineContext":
        if storage is None:
            storage = (
                FileKeyValueStore(config.LOCAL_STORAGE_PATH)
                if config.LOCAL_STORAGE_PATH
                else MemoryKeyValueStore()
            )
        if content_store is None:
            content_store = ContentStoreClient(
                base_url=config.CONTENT_STORE_URL, timeout=config.CONTENT_STORE_TIMEOUT
            )
        cache = ResourceCache(mirror=storage if config.CACHE_PERSIST else None)

        channel = LiveUpdateChannel(
            config.REALTIME_WS_URL,
            poller=content_store_poller(content_store),
            transport=push_transport,
            poll_interval=config.REALTIME_POLL_INTERVAL,
            reconnect_base_delay=config.REALTIME_RECONNECT_BASE_DELAY,
            max_reconnect_attempts=config.REALTIME_MAX_RECONNECT_ATTEMPTS,
        )

        return cls(
            storage=storage,
            content_store=content_store,
            cache=cache,
            feed_source_path=config.FEED_SOURCE_PATH,
            feed_batch_size=config.FEED_BATCH_SIZE,
            channel=channel,
        )

    async def start(self) -> None:
        self.interactions.load()
        restored = self.cache.restore_from_mirror()
        if restored:
            self.logger.info(f"Restored {restored} cached resources")
        self.cache.start_sweeper()
        self.channel.start()
        self.logger.info("Feed engine started")

    async def stop(self) -> None:
        await self.channel.close()
        await self.loader.aclose()
        await self.cache.stop_sweeper()
        await self.content_store.aclose()
        self.logger.info("Feed engine stopped")

    def record_interaction(self, item: ContentItem, kind: InteractionKind) -> Interaction:
        """Remember the item so the profile can resolve it, then log the interaction"""
        self.personalization.observe_items([item])
        return self.interactions.record(item.id, kind)

    async def get_feed(
        self,
        batch_size: Optional[int] = None,
        candidates: Optional[Sequence[ContentItem]] = None,
    ) -> List[ScoredItem]:
        """
        Build the next feed batch.

        Args:
            batch_size: Items wanted, defaults to FEED_BATCH_SIZE
            candidates: Items to rank. Loaded from the Content Store when omitted

        Returns:
            Ranked batch, empty when no candidates are available
        """
        if candidates is None:
            candidates = await self.loader.load_candidates(self.feed_source_path)
        size = batch_size if batch_size is not None else self.feed_batch_size
        return self.ranking.build_feed(candidates, size)
