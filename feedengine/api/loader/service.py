import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from pydantic import ValidationError

from feedengine.api.loader.models import LoadingStrategy, get_strategy
from feedengine.config.cache_config import cache_config
from feedengine.config.constants import ROUTE_CRITICAL_RESOURCES, LoadStrategy
from feedengine.integrations.content_store import ContentStoreClient
from feedengine.models.content_models import ContentItem
from feedengine.shared.core_cache import ResourceCache
from feedengine.shared.error_handler import ErrorHandler, swallow_errors


class LoaderService:
    """
    Strategy-tagged fetch orchestration in front of the Content Store.

    Handles:
    - Speculative preloading (hover, viewport, route entry) for strategies
      that preload
    - Cache-first instant loads that never raise into page rendering
    - Caching results according to the strategy ("low" is never cached)

    Results are cached under the request path. Late results for torn-down
    views are still cached and otherwise ignored.
    """

    def __init__(
        self,
        cache: ResourceCache,
        content_store: ContentStoreClient,
        ttl: Optional[float] = None,
    ):
        self._error_handler = ErrorHandler(__name__)
        self.logger = logging.getLogger(__name__)
        self._cache = cache
        self._content_store = content_store
        self._ttl = ttl
        self._in_flight: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()

        self.cache_hits = 0
        self.cache_misses = 0
        self.failures = 0

    def _ttl_for(self, url: str) -> float:
        if self._ttl is not None:
            return self._ttl
        return cache_config.get_ttl(cache_config.resource_class_for(url))

    def is_in_flight(self, url: str) -> bool:
        return url in self._in_flight

    def preload(
        self, url: str, strategy: LoadStrategy = LoadStrategy.NORMAL
    ) -> Optional[asyncio.Task]:
        """
        Fetch a resource ahead of need.

        Args:
            url: Request path
            strategy: Loading strategy name

        Returns:
            The scheduled fetch task, or None when nothing was scheduled
            (already queued, cached, or the strategy does not preload)
        """
        loading_strategy = get_strategy(strategy)
        if not loading_strategy.preload:
            return None
        if url in self._in_flight:
            return None
        if self._cache.contains(url):
            self.cache_hits += 1
            self.logger.debug(f"Resource loaded from cache: {url}")
            return None

        self._in_flight.add(url)
        task = asyncio.create_task(self._load_resource(url, loading_strategy, preload=True))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _load_resource(
        self, url: str, strategy: LoadingStrategy, preload: bool = False
    ) -> Optional[Any]:
        try:
            data = await self._content_store.get_json(url, preload=preload)
        except Exception as e:
            self.failures += 1
            self._error_handler.handle_transient_error(
                e, f"loading {url}", {"strategy": strategy.name.value}
            )
            return None
        finally:
            if preload:
                self._in_flight.discard(url)

        if strategy.cache and data is not None:
            self._cache.put(url, data, ttl=self._ttl_for(url))
        self.logger.debug(f"Resource loaded ({strategy.name.value}): {url}")
        return data

    async def instant_load(
        self, url: str, strategy: LoadStrategy = LoadStrategy.NORMAL
    ) -> Optional[Any]:
        """
        Cache-first load. Network and not-found failures come back as None.

        Args:
            url: Request path
            strategy: Decides whether the fetched result is cached

        Returns:
            The payload, or None
        """
        if not url or not url.strip() or url == "/":
            self.logger.warning(f"Invalid URL for instant load: {url!r}")
            return None

        loading_strategy = get_strategy(strategy)

        cached = self._cache.get(url)
        if cached is not None:
            self.cache_hits += 1
            self.logger.debug(f"Resource loaded instantly from cache: {url}")
            return cached

        self.cache_misses += 1
        self.on_route_enter(url)
        return await self._load_resource(url, loading_strategy)

    # Trigger sources

    def on_hover(self, href: Optional[str]) -> Optional[asyncio.Task]:
        """Pointer hovered over a navigable element"""
        if not href:
            return None
        return self.preload(href, LoadStrategy.IMPORTANT)

    def on_visible(self, urls: Iterable[str]) -> List[asyncio.Task]:
        """Elements carrying these resource URLs entered the viewport"""
        tasks = [self.preload(url, LoadStrategy.IMPORTANT) for url in urls if url]
        return [task for task in tasks if task is not None]

    def on_route_enter(self, route: str) -> List[asyncio.Task]:
        """Preload the critical resource list for a route"""
        tasks = [
            self.preload(resource, LoadStrategy.CRITICAL)
            for resource in self.critical_resources_for(route)
        ]
        return [task for task in tasks if task is not None]

    @staticmethod
    def critical_resources_for(route: str) -> List[str]:
        if route == "/":
            return list(ROUTE_CRITICAL_RESOURCES["/"])
        for prefix, resources in ROUTE_CRITICAL_RESOURCES.items():
            if prefix != "/" and prefix in route:
                return list(resources)
        return []

    @swallow_errors("loading feed candidates", default=[])
    async def load_candidates(self, path: str) -> List[ContentItem]:
        """
        Load the candidate list for the Ranking Engine.

        Accepts either a JSON list or an object wrapping the list under
        "products", "items" or "data". Rows that fail validation are skipped.
        """
        data = await self.instant_load(path, LoadStrategy.NORMAL)
        if isinstance(data, dict):
            data = data.get("products") or data.get("items") or data.get("data") or []
        if not isinstance(data, list):
            return []

        items: List[ContentItem] = []
        for row in data:
            try:
                items.append(ContentItem.model_validate(row))
            except ValidationError as e:
                self.logger.warning(f"Skipping invalid content item from {path}: {e.error_count()} errors")
        return items

    async def drain(self) -> None:
        """Wait for every scheduled preload to finish"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel outstanding preloads at shutdown"""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._in_flight.clear()

    def clear(self) -> None:
        self._cache.clear()
        self.logger.info("Loader cache cleared")

    def get_loading_info(self) -> Dict[str, Any]:
        lookups = self.cache_hits + self.cache_misses
        return {
            "cache_hit_rate": self.cache_hits / lookups if lookups else 0.0,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "failures": self.failures,
            "in_flight": len(self._in_flight),
            "cached_resources": len(self._cache),
            "cache_bytes": self._cache.current_bytes,
            "max_cache_bytes": self._cache.max_cache_bytes,
        }
