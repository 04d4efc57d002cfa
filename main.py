from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from feedengine.api.cache.routes import cache_router
from feedengine.api.interactions.routes import interactions_router
from feedengine.api.ranking.routes import feed_router
from feedengine.api.realtime.routes import realtime_router
from feedengine.config.settings import settings
from feedengine.context import EngineContext
from feedengine.middleware.error import http_exception_handler
from feedengine.middleware.timing import add_process_time_header
from feedengine.shared.utils import get_logger

logger = get_logger(__name__)


def create_app(context: Optional[EngineContext] = None) -> FastAPI:
    """Build the API around one EngineContext (created from settings when omitted)"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = context if context is not None else EngineContext.from_settings(settings)
        app.state.engine = engine
        await engine.start()
        logger.info(f"{settings.API_TITLE} started ({settings.ENVIRONMENT})")
        try:
            yield
        finally:
            await engine.stop()

    app = FastAPI(
        title=settings.API_TITLE,
        description="Personalized feed ranking, resource caching and live updates.",
        version=settings.API_VERSION,
        lifespan=lifespan,
    )

    app.include_router(feed_router)
    app.include_router(interactions_router)
    app.include_router(cache_router)
    app.include_router(realtime_router)

    app.add_exception_handler(Exception, http_exception_handler)
    app.middleware("http")(add_process_time_header)

    @app.get("/", tags=["App"])
    async def read_root():
        return "Hello World!"

    return app


app = create_app()
