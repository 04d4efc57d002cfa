from typing import Annotated

from fastapi import APIRouter, Depends

from feedengine.config.cache_config import cache_config
from feedengine.context import EngineContext
from feedengine.core.responses import success_response
from feedengine.dependencies.engine import get_engine

cache_router = APIRouter(prefix="/cache", tags=["Cache"])


@cache_router.get("/stats", summary="Resource cache and loader statistics")
async def get_cache_stats(engine: Annotated[EngineContext, Depends(get_engine)]):
    return success_response(
        {
            "cache": engine.cache.get_cache_stats(),
            "loader": engine.loader.get_loading_info(),
            "config": cache_config.get_all_settings(),
        }
    )


@cache_router.post("/sweep", summary="Drop expired cache entries now")
async def sweep_cache(engine: Annotated[EngineContext, Depends(get_engine)]):
    removed = engine.cache.sweep()
    return success_response({"removed": removed}, message=f"Removed {removed} expired entries")


@cache_router.delete("", summary="Clear the resource cache")
async def clear_cache(engine: Annotated[EngineContext, Depends(get_engine)]):
    engine.loader.clear()
    return success_response(None, message="Cache cleared")
