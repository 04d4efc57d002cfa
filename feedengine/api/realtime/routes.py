from typing import Annotated

from fastapi import APIRouter, Depends

from feedengine.context import EngineContext
from feedengine.core.responses import success_response
from feedengine.dependencies.engine import get_engine

realtime_router = APIRouter(prefix="/realtime", tags=["Realtime"])


@realtime_router.get("/status", summary="Live-update channel state")
async def get_realtime_status(engine: Annotated[EngineContext, Depends(get_engine)]):
    return success_response(engine.channel.get_connection_info())
