from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query

from feedengine.api.ranking.models import FeedRequestSchema
from feedengine.context import EngineContext
from feedengine.core.responses import success_response
from feedengine.dependencies.engine import get_engine

feed_router = APIRouter(prefix="/feed", tags=["Feed"])


@feed_router.post("", summary="Rank a supplied list of candidates")
async def rank_candidates(
    payload: FeedRequestSchema,
    engine: Annotated[EngineContext, Depends(get_engine)],
):
    """
    Score and order the given candidates into one feed batch.

    The top 70% of the batch is the best-scoring items; the rest is a random
    sample of the remaining candidates.
    """
    feed = await engine.get_feed(batch_size=payload.batch_size, candidates=payload.candidates)
    return success_response([scored.model_dump(mode="json") for scored in feed])


@feed_router.get("", summary="Get the next feed batch from the Content Store")
async def get_feed(
    engine: Annotated[EngineContext, Depends(get_engine)],
    batch_size: Optional[int] = Query(
        None, ge=1, le=100, description="Number of items to return (default: FEED_BATCH_SIZE)"
    ),
):
    feed = await engine.get_feed(batch_size=batch_size)
    return success_response([scored.model_dump(mode="json") for scored in feed])
