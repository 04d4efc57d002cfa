from typing import Annotated

from fastapi import APIRouter, Depends, status

from feedengine.api.interactions.models import RecordInteractionSchema
from feedengine.context import EngineContext
from feedengine.core.responses import success_response
from feedengine.dependencies.engine import get_engine

interactions_router = APIRouter(prefix="/interactions", tags=["Interactions"])


@interactions_router.post(
    "", summary="Record a user interaction", status_code=status.HTTP_201_CREATED
)
async def record_interaction(
    payload: RecordInteractionSchema,
    engine: Annotated[EngineContext, Depends(get_engine)],
):
    interaction = engine.record_interaction(payload.item, payload.kind)
    return success_response(
        interaction.model_dump(mode="json"),
        message="Interaction recorded",
        status_code=status.HTTP_201_CREATED,
    )


@interactions_router.get("", summary="List the interaction log, oldest first")
async def list_interactions(engine: Annotated[EngineContext, Depends(get_engine)]):
    return success_response(
        [interaction.model_dump(mode="json") for interaction in engine.interactions.interactions]
    )


@interactions_router.get("/profile", summary="Get the current affinity profile")
async def get_profile(engine: Annotated[EngineContext, Depends(get_engine)]):
    return success_response(engine.ranking.get_stats())
