from typing import List

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from feedengine.config.constants import InteractionKind
from feedengine.models.content_models import ContentItem


class Interaction(BaseModel):
    item_id: str = Field(..., min_length=1)
    kind: InteractionKind
    timestamp: float = Field(..., description="Epoch seconds")

    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)


InteractionList = TypeAdapter(List[Interaction])


class RecordInteractionSchema(BaseModel):
    item: ContentItem
    kind: InteractionKind
