from typing import List, Optional, Set

from pydantic import BaseModel, Field

from feedengine.config.constants import ReasonTag
from feedengine.models.content_models import ContentItem


class ScoreBreakdown(BaseModel):
    freshness: float = 0.0
    views: float = 0.0
    rating: float = 0.0
    category: float = 0.0
    price_fit: float = 0.0
    novelty: float = 0.0

    @property
    def total(self) -> float:
        return (
            self.freshness
            + self.views
            + self.rating
            + self.category
            + self.price_fit
            + self.novelty
        )


class ScoredItem(BaseModel):
    item: ContentItem
    score: float
    reason_tags: Set[ReasonTag] = Field(default_factory=set)
    breakdown: ScoreBreakdown = Field(default_factory=ScoreBreakdown)


class FeedRequestSchema(BaseModel):
    candidates: List[ContentItem]
    batch_size: Optional[int] = Field(None, ge=1, le=100)
