from datetime import datetime, timezone
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ContentItem(BaseModel):
    """A product/content item as served by the Content Store. Read-only here."""

    id: str = Field(..., min_length=1)
    title: str = Field("", validation_alias=AliasChoices("title", "name"))
    price: float = Field(0.0, ge=0)
    category: Optional[str] = None
    created_at: Optional[datetime] = Field(
        None, validation_alias=AliasChoices("created_at", "createdAt")
    )
    view_count: int = Field(
        0, ge=0, validation_alias=AliasChoices("view_count", "viewCount", "views")
    )
    rating: float = Field(0.0, ge=0)
    owner_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("owner_id", "ownerId", "sellerId")
    )

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    def age_in_days(self, now: datetime) -> Optional[float]:
        """Age relative to ``now``; None when the creation time is unknown"""
        if self.created_at is None:
            return None
        created = self.created_at
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return (now - created).total_seconds() / 86400
