from typing import Dict, Tuple

from pydantic import BaseModel, ConfigDict, Field

from feedengine.config.constants import DEFAULT_PRICE_RANGE


class AffinityProfile(BaseModel):
    """Derived summary of the user's category, price and rating preferences"""

    price_range: Tuple[float, float] = DEFAULT_PRICE_RANGE
    category_weights: Dict[str, float] = Field(default_factory=dict)
    average_rating_preference: float = 0.0

    model_config = ConfigDict(frozen=True)

    def category_weight(self, category) -> float:
        if not category:
            return 0.0
        return self.category_weights.get(category, 0.0)

    def price_fits(self, price: float) -> bool:
        low, high = self.price_range
        return low <= price <= high
