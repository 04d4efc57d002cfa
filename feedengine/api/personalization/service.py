import logging
from typing import Any, Dict, Iterable

from feedengine.api.interactions.models import Interaction
from feedengine.api.interactions.service import InteractionService
from feedengine.api.personalization.models import AffinityProfile
from feedengine.config.constants import INTERACTION_WEIGHTS, PRICE_RANGE_MARGIN
from feedengine.models.content_models import ContentItem


def apply_to_profile(
    profile: AffinityProfile, interaction: Interaction, item: ContentItem
) -> AffinityProfile:
    """
    Fold one interaction into the profile.

    Pure: returns a new profile and leaves the input untouched. This is the
    only place an AffinityProfile changes.

    - category weight grows by the interaction kind's weight
    - the price band widens by PRICE_RANGE_MARGIN past an out-of-band price
    - the rating preference moves halfway towards the item's rating
    """
    category_weights = dict(profile.category_weights)
    if item.category:
        weight = INTERACTION_WEIGHTS.get(interaction.kind, 1)
        category_weights[item.category] = category_weights.get(item.category, 0.0) + weight

    low, high = profile.price_range
    if item.price:
        if item.price < low:
            low = max(0.0, item.price - PRICE_RANGE_MARGIN)
        if item.price > high:
            high = item.price + PRICE_RANGE_MARGIN

    average_rating = profile.average_rating_preference
    if item.rating:
        average_rating = (average_rating + item.rating) / 2

    return AffinityProfile(
        price_range=(low, high),
        category_weights=category_weights,
        average_rating_preference=average_rating,
    )


class PersonalizationService:
    """
    Service for the user affinity profile.

    Handles:
    - Remembering items the user has been shown, so interactions (which only
      carry an item id) can be folded into the profile
    - Lazily applying interactions recorded since the last scoring call
    - Rebuilding the profile from the interaction log from scratch
    """

    def __init__(self, interactions: InteractionService):
        self.logger = logging.getLogger(__name__)
        self._interactions = interactions
        self._items: Dict[str, ContentItem] = {}
        self._profile = AffinityProfile()
        self._applied_sequence = 0
        self._stale = False

    def observe_items(self, items: Iterable[ContentItem]) -> None:
        """
        Remember items so interactions on them can be folded in.

        A first sighting of an item the log already references marks the
        profile stale, because those interactions were skipped so far.
        """
        logged_ids = None
        for item in items:
            is_new = item.id not in self._items
            self._items[item.id] = item
            if is_new and not self._stale:
                if logged_ids is None:
                    logged_ids = {i.item_id for i in self._interactions.interactions}
                if item.id in logged_ids:
                    self._stale = True

    def current_profile(self) -> AffinityProfile:
        """
        Profile including every interaction recorded so far.

        Interactions are applied here, on demand, never when they are
        recorded. Interactions whose item was never observed are skipped.

        Returns:
            The up-to-date AffinityProfile
        """
        total = self._interactions.total_recorded
        if self._stale or total < self._applied_sequence:
            # Skipped interactions became resolvable, or the log was cleared or reloaded
            return self.rebuild()

        pending = self._interactions.recent(self._applied_sequence)
        if pending:
            self._profile = self._apply_all(self._profile, pending)
        self._applied_sequence = total
        return self._profile

    def rebuild(self) -> AffinityProfile:
        """Recompute the profile from the full interaction log"""
        self._profile = self._apply_all(AffinityProfile(), self._interactions.interactions)
        self._applied_sequence = self._interactions.total_recorded
        self._stale = False
        self.logger.debug(
            f"Rebuilt affinity profile from {len(self._interactions)} interactions"
        )
        return self._profile

    def _apply_all(
        self, profile: AffinityProfile, interactions: Iterable[Interaction]
    ) -> AffinityProfile:
        for interaction in interactions:
            item = self._items.get(interaction.item_id)
            if item is None:
                self.logger.debug(
                    f"Skipping {interaction.kind.value} on unknown item {interaction.item_id}"
                )
                continue
            profile = apply_to_profile(profile, interaction, item)
        return profile

    def get_stats(self) -> Dict[str, Any]:
        profile = self.current_profile()
        return {
            "total_interactions": len(self._interactions),
            "known_items": len(self._items),
            "category_weights": dict(profile.category_weights),
            "price_range": list(profile.price_range),
            "average_rating_preference": profile.average_rating_preference,
        }
