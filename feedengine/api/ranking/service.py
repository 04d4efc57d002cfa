import logging
import random
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from feedengine.api.personalization.models import AffinityProfile
from feedengine.api.personalization.service import PersonalizationService
from feedengine.api.ranking.models import ScoreBreakdown, ScoredItem
from feedengine.config.constants import (
    CATEGORY_SCORE_CAP,
    CATEGORY_WEIGHT_MULTIPLIER,
    DIVERSITY_PERCENT,
    FRESHNESS_DECAY_PER_DAY,
    FRESHNESS_MAX_SCORE,
    HIGHLY_RATED_MIN_RATING,
    MAX_RATING,
    NEW_ITEM_MAX_AGE_DAYS,
    NOVELTY_SCORE,
    PRICE_FIT_SCORE,
    RATING_SCORE_CAP,
    TRENDING_MIN_VIEWS,
    TRENDING_PERCENT,
    VIEW_POINTS_PER_STEP,
    VIEW_SCORE_CAP,
    VIEWS_PER_STEP,
    ReasonTag,
)
from feedengine.models.content_models import ContentItem


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ceil_share(count: int, percent: int) -> int:
    """ceil(count * percent / 100) without float rounding"""
    return -(-count * percent // 100)


class RankingService:
    """
    Scores content items and assembles feed batches.

    Handles:
    - Additive scoring: freshness, view and rating engagement, category
      affinity, price-band fit and novelty, each independently capped
    - Feed assembly: top 70% by score ("trending") followed by a random 30%
      sample of the rest ("diversity")
    - Session memory of items already shown, which removes their novelty bonus
    """

    def __init__(
        self,
        personalization: PersonalizationService,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.logger = logging.getLogger(__name__)
        self._personalization = personalization
        self._rng = rng or random.Random()
        self._clock = clock
        self._seen_item_ids: Set[str] = set()

    @property
    def seen_item_ids(self) -> Set[str]:
        return set(self._seen_item_ids)

    def score_breakdown(
        self, item: ContentItem, profile: Optional[AffinityProfile] = None
    ) -> ScoreBreakdown:
        """Per-term contributions for one item"""
        if profile is None:
            profile = self._personalization.current_profile()

        age_days = item.age_in_days(self._clock())
        if age_days is None:
            freshness = FRESHNESS_MAX_SCORE
        else:
            freshness = max(
                0.0, FRESHNESS_MAX_SCORE - FRESHNESS_DECAY_PER_DAY * max(0.0, age_days)
            )

        views = min(VIEW_SCORE_CAP, (item.view_count / VIEWS_PER_STEP) * VIEW_POINTS_PER_STEP)
        rating = min(RATING_SCORE_CAP, max(0.0, (item.rating / MAX_RATING) * RATING_SCORE_CAP))
        category = min(
            CATEGORY_SCORE_CAP,
            profile.category_weight(item.category) * CATEGORY_WEIGHT_MULTIPLIER,
        )
        price_fit = PRICE_FIT_SCORE if profile.price_fits(item.price) else 0.0
        novelty = 0.0 if item.id in self._seen_item_ids else NOVELTY_SCORE

        return ScoreBreakdown(
            freshness=freshness,
            views=views,
            rating=rating,
            category=category,
            price_fit=price_fit,
            novelty=novelty,
        )

    def calculate_score(
        self, item: ContentItem, profile: Optional[AffinityProfile] = None
    ) -> float:
        return self.score_breakdown(item, profile).total

    def reason_tags(
        self, item: ContentItem, profile: Optional[AffinityProfile] = None
    ) -> Set[ReasonTag]:
        if profile is None:
            profile = self._personalization.current_profile()
        tags: Set[ReasonTag] = set()

        age_days = item.age_in_days(self._clock())
        if age_days is not None and age_days < NEW_ITEM_MAX_AGE_DAYS:
            tags.add(ReasonTag.NEW)
        if item.view_count > TRENDING_MIN_VIEWS:
            tags.add(ReasonTag.TRENDING)
        if item.rating >= HIGHLY_RATED_MIN_RATING:
            tags.add(ReasonTag.HIGHLY_RATED)
        if profile.category_weight(item.category) > 0:
            tags.add(ReasonTag.YOUR_INTEREST)

        return tags or {ReasonTag.RECOMMENDED}

    def score(
        self, item: ContentItem, profile: Optional[AffinityProfile] = None
    ) -> ScoredItem:
        if profile is None:
            profile = self._personalization.current_profile()
        breakdown = self.score_breakdown(item, profile)
        return ScoredItem(
            item=item,
            score=breakdown.total,
            reason_tags=self.reason_tags(item, profile),
            breakdown=breakdown,
        )

    def build_feed(
        self, candidates: Sequence[ContentItem], batch_size: int
    ) -> List[ScoredItem]:
        """
        Assemble one ordered feed batch.

        Args:
            candidates: Items to choose from, in Content Store order
            batch_size: Number of items wanted

        Returns:
            At most batch_size scored items. When there are more candidates
            than batch_size: the top ceil(0.7 * batch_size) by score, then a
            random sample of ceil(0.3 * batch_size) from the rest, truncated
            to batch_size. Every returned item is marked as seen.
        """
        if batch_size <= 0 or not candidates:
            return []

        self._personalization.observe_items(candidates)
        profile = self._personalization.current_profile()

        # sorted() is stable, so equal scores keep candidate order
        scored = sorted(
            (self.score(item, profile) for item in candidates),
            key=lambda scored_item: scored_item.score,
            reverse=True,
        )

        if len(scored) <= batch_size:
            batch = scored
        else:
            trending_count = _ceil_share(batch_size, TRENDING_PERCENT)
            diversity_count = _ceil_share(batch_size, DIVERSITY_PERCENT)
            trending = scored[:trending_count]
            remainder = scored[trending_count:]
            # A short remainder gives a short batch; it is not padded back up
            diversity = self._rng.sample(remainder, min(diversity_count, len(remainder)))
            batch = (trending + diversity)[:batch_size]

        for scored_item in batch:
            self._seen_item_ids.add(scored_item.item.id)

        self.logger.debug(
            f"Built feed of {len(batch)} items from {len(candidates)} candidates"
        )
        return batch

    def reset_session(self) -> None:
        self._seen_item_ids.clear()

    def get_stats(self) -> Dict[str, Any]:
        stats = self._personalization.get_stats()
        stats["seen_items"] = len(self._seen_item_ids)
        return stats
