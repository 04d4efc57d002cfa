from enum import Enum


# ============================================================================
# INTERACTION & PERSONALIZATION CONSTANTS
# ============================================================================


class InteractionKind(str, Enum):
    VIEW = "view"
    CLICK = "click"
    LIKE = "like"
    SAVE = "save"
    SHARE = "share"
    CART_ADD = "cart_add"


# Weight added to a category per interaction kind
INTERACTION_WEIGHTS = {
    InteractionKind.VIEW: 1,
    InteractionKind.CLICK: 2,
    InteractionKind.LIKE: 5,
    InteractionKind.SAVE: 4,
    InteractionKind.SHARE: 6,
    InteractionKind.CART_ADD: 8,
}

MAX_USER_INTERACTIONS = 100  # Keep last 100 interactions
INTERACTIONS_STORAGE_KEY = "user_interactions"

# Affinity profile defaults
DEFAULT_PRICE_RANGE = (0.0, 10000.0)
PRICE_RANGE_MARGIN = 500.0  # Widen the band by this much past an outlier


# ============================================================================
# RANKING CONSTANTS
# ============================================================================

FRESHNESS_MAX_SCORE = 40.0
FRESHNESS_DECAY_PER_DAY = 2.0  # 0 after 20 days
VIEW_SCORE_CAP = 20.0
VIEWS_PER_STEP = 50  # 10 points per 50 views
VIEW_POINTS_PER_STEP = 10.0
RATING_SCORE_CAP = 15.0
MAX_RATING = 5.0
CATEGORY_SCORE_CAP = 15.0
CATEGORY_WEIGHT_MULTIPLIER = 3.0
PRICE_FIT_SCORE = 5.0
NOVELTY_SCORE = 5.0

# Feed composition
TRENDING_PERCENT = 70
DIVERSITY_PERCENT = 30


class ReasonTag(str, Enum):
    NEW = "New"
    TRENDING = "Trending"
    HIGHLY_RATED = "Highly Rated"
    YOUR_INTEREST = "Your Interest"
    RECOMMENDED = "Recommended"


NEW_ITEM_MAX_AGE_DAYS = 1
TRENDING_MIN_VIEWS = 100
HIGHLY_RATED_MIN_RATING = 4.5


# ============================================================================
# LOADER CONSTANTS
# ============================================================================


class LoadStrategy(str, Enum):
    CRITICAL = "critical"
    IMPORTANT = "important"
    NORMAL = "normal"
    LOW = "low"


# Resources preloaded on route entry, matched by route prefix ("/" is exact)
ROUTE_CRITICAL_RESOURCES = {
    "/product/": ["/api/products", "/api/categories", "/api/reviews"],
    "/profile/": ["/api/user/posts", "/api/user/followers"],
    "/": ["/api/products", "/api/categories", "/api/realtime/stats"],
}


# ============================================================================
# REALTIME CONSTANTS
# ============================================================================


class ChannelState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    DEGRADED_POLLING = "degraded_polling"


class DeliveryMode(str, Enum):
    PUSH = "push"
    POLL = "poll"


REALTIME_POLL_PATH_PREFIX = "/api/realtime"
