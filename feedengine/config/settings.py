import os

from dotenv import load_dotenv

from feedengine.shared.utils import get_logger

logger = get_logger(__name__)


load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application configuration settings. Read once at startup."""

    # Environment
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

    # Content Store
    CONTENT_STORE_URL = os.getenv("CONTENT_STORE_URL", "http://localhost:3000")
    CONTENT_STORE_TIMEOUT = float(os.getenv("CONTENT_STORE_TIMEOUT", "10"))

    # Feed
    FEED_SOURCE_PATH = os.getenv("FEED_SOURCE_PATH", "/api/products")
    FEED_BATCH_SIZE = int(os.getenv("FEED_BATCH_SIZE", "12"))

    # Live updates
    REALTIME_WS_URL = os.getenv("REALTIME_WS_URL") or None
    REALTIME_POLL_INTERVAL = float(os.getenv("REALTIME_POLL_INTERVAL", "1.5"))
    REALTIME_RECONNECT_BASE_DELAY = float(
        os.getenv("REALTIME_RECONNECT_BASE_DELAY", "1.0")
    )
    REALTIME_MAX_RECONNECT_ATTEMPTS = int(
        os.getenv("REALTIME_MAX_RECONNECT_ATTEMPTS", "5")
    )

    # Durable local storage
    LOCAL_STORAGE_PATH = os.getenv("LOCAL_STORAGE_PATH", "./data/local_storage.json")

    # Resource cache mirror
    CACHE_PERSIST = _env_bool("CACHE_PERSIST")

    # API
    API_TITLE = "Feed Engine API"
    API_VERSION = "1.0.0"


settings = Settings()
