"""
Cache configuration settings
Centralized TTL values per resource class and the resource cache budget
"""

import os
from typing import Any, Dict


class CacheConfig:
    """Cache configuration with environment variable overrides"""

    # Default TTL values in seconds
    DEFAULT_TTL = int(os.getenv("CACHE_DEFAULT_TTL", "300"))  # 5 minutes

    # Resource-class TTL values
    PRODUCTS_TTL = int(os.getenv("CACHE_PRODUCTS_TTL", "300"))  # 5 minutes
    CATEGORIES_TTL = int(os.getenv("CACHE_CATEGORIES_TTL", "1800"))  # 30 minutes
    PAGES_TTL = int(os.getenv("CACHE_PAGES_TTL", "300"))  # 5 minutes
    REALTIME_TTL = int(os.getenv("CACHE_REALTIME_TTL", "5"))  # 5 seconds
    STATIC_TTL = int(os.getenv("CACHE_STATIC_TTL", "3600"))  # 1 hour

    # Cache cleanup and maintenance
    CLEANUP_INTERVAL_MINUTES = float(
        os.getenv("CACHE_CLEANUP_INTERVAL", "5")
    )  # 5 minutes
    MAX_CACHE_SIZE_BYTES = int(
        os.getenv("CACHE_MAX_SIZE_BYTES", str(50 * 1024 * 1024))
    )  # 50 MB limit

    # Namespace for entries mirrored into durable local storage
    PERSISTED_KEY_NAMESPACE = "feed_cache_"

    @classmethod
    def get_ttl(cls, cache_type: str) -> int:
        """Get TTL for specific cache type"""
        ttl_mapping = {
            "products": cls.PRODUCTS_TTL,
            "categories": cls.CATEGORIES_TTL,
            "pages": cls.PAGES_TTL,
            "realtime": cls.REALTIME_TTL,
            "static": cls.STATIC_TTL,
            "default": cls.DEFAULT_TTL,
        }
        return ttl_mapping.get(cache_type, cls.DEFAULT_TTL)

    @classmethod
    def resource_class_for(cls, path: str) -> str:
        """Map a request path onto its resource class"""
        if path.startswith("/api/products") or path.startswith("/product/"):
            return "products"
        if path.startswith("/api/categories"):
            return "categories"
        if path.startswith("/api/realtime"):
            return "realtime"
        if path.endswith(".js") or path.endswith(".css"):
            return "static"
        if path.startswith("/api/"):
            return "default"
        return "pages"

    @classmethod
    def get_all_settings(cls) -> Dict[str, Any]:
        """Get all cache settings for debugging/monitoring"""
        return {
            "ttl_settings": {
                "default": cls.DEFAULT_TTL,
                "products": cls.PRODUCTS_TTL,
                "categories": cls.CATEGORIES_TTL,
                "pages": cls.PAGES_TTL,
                "realtime": cls.REALTIME_TTL,
                "static": cls.STATIC_TTL,
            },
            "maintenance": {
                "cleanup_interval_minutes": cls.CLEANUP_INTERVAL_MINUTES,
                "max_cache_size_bytes": cls.MAX_CACHE_SIZE_BYTES,
            },
        }


# Global cache config instance
cache_config = CacheConfig()
