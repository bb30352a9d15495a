"""astro_cache

HTTP backend for natal and transit chart calculation with an in-process,
bounded, expiring response cache, per-route rate limiting, and resilient
clients for geocoding and AI chart interpretation.
"""

from .cache import (
    API,
    CHART,
    LOCATION,
    TRANSIT,
    BoundedExpiringCache,
    CacheConfig,
    CacheStats,
    CacheStrategy,
    cached,
    generate_key,
    with_cache,
)
from .core.app import create_app
from .utils.config import AppConfig

__all__ = [
    "BoundedExpiringCache",
    "CacheConfig",
    "CacheStats",
    "CacheStrategy",
    "generate_key",
    "cached",
    "with_cache",
    "CHART",
    "LOCATION",
    "TRANSIT",
    "API",
    "AppConfig",
    "create_app",
]

__version__ = "0.1.0"
