"""In-process response cache: bounded, expiring, tag-addressable."""

from .bounded_cache import BoundedExpiringCache, CacheConfig, CacheEntry, CacheStats, generate_key, hash_code
from .memoize import API, CHART, LOCATION, TRANSIT, CacheStrategy, cached, guarded_lookup, lookup, with_cache

__all__ = [
    "BoundedExpiringCache",
    "CacheConfig",
    "CacheEntry",
    "CacheStats",
    "CacheStrategy",
    "generate_key",
    "hash_code",
    "cached",
    "guarded_lookup",
    "lookup",
    "with_cache",
    "CHART",
    "LOCATION",
    "TRANSIT",
    "API",
]
