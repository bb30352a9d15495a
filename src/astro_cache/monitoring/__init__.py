"""In-process counters and histograms."""

from .metrics import (
    cache_fallbacks_total,
    cache_lookups_total,
    rate_limit_rejections_total,
    snapshot,
    upstream_latency_seconds,
)

__all__ = [
    "cache_fallbacks_total",
    "cache_lookups_total",
    "rate_limit_rejections_total",
    "snapshot",
    "upstream_latency_seconds",
]
