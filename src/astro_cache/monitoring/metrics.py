from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple


@dataclass
class Counter:
    name: str
    help: str
    values: Dict[Tuple, float] = field(default_factory=dict)

    def inc(self, value: float = 1.0, **labels: Any) -> None:
        key = tuple(sorted(labels.items()))
        self.values[key] = self.values.get(key, 0.0) + value

    def get(self, **labels: Any) -> float:
        return self.values.get(tuple(sorted(labels.items())), 0.0)

    def snapshot(self) -> List[Dict[str, Any]]:
        return [{"labels": dict(key), "value": value} for key, value in self.values.items()]


@dataclass
class Histogram:
    name: str
    help: str
    buckets: List[float]
    counts: Dict[Tuple, List[int]] = field(default_factory=dict)

    def observe(self, val: float, **labels: Any) -> None:
        key = tuple(sorted(labels.items()))
        if key not in self.counts:
            # trailing slot counts observations above the largest bucket
            self.counts[key] = [0 for _ in range(len(self.buckets) + 1)]
        for i, b in enumerate(self.buckets):
            if val <= b:
                self.counts[key][i] += 1
                break
        else:
            self.counts[key][-1] += 1

    def snapshot(self) -> List[Dict[str, Any]]:
        bounds = [str(b) for b in self.buckets] + ["+Inf"]
        return [
            {"labels": dict(key), "buckets": dict(zip(bounds, counts))}
            for key, counts in self.counts.items()
        ]


# Predefined metrics
cache_lookups_total = Counter("astro_cache_lookups_total", "Cache lookups by namespace and result")
cache_fallbacks_total = Counter("astro_cache_fallbacks_total", "Requests served without cache after a cache error")
rate_limit_rejections_total = Counter("astro_rate_limit_rejections_total", "Requests rejected by the rate limiter")
upstream_latency_seconds = Histogram(
    "astro_upstream_latency_seconds",
    "Latency of chart engine, geocoder and LLM calls",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)


def snapshot() -> Dict[str, Any]:
    return {
        metric.name: metric.snapshot()
        for metric in (
            cache_lookups_total,
            cache_fallbacks_total,
            rate_limit_rejections_total,
            upstream_latency_seconds,
        )
    }
