"""Astrology-side helpers around the external chart engine."""

from .engine import ChartEngine, load_engine, utc_offset_hours
from .prompt import build_messages, simplify_chart
from .transit import compare_natal_with_transit

__all__ = [
    "ChartEngine",
    "load_engine",
    "utc_offset_hours",
    "build_messages",
    "simplify_chart",
    "compare_natal_with_transit",
]
