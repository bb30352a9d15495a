from __future__ import annotations

import importlib
import typing as t
from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

if t.TYPE_CHECKING:
    from astro_cache.core.models import BirthData

Chart = t.Dict[str, t.Any]


class ChartEngine:
    """Interface to the external astrology library.

    `compute_chart` must be a pure function of its input: the same birth data
    always yields the same chart, which is what makes its results cacheable.
    It is called from a worker thread and may block.
    """

    def compute_chart(self, birth: "BirthData") -> Chart:  # pragma: no cover - interface
        raise NotImplementedError

    def timezone_at(self, latitude: float, longitude: float) -> str:  # pragma: no cover - interface
        """Return the IANA zone name for a coordinate, raising if unknown."""
        raise NotImplementedError


def load_engine(path: str) -> ChartEngine:
    """Resolve `"package.module:attr"` to an engine instance.

    `attr` may name an instance, a class, or a zero-argument factory.
    """
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ValueError(f"engine path must look like 'module:attr', got {path!r}")
    module = importlib.import_module(module_name)
    target = getattr(module, attr)
    if isinstance(target, type) or (callable(target) and not hasattr(target, "compute_chart")):
        engine = target()
    else:
        engine = target
    if not hasattr(engine, "compute_chart") or not hasattr(engine, "timezone_at"):
        raise TypeError(f"{path} does not provide compute_chart() and timezone_at()")
    return t.cast(ChartEngine, engine)


def utc_offset_hours(zone_name: str, year: int, month: int, day: int, hours: int, minutes: int) -> float:
    """UTC offset of `zone_name` in hours at the given local wall-clock time.

    Raises ValueError for unknown zones or impossible dates.
    """
    try:
        zone = ZoneInfo(zone_name)
    except (ZoneInfoNotFoundError, ValueError, TypeError) as exc:
        raise ValueError(f"unknown timezone {zone_name!r}") from exc
    local = datetime(year, month, day, hours, minutes, tzinfo=zone)
    offset = local.utcoffset()
    if offset is None:
        return 0.0
    return offset.total_seconds() / 3600.0
