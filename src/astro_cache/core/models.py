from __future__ import annotations

import datetime
import logging
import re
import typing as t
from dataclasses import dataclass, field

from astro_cache.astro.engine import utc_offset_hours

JSON = t.Dict[str, t.Any]
TimezoneLookup = t.Callable[[float, float], str]

_DATE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_TIME_RE = re.compile(r"^(\d{1,2}):(\d{1,2})(?::(\d{1,2}))?$")

_logger = logging.getLogger(__name__)


class RequestError(ValueError):
    """Client input that cannot be turned into a chart request (HTTP 400)."""

    def __init__(self, message: str, details: t.Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> JSON:
        body: JSON = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


@dataclass(frozen=True)
class BirthData:
    year: int
    month: int
    day: int
    hours: int
    minutes: int
    latitude: float
    longitude: float
    timezone: float  # UTC offset in hours
    seconds: int = 0
    chart_type: str = "tropical"

    def cache_fields(self) -> JSON:
        """Normalized, order-stable mapping used to derive cache keys."""
        return {
            "year": self.year,
            "month": self.month,
            "day": self.day,
            "hours": self.hours,
            "minutes": self.minutes,
            "seconds": self.seconds,
            "latitude": round(self.latitude, 6),
            "longitude": round(self.longitude, 6),
            "timezone": self.timezone,
            "chartType": self.chart_type,
        }


@dataclass
class TransitQuery:
    transit_date: str
    birth: BirthData
    natal_chart: t.Optional[JSON] = field(default=None)


def parse_date(raw: str) -> t.Tuple[int, int, int]:
    match = _DATE_RE.match(raw.strip())
    if not match:
        raise RequestError("Invalid date.", f"Expected YYYY-MM-DD, got {raw!r}.")
    year, month, day = (int(part) for part in match.groups())
    try:
        datetime.date(year, month, day)
    except ValueError as exc:
        raise RequestError("Invalid date.", f"{raw!r} is not a calendar date.") from exc
    return year, month, day


def parse_time(raw: str) -> t.Tuple[int, int]:
    match = _TIME_RE.match(raw.strip())
    if not match:
        raise RequestError("Invalid time.", f"Expected HH:MM, got {raw!r}.")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise RequestError("Invalid time.", f"{raw!r} is not a time of day.")
    return hours, minutes


def _coordinate(value: t.Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise RequestError("Location coordinates are missing.", f"{name} must be a number.")
    try:
        return float(value)
    except ValueError as exc:
        raise RequestError("Location coordinates are missing.", f"{name} must be a number.") from exc


def _mapping(value: t.Any, name: str) -> JSON:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise RequestError("Malformed request.", f"{name} must be an object.")
    return value


def _offset(zone_name: str, year: int, month: int, day: int, hours: int, minutes: int) -> float:
    try:
        return utc_offset_hours(zone_name, year, month, day, hours, minutes)
    except ValueError as exc:
        raise RequestError("Could not determine the timezone of the location.", str(exc)) from exc


def parse_birth_request(body: t.Any, timezone_lookup: TimezoneLookup) -> BirthData:
    """Validate a `/api/calculate` body and resolve its UTC offset."""
    if not isinstance(body, dict):
        raise RequestError("Request body must be a JSON object.")
    date, time_, location = body.get("date"), body.get("time"), body.get("location")
    if not date:
        raise RequestError("Birth date is required.", "Provide a date in YYYY-MM-DD format.")
    if not time_:
        raise RequestError("Birth time is required.", "Provide a time in HH:MM format.")
    if not location or not isinstance(location, dict):
        raise RequestError("Birth place is required.", "Select a location.")
    geometry = location.get("geometry") or {}
    if not isinstance(geometry, dict) or geometry.get("lat") in (None, "") or geometry.get("lng") in (None, ""):
        raise RequestError("Location coordinates are missing.", "Select a valid location from the list.")

    year, month, day = parse_date(str(date))
    hours, minutes = parse_time(str(time_))
    lat = _coordinate(geometry["lat"], "lat")
    lng = _coordinate(geometry["lng"], "lng")

    annotations = _mapping(location.get("annotations"), "location.annotations")
    zone_name = _mapping(annotations.get("timezone"), "location.annotations.timezone").get("name")
    if zone_name is not None and not isinstance(zone_name, str):
        raise RequestError("Invalid timezone.", "location.annotations.timezone.name must be a string.")
    if not zone_name:
        try:
            zone_name = timezone_lookup(lat, lng)
        except Exception as exc:
            raise RequestError(
                "Could not determine the timezone of the location.",
                f"Coordinates: {lat}, {lng}",
            ) from exc

    return BirthData(
        year=year,
        month=month,
        day=day,
        hours=hours,
        minutes=minutes,
        latitude=lat,
        longitude=lng,
        timezone=_offset(zone_name, year, month, day, hours, minutes),
    )


def parse_transit_request(body: t.Any, timezone_lookup: TimezoneLookup) -> TransitQuery:
    """Validate a `/api/transit` body.

    Time defaults to 12:00 and coordinates fall back to the natal chart's
    birth info, then to 0. An unresolvable timezone falls back to UTC.
    """
    if not isinstance(body, dict):
        raise RequestError("Request body must be a JSON object.")
    transit_date = body.get("transitDate")
    if not transit_date or not isinstance(transit_date, str):
        raise RequestError("Transit date is required.")

    date_part, _, time_part = transit_date.partition("T")
    year, month, day = parse_date(date_part)
    hours, minutes = 12, 0
    if time_part:
        hours, minutes = parse_time(time_part)

    natal = body.get("natalChart") if isinstance(body.get("natalChart"), dict) else None
    birth_info = _mapping((natal or {}).get("birthInfo"), "natalChart.birthInfo")
    lat_raw = body.get("latitude") if body.get("latitude") is not None else birth_info.get("latitude", 0)
    lng_raw = body.get("longitude") if body.get("longitude") is not None else birth_info.get("longitude", 0)
    lat = _coordinate(lat_raw, "latitude")
    lng = _coordinate(lng_raw, "longitude")

    try:
        offset = utc_offset_hours(timezone_lookup(lat, lng), year, month, day, hours, minutes)
    except Exception as exc:
        _logger.warning("transit timezone lookup failed for %s,%s; using UTC: %s", lat, lng, exc)
        offset = 0.0

    birth = BirthData(
        year=year,
        month=month,
        day=day,
        hours=hours,
        minutes=minutes,
        latitude=lat,
        longitude=lng,
        timezone=offset,
    )
    return TransitQuery(transit_date=transit_date, birth=birth, natal_chart=natal)
