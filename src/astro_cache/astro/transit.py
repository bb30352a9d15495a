"""Aspects between natal and transit planet positions."""

from __future__ import annotations

import typing as t
from dataclasses import dataclass

JSON = t.Dict[str, t.Any]


@dataclass(frozen=True)
class AspectType:
    name: str
    degrees: float
    orb: float
    kind: str  # major | harmonious | challenging


ASPECT_TYPES: t.Tuple[AspectType, ...] = (
    AspectType("conjunction", 0, 8, "major"),
    AspectType("sextile", 60, 6, "harmonious"),
    AspectType("square", 90, 8, "challenging"),
    AspectType("trine", 120, 8, "harmonious"),
    AspectType("opposition", 180, 8, "challenging"),
)

MAX_REPORTED_ASPECTS = 20


def _longitude(planet: t.Any) -> float:
    if not isinstance(planet, dict):
        return 0.0
    position = planet.get("position") or {}
    try:
        return float(position.get("longitude") or 0.0)
    except (TypeError, ValueError):
        return 0.0


def angular_separation(a: float, b: float) -> float:
    """Shortest arc between two ecliptic longitudes, in [0, 180]."""
    diff = abs(a - b) % 360.0
    return 360.0 - diff if diff > 180.0 else diff


def summarize(aspects: t.Sequence[JSON]) -> JSON:
    harmonious = sum(1 for a in aspects if a["type"] == "harmonious")
    challenging = sum(1 for a in aspects if a["type"] == "challenging")
    major = sum(1 for a in aspects if a["type"] == "major")
    if harmonious > challenging:
        interpretation = "Harmonious influences dominate this period."
    elif challenging > harmonious:
        interpretation = "Challenging influences call for attention in this period."
    else:
        interpretation = "The energy of this period is balanced."
    return {
        "harmonious": harmonious,
        "challenging": challenging,
        "major": major,
        "interpretation": interpretation,
    }


def compare_natal_with_transit(natal_chart: JSON, transit_chart: JSON) -> JSON:
    aspects: t.List[t.Tuple[float, JSON]] = []
    natal_planets = natal_chart.get("planets") or {}
    transit_planets = transit_chart.get("planets") or {}

    for natal_name, natal_planet in natal_planets.items():
        natal_long = _longitude(natal_planet)
        for transit_name, transit_planet in transit_planets.items():
            separation = angular_separation(_longitude(transit_planet), natal_long)
            for aspect in ASPECT_TYPES:
                deviation = abs(separation - aspect.degrees)
                if deviation > aspect.orb:
                    continue
                aspects.append(
                    (
                        deviation,
                        {
                            "natalPlanet": natal_name,
                            "transitPlanet": transit_name,
                            "aspect": aspect.name,
                            "type": aspect.kind,
                            "orb": f"{deviation:.2f}",
                            "exactness": f"{(aspect.orb - deviation) / aspect.orb * 100:.1f}",
                        },
                    )
                )

    # stable sort keeps natal/transit iteration order among equal orbs
    aspects.sort(key=lambda pair: pair[0])
    ordered = [entry for _, entry in aspects]
    return {
        "totalAspects": len(ordered),
        "aspects": ordered[:MAX_REPORTED_ASPECTS],
        "summary": summarize(ordered),
    }
