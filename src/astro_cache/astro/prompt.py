from __future__ import annotations

import json
import typing as t

JSON = t.Dict[str, t.Any]

ZODIAC_SIGNS = (
    "Aries",
    "Taurus",
    "Gemini",
    "Cancer",
    "Leo",
    "Virgo",
    "Libra",
    "Scorpio",
    "Sagittarius",
    "Capricorn",
    "Aquarius",
    "Pisces",
)

SYSTEM_PROMPT = (
    "You are a professional astrology consultant. Speak plainly, without jargon or the names of "
    "aspects, and address the reader directly ('your Sun', 'your Moon'). Your answers are detailed, "
    "warm and empathetic, and focus on personality, relationships and career."
)

_RULES = """Rules:
1. Do not use technical astrological terms (trine, square, conjunction, opposition, sextile, aspect).
2. Write in everyday language, as if speaking one to one.
3. Interpret the birth chart first: personality, relationships, career.
4. If transit data is present, interpret it afterwards with a focus on concrete events.
5. Write flowing paragraphs.
6. Stay strictly within what the calculations show; never invent details.
7. Do not give advice; only interpret."""


def sign_name(sign_number: t.Any) -> str:
    """Map a 1-based sign index to its name."""
    try:
        index = int(sign_number)
    except (TypeError, ValueError):
        return "Unknown"
    if 1 <= index <= len(ZODIAC_SIGNS):
        return ZODIAC_SIGNS[index - 1]
    return "Unknown"


def simplify_chart(chart: JSON) -> JSON:
    """Reduce an engine chart to the fields the language model needs.

    Raises KeyError/TypeError/AttributeError when the chart lacks the sun or
    moon or has malformed positions.
    """
    planets_in = chart["planets"]
    planets: JSON = {}
    for key, planet in planets_in.items():
        name = planet.get("name") or key
        planets[name] = {
            "sign": planet.get("signName"),
            "degree": f"{float(planet['position']['longitude']):.1f}",
            "retrograde": bool(planet.get("retrograde")),
        }

    axes = chart.get("axes") or {}
    big_three = {
        "sun": planets_in["sun"]["signName"],
        "moon": planets_in["moon"]["signName"],
        "rising": sign_name(axes["asc"].get("sign")) if axes.get("asc") else "Unknown",
    }

    houses = [
        {
            "house": index,
            "sign": sign_name(house.get("sign")),
            "degree": f"{float(house['position']['longitude']):.1f}",
        }
        for index, house in enumerate(chart.get("houses") or [], start=1)
    ]

    aspects: t.List[JSON] = []
    for planet_name, planet_aspects in (chart.get("aspects") or {}).items():
        for aspect in planet_aspects or []:
            second = aspect.get("second") or {}
            if second.get("exist"):
                aspects.append({"planet1": planet_name, "planet2": second.get("name"), "aspect": aspect.get("name")})

    patterns: JSON = {}
    if chart.get("chartPatterns"):
        source = chart["chartPatterns"]
        patterns = {
            "elementEmphasis": source.get("elementEmphasis"),
            "modalityEmphasis": source.get("qualityEmphasis"),
            "stelliums": source.get("stelliums"),
        }

    return {
        "bigThree": big_three,
        "planets": planets,
        "houses": houses,
        "keyAspects": aspects[:10],
        "patterns": patterns,
    }


def transit_section(transit_data: t.Optional[JSON]) -> str:
    if not transit_data or not transit_data.get("comparison"):
        return ""
    comparison = transit_data["comparison"]
    summary = comparison.get("summary") or {}
    lines = [
        f"- Transit {a.get('transitPlanet')} -> natal {a.get('natalPlanet')} ({a.get('aspect')})"
        for a in (comparison.get("aspects") or [])[:10]
    ]
    return (
        f"\n\nTRANSIT ANALYSIS ({transit_data.get('transitDate') or 'today'}):\n"
        f"- Total aspects: {comparison.get('totalAspects', 0)}\n"
        f"- Harmonious: {summary.get('harmonious', 0)}\n"
        f"- Challenging: {summary.get('challenging', 0)}\n"
        f"- Major: {summary.get('major', 0)}\n\n"
        "Key transit aspects:\n" + "\n".join(lines) + "\n\n"
        f"Transit summary: {summary.get('interpretation', '')}\n"
    )


def build_messages(chart: JSON, transit_data: t.Optional[JSON] = None) -> t.List[JSON]:
    """Chat-completion messages for an interpretation request."""
    simplified = simplify_chart(chart)
    user_prompt = (
        "Interpret the birth chart and transit data below.\n\n"
        f"{_RULES}\n\n"
        "BIRTH CHART DATA:\n"
        f"{json.dumps(simplified, indent=2, ensure_ascii=False)}"
        f"{transit_section(transit_data)}\n\n"
        "Now interpret this person's birth chart and current transits following the rules above."
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]
