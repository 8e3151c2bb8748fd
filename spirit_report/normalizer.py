"""Convert loosely-typed placement service payloads into canonical placements.

The upstream shapes are defined by the external service and change without
notice, so every accessor here defaults instead of raising:

    planets: {"output": [{"planet": {"en": "Sun"}, "zodiac_sign": {"name": {"en": "Leo"}}}, ...]}
    houses:  {"output": {"Houses": [{"House": 1, "zodiac_sign": {"name": {"en": "Aries"}}}, ...]}}
"""

from __future__ import annotations

from typing import Any

from spirit_report.models import Big3, HousePlacement, Placement


def _dig(value: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    return ""


def _english_label(value: Any, *keys: str) -> str:
    """Read `value[keys...]`, accepting a bare string anywhere along the path."""
    for key in keys:
        if isinstance(value, str):
            break
        if not isinstance(value, dict):
            return ""
        value = value.get(key)
    return _text(value)


def _collection(raw: Any, *paths: tuple[str, ...]) -> list:
    if isinstance(raw, list):
        return raw
    for path in paths:
        candidate = _dig(raw, *path)
        if isinstance(candidate, list):
            return candidate
    return []


def _coerce_house_number(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        number = value
    elif isinstance(value, float) and value.is_integer():
        number = int(value)
    elif isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
    else:
        return None
    return number if 1 <= number <= 12 else None


def normalize_planets(raw: Any) -> list[Placement]:
    planets: list[Placement] = []
    for record in _collection(raw, ("output",)):
        if not isinstance(record, dict):
            continue
        planets.append(
            Placement(
                name=_english_label(record.get("planet"), "en"),
                sign=_english_label(record.get("zodiac_sign"), "name", "en"),
            )
        )
    return planets


def normalize_houses(raw: Any) -> list[HousePlacement]:
    houses: list[HousePlacement] = []
    seen: set[int] = set()
    for record in _collection(raw, ("output", "Houses"), ("output",)):
        if not isinstance(record, dict):
            continue
        number = _coerce_house_number(record.get("House", record.get("house")))
        if number is None or number in seen:
            continue
        seen.add(number)
        houses.append(
            HousePlacement(
                house=number,
                sign=_english_label(record.get("zodiac_sign"), "name", "en"),
            )
        )
    return houses


def _find_sign(planets: list[Placement], name: str) -> str:
    for placement in planets:
        if placement.name.strip().lower() == name:
            return placement.sign
    return ""


def extract_big3(planets: list[Placement]) -> Big3:
    return Big3(
        ascendant=_find_sign(planets, "ascendant"),
        sun=_find_sign(planets, "sun"),
        moon=_find_sign(planets, "moon"),
    )
