"""
divisional_charts.py
====================
Divisional (Varga) charts derived from sidereal longitudes.

Each sign is split into N equal parts and each part is mapped to a sign of
the divisional chart. Signs are 1-based (Aries=1) like everywhere else.

Charts implemented:
  D1  — Rasi (natal chart, identity)
  D2  — Hora (wealth)
  D3  — Drekkana (siblings, courage)
  D7  — Saptamsa (children)
  D9  — Navamsa (spouse, dharma)
  D10 — Dasamsa (career)
  D12 — Dvadasamsa (parents)
  D60 — Shastiamsa (past karma)

Providers usually send D9/D10 ready-made; these are used when they don't
and longitudes are known.

Source: Parashara BPHS
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Union

from .errors import InvalidInputError
from .signs import (
    PlanetPosition, ResolvedChart, check_longitude, house_from_sign, resolve_positions,
    sign_from_longitude,
)

ODD_SIGNS = {1, 3, 5, 7, 9, 11}     # Aries, Gemini, Leo, Libra, Sagittarius, Aquarius

# Navamsa starts by element: fire → Aries, earth → Capricorn,
# air → Libra, water → Cancer
NAVAMSA_START = {1: 1, 2: 10, 3: 7, 4: 4}


@dataclass(frozen=True)
class DivisionalPosition:
    division: str           # e.g. "D9"
    sign: int               # 1–12
    degree_in_sign: float


def _base(longitude: float):
    """(sign 1–12, degree in sign) from a sidereal longitude."""
    longitude = check_longitude(longitude)
    return int(longitude // 30) + 1, longitude % 30


def _part(deg: float, parts: int) -> int:
    return min(int(deg / (30.0 / parts)), parts - 1)


def _count(sign: int, steps: int) -> int:
    """Sign `steps` places after `sign`, wrapping at Pisces."""
    return (sign - 1 + steps) % 12 + 1


def _scaled(deg: float, parts: int) -> float:
    return round(deg % (30.0 / parts) * parts, 4)


def d1(longitude: float) -> DivisionalPosition:
    sign, deg = _base(longitude)
    return DivisionalPosition("D1", sign, round(deg, 4))


def d2(longitude: float) -> DivisionalPosition:
    """
    D2 Hora: 2 × 15°.
    Odd signs: 0–15° → Leo, 15–30° → Cancer; even signs the other way round.
    """
    sign, deg = _base(longitude)
    first_half = deg < 15.0
    if sign in ODD_SIGNS:
        hora = 5 if first_half else 4
    else:
        hora = 4 if first_half else 5
    return DivisionalPosition("D2", hora, _scaled(deg, 2))


def d3(longitude: float) -> DivisionalPosition:
    """D3 Drekkana: 3 × 10°: same sign, 5th from it, 9th from it."""
    sign, deg = _base(longitude)
    part = _part(deg, 3)
    return DivisionalPosition("D3", _count(sign, (0, 4, 8)[part]), _scaled(deg, 3))


def d7(longitude: float) -> DivisionalPosition:
    """D7 Saptamsa: 7 parts; odd signs count from the sign, even from the 7th."""
    sign, deg = _base(longitude)
    start = sign if sign in ODD_SIGNS else _count(sign, 6)
    return DivisionalPosition("D7", _count(start, _part(deg, 7)), _scaled(deg, 7))


def d9(longitude: float) -> DivisionalPosition:
    """D9 Navamsa: 9 × 3°20', starting sign by element."""
    sign, deg = _base(longitude)
    start = NAVAMSA_START[(sign - 1) % 4 + 1]
    return DivisionalPosition("D9", _count(start, _part(deg, 9)), _scaled(deg, 9))


def d10(longitude: float) -> DivisionalPosition:
    """D10 Dasamsa: 10 × 3°; odd signs from the sign, even signs from the 9th."""
    sign, deg = _base(longitude)
    start = sign if sign in ODD_SIGNS else _count(sign, 8)
    return DivisionalPosition("D10", _count(start, _part(deg, 10)), _scaled(deg, 10))


def d12(longitude: float) -> DivisionalPosition:
    """D12 Dvadasamsa: 12 × 2.5°, starting from the sign itself."""
    sign, deg = _base(longitude)
    return DivisionalPosition("D12", _count(sign, _part(deg, 12)), _scaled(deg, 12))


def d60(longitude: float) -> DivisionalPosition:
    """D60 Shastiamsa: 60 × 0.5°, counted continuously from Aries."""
    sign, deg = _base(longitude)
    total_part = (sign - 1) * 60 + _part(deg, 60)
    return DivisionalPosition("D60", total_part % 12 + 1, _scaled(deg, 60))


# ---------------------------------------------------------------------------
# Registry of all implemented divisional chart functions
# ---------------------------------------------------------------------------

DIVISIONAL_FUNCTIONS = {
    "D1":  d1,
    "D2":  d2,
    "D3":  d3,
    "D7":  d7,
    "D9":  d9,
    "D10": d10,
    "D12": d12,
    "D60": d60,
}


def _division_fn(division: str):
    key = str(division).strip().upper()
    if key not in DIVISIONAL_FUNCTIONS:
        raise InvalidInputError(f"Unknown divisional chart: {division}. "
                                f"Supported: {list(DIVISIONAL_FUNCTIONS)}")
    return key, DIVISIONAL_FUNCTIONS[key]


def divisional_sign(longitude: float, division: str) -> int:
    return _division_fn(division)[1](longitude).sign


def compute_all_divisional_positions(longitude: float) -> Dict[str, DivisionalPosition]:
    """Every implemented division for one longitude."""
    return {div: fn(longitude) for div, fn in DIVISIONAL_FUNCTIONS.items()}


def build_divisional_chart(chart: Union[ResolvedChart, Iterable[Mapping]], division: str,
                           ascendant_longitude: float) -> ResolvedChart:
    """
    Re-cast a chart into a divisional chart.

    Houses are counted from the divisional sign of the ascendant. Bodies
    without a longitude cannot be placed and are left out.
    """
    _, fn = _division_fn(division)
    ascendant = fn(ascendant_longitude).sign

    if not isinstance(chart, ResolvedChart):
        chart = resolve_positions(chart, sign_from_longitude(ascendant_longitude))

    positions = []
    for pos in chart.positions:
        if pos.longitude is None:
            continue
        sign = fn(pos.longitude).sign
        positions.append(PlanetPosition(
            planet=pos.planet,
            sign=sign,
            house=house_from_sign(sign, ascendant),
            is_retrograde=pos.is_retrograde,
        ))
    return ResolvedChart(ascendant, tuple(positions))

