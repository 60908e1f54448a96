"""
signs.py
========
Sign / house resolver for whole-sign (Vedic default) charts.

House 1 is the sign holding the ascendant (Lagna); every following sign is
the next house:

    house = ((planet_sign - ascendant_sign + 12) % 12) + 1

house_from_sign() is the only place that formula lives. Signs are plain
ints, Aries=1 ... Pisces=12.

Provider data is not trusted for houses: the derived house always wins, and
a disagreeing provider value is recorded as a MismatchWarning instead of
being dropped or raised.
"""

import logging
import math
import unicodedata
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .errors import InvalidInputError, MismatchWarning, UnknownSignError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Planets
# ---------------------------------------------------------------------------

class Planet(str, Enum):
    SUN = "Sun"
    MOON = "Moon"
    MARS = "Mars"
    MERCURY = "Mercury"
    JUPITER = "Jupiter"
    VENUS = "Venus"
    SATURN = "Saturn"
    RAHU = "Rahu"
    KETU = "Ketu"

    def __str__(self) -> str:
        return self.value


CLASSICAL_PLANETS = (
    Planet.SUN, Planet.MOON, Planet.MARS, Planet.MERCURY,
    Planet.JUPITER, Planet.VENUS, Planet.SATURN,
)
NODES = (Planet.RAHU, Planet.KETU)

_PLANET_ORDER = {p: i for i, p in enumerate(Planet)}

_PLANET_ALIASES = {
    "सूर्य": Planet.SUN, "रवि": Planet.SUN,
    "चन्द्र": Planet.MOON, "चन्द्रमा": Planet.MOON, "चंद्र": Planet.MOON,
    "मङ्गल": Planet.MARS, "मंगल": Planet.MARS,
    "बुध": Planet.MERCURY,
    "बृहस्पति": Planet.JUPITER, "गुरु": Planet.JUPITER,
    "शुक्र": Planet.VENUS,
    "शनि": Planet.SATURN,
    "राहु": Planet.RAHU,
    "केतु": Planet.KETU,
}


# ---------------------------------------------------------------------------
# Sign names (index 0 = sign 1)
# ---------------------------------------------------------------------------

SIGNS = ("Aries", "Taurus", "Gemini", "Cancer", "Leo", "Virgo",
         "Libra", "Scorpio", "Sagittarius", "Capricorn", "Aquarius", "Pisces")

SIGNS_NE = ("मेष", "वृष", "मिथुन", "कर्क", "सिंह", "कन्या",
            "तुला", "वृश्चिक", "धनु", "मकर", "कुम्भ", "मीन")

# Alternate spellings seen in provider payloads: Nepali variants, romanized
# Sanskrit names and three-letter abbreviations.
SIGN_ALIASES = MappingProxyType({
    1:  ("mesha", "mesh", "ari"),
    2:  ("वृषभ", "vrishabha", "vrishabh", "vrisha", "tau"),
    3:  ("mithuna", "mithun", "gem"),
    4:  ("कर्कट", "karka", "karkata", "kark", "can"),
    5:  ("simha", "simh", "sinha"),
    6:  ("kanya", "vir"),
    7:  ("tula", "lib"),
    8:  ("vrischika", "vrishchika", "vrishchik", "sco"),
    9:  ("dhanu", "dhanus", "sag"),
    10: ("makara", "makar", "cap"),
    11: ("कुंभ", "kumbha", "kumbh", "aqu"),
    12: ("मीना", "meena", "meen", "mina", "pis"),
})


def _build_sign_lookup() -> Dict[str, int]:
    lookup = {}
    for number in range(1, 13):
        names = (SIGNS[number - 1], SIGNS_NE[number - 1]) + SIGN_ALIASES[number]
        for name in names:
            lookup[unicodedata.normalize("NFC", name).lower()] = number
    return lookup


_SIGN_LOOKUP = MappingProxyType(_build_sign_lookup())

HOUSE_NAMES = MappingProxyType({
    1:  ("Self/Body", "लग्न/स्व"),
    2:  ("Wealth", "धन"),
    3:  ("Courage", "पराक्रम"),
    4:  ("Home", "सुख/सन्तोष"),
    5:  ("Intellect/Children", "सन्तान/बुद्धि"),
    6:  ("Service/Enemies", "रोग/ऋण/शत्रु"),
    7:  ("Partnership", "सम्बन्ध/साझेदारी"),
    8:  ("Transformation", "आयु/गोप्य"),
    9:  ("Fortune/Dharma", "भाग्य/धर्म"),
    10: ("Career", "कर्म/प्रतिष्ठा"),
    11: ("Gains", "लाभ/आकांक्षा"),
    12: ("Loss/Moksha", "व्यय/मोक्ष"),
})

KENDRA_HOUSES = (1, 4, 7, 10)
TRIKONA_HOUSES = (1, 5, 9)
DUSTHANA_HOUSES = (6, 8, 12)


# ---------------------------------------------------------------------------
# Lordship and dignity (Parashara)
# ---------------------------------------------------------------------------

SIGN_LORDS = MappingProxyType({
    1: Planet.MARS, 2: Planet.VENUS, 3: Planet.MERCURY, 4: Planet.MOON,
    5: Planet.SUN, 6: Planet.MERCURY, 7: Planet.VENUS, 8: Planet.MARS,
    9: Planet.JUPITER, 10: Planet.SATURN, 11: Planet.SATURN, 12: Planet.JUPITER,
})

# Rahu/Ketu own no sign in the classical scheme
OWN_SIGNS = MappingProxyType({
    Planet.SUN: (5,), Planet.MOON: (4,), Planet.MARS: (1, 8),
    Planet.MERCURY: (3, 6), Planet.JUPITER: (9, 12), Planet.VENUS: (2, 7),
    Planet.SATURN: (10, 11), Planet.RAHU: (), Planet.KETU: (),
})

EXALTATION_SIGN = MappingProxyType({
    Planet.SUN: 1, Planet.MOON: 2, Planet.MARS: 10, Planet.MERCURY: 6,
    Planet.JUPITER: 4, Planet.VENUS: 12, Planet.SATURN: 7,
    Planet.RAHU: 2, Planet.KETU: 8,
})

DEBILITATION_SIGN = MappingProxyType({
    Planet.SUN: 7, Planet.MOON: 8, Planet.MARS: 4, Planet.MERCURY: 12,
    Planet.JUPITER: 10, Planet.VENUS: 6, Planet.SATURN: 1,
    Planet.RAHU: 8, Planet.KETU: 2,
})


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def to_sign_number(value: Union[str, int]) -> int:
    """
    Normalize a sign name (English, Nepali or a documented alternate) or a
    number 1–12 to the canonical sign number.
    """
    if isinstance(value, bool):
        raise UnknownSignError(f"Unknown sign: {value!r}")

    if isinstance(value, int):
        number = value
    elif isinstance(value, float) and value.is_integer():
        number = int(value)
    elif isinstance(value, str):
        key = unicodedata.normalize("NFC", value).strip().lower()
        if key in _SIGN_LOOKUP:
            return _SIGN_LOOKUP[key]
        if not key.isdigit():
            raise UnknownSignError(f"Unknown sign: {value!r}")
        number = int(key)
    else:
        raise UnknownSignError(f"Unknown sign: {value!r}")

    if not 1 <= number <= 12:
        raise UnknownSignError(f"Sign number out of range 1-12: {value!r}")
    return number


def to_planet(value: Union[str, Planet]) -> Planet:
    if isinstance(value, Planet):
        return value
    if not isinstance(value, str):
        raise InvalidInputError(f"Unknown planet: {value!r}")
    key = unicodedata.normalize("NFC", value).strip()
    if key in _PLANET_ALIASES:
        return _PLANET_ALIASES[key]
    try:
        return Planet(key.capitalize())
    except ValueError:
        raise InvalidInputError(f"Unknown planet: {value!r}") from None


def check_longitude(value, what: str = "longitude") -> float:
    """Return value as a float in [0, 360) or raise InvalidInputError."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInputError(f"{what} must be a number, got {value!r}")
    value = float(value)
    if not math.isfinite(value) or not 0.0 <= value < 360.0:
        raise InvalidInputError(f"{what} must be in [0, 360), got {value!r}")
    return value


def sign_from_longitude(longitude: float) -> int:
    return int(check_longitude(longitude) // 30) + 1


def sign_name(sign: int, locale: str = "en") -> str:
    names = SIGNS_NE if locale.startswith("ne") else SIGNS
    return names[to_sign_number(sign) - 1]


def house_name(house: int, locale: str = "en") -> str:
    en, ne = HOUSE_NAMES[house]
    return ne if locale.startswith("ne") else en


# ---------------------------------------------------------------------------
# House arithmetic
# ---------------------------------------------------------------------------

def house_from_sign(planet_sign: int, ascendant_sign: int) -> int:
    return ((planet_sign - ascendant_sign + 12) % 12) + 1


def sign_of_house(house: int, ascendant_sign: int) -> int:
    return ((ascendant_sign + house - 2) % 12) + 1


def house_lord(house: int, ascendant_sign: int) -> Planet:
    return SIGN_LORDS[sign_of_house(house, ascendant_sign)]


@dataclass(frozen=True)
class Lordship:
    owned_signs: Tuple[int, ...]
    owned_houses: Tuple[int, ...]


def lordship_houses(planet: Union[str, Planet], ascendant_sign: int) -> Lordship:
    """Signs a planet owns and the houses they fall in for this ascendant."""
    signs = OWN_SIGNS[to_planet(planet)]
    return Lordship(signs, tuple(house_from_sign(s, ascendant_sign) for s in signs))


def dignity_of(planet: Union[str, Planet], sign: int) -> str:
    planet = to_planet(planet)
    if EXALTATION_SIGN[planet] == sign:
        return "exalted"
    if DEBILITATION_SIGN[planet] == sign:
        return "debilitated"
    if sign in OWN_SIGNS[planet]:
        return "own"
    return "neutral"


def self_check() -> None:
    """Identity and bijection of the whole-sign formula for every ascendant."""
    for asc in range(1, 13):
        if house_from_sign(asc, asc) != 1:
            raise RuntimeError(f"house_from_sign({asc}, {asc}) != 1")
        houses = {house_from_sign(sign, asc) for sign in range(1, 13)}
        if houses != set(range(1, 13)):
            raise RuntimeError(f"house_from_sign is not a bijection for ascendant {asc}")


# ---------------------------------------------------------------------------
# Positions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PlanetPosition:
    planet: Planet
    sign: int
    house: int                      # derived whole-sign house, authoritative
    longitude: Optional[float] = None
    is_retrograde: bool = False
    provided_house: Optional[int] = None

    @property
    def safe_house(self) -> int:
        return self.house

    @property
    def degree_in_sign(self) -> Optional[float]:
        if self.longitude is None:
            return None
        return self.longitude % 30.0

    def as_dict(self, locale: str = "en") -> dict:
        return {
            "planet": self.planet.value,
            "sign": self.sign,
            "sign_name": sign_name(self.sign, locale),
            "longitude": self.longitude,
            "degree_in_sign": (round(self.degree_in_sign, 4)
                               if self.longitude is not None else None),
            "is_retrograde": self.is_retrograde,
            "safe_house": self.house,
            "house_name": house_name(self.house, locale),
            "provided_house": self.provided_house,
            "dignity": dignity_of(self.planet, self.sign),
        }


@dataclass(frozen=True)
class ResolvedChart:
    ascendant: int
    positions: Tuple[PlanetPosition, ...]
    mismatches: Tuple[MismatchWarning, ...] = ()

    def get(self, planet: Union[str, Planet]) -> Optional[PlanetPosition]:
        planet = to_planet(planet)
        for pos in self.positions:
            if pos.planet is planet:
                return pos
        return None

    def as_dict(self, locale: str = "en") -> dict:
        planets = []
        for pos in self.positions:
            row = pos.as_dict(locale)
            lordship = lordship_houses(pos.planet, self.ascendant)
            row["lord_signs"] = list(lordship.owned_signs)
            row["lord_houses"] = list(lordship.owned_houses)
            planets.append(row)
        return {
            "ascendant": {
                "sign": self.ascendant,
                "name": sign_name(self.ascendant, locale),
                "label": "लग्न" if locale.startswith("ne") else "Ascendant",
            },
            "planets": planets,
            "mismatches": [m.as_dict() for m in self.mismatches],
        }


def _pick(raw: Mapping, *keys):
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def _valid_house(value) -> Optional[int]:
    """Provider house if it is a usable 1..12 value, else None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        house = int(value)
    except (TypeError, ValueError):
        return None
    if house != value and str(house) != str(value).strip():
        return None
    return house if 1 <= house <= 12 else None


def resolve_position(raw: Mapping, ascendant_sign: Union[str, int],
                     mismatches: Optional[List[MismatchWarning]] = None) -> PlanetPosition:
    """
    Resolve one provider row into a PlanetPosition.

    raw keys: planet, sign (name or number; derived from the longitude when
    absent), longitude / longitude_degree, house, is_retrograde.

    A valid provider house that disagrees with the derived one is appended to
    `mismatches` (when given) and logged; the derived house is used.
    """
    if not isinstance(raw, Mapping):
        raise InvalidInputError(f"Planet row must be a mapping, got {type(raw).__name__}")

    planet = to_planet(_pick(raw, "planet", "name"))
    ascendant = to_sign_number(ascendant_sign)

    longitude = _pick(raw, "longitude", "longitude_degree", "longitudeDegree")
    if longitude is not None:
        longitude = check_longitude(longitude, f"{planet} longitude")

    sign_value = _pick(raw, "sign", "sign_id", "signId", "rasi")
    if sign_value is not None:
        sign = to_sign_number(sign_value)
    elif longitude is not None:
        sign = sign_from_longitude(longitude)
    else:
        raise InvalidInputError(f"{planet}: neither sign nor longitude supplied")

    derived = house_from_sign(sign, ascendant)
    provided = _valid_house(raw.get("house"))
    if provided is not None and provided != derived:
        logger.warning("%s: provider house %d disagrees with whole-sign house %d, using %d",
                       planet, provided, derived, derived)
        if mismatches is not None:
            mismatches.append(MismatchWarning(planet.value, provided, derived))

    retro = _pick(raw, "is_retrograde", "isRetrograde", "retrograde", "retro")
    return PlanetPosition(
        planet=planet,
        sign=sign,
        house=derived,
        longitude=longitude,
        is_retrograde=bool(retro),
        provided_house=provided,
    )


def resolve_positions(raw_planets: Union[Iterable[Mapping], Mapping[str, Union[str, int]]],
                      ascendant: Union[str, int]) -> ResolvedChart:
    """
    Resolve a whole provider payload. Accepts a list of planet rows or a
    {planet: sign} mapping. Any bad row aborts the whole chart.
    """
    ascendant = to_sign_number(ascendant)
    if isinstance(raw_planets, Mapping):
        raw_planets = [{"planet": k, "sign": v} for k, v in raw_planets.items()]

    mismatches: List[MismatchWarning] = []
    positions: Dict[Planet, PlanetPosition] = {}
    for raw in raw_planets:
        pos = resolve_position(raw, ascendant, mismatches)
        if pos.planet in positions:
            raise InvalidInputError(f"Duplicate planet in payload: {pos.planet}")
        positions[pos.planet] = pos

    ordered = tuple(sorted(positions.values(), key=lambda p: _PLANET_ORDER[p.planet]))
    return ResolvedChart(ascendant, ordered, tuple(mismatches))
