"""
nakshatra.py
============
Nakshatra (lunar mansion) and Pada from a sidereal longitude.

The zodiac is split into 27 equal nakshatras of 13°20' each, every one into
4 padas of 3°20'. The Vimshottari lord repeats every 9 nakshatras, starting
with Ketu at Ashwini.

A longitude sitting exactly on a boundary belongs to the later nakshatra, so
360/27 gives Bharani with fraction_used == 0 rather than Ashwini with
fraction_used == 1.
"""

import math
from dataclasses import dataclass

from .signs import Planet, check_longitude

NAKSHATRA_SPAN = 360.0 / 27.0      # 13.333... degrees

# Quotients this close below an integer are treated as the boundary itself
BOUNDARY_EPSILON = 1e-9

NAKSHATRAS = (
    "Ashwini", "Bharani", "Krittika", "Rohini", "Mrigashira", "Ardra",
    "Punarvasu", "Pushya", "Ashlesha", "Magha", "Purva Phalguni",
    "Uttara Phalguni", "Hasta", "Chitra", "Swati", "Vishakha", "Anuradha",
    "Jyeshtha", "Mula", "Purva Ashadha", "Uttara Ashadha", "Shravana",
    "Dhanishtha", "Shatabhisha", "Purva Bhadrapada", "Uttara Bhadrapada",
    "Revati",
)

NAKSHATRA_LORDS = (
    Planet.KETU, Planet.VENUS, Planet.SUN, Planet.MOON, Planet.MARS,
    Planet.RAHU, Planet.JUPITER, Planet.SATURN, Planet.MERCURY,
)


@dataclass(frozen=True)
class Nakshatra:
    index: int                  # 0..26
    name: str
    pada: int                   # 1..4
    lord: Planet
    fraction_used: float        # [0, 1)
    fraction_remaining: float   # (0, 1]

    @property
    def number(self) -> int:
        return self.index + 1

    def as_dict(self) -> dict:
        return {
            "index": self.index,
            "number": self.number,
            "name": self.name,
            "pada": self.pada,
            "lord": self.lord.value,
            "fraction_used": self.fraction_used,
            "fraction_remaining": self.fraction_remaining,
        }


def nakshatra_from_longitude(longitude: float) -> Nakshatra:
    """
    Nakshatra, pada and elapsed fraction for a sidereal longitude in [0, 360).

    Raises InvalidInputError for anything outside that range.
    """
    longitude = check_longitude(longitude, "Moon longitude")

    quotient = longitude / NAKSHATRA_SPAN
    # a longitude within epsilon of 360 stays in Revati
    index = min(int(math.floor(quotient + BOUNDARY_EPSILON)), 26)

    fraction_used = max(0.0, quotient - index)
    pada = min(int(fraction_used * 4) + 1, 4)

    return Nakshatra(
        index=index,
        name=NAKSHATRAS[index],
        pada=pada,
        lord=NAKSHATRA_LORDS[index % 9],
        fraction_used=fraction_used,
        fraction_remaining=1.0 - fraction_used,
    )
