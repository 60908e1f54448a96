"""
Kundali Core
============
Deterministic Vedic chart derivation on top of provider positions:
whole-sign houses, yogas/doshas and Vimshottari/Yogini dashas.

Quick start:
    from kundali_core import derive_kundali

    chart = derive_kundali(
        {"birthDate": "1990-06-15", "birthTime": "10:30",
         "latitude": 27.7172, "longitude": 85.3240,
         "timezoneOffsetMinutes": 345},
        ascendant="Leo",
        planets=[{"planet": "Moon", "longitude": 45.5}, ...],
    )
"""

from .tools.kundali import derive_houses, derive_kundali

__version__ = "1.0.0"
__all__ = ["derive_kundali", "derive_houses"]
