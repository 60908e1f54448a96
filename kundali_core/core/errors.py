"""
errors.py
=========
Error taxonomy for the derivation core.

UnknownSignError and InvalidInputError abort the single computation they occur
in. MismatchWarning is a record, never raised: it documents a provider house
that disagrees with the whole-sign house derived from the ascendant.
"""

from dataclasses import dataclass


class KundaliError(ValueError):
    """Base class for every error raised by the derivation core."""


class UnknownSignError(KundaliError):
    """A sign name or number that maps to none of the 12 signs."""


class InvalidInputError(KundaliError):
    """Out-of-range longitude, malformed timestamp, bad planet name, etc."""


@dataclass(frozen=True)
class MismatchWarning:
    planet: str
    provided_house: int
    derived_house: int

    def as_dict(self) -> dict:
        return {
            "planet": self.planet,
            "provided_house": self.provided_house,
            "derived_house": self.derived_house,
        }
