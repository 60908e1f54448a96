"""
Whole-sign resolver: house arithmetic, sign normalization, provider
positions and the mismatch side channel.
"""

import logging

import pytest

from kundali_core.core.errors import InvalidInputError, MismatchWarning, UnknownSignError
from kundali_core.core.signs import (
    Planet, dignity_of, house_from_sign, house_lord, house_name, lordship_houses, resolve_position,
    resolve_positions, self_check, sign_from_longitude, sign_name, sign_of_house,
    to_planet, to_sign_number,
)


# ---------------------------------------------------------------------------
# House arithmetic
# ---------------------------------------------------------------------------

HOUSE_VECTORS = [
    # (planet_sign, ascendant_sign, expected_house)
    (11, 2, 10),    # Aquarius from Taurus
    (2, 12, 3),     # Taurus from Pisces
    (1, 1, 1),
    (12, 1, 12),
    (1, 12, 2),
    (5, 6, 12),
]


@pytest.mark.parametrize("planet_sign,ascendant,expected", HOUSE_VECTORS)
def test_house_from_sign(planet_sign, ascendant, expected):
    assert house_from_sign(planet_sign, ascendant) == expected


@pytest.mark.parametrize("ascendant", range(1, 13))
def test_ascendant_sign_is_first_house(ascendant):
    assert house_from_sign(ascendant, ascendant) == 1


@pytest.mark.parametrize("ascendant", range(1, 13))
def test_houses_are_a_bijection(ascendant):
    houses = [house_from_sign(s, ascendant) for s in range(1, 13)]
    assert sorted(houses) == list(range(1, 13))
    for h in range(1, 13):
        assert house_from_sign(sign_of_house(h, ascendant), ascendant) == h


def test_self_check_passes():
    self_check()


def test_house_lord_and_lordship():
    # Aries ascendant: 10th is Capricorn
    assert house_lord(10, 1) is Planet.SATURN
    lordship = lordship_houses("Mars", 1)
    assert lordship.owned_signs == (1, 8)
    assert lordship.owned_houses == (1, 8)
    assert lordship_houses(Planet.RAHU, 1).owned_houses == ()


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("value,expected", [
    ("Leo", 5), ("leo", 5), ("  LEO ", 5), ("सिंह", 5), ("simha", 5),
    ("कर्क", 4), ("कर्कट", 4), ("Karka", 4),
    (7, 7), ("7", 7), (12.0, 12),
])
def test_to_sign_number(value, expected):
    assert to_sign_number(value) == expected


@pytest.mark.parametrize("value", ["Lion", "", 0, 13, -1, 2.5, True, None])
def test_unknown_sign(value):
    with pytest.raises(UnknownSignError):
        to_sign_number(value)


def test_sign_name_locales():
    assert sign_name(1) == "Aries"
    assert sign_name(4, "ne") == "कर्क"


def test_house_name_locales():
    assert house_name(10) == "Career"
    assert house_name(7, "ne") == "सम्बन्ध/साझेदारी"


def test_to_planet():
    assert to_planet("jupiter") is Planet.JUPITER
    assert to_planet("गुरु") is Planet.JUPITER
    with pytest.raises(InvalidInputError):
        to_planet("Pluto")


@pytest.mark.parametrize("longitude,sign", [(0.0, 1), (29.999, 1), (30.0, 2), (359.9, 12)])
def test_sign_from_longitude(longitude, sign):
    assert sign_from_longitude(longitude) == sign


def test_dignity():
    assert dignity_of("Saturn", 10) == "own"
    assert dignity_of("Saturn", 7) == "exalted"
    assert dignity_of("Saturn", 1) == "debilitated"
    assert dignity_of("Sun", 3) == "neutral"


# ---------------------------------------------------------------------------
# Provider positions
# ---------------------------------------------------------------------------

def test_derived_house_wins_and_mismatch_is_recorded(caplog):
    mismatches = []
    with caplog.at_level(logging.WARNING):
        pos = resolve_position({"planet": "Moon", "sign": "Taurus", "house": 3}, "Leo", mismatches)

    assert pos.house == 10
    assert pos.safe_house == 10
    assert pos.provided_house == 3
    assert mismatches == [MismatchWarning("Moon", 3, 10)]
    assert "disagrees" in caplog.text


def test_matching_provider_house_is_not_a_mismatch():
    mismatches = []
    resolve_position({"planet": "Moon", "sign": "Taurus", "house": 10}, 5, mismatches)
    assert mismatches == []


def test_unusable_provider_house_is_ignored():
    mismatches = []
    pos = resolve_position({"planet": "Sun", "sign": 1, "house": 13}, 1, mismatches)
    assert pos.provided_house is None
    assert mismatches == []


def test_sign_from_longitude_when_sign_missing():
    pos = resolve_position({"planet": "Sun", "longitude": 95.5, "isRetrograde": False}, 1)
    assert pos.sign == 4
    assert pos.house == 4
    assert pos.degree_in_sign == pytest.approx(5.5)


@pytest.mark.parametrize("row", [
    {"planet": "Sun"},
    {"planet": "Sun", "longitude": 360.0},
    {"planet": "Sun", "longitude": -0.1},
    {"planet": "Sun", "longitude": "north"},
    {"planet": "Vulcan", "sign": 1},
])
def test_invalid_rows(row):
    with pytest.raises(InvalidInputError):
        resolve_position(row, 1)


def test_unknown_sign_in_row():
    with pytest.raises(UnknownSignError):
        resolve_position({"planet": "Sun", "sign": "Ophiuchus"}, 1)


def test_resolve_positions(sample_planets):
    chart = resolve_positions(sample_planets, "Leo")

    assert chart.ascendant == 5
    assert [p.planet for p in chart.positions] == list(Planet)
    assert chart.get("Saturn").house == 6
    assert chart.get("Rahu").is_retrograde
    assert chart.mismatches == ()


def test_resolve_positions_is_idempotent(sample_planets):
    assert resolve_positions(sample_planets, 5) == resolve_positions(sample_planets, "Leo")


def test_resolve_positions_from_mapping():
    chart = resolve_positions({"Sun": "Aquarius", "Moon": 2}, "Taurus")
    assert chart.get(Planet.SUN).house == 10
    assert chart.get(Planet.MOON).house == 1


def test_duplicate_planet_rejected():
    with pytest.raises(InvalidInputError):
        resolve_positions([{"planet": "Sun", "sign": 1}, {"planet": "sun", "sign": 2}], 1)


def test_chart_as_dict():
    chart = resolve_positions([{"planet": "Moon", "sign": 2, "house": 4}], "Leo")
    out = chart.as_dict("ne")

    assert out["ascendant"] == {"sign": 5, "name": "सिंह", "label": "लग्न"}
    row = out["planets"][0]
    assert row["safe_house"] == 10
    assert row["provided_house"] == 4
    assert row["lord_signs"] == [4]
    assert out["mismatches"] == [{"planet": "Moon", "provided_house": 4, "derived_house": 10}]
