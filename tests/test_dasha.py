"""
Dasha timelines: first-period balance, self-first subdivision, partition
of every level, cycle weights, Yogini start rule and query windows.
"""

from datetime import datetime, timedelta, timezone

import pytest

from kundali_core.core.dasha import (
    DAYS_PER_YEAR, VIMSHOTTARI, YOGINI, DashaLevel, DashaSystem, Yogini, active_periods,
    active_stack, compute_dasha, iter_periods, periods_in_range, upcoming_changes,
)
from kundali_core.core.errors import InvalidInputError
from kundali_core.core.signs import Planet

BIRTH = "2000-01-01T00:00:00Z"
BIRTH_DT = datetime(2000, 1, 1, tzinfo=timezone.utc)
SECONDS_PER_YEAR = DAYS_PER_YEAR * 86400


def _years(period):
    return period.duration.total_seconds() / SECONDS_PER_YEAR


def _assert_partitioned(periods, cycle):
    for p in iter_periods(periods):
        if not p.children:
            continue
        kids = p.children
        assert len(kids) == len(cycle.lords)
        assert kids[0].lord == p.lord                       # self-first
        assert kids[0].start == p.start
        assert kids[-1].end == p.end
        for a, b in zip(kids, kids[1:]):
            assert a.end == b.start
        assert sum(k.years for k in kids) == pytest.approx(p.years, rel=1e-9)
        for k in kids:
            assert k.years == pytest.approx(p.years * cycle.years[k.lord] / cycle.total_years)


# ---------------------------------------------------------------------------
# Cycle tables
# ---------------------------------------------------------------------------

def test_cycle_weights():
    assert VIMSHOTTARI.total_years == 120
    assert YOGINI.total_years == 36
    assert len(VIMSHOTTARI.lords) == 9
    assert len(YOGINI.lords) == 8


def test_sequence_from_wraps():
    seq = VIMSHOTTARI.sequence_from(Planet.SATURN)
    assert seq[:3] == (Planet.SATURN, Planet.MERCURY, Planet.KETU)
    assert len(seq) == 9


def test_yogini_planets():
    assert Yogini.MANGALA.planet is Planet.MOON
    assert Yogini.SANKATA.planet is Planet.RAHU


# ---------------------------------------------------------------------------
# Vimshottari
# ---------------------------------------------------------------------------

def test_moon_at_zero_gives_full_first_period():
    timeline = compute_dasha("vimshottari", 0.0, BIRTH, max_depth=1)
    first = timeline.periods[0]

    assert timeline.nakshatra.index == 0
    assert timeline.nakshatra.fraction_remaining == 1.0
    assert first.lord is Planet.KETU
    assert first.years == 7.0
    assert first.start == BIRTH_DT
    assert first.duration.total_seconds() == pytest.approx(7 * SECONDS_PER_YEAR, abs=1e-3)
    # exactly one cycle
    assert [p.lord for p in timeline] == list(VIMSHOTTARI.lords)
    assert not first.children


def test_balance_of_first_period():
    timeline = compute_dasha(DashaSystem.VIMSHOTTARI, 45.5, BIRTH, max_depth=2)
    first = timeline.periods[0]

    # Rohini, 41.25% traversed
    assert first.lord is Planet.MOON
    assert first.years == pytest.approx(10 * 0.5875)
    assert _years(first) == pytest.approx(5.875)
    assert [p.years for p in timeline.periods[1:9]] == [7, 18, 16, 19, 17, 7, 20, 6]


def test_mahas_cover_one_full_cycle():
    timeline = compute_dasha("vimshottari", 45.5, BIRTH, max_depth=1)
    total = sum(p.years for p in timeline)
    assert total >= 120 - timeline.nakshatra.fraction_used * 10
    assert timeline.periods[-1].end >= BIRTH_DT + timedelta(days=(120 - 4.125) * DAYS_PER_YEAR)
    # balance Maha plus eight full ones never reach a whole cycle here
    assert len(timeline) == 10
    assert timeline.periods[-1].lord is Planet.MOON


def test_partition_and_weights():
    timeline = compute_dasha("vimshottari", 45.5, BIRTH, max_depth=3)
    _assert_partitioned(timeline.periods, VIMSHOTTARI)
    for a, b in zip(timeline.periods, timeline.periods[1:]):
        assert a.end == b.start

    validation = timeline.notes["validation"]
    assert validation["cycle_years"] == pytest.approx(120.0)
    assert validation["partition_ok"] is True
    assert validation["max_boundary_error_seconds"] < 1.0


def test_levels():
    timeline = compute_dasha("vimshottari", 45.5, BIRTH, max_depth=3)
    maha = timeline.periods[0]
    antar = maha.children[0]
    pratyantar = antar.children[0]

    assert maha.level is DashaLevel.MAHA
    assert antar.level is DashaLevel.ANTAR
    assert pratyantar.level is DashaLevel.PRATYANTAR
    assert not pratyantar.children
    assert antar.years == pytest.approx(5.875 * 10 / 120)


def test_naive_birth_is_utc():
    aware = compute_dasha("vimshottari", 123.4, BIRTH, max_depth=2)
    naive = compute_dasha("vimshottari", 123.4, datetime(2000, 1, 1), max_depth=2)
    assert aware.as_dict() == naive.as_dict()


def test_same_input_same_output():
    a = compute_dasha("yogini", 77.7, BIRTH, max_depth=3)
    b = compute_dasha("yogini", 77.7, BIRTH, max_depth=3)
    assert a == b


def test_as_dict():
    out = compute_dasha("vimshottari", 45.5, BIRTH, max_depth=2).as_dict()

    assert out["system"] == "vimshottari"
    assert out["nakshatra"]["name"] == "Rohini"
    first = out["periods"][0]
    assert first["lord"] == "Moon"
    assert first["level"] == "maha"
    assert first["start"] == "2000-01-01T00:00:00.000Z"
    assert first["end"].endswith("Z")
    assert len(first["children"]) == 9
    assert first["children"][0]["start"] == first["start"]
    assert first["children"][-1]["end"] == first["end"]
    assert out["notes"]["start_rule"] == "default"


# ---------------------------------------------------------------------------
# Yogini
# ---------------------------------------------------------------------------

def test_yogini_default_start():
    timeline = compute_dasha("yogini", 45.5, BIRTH, max_depth=2)
    first = timeline.periods[0]

    # Rohini is nakshatra index 3 → 3 mod 8 → Bhramari
    assert first.lord is Yogini.BHRAMARI
    assert first.years == pytest.approx(4 * 0.5875)
    assert timeline.notes["start_rule"] == "default"
    assert timeline.notes["start_from"] == "Bhramari"
    assert timeline.notes["validation"]["cycle_years"] == pytest.approx(36.0)
    assert first.as_dict()["planet"] == "Mars"
    _assert_partitioned(timeline.periods, YOGINI)


def test_yogini_index_wraps_at_eight():
    # Magha is nakshatra index 9 → 9 mod 8 → Pingala
    timeline = compute_dasha("yogini", 125.0, BIRTH, max_depth=1)
    assert timeline.nakshatra.index == 9
    assert timeline.periods[0].lord is Yogini.PINGALA


@pytest.mark.parametrize("config", [
    {"traditionHints": {"startFrom": "Siddha"}},
    {"tradition_hints": {"start_from": "siddha"}},
])
def test_yogini_custom_start(config):
    timeline = compute_dasha("yogini", 45.5, BIRTH, max_depth=1, config=config)

    assert timeline.periods[0].lord is Yogini.SIDDHA
    assert timeline.periods[0].years == pytest.approx(7 * 0.5875)
    assert timeline.periods[1].lord is Yogini.SANKATA
    assert timeline.notes["start_rule"] == "custom"


def test_start_from_ignored_for_vimshottari():
    timeline = compute_dasha("vimshottari", 45.5, BIRTH, max_depth=1,
                             config={"traditionHints": {"startFrom": "Siddha"}})
    assert timeline.periods[0].lord is Planet.MOON
    assert timeline.notes["start_rule"] == "default"


def test_unknown_yogini_rejected():
    with pytest.raises(InvalidInputError):
        compute_dasha("yogini", 45.5, BIRTH, config={"traditionHints": {"startFrom": "Kali"}})


# ---------------------------------------------------------------------------
# Query windows
# ---------------------------------------------------------------------------

def test_query_range_limits_subdivision():
    window = {"from": "2030-01-01T00:00:00Z", "to": "2031-01-01T00:00:00Z"}
    timeline = compute_dasha("vimshottari", 45.5, BIRTH, max_depth=3, query_range=window)
    start = datetime(2030, 1, 1, tzinfo=timezone.utc)
    end = datetime(2031, 1, 1, tzinfo=timezone.utc)

    for p in iter_periods(timeline.periods):
        overlaps = p.start < end and p.end > start
        if p.level < DashaLevel.PRATYANTAR and overlaps:
            assert p.children
        if p.level > DashaLevel.MAHA and not overlaps:
            assert not p.children
    assert any(p.level is DashaLevel.MAHA and not p.children for p in timeline.periods)
    assert timeline.notes["validation"]["partition_ok"] is True


def test_query_range_extends_mahas():
    window = ("2150-01-01", "2200-01-01")
    timeline = compute_dasha("vimshottari", 45.5, BIRTH, max_depth=1, query_range=window)
    assert timeline.periods[-1].end >= datetime(2200, 1, 1, tzinfo=timezone.utc)
    for a, b in zip(timeline.periods, timeline.periods[1:]):
        assert a.end == b.start


def test_deep_tree_inside_window():
    window = {"from": "2001-01-01", "to": "2001-01-15"}
    timeline = compute_dasha("yogini", 200.0, BIRTH, max_depth=5, query_range=window)
    chain = active_periods(timeline.periods, "2001-01-07T12:00:00Z")

    assert [p.level for p in chain] == list(DashaLevel)
    _assert_partitioned(timeline.periods, YOGINI)


def test_extend_to_covers_late_moments():
    # the Yogini cycle is 36 years; a 44-year-old still has a running stack
    as_of = "2024-01-01T00:00:00Z"
    short = compute_dasha("yogini", 45.5, "1980-01-01T00:00:00Z", max_depth=2)
    assert active_stack(short.periods, as_of) == {}

    timeline = compute_dasha("yogini", 45.5, "1980-01-01T00:00:00Z", max_depth=2,
                             extend_to=[as_of])
    assert timeline.periods[-1].end > datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert set(active_stack(timeline.periods, as_of)) == {"maha", "antar"}
    assert timeline.notes["validation"]["partition_ok"] is True
    _assert_partitioned(timeline.periods, YOGINI)


def test_extend_to_exactly_on_a_boundary():
    base = compute_dasha("yogini", 45.5, BIRTH, max_depth=1)
    last_end = base.periods[-1].end
    timeline = compute_dasha("yogini", 45.5, BIRTH, max_depth=1, extend_to=[last_end])
    assert len(timeline.periods) == len(base.periods) + 1
    assert active_stack(timeline.periods, last_end)["maha"] == timeline.periods[-1].lord.value


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def test_active_stack():
    timeline = compute_dasha("vimshottari", 45.5, BIRTH, max_depth=3)
    stack = active_stack(timeline.periods, BIRTH_DT + timedelta(days=1))
    assert stack == {"maha": "Moon", "antar": "Moon", "pratyantar": "Moon"}

    # second Maha, first Antar
    second = timeline.periods[1]
    stack = active_stack(timeline.periods, second.start)
    assert stack["maha"] == "Mars"
    assert stack["antar"] == "Mars"


def test_nothing_active_before_birth():
    timeline = compute_dasha("vimshottari", 45.5, BIRTH, max_depth=2)
    assert active_stack(timeline.periods, "1999-12-31T23:59:59Z") == {}


def test_periods_in_range():
    timeline = compute_dasha("vimshottari", 45.5, BIRTH, max_depth=2)
    mahas = periods_in_range(timeline.periods, "2000-01-01", "2010-01-01", DashaLevel.MAHA)
    assert [p.lord for p in mahas] == [Planet.MOON, Planet.MARS]

    everything = periods_in_range(timeline.periods, "2000-01-01", "2000-06-01")
    assert {p.level for p in everything} == {DashaLevel.MAHA, DashaLevel.ANTAR}


def test_upcoming_changes():
    timeline = compute_dasha("vimshottari", 45.5, BIRTH, max_depth=2)
    upcoming = upcoming_changes(timeline.periods, BIRTH, limit=3)

    assert len(upcoming) == 3
    assert all(p.start > BIRTH_DT for p in upcoming)
    assert [p.start for p in upcoming] == sorted(p.start for p in upcoming)
    # Moon-Mars antar is the first change after birth
    assert upcoming[0].lord is Planet.MARS
    assert upcoming[0].level is DashaLevel.ANTAR


# ---------------------------------------------------------------------------
# Invalid input
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("kwargs", [
    {"system": "ashtottari"},
    {"moon_longitude_deg": 360.0},
    {"moon_longitude_deg": -1.0},
    {"birth_timestamp": "not a date"},
    {"birth_timestamp": 946684800},
    {"max_depth": 0},
    {"max_depth": 6},
    {"max_depth": True},
    {"query_range": {"from": "2010-01-01", "to": "2005-01-01"}},
    {"query_range": {"from": "1990-01-01", "to": "1995-01-01"}},
    {"query_range": {"from": "2010-01-01"}},
    {"config": {"traditionHints": "Siddha"}},
])
def test_invalid_input(kwargs):
    args = {"system": "vimshottari", "moon_longitude_deg": 45.5, "birth_timestamp": BIRTH}
    args.update(kwargs)
    with pytest.raises(InvalidInputError):
        compute_dasha(**args)
