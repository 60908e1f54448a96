"""
kundali.py
==========
Kundali derivation from provider data.

Takes what an upstream astrology provider already computed (ascendant sign,
planet signs/longitudes, optionally dignities, aspects and divisional
charts) and derives everything that must not be trusted to it: whole-sign
houses, yogas and doshas, divisional support, and the Vimshottari and
Yogini dasha trees.

The flow is one-way: resolve positions → dasha timelines → yogas/doshas →
divisional support → output dict. Nothing is fed back.

Usage:
    from kundali_core.tools.kundali import derive_kundali

    chart = derive_kundali(
        {"birthDate": "1990-06-15", "birthTime": "10:30",
         "latitude": 27.7172, "longitude": 85.3240,
         "timezoneOffsetMinutes": 345},
        ascendant="Leo",
        planets=[
            {"planet": "Moon", "sign": "Taurus", "longitude": 45.5, "house": 10},
            {"planet": "Sun", "longitude": 60.2},
            ...
        ],
        as_of="2024-01-01T00:00:00Z",
    )
"""

import logging
from datetime import datetime
from typing import Iterable, Mapping, Optional, Sequence, Union

from ..core.dasha import (
    DAYS_PER_YEAR, DashaLevel, DashaSystem, active_stack, compute_dasha, parse_timestamp,
)
from ..core.divisional_charts import build_divisional_chart
from ..core.errors import InvalidInputError
from ..core.profile import BirthProfile, parse_birth_profile
from ..core.signs import (
    HOUSE_NAMES, Planet, ResolvedChart, check_longitude, house_lord, house_name,
    resolve_positions, sign_name, sign_of_house, to_sign_number,
)
from ..core.yogas import (
    detect_all, detect_divisional_support, detect_divisional_weakness, divisional_summary,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Utility: degree formatting
# ---------------------------------------------------------------------------

def _dms(degrees: float) -> str:
    """Format decimal degrees as D°M'S\" string."""
    d = int(degrees)
    m_float = (degrees - d) * 60
    m = int(m_float)
    s = round((m_float - m) * 60, 1)
    return f"{d}°{m}'{s}\""


def _iso(dt: datetime) -> str:
    return dt.isoformat().replace("+00:00", "Z")


def _planets_out(chart: ResolvedChart, locale: str) -> list:
    rows = chart.as_dict(locale)["planets"]
    for row in rows:
        if row["degree_in_sign"] is not None:
            row["degree_formatted"] = _dms(row["degree_in_sign"])
    return rows


def _supplied_divisionals(divisional_charts: Mapping) -> dict:
    charts = {}
    for name, chart in divisional_charts.items():
        if isinstance(chart, ResolvedChart):
            charts[name] = chart
            continue
        if not isinstance(chart, Mapping) or chart.get("ascendant") is None:
            raise InvalidInputError(f"Divisional chart {name} needs an ascendant and planets")
        charts[name] = resolve_positions(chart.get("planets") or [], chart["ascendant"])
    return charts


def check_events(timelines: Mapping, events: Iterable, birth: datetime) -> list:
    """Running Vimshottari and Yogini stacks on each life-event date."""
    checks = []
    for event in events:
        when = parse_timestamp(event, "event date")
        if when < birth:
            raise InvalidInputError(f"Event {event!r} is before birth")
        stacks = {system: active_stack(t.periods, when) for system, t in timelines.items()}
        vim, yog = stacks[DashaSystem.VIMSHOTTARI], stacks[DashaSystem.YOGINI]
        checks.append({
            "date": _iso(when),
            "vimshottari_stack": vim,
            "yogini_stack": yog,
            "impact_note": f"Vimshottari {_pair(vim)}, Yogini {_pair(yog)}",
        })
    return checks


def _pair(stack: Mapping) -> str:
    return "/".join(stack[level] for level in ("maha", "antar") if level in stack)


# ---------------------------------------------------------------------------
# Houses only
# ---------------------------------------------------------------------------

def derive_houses(ascendant: Union[str, int], planets, locale: str = "en") -> dict:
    """
    Resolve positions and lay out the twelve whole-sign houses.

    Returns the resolved chart (ascendant, planets with safe_house and
    lordship, mismatches) plus a "houses" list with sign, lord and occupants.
    """
    chart = resolve_positions(planets, ascendant)
    out = chart.as_dict(locale)

    occupants = {h: [] for h in HOUSE_NAMES}
    for pos in chart.positions:
        occupants[pos.house].append(pos.planet.value)

    out["houses"] = [
        {
            "house": h,
            "name": house_name(h, locale),
            "sign": sign_of_house(h, chart.ascendant),
            "sign_name": sign_name(sign_of_house(h, chart.ascendant), locale),
            "lord": house_lord(h, chart.ascendant).value,
            "planets": occupants[h],
        }
        for h in range(1, 13)
    ]
    return out


# ---------------------------------------------------------------------------
# Main derivation
# ---------------------------------------------------------------------------

def derive_kundali(
    profile: Union[BirthProfile, Mapping],
    ascendant: Union[str, int],
    planets,
    *,
    config: Optional[Mapping] = None,
    dignities: Optional[Mapping] = None,
    aspects: Optional[Iterable] = None,
    divisional_charts: Optional[Mapping] = None,
    ascendant_longitude: Optional[float] = None,
    divisions: Sequence[str] = ("D9", "D10"),
    max_depth: int = 3,
    query_range=None,
    as_of: Union[datetime, str, None] = None,
    events: Sequence[Union[datetime, str]] = (),
    divisional_dignities: Optional[Mapping[str, Mapping]] = None,
    locale: str = "en",
) -> dict:
    """
    Derive a complete Kundali from a birth profile and provider positions.

    Args:
        profile: BirthProfile or its wire mapping
        ascendant: ascendant sign (name or 1–12)
        planets: provider rows (planet, sign and/or longitude, house, ...)
            or a {planet: sign} mapping; the Moon needs a longitude
        config: {"traditionHints": {"startFrom": "<Yogini>"}}
        dignities: provider dignity per planet, overrides the computed one
        aspects: provider aspect records, passed through to the rule engine
        divisional_charts: {"D9": {"ascendant": .., "planets": [..]}, ...};
            used as-is when given
        ascendant_longitude: lets divisional charts be derived from
            longitudes when none are supplied
        divisions: charts to derive in that case
        max_depth: dasha depth, 1 (Maha) .. 5 (Prana)
        query_range: {"from": .., "to": ..} to bound the dasha trees
        as_of: moment for the running dasha stacks
        events: life-event dates (YYYY-MM-DD or ISO-8601); each gets the
            running Vimshottari and Yogini stacks
        divisional_dignities: provider dignities per divisional chart name
        locale: "en" or "ne"

    Returns:
        Complete derivation dict. Any invalid input raises before anything
        is built.
    """
    profile = parse_birth_profile(profile)
    birth = profile.birth_utc()
    ascendant = to_sign_number(ascendant)
    chart = resolve_positions(planets, ascendant)

    moon = chart.get(Planet.MOON)
    if moon is None or moon.longitude is None:
        raise InvalidInputError("Moon longitude is required to compute the dasha")
    if ascendant_longitude is not None:
        ascendant_longitude = check_longitude(ascendant_longitude, "ascendant longitude")
    at = parse_timestamp(as_of, "as_of") if as_of is not None else None
    events = [parse_timestamp(e, "event date") for e in events]
    if any(e < birth for e in events):
        raise InvalidInputError("Event dates must not be before birth")
    reach = events + ([at] if at is not None else [])

    # ---- Dasha timelines ----
    timelines = {
        system: compute_dasha(system, moon.longitude, birth, max_depth=max_depth,
                              query_range=query_range, config=config,
                              extend_to=reach)
        for system in DashaSystem
    }
    vimshottari = timelines[DashaSystem.VIMSHOTTARI]

    active = {}
    dasha_context = None
    if at is not None:
        active = {system.value: active_stack(t.periods, at) for system, t in timelines.items()}
        running = active[DashaSystem.VIMSHOTTARI.value]
        dasha_context = {level: running[level]
                         for level in (DashaLevel.MAHA.label, DashaLevel.ANTAR.label)
                         if level in running}

    # ---- Yogas and doshas (D1) ----
    yogas, doshas = detect_all(ascendant, chart, dignities, aspects, dasha_context)

    # ---- Divisional charts ----
    if divisional_charts:
        vargas = _supplied_divisionals(divisional_charts)
    elif ascendant_longitude is not None:
        vargas = {d: build_divisional_chart(chart, d, ascendant_longitude) for d in divisions}
    else:
        vargas = {}
        logger.debug("No divisional charts supplied and no ascendant longitude; skipping support")
    support = detect_divisional_support(yogas, vargas, divisional_dignities)
    weakened = detect_divisional_weakness(yogas, vargas, divisional_dignities)
    summary = divisional_summary(ascendant, chart, vargas, dignities, divisional_dignities)

    logger.info("Derived kundali: ascendant %s, %d yogas, %d doshas, %d mismatches",
                sign_name(ascendant), len(yogas), len(doshas), len(chart.mismatches))

    # ---- Assemble output ----
    resolved = chart.as_dict(locale)
    out = {
        "meta": {
            "input": profile.as_dict(),
            "birth_utc": _iso(birth),
            "house_system": "whole_sign",
            "locale": locale,
            "dasha_depth": max_depth,
            "days_per_year": DAYS_PER_YEAR,
            "as_of": _iso(at) if at is not None else None,
        },
        "ascendant": resolved["ascendant"],
        "planets": _planets_out(chart, locale),
        "mismatches": resolved["mismatches"],
        "nakshatra": vimshottari.nakshatra.as_dict(),
        "yogas": [y.as_dict() for y in yogas],
        "doshas": [d.as_dict() for d in doshas],
        "divisional_charts": {name: c.as_dict(locale) for name, c in vargas.items()},
        "divisional_support": [s.as_dict() for s in support],
        "divisional_weakened": [w.as_dict() for w in weakened],
        "divisional_summary": summary,
        "dasha": {
            system.value: {
                "periods": [p.as_dict() for p in t.periods],
                "notes": t.notes,
            }
            for system, t in timelines.items()
        },
    }
    if at is not None:
        out["active"] = active
    if events:
        out["event_checks"] = check_events(timelines, events, birth)
    return out
