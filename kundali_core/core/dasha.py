"""
dasha.py
========
Vimshottari and Yogini dasha (planetary period) calculation.

Both systems start from the Moon's nakshatra at birth.

Vimshottari ("120 years"):
    Ketu (7) → Venus (20) → Sun (6) → Moon (10) → Mars (7)
    → Rahu (18) → Jupiter (16) → Saturn (19) → Mercury (17)      Total = 120

Yogini (36 years):
    Mangala (1) → Pingala (2) → Dhanya (3) → Bhramari (4)
    → Bhadrika (5) → Ulka (6) → Siddha (7) → Sankata (8)         Total = 36

Rules shared by both:
  * the first Maha runs for the lord's years × the fraction of the birth
    nakshatra still to be traversed; later Mahas take their full years
  * every level is split self-first (the sub-sequence starts at the
    parent's own lord): child = parent × years(child) / total
  * levels: Maha → Antar → Pratyantar → Sookshma → Prana

Period boundaries are kept as real-valued day offsets from birth and only
turned into timestamps at the end. Adjacent periods share the same offset
and the last child is pinned to its parent's end, so no level can show a
gap or an overlap.

Source: Parashara, "Brihat Parashara Hora Shastra"
"""

import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from ..config import DerivationConfig
from .errors import InvalidInputError
from .nakshatra import NAKSHATRA_LORDS, Nakshatra, nakshatra_from_longitude
from .signs import Planet

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DAYS_PER_YEAR = 365.2425
SECONDS_PER_DAY = 86400.0
MAX_DEPTH = 5

# Boundary tolerance when checking partitions
TOLERANCE_SECONDS = 1.0


class DashaSystem(str, Enum):
    VIMSHOTTARI = "vimshottari"
    YOGINI = "yogini"

    def __str__(self) -> str:
        return self.value


class DashaLevel(IntEnum):
    MAHA = 1
    ANTAR = 2
    PRATYANTAR = 3
    SOOKSHMA = 4
    PRANA = 5

    @property
    def label(self) -> str:
        return self.name.lower()


class Yogini(str, Enum):
    MANGALA = "Mangala"
    PINGALA = "Pingala"
    DHANYA = "Dhanya"
    BHRAMARI = "Bhramari"
    BHADRIKA = "Bhadrika"
    ULKA = "Ulka"
    SIDDHA = "Siddha"
    SANKATA = "Sankata"

    def __str__(self) -> str:
        return self.value

    @property
    def planet(self) -> Planet:
        return YOGINI_PLANETS[self]


YOGINI_PLANETS = MappingProxyType({
    Yogini.MANGALA:  Planet.MOON,
    Yogini.PINGALA:  Planet.SUN,
    Yogini.DHANYA:   Planet.JUPITER,
    Yogini.BHRAMARI: Planet.MARS,
    Yogini.BHADRIKA: Planet.MERCURY,
    Yogini.ULKA:     Planet.SATURN,
    Yogini.SIDDHA:   Planet.VENUS,
    Yogini.SANKATA:  Planet.RAHU,
})

Lord = Union[Planet, Yogini]


@dataclass(frozen=True)
class DashaCycle:
    system: DashaSystem
    lords: Tuple[Lord, ...]          # fixed order
    years: Mapping[Lord, float]

    @property
    def total_years(self) -> float:
        return float(sum(self.years.values()))

    def sequence_from(self, lord: Lord) -> Tuple[Lord, ...]:
        """Return the lord order starting from the given lord."""
        idx = self.lords.index(lord)
        return self.lords[idx:] + self.lords[:idx]


VIMSHOTTARI = DashaCycle(
    system=DashaSystem.VIMSHOTTARI,
    lords=NAKSHATRA_LORDS,
    years=MappingProxyType({
        Planet.KETU:    7,
        Planet.VENUS:   20,
        Planet.SUN:     6,
        Planet.MOON:    10,
        Planet.MARS:    7,
        Planet.RAHU:    18,
        Planet.JUPITER: 16,
        Planet.SATURN:  19,
        Planet.MERCURY: 17,
    }),
)

YOGINI = DashaCycle(
    system=DashaSystem.YOGINI,
    lords=tuple(Yogini),
    years=MappingProxyType({y: i + 1 for i, y in enumerate(Yogini)}),
)

CYCLES = MappingProxyType({
    DashaSystem.VIMSHOTTARI: VIMSHOTTARI,
    DashaSystem.YOGINI: YOGINI,
})


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class DashaPeriod:
    lord: Lord
    level: DashaLevel
    system: DashaSystem
    start: datetime
    end: datetime
    years: float
    children: Tuple["DashaPeriod", ...] = ()

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def contains(self, at: datetime) -> bool:
        return self.start <= at < self.end

    def as_dict(self) -> dict:
        out = {
            "lord": self.lord.value,
            "level": self.level.label,
            "system": self.system.value,
            "start": _iso(self.start),
            "end": _iso(self.end),
            "years": self.years,
        }
        if isinstance(self.lord, Yogini):
            out["planet"] = self.lord.planet.value
        if self.children:
            out["children"] = [c.as_dict() for c in self.children]
        return out


@dataclass(frozen=True)
class DashaTimeline:
    system: DashaSystem
    nakshatra: Nakshatra
    periods: Tuple[DashaPeriod, ...]
    notes: Dict = field(default_factory=dict)

    def __iter__(self) -> Iterator[DashaPeriod]:
        return iter(self.periods)

    def __len__(self) -> int:
        return len(self.periods)

    def as_dict(self) -> dict:
        return {
            "system": self.system.value,
            "nakshatra": self.nakshatra.as_dict(),
            "periods": [p.as_dict() for p in self.periods],
            "notes": self.notes,
        }


# ---------------------------------------------------------------------------
# Input checks
# ---------------------------------------------------------------------------

def parse_timestamp(value: Union[datetime, str], what: str = "timestamp") -> datetime:
    """Aware UTC datetime from a datetime (naive = UTC) or an ISO-8601 string."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            raise InvalidInputError(f"Malformed {what}: {value!r}") from None
    if not isinstance(value, datetime):
        raise InvalidInputError(f"{what} must be a datetime or ISO-8601 string, got {value!r}")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def load_config(config: Union[DerivationConfig, Mapping, None]) -> DerivationConfig:
    if config is None:
        return DerivationConfig()
    if isinstance(config, DerivationConfig):
        return config
    try:
        return DerivationConfig.model_validate(config)
    except ValidationError as e:
        raise InvalidInputError(f"Invalid derivation config: {e}") from e


def _parse_system(system: Union[str, DashaSystem]) -> DashaSystem:
    try:
        return DashaSystem(str(system).strip().lower())
    except ValueError:
        raise InvalidInputError(f"Unknown dasha system: {system!r}") from None


def _parse_range(query_range, birth: datetime) -> Optional[Tuple[datetime, datetime]]:
    if query_range is None:
        return None
    if isinstance(query_range, Mapping):
        start, end = query_range.get("from"), query_range.get("to")
    else:
        try:
            start, end = query_range
        except (TypeError, ValueError):
            raise InvalidInputError(f"query_range must be {{from, to}}, got {query_range!r}") from None
    start = parse_timestamp(start, "query_range.from")
    end = parse_timestamp(end, "query_range.to")
    if end <= start:
        raise InvalidInputError("query_range.to must be after query_range.from")
    if end <= birth:
        raise InvalidInputError("query_range ends before birth")
    return start, end


def _yogini_start(nakshatra: Nakshatra, start_from: Optional[str]) -> Tuple[Yogini, str]:
    if not start_from:
        return YOGINI.lords[nakshatra.index % 8], "default"
    try:
        return Yogini(start_from.strip().capitalize()), "custom"
    except ValueError:
        raise InvalidInputError(f"Unknown Yogini in traditionHints.startFrom: {start_from!r}") from None


# ---------------------------------------------------------------------------
# Tree construction
# ---------------------------------------------------------------------------

class _PeriodBuilder:
    """Builds periods from day offsets relative to birth."""

    def __init__(self, cycle: DashaCycle, origin: datetime, max_depth: int,
                 window: Optional[Tuple[float, float]]):
        self.cycle = cycle
        self.origin = origin
        self.max_depth = max_depth
        self.window = window

    def at(self, offset_days: float) -> datetime:
        return self.origin + timedelta(days=offset_days)

    def _expand(self, level: DashaLevel, start: float, end: float) -> bool:
        if level >= self.max_depth:
            return False
        if self.window is None:
            return True
        lo, hi = self.window
        return start < hi and end > lo

    def period(self, lord: Lord, level: DashaLevel, start: float, end: float,
               years: float) -> DashaPeriod:
        children = ()
        if self._expand(level, start, end):
            children = tuple(self._subdivide(lord, level, start, end, years))
        return DashaPeriod(
            lord=lord,
            level=level,
            system=self.cycle.system,
            start=self.at(start),
            end=self.at(end),
            years=years,
            children=children,
        )

    def _subdivide(self, lord: Lord, level: DashaLevel, start: float, end: float,
                   years: float) -> List[DashaPeriod]:
        sequence = self.cycle.sequence_from(lord)
        total = self.cycle.total_years
        span = end - start
        child_level = DashaLevel(level + 1)

        children = []
        offset = start
        for i, sub_lord in enumerate(sequence):
            proportion = self.cycle.years[sub_lord] / total
            # last child is pinned to the parent's end
            sub_end = end if i == len(sequence) - 1 else offset + span * proportion
            children.append(self.period(sub_lord, child_level, offset, sub_end,
                                        years * proportion))
            offset = sub_end
        return children


def _validate(periods: Sequence[DashaPeriod], cycle: DashaCycle,
              elapsed_years: float, year_days: float) -> dict:
    worst = 0.0
    partition_ok = True

    def check_run(run: Sequence[DashaPeriod]):
        nonlocal partition_ok
        for a, b in zip(run, run[1:]):
            if a.end != b.start:
                partition_ok = False

    def walk(p: DashaPeriod):
        nonlocal worst, partition_ok
        if not p.children:
            return
        kids = p.children
        if kids[0].start != p.start or kids[-1].end != p.end:
            partition_ok = False
        check_run(kids)
        drift = abs(sum(c.years for c in kids) - p.years) * year_days * SECONDS_PER_DAY
        worst = max(worst, drift)
        if drift > TOLERANCE_SECONDS:
            partition_ok = False
        for c in kids:
            walk(c)

    check_run(periods)
    for p in periods:
        walk(p)

    # one full cycle, counted from the virtual start of the birth Maha
    n = len(cycle.lords)
    cycle_years = elapsed_years + sum(p.years for p in periods[:n])

    return {
        "cycle_years": cycle_years,
        "partition_ok": partition_ok,
        "max_boundary_error_seconds": worst,
    }


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def compute_dasha(
    system: Union[str, DashaSystem],
    moon_longitude_deg: float,
    birth_timestamp: Union[datetime, str],
    max_depth: int = 2,
    query_range=None,
    config: Union[DerivationConfig, Mapping, None] = None,
    year_days: float = DAYS_PER_YEAR,
    extend_to: Iterable[Union[datetime, str]] = (),
) -> DashaTimeline:
    """
    Compute a nested dasha timeline from birth onward.

    Args:
        system: "vimshottari" or "yogini"
        moon_longitude_deg: Moon's sidereal longitude at birth, [0, 360)
        birth_timestamp: aware datetime, naive datetime (UTC) or ISO-8601 string
        max_depth: 1 (Maha only) .. 5 (down to Prana)
        query_range: optional {"from": ..., "to": ...}; Mahas are generated
            until it is covered, and only periods overlapping it are split
            below the Maha level
        config: DerivationConfig or mapping; traditionHints.startFrom sets
            the first Yogini
        extend_to: moments (e.g. an as-of date, life events) the Maha periods
            must reach past, however long after birth they are

    Returns:
        DashaTimeline with top-level Maha periods, the birth nakshatra and
        audit notes (start rule, partition validation).
    """
    system = _parse_system(system)
    if isinstance(max_depth, bool) or not isinstance(max_depth, int) \
            or not 1 <= max_depth <= MAX_DEPTH:
        raise InvalidInputError(f"max_depth must be an int in 1..{MAX_DEPTH}, got {max_depth!r}")
    nakshatra = nakshatra_from_longitude(moon_longitude_deg)
    birth = parse_timestamp(birth_timestamp, "birth timestamp")
    window = _parse_range(query_range, birth)
    config = load_config(config)
    cycle = CYCLES[system]

    # Starting lord
    start_from = config.tradition_hints.start_from
    if system is DashaSystem.YOGINI:
        first_lord, start_rule = _yogini_start(nakshatra, start_from)
    else:
        if start_from:
            logger.debug("traditionHints.startFrom only applies to Yogini; ignored")
        first_lord, start_rule = nakshatra.lord, "default"

    # Balance of first dasha remaining at birth
    first_years = cycle.years[first_lord] * nakshatra.fraction_remaining
    elapsed_years = cycle.years[first_lord] * nakshatra.fraction_used

    def to_days(dt: datetime) -> float:
        return (dt - birth).total_seconds() / SECONDS_PER_DAY

    horizon = cycle.total_years * year_days
    window_days = None
    if window is not None:
        window_days = (to_days(window[0]), to_days(window[1]))
        horizon = max(horizon, window_days[1])

    # periods are half-open, so the last Maha must end strictly after these
    must_pass = max((parse_timestamp(t, "extend_to") for t in extend_to), default=birth)

    builder = _PeriodBuilder(cycle, birth, max_depth, window_days)
    tolerance_days = TOLERANCE_SECONDS / SECONDS_PER_DAY

    periods = []
    offset = 0.0
    for i, lord in enumerate(itertools.cycle(cycle.sequence_from(first_lord))):
        if offset >= horizon - tolerance_days and builder.at(offset) > must_pass:
            break
        years = first_years if i == 0 else float(cycle.years[lord])
        end = offset + years * year_days
        periods.append(builder.period(lord, DashaLevel.MAHA, offset, end, years))
        offset = end

    notes = {
        "start_rule": start_rule,
        "start_from": first_lord.value,
        "year_days": year_days,
        "validation": _validate(periods, cycle, elapsed_years, year_days),
    }
    logger.debug("%s: nakshatra %s pada %d, first lord %s (%s), %d maha periods",
                 system, nakshatra.name, nakshatra.pada, first_lord, start_rule, len(periods))

    return DashaTimeline(system, nakshatra, tuple(periods), notes)


def iter_periods(periods: Sequence[DashaPeriod]) -> Iterator[DashaPeriod]:
    """Depth-first walk over every period in the tree."""
    for p in periods:
        yield p
        yield from iter_periods(p.children)


def active_periods(periods: Sequence[DashaPeriod], at: Union[datetime, str]) -> List[DashaPeriod]:
    """Chain of periods containing `at`, Maha first."""
    at = parse_timestamp(at, "query timestamp")
    chain = []
    level = periods
    while level:
        current = next((p for p in level if p.contains(at)), None)
        if current is None:
            break
        chain.append(current)
        level = current.children
    return chain


def active_stack(periods: Sequence[DashaPeriod], at: Union[datetime, str]) -> Dict[str, str]:
    """Lord names of the running periods, e.g. {"maha": "Venus", "antar": "Sun"}."""
    return {p.level.label: p.lord.value for p in active_periods(periods, at)}


def periods_in_range(periods: Sequence[DashaPeriod], start: Union[datetime, str],
                     end: Union[datetime, str],
                     level: Optional[DashaLevel] = None) -> List[DashaPeriod]:
    start = parse_timestamp(start, "range start")
    end = parse_timestamp(end, "range end")
    return [
        p for p in iter_periods(periods)
        if p.start < end and p.end > start and (level is None or p.level == level)
    ]


def upcoming_changes(periods: Sequence[DashaPeriod], after: Union[datetime, str],
                     limit: int = 10) -> List[DashaPeriod]:
    """Next period starts after a moment, earliest first."""
    after = parse_timestamp(after, "timestamp")
    upcoming = [p for p in iter_periods(periods) if p.start > after]
    upcoming.sort(key=lambda p: (p.start, p.level))
    return upcoming[:limit]
