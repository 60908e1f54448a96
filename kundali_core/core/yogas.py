"""
yogas.py
========
Yoga (auspicious combination) and Dosha (affliction) detection.

Every combination is a Rule: a key, the planets it cannot do without, and an
evaluate function over a RuleContext. Rules run in catalog order and each one
stands alone: a rule whose planets are missing is skipped, and a rule that
trips over malformed data is logged and skipped without taking the others
down.

All houses are whole-sign houses from signs.house_from_sign(); "conjunct"
means "in the same sign". Counting "from the Moon" uses the Moon's sign as
house 1.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .errors import InvalidInputError
from .signs import (
    CLASSICAL_PLANETS, DUSTHANA_HOUSES, KENDRA_HOUSES, NODES, SIGN_LORDS,
    Planet, PlanetPosition, ResolvedChart, dignity_of, house_from_sign,
    house_lord, resolve_positions, to_planet, to_sign_number,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Match:
    key: str
    label: str
    factors: Tuple[str, ...] = ()
    planets: Tuple[Planet, ...] = ()
    chart: str = "D1"
    strength: Optional[str] = None

    def as_dict(self) -> dict:
        out = {
            "key": self.key,
            "label": self.label,
            "factors": list(self.factors),
            "planets": [p.value for p in self.planets],
            "chart": self.chart,
        }
        if self.strength:
            out["strength"] = self.strength
        return out


class YogaMatch(Match):
    pass


class DoshaMatch(Match):
    pass


class MissingPlanet(LookupError):
    """Raised inside a rule when a planet it needs is not in the chart."""


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------

# provider dignity words, English and Sanskrit, by prefix
DIGNITY_WORDS = (
    ("exalt", "exalted"),
    ("uccha", "exalted"),
    ("ucha", "exalted"),
    ("debil", "debilitated"),
    ("nicha", "debilitated"),
    ("neecha", "debilitated"),
    ("own", "own"),
    ("swagriha", "own"),
    ("swakshetra", "own"),
    ("moola", "own"),
    ("mula", "own"),
    ("neutral", "neutral"),
)


def _normalise_dignity(value) -> Optional[str]:
    """Canonical dignity for a provider status, None when it is not one we know."""
    value = str(value).strip().lower()
    for prefix, dignity in DIGNITY_WORDS:
        if value.startswith(prefix):
            return dignity
    return None


def _provider_dignities(dignities: Optional[Mapping]) -> dict:
    out = {}
    for name, status in (dignities or {}).items():
        planet = to_planet(name)
        dignity = _normalise_dignity(status)
        if dignity is None:
            logger.debug("Unrecognised dignity %r for %s; using the computed one", status, planet)
            continue
        out[planet] = dignity
    return out


@dataclass(frozen=True)
class RuleContext:
    ascendant: int
    positions: Mapping[Planet, PlanetPosition]
    dignities: Mapping[Planet, str] = field(default_factory=dict)
    aspects: Tuple = ()
    dasha_context: Mapping[str, str] = field(default_factory=dict)
    chart: str = "D1"

    @classmethod
    def build(cls, ascendant, positions, dignities: Optional[Mapping] = None,
              aspects: Optional[Iterable] = None,
              dasha_context: Optional[Mapping] = None,
              chart: str = "D1") -> "RuleContext":
        """
        Accepts a ResolvedChart, a sequence of PlanetPosition, or raw
        provider rows / a {planet: sign} mapping (resolved here).
        """
        if isinstance(positions, ResolvedChart):
            resolved = positions
        elif isinstance(positions, Sequence) and positions \
                and all(isinstance(p, PlanetPosition) for p in positions):
            resolved = ResolvedChart(to_sign_number(ascendant), tuple(positions))
        else:
            resolved = resolve_positions(positions or [], ascendant)

        return cls(
            ascendant=resolved.ascendant,
            positions={p.planet: p for p in resolved.positions},
            dignities=_provider_dignities(dignities),
            aspects=tuple(aspects or ()),
            dasha_context={str(k).lower(): str(v) for k, v in (dasha_context or {}).items()
                           if v},
            chart=chart,
        )

    def has(self, *planets: Planet) -> bool:
        return all(p in self.positions for p in planets)

    def pos(self, planet: Planet) -> PlanetPosition:
        try:
            return self.positions[planet]
        except KeyError:
            raise MissingPlanet(planet) from None

    def house(self, planet: Planet) -> int:
        return self.pos(planet).house

    def sign(self, planet: Planet) -> int:
        return self.pos(planet).sign

    def lord(self, house: int) -> Planet:
        return house_lord(house, self.ascendant)

    def house_from(self, planet: Planet, reference: Planet) -> int:
        """House of `planet` counted from `reference` as house 1."""
        return house_from_sign(self.sign(planet), self.sign(reference))

    def dignity(self, planet: Planet) -> str:
        if planet in self.dignities:
            return self.dignities[planet]
        return dignity_of(planet, self.sign(planet))

    def is_strong(self, planet: Planet) -> bool:
        return self.dignity(planet) in ("own", "exalted")

    def conjunct(self, a: Planet, b: Planet) -> bool:
        return self.sign(a) == self.sign(b)

    def strength(self, *planets: Planet) -> str:
        return "Strong" if any(self.is_strong(p) for p in planets) else "Moderate"


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Rule:
    key: str
    kind: str                                   # "yoga" | "dosha"
    requires: Tuple[Planet, ...]
    evaluate: Callable[[RuleContext], List[Match]]
    divisional: bool = True


def _match(ctx: RuleContext, kind: str, key: str, label: str, factors: Iterable[str],
           planets: Iterable[Planet], strength: Optional[str] = None) -> Match:
    cls = YogaMatch if kind == "yoga" else DoshaMatch
    return cls(key, label, tuple(factors), tuple(planets), ctx.chart, strength)


# ── Yogas ─────────────────────────────────────────────────────────────────

def _gajakesari(ctx):
    h = ctx.house_from(Planet.JUPITER, Planet.MOON)
    if h not in KENDRA_HOUSES:
        return []
    return [_match(ctx, "yoga", "yoga.gajakesari", "Gaja-Kesari Yoga",
                   [f"Jupiter in house {h} from the Moon (Kendra)"],
                   [Planet.JUPITER, Planet.MOON], ctx.strength(Planet.JUPITER))]


def _budha_aditya(ctx):
    if not ctx.conjunct(Planet.SUN, Planet.MERCURY):
        return []
    return [_match(ctx, "yoga", "yoga.budha-aditya", "Budha-Aditya Yoga",
                   [f"Sun and Mercury together in house {ctx.house(Planet.SUN)}"],
                   [Planet.SUN, Planet.MERCURY], "Moderate")]


def _mahapurusha(planet: Planet, key: str, name: str):
    def evaluate(ctx):
        h = ctx.house(planet)
        dignity = ctx.dignity(planet)
        if h not in KENDRA_HOUSES or dignity not in ("own", "exalted"):
            return []
        return [_match(ctx, "yoga", key, f"{name} Yoga (Pancha-Mahapurusha)",
                       [f"{planet} in Kendra (house {h})", f"{planet} {dignity}"],
                       [planet], "Very Strong")]
    return Rule(key, "yoga", (planet,), evaluate)


def _raja(ctx):
    kendra_lords = [ctx.lord(h) for h in KENDRA_HOUSES]
    trikona_lords = [ctx.lord(h) for h in (1, 5, 9)]
    seen = set()
    out = []
    for k in kendra_lords:
        for t in trikona_lords:
            pair = frozenset((k, t))
            if k == t or pair in seen or not ctx.has(k, t):
                continue
            seen.add(pair)
            if ctx.conjunct(k, t):
                out.append(_match(ctx, "yoga", "yoga.raja", "Raja Yoga",
                                  [f"Kendra lord {k} with Trikona lord {t} in house {ctx.house(k)}"],
                                  [k, t], ctx.strength(k, t)))
    return out


def _yogakaraka(ctx):
    out = []
    for planet in CLASSICAL_PLANETS:
        kendras = [h for h in (4, 7, 10) if ctx.lord(h) is planet]
        trikonas = [h for h in (5, 9) if ctx.lord(h) is planet]
        if kendras and trikonas and ctx.has(planet):
            out.append(_match(ctx, "yoga", "yoga.yogakaraka", "Yogakaraka",
                              [f"{planet} rules Kendra {kendras[0]} and Trikona {trikonas[0]}"],
                              [planet], ctx.strength(planet)))
    return out


def _lords_conjunct(key: str, label: str, houses: Tuple[int, int]):
    def evaluate(ctx):
        a, b = (ctx.lord(h) for h in houses)
        if a == b or not ctx.conjunct(a, b):
            return []
        return [_match(ctx, "yoga", key, label,
                       [f"{houses[0]}th lord {a} with {houses[1]}th lord {b} in house {ctx.house(a)}"],
                       [a, b], ctx.strength(a, b))]
    return evaluate


VIPAREETA_NAMES = {6: "Harsha", 8: "Sarala", 12: "Vimala"}


def _vipareeta_raja(ctx):
    out = []
    for dh in DUSTHANA_HOUSES:
        lord = ctx.lord(dh)
        if not ctx.has(lord):
            continue
        placed = ctx.house(lord)
        if placed in DUSTHANA_HOUSES:
            out.append(_match(ctx, "yoga", "yoga.vipareeta-raja", "Vipareeta Raja Yoga",
                              [f"{VIPAREETA_NAMES[dh]}: lord of {dh} ({lord}) in house {placed}"],
                              [lord], "Moderate"))
    return out


def _neecha_bhanga(ctx):
    out = []
    for planet in CLASSICAL_PLANETS:
        if not ctx.has(planet) or ctx.dignity(planet) != "debilitated":
            continue
        dispositor = SIGN_LORDS[ctx.sign(planet)]
        if not ctx.has(dispositor):
            continue
        if ctx.house(dispositor) in KENDRA_HOUSES and ctx.is_strong(dispositor):
            out.append(_match(ctx, "yoga", "yoga.neecha-bhanga", f"Neecha Bhanga ({planet})",
                              [f"{planet} debilitated",
                               f"dispositor {dispositor} {ctx.dignity(dispositor)} in Kendra "
                               f"(house {ctx.house(dispositor)})"],
                              [planet, dispositor], "Moderate"))
    return out


YOGA_RULES = (
    Rule("yoga.gajakesari", "yoga", (Planet.JUPITER, Planet.MOON), _gajakesari),
    Rule("yoga.budha-aditya", "yoga", (Planet.SUN, Planet.MERCURY), _budha_aditya),
    _mahapurusha(Planet.MARS, "yoga.ruchaka", "Ruchaka"),
    _mahapurusha(Planet.MERCURY, "yoga.bhadra", "Bhadra"),
    _mahapurusha(Planet.JUPITER, "yoga.hamsa", "Hamsa"),
    _mahapurusha(Planet.VENUS, "yoga.malavya", "Malavya"),
    _mahapurusha(Planet.SATURN, "yoga.shasha", "Shasha"),
    Rule("yoga.raja", "yoga", (), _raja),
    Rule("yoga.yogakaraka", "yoga", (), _yogakaraka, divisional=False),
    Rule("yoga.dhana", "yoga", (), _lords_conjunct("yoga.dhana", "Dhana Yoga", (2, 11))),
    Rule("yoga.lakshmi", "yoga", (), _lords_conjunct("yoga.lakshmi", "Lakshmi Yoga", (5, 9))),
    Rule("yoga.vipareeta-raja", "yoga", (), _vipareeta_raja),
    Rule("yoga.neecha-bhanga", "yoga", (), _neecha_bhanga),
)


# ── Doshas ────────────────────────────────────────────────────────────────

def _strictly_inside(value: float, start: float, end: float, circle: float) -> bool:
    """value lies on the open arc from start forward to end."""
    offset = (value - start) % circle
    span = (end - start) % circle
    return 0 < offset < span


def _kaalsarpa(ctx):
    bodies = CLASSICAL_PLANETS + NODES
    if all(ctx.pos(p).longitude is not None for p in bodies):
        point, circle, basis = (lambda p: ctx.pos(p).longitude), 360.0, "longitude"
    else:
        point, circle, basis = ctx.sign, 12, "sign"

    rahu, ketu = point(Planet.RAHU), point(Planet.KETU)
    if all(_strictly_inside(point(p), rahu, ketu, circle) for p in CLASSICAL_PLANETS):
        direction = "Rahu to Ketu"
    elif all(_strictly_inside(point(p), ketu, rahu, circle) for p in CLASSICAL_PLANETS):
        direction = "Ketu to Rahu"
    else:
        return []
    return [_match(ctx, "dosha", "dosha.kaalsarpa", "Kaal Sarp Dosha",
                   [f"All seven planets hemmed from {direction}", f"by {basis}"],
                   CLASSICAL_PLANETS + NODES)]


def mangal_dosha_rule(houses: Iterable[int] = (1, 2, 4, 7, 8, 12),
                      from_lagna: bool = True, from_moon: bool = True,
                      key: str = "dosha.mangal") -> Rule:
    """Mars in any of `houses` counted from the Lagna and/or the Moon."""
    houses = frozenset(houses)
    if not houses or not houses <= set(range(1, 13)):
        raise InvalidInputError(f"Mangal houses must be within 1..12, got {sorted(houses)}")
    if not (from_lagna or from_moon):
        raise InvalidInputError("Mangal dosha needs at least one reference point")

    def evaluate(ctx):
        reasons = []
        if from_lagna and ctx.house(Planet.MARS) in houses:
            reasons.append(f"Mars in house {ctx.house(Planet.MARS)} from the Lagna")
        if from_moon and ctx.has(Planet.MOON):
            h = ctx.house_from(Planet.MARS, Planet.MOON)
            if h in houses:
                reasons.append(f"Mars in house {h} from the Moon")
        if not reasons:
            return []
        return [_match(ctx, "dosha", key, "Mangal (Kuja) Dosha", reasons, [Planet.MARS])]

    return Rule(key, "dosha", (Planet.MARS,), evaluate)


def _with_node(planet: Planet, key: str, label: str):
    def evaluate(ctx):
        nodes = [n for n in NODES if ctx.has(n) and ctx.conjunct(planet, n)]
        if not nodes:
            return []
        return [_match(ctx, "dosha", key, label,
                       [f"{planet} with {n} in house {ctx.house(planet)}" for n in nodes],
                       [planet] + nodes)]
    return Rule(key, "dosha", (planet,), evaluate)


def _conjunction(a: Planet, b: Planet, key: str, label: str):
    def evaluate(ctx):
        if not ctx.conjunct(a, b):
            return []
        return [_match(ctx, "dosha", key, label,
                       [f"{a} and {b} together in house {ctx.house(a)}"], [a, b])]
    return Rule(key, "dosha", (a, b), evaluate)


def _kemadruma(ctx):
    flanking = {2, 12}
    neighbours = [p for p in ctx.positions
                  if p is not Planet.MOON and p not in NODES
                  and ctx.house_from(p, Planet.MOON) in flanking]
    if neighbours:
        return []
    return [_match(ctx, "dosha", "dosha.kemadruma", "Kemadruma Dosha",
                   ["No planet in the 2nd or 12th from the Moon"], [Planet.MOON])]


def _ashtama_shani(ctx):
    if ctx.house_from(Planet.SATURN, Planet.MOON) != 8:
        return []
    return [_match(ctx, "dosha", "dosha.ashtama-shani", "Ashtama Shani",
                   ["Saturn 8th from the Moon"], [Planet.SATURN, Planet.MOON])]


def _papakartari_10(ctx):
    malefics = [m for m in (Planet.MARS, Planet.SATURN) if ctx.has(m)]
    in9 = [m for m in malefics if ctx.house(m) == 9]
    in11 = [m for m in malefics if ctx.house(m) == 11]
    if not (in9 and in11):
        return []
    return [_match(ctx, "dosha", "dosha.papakartari.10", "Papakartari (10th house)",
                   [f"{in9[0]} in 9th and {in11[0]} in 11th hemming the 10th"],
                   in9 + in11)]


def _daridra(ctx):
    heavy = [m for m in (Planet.MARS, Planet.SATURN) + NODES
             if ctx.has(m) and ctx.house(m) in (2, 11)]
    if len(heavy) < 2:
        return []
    return [_match(ctx, "dosha", "dosha.daridra", "Daridra Dosha",
                   [f"{m} in house {ctx.house(m)}" for m in heavy], heavy)]


def _alpa_shakti(ctx):
    crowd = [p for p in CLASSICAL_PLANETS if ctx.has(p) and ctx.house(p) in DUSTHANA_HOUSES]
    if len(crowd) < 4:
        return []
    return [_match(ctx, "dosha", "dosha.alpa-shakti", "Alpa Shakti (Dusthana crowd)",
                   [f"{len(crowd)} planets across houses 6/8/12"], crowd)]


DOSHA_RULES = (
    Rule("dosha.kaalsarpa", "dosha", CLASSICAL_PLANETS + NODES, _kaalsarpa),
    mangal_dosha_rule(),
    _with_node(Planet.SUN, "dosha.grahan.surya", "Surya Grahan Dosha"),
    _with_node(Planet.MOON, "dosha.grahan.chandra", "Chandra Grahan Dosha"),
    _conjunction(Planet.SATURN, Planet.RAHU, "dosha.shrapit", "Shrapit Dosha"),
    _with_node(Planet.SUN, "dosha.pitri", "Pitri Dosha"),
    _with_node(Planet.JUPITER, "dosha.guru-chandala", "Guru-Chandala Dosha"),
    _conjunction(Planet.SATURN, Planet.MOON, "dosha.vish", "Vish Dosha"),
    Rule("dosha.kemadruma", "dosha", CLASSICAL_PLANETS, _kemadruma),
    Rule("dosha.daridra", "dosha", (), _daridra),
    Rule("dosha.ashtama-shani", "dosha", (Planet.SATURN, Planet.MOON), _ashtama_shani),
    Rule("dosha.papakartari.10", "dosha", (), _papakartari_10),
    Rule("dosha.alpa-shakti", "dosha", (), _alpa_shakti),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

def evaluate_rules(rules: Iterable[Rule], context: RuleContext) -> List[Match]:
    matches: List[Match] = []
    for rule in rules:
        missing = [p for p in rule.requires if p not in context.positions]
        if missing:
            logger.debug("%s [%s] skipped: missing %s", rule.key, context.chart,
                         ", ".join(p.value for p in missing))
            continue
        try:
            matches.extend(rule.evaluate(context))
        except MissingPlanet as e:
            logger.debug("%s [%s] skipped: missing %s", rule.key, context.chart, e)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("%s [%s] failed on malformed data: %s", rule.key, context.chart, e)
    return matches


def _tag_running_dasha(matches: List[Match], dasha_context: Mapping[str, str]) -> List[Match]:
    if not dasha_context:
        return matches
    tagged = []
    for m in matches:
        names = {p.value for p in m.planets}
        extra = tuple(f"{lord} {level} dasha running"
                      for level, lord in dasha_context.items() if lord in names)
        tagged.append(replace(m, factors=m.factors + extra) if extra else m)
    return tagged


def detect_all(ascendant, positions, dignities: Optional[Mapping] = None,
               aspects: Optional[Iterable] = None,
               dasha_context: Optional[Mapping] = None
               ) -> Tuple[List[YogaMatch], List[DoshaMatch]]:
    """
    Run the full yoga and dosha catalog on a D1 chart.

    positions: ResolvedChart, PlanetPosition list or raw provider rows.
    dignities: provider dignity per planet; overrides the computed one.
    dasha_context: {"maha": lord, "antar": lord}; matches involving a running
        lord get a factor saying so.
    """
    ctx = RuleContext.build(ascendant, positions, dignities, aspects,
                            dasha_context=dasha_context)
    yogas = evaluate_rules(YOGA_RULES, ctx)
    doshas = evaluate_rules(DOSHA_RULES, ctx)
    logger.debug("D1: %d yogas, %d doshas", len(yogas), len(doshas))
    return (_tag_running_dasha(yogas, ctx.dasha_context),
            _tag_running_dasha(doshas, ctx.dasha_context))


def _varga_context(name: str, chart, dignities: Optional[Mapping]) -> RuleContext:
    if isinstance(chart, ResolvedChart):
        ascendant, planets = chart.ascendant, chart
    elif isinstance(chart, Mapping):
        ascendant, planets = chart.get("ascendant"), chart.get("planets")
    else:
        raise InvalidInputError(f"Divisional chart {name} must be a chart mapping")
    if ascendant is None:
        raise InvalidInputError(f"Divisional chart {name} has no ascendant")
    return RuleContext.build(ascendant, planets, dignities=dignities, chart=name)


def detect_divisional_support(yogas: Iterable[Match],
                              divisional_charts: Mapping[str, Union[ResolvedChart, Mapping]],
                              dignities: Optional[Mapping[str, Mapping]] = None
                              ) -> List[YogaMatch]:
    """
    Re-check the D1 yogas in each divisional chart.

    divisional_charts: {"D9": ResolvedChart or {"ascendant": .., "planets": [..]}}
    dignities: optional provider dignities per chart name.

    Corroborations come back as their own list, keyed "<key>.<chart>-support".
    """
    matched = {y.key for y in yogas}
    rules = [r for r in YOGA_RULES if r.key in matched and r.divisional]
    if not rules:
        return []

    support: List[YogaMatch] = []
    for name, chart in divisional_charts.items():
        ctx = _varga_context(name, chart, (dignities or {}).get(name))
        for m in evaluate_rules(rules, ctx):
            support.append(YogaMatch(
                key=f"{m.key}.{name}-support",
                label=f"{m.label} ({name} support)",
                factors=m.factors,
                planets=m.planets,
                chart=name,
                strength=m.strength,
            ))
    return support


def compare_strength(d1: RuleContext, varga: RuleContext, planet: Planet) -> str:
    """
    How a planet fares in a divisional chart against D1.

    "reinforced": same non-neutral dignity in the same house;
    "stronger": own or exalted in the varga; "weakened": debilitated in the
    varga; "neutral" otherwise; "unknown" when either chart lacks it.
    """
    if not (d1.has(planet) and varga.has(planet)):
        return "unknown"
    dignity = varga.dignity(planet)
    if dignity != "neutral" and dignity == d1.dignity(planet) \
            and varga.house(planet) == d1.house(planet):
        return "reinforced"
    if dignity in ("own", "exalted"):
        return "stronger"
    if dignity == "debilitated":
        return "weakened"
    return "neutral"


def detect_divisional_weakness(yogas: Iterable[Match],
                               divisional_charts: Mapping[str, Union[ResolvedChart, Mapping]],
                               dignities: Optional[Mapping[str, Mapping]] = None
                               ) -> List[YogaMatch]:
    """D1 yogas whose planets fall debilitated in a divisional chart, keyed "<key>.<chart>-weakened"."""
    yogas = list(yogas)
    out: List[YogaMatch] = []
    for name, chart in divisional_charts.items():
        ctx = _varga_context(name, chart, (dignities or {}).get(name))
        for y in yogas:
            weak = tuple(p for p in y.planets if ctx.has(p) and ctx.dignity(p) == "debilitated")
            if not weak:
                continue
            out.append(YogaMatch(
                key=f"{y.key}.{name}-weakened",
                label=f"{y.label} ({name} weakened)",
                factors=tuple(f"{p} debilitated in {name}" for p in weak),
                planets=weak,
                chart=name,
                strength="Weak",
            ))
    return out


def divisional_summary(ascendant, positions,
                       divisional_charts: Mapping[str, Union[ResolvedChart, Mapping]],
                       dignities: Optional[Mapping] = None,
                       divisional_dignities: Optional[Mapping[str, Mapping]] = None) -> dict:
    """Per chart: how many classical planets got stronger or weaker than in D1."""
    d1 = RuleContext.build(ascendant, positions, dignities)
    summary = {}
    for name, chart in divisional_charts.items():
        ctx = _varga_context(name, chart, (divisional_dignities or {}).get(name))
        status = {p: compare_strength(d1, ctx, p) for p in CLASSICAL_PLANETS}
        summary[name] = {
            "stronger": sum(s in ("stronger", "reinforced") for s in status.values()),
            "weakened": sum(s == "weakened" for s in status.values()),
            "planets": {p.value: s for p, s in status.items() if s != "unknown"},
        }
    return summary
