# astrocore/core/synastry.py
"""
Synastry: two charts read against each other.

Pieces
------
- synastry_aspects   : every body of the first chart against every body of
                       the second, best aspect per pair (same matcher and
                       tables as a natal chart)
- aspect_weight      : 1 / 2 / 3 for zero / one / two personal planets,
                       x1.5 conjunction or opposition, x1.2 trine or square,
                       capped at 5
- compatibility      : 5 + 0.5w per trine/sextile + 0.3w per conjunction
                       - 0.3w per square/opposition, then +1 for a balanced
                       element mix or -0.5 for an imbalanced one; 1..10
- category_scores    : the same sum (squares/oppositions at 0.2w) over the
                       aspects touching each category's bodies
- elemental_balance  : element counts over both charts
- composite_chart    : shorter-arc midpoint of every body both charts share

Inputs are Charts or plain body -> longitude / BodyPosition mappings.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
import logging

from astrocore.core.angles import normalize, sign_of, signed_delta
from astrocore.core.aspects import (
    DEFAULT_ASPECT_TABLE,
    Aspect,
    AspectDefinition,
    AspectGraph,
    AspectType,
    build_aspect_graph,
    is_applying,
    match_aspect,
)
from astrocore.core.bodies import Body, Element, parse_body
from astrocore.core.ephemeris import BodyPosition
from astrocore.core.errors import InvalidInputError
from astrocore.core.patterns import AspectPattern, detect_patterns

log = logging.getLogger(__name__)

__all__ = [
    "Category",
    "BalanceLabel",
    "SynastryAspect",
    "ElementalBalance",
    "CompositeChart",
    "SynastryReport",
    "PERSONAL_BODIES",
    "aspect_weight",
    "is_soulmate_aspect",
    "synastry_aspects",
    "compatibility_score",
    "category_scores",
    "elemental_balance",
    "midpoint",
    "composite_chart",
    "compare_charts",
]

ChartLike = Union[Mapping[Any, Union[BodyPosition, float]], Any]

PERSONAL_BODIES: FrozenSet[Body] = frozenset({Body.SUN, Body.MOON, Body.MERCURY, Body.VENUS, Body.MARS})

_SOULMATE: FrozenSet[Tuple[FrozenSet[Body], AspectType]] = frozenset({
    (frozenset({Body.SUN, Body.MOON}), AspectType.CONJUNCTION),
    (frozenset({Body.SUN, Body.MOON}), AspectType.TRINE),
    (frozenset({Body.VENUS}), AspectType.CONJUNCTION),
    (frozenset({Body.VENUS, Body.MARS}), AspectType.CONJUNCTION),
    (frozenset({Body.MOON}), AspectType.OPPOSITION),
})


class Category(str, Enum):
    ROMANTIC = "romantic"
    COMMUNICATION = "communication"
    EMOTIONAL = "emotional"
    INTELLECTUAL = "intellectual"
    SPIRITUAL = "spiritual"
    VALUES = "values"

    def __str__(self) -> str:
        return self.value


CATEGORY_BODIES: Dict[Category, FrozenSet[Body]] = {
    Category.ROMANTIC: frozenset({Body.VENUS, Body.MARS, Body.MOON}),
    Category.COMMUNICATION: frozenset({Body.MERCURY}),
    Category.EMOTIONAL: frozenset({Body.MOON, Body.VENUS, Body.NEPTUNE}),
    Category.INTELLECTUAL: frozenset({Body.MERCURY, Body.JUPITER, Body.URANUS}),
    Category.SPIRITUAL: frozenset({Body.NEPTUNE, Body.PLUTO, Body.JUPITER}),
    Category.VALUES: frozenset({Body.VENUS, Body.SATURN}),
}


class BalanceLabel(str, Enum):
    WELL_BALANCED = "well-balanced"
    BALANCED = "balanced"
    IMBALANCED = "imbalanced"

    def __str__(self) -> str:
        return self.value


_BALANCE_BONUS: Dict[BalanceLabel, float] = {
    BalanceLabel.WELL_BALANCED: 1.0,
    BalanceLabel.BALANCED: 1.0,
    BalanceLabel.IMBALANCED: -0.5,
}


# ─────────────────────────────────────────────────────────────────────────────
# Types
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SynastryAspect:
    aspect: Aspect      # body_a belongs to the first chart, body_b to the second
    weight: float
    soulmate: bool

    @property
    def type(self) -> AspectType:
        return self.aspect.type

    def touches(self, bodies: Iterable[Body]) -> bool:
        s = set(bodies)
        return self.aspect.body_a in s or self.aspect.body_b in s

    def as_dict(self) -> Dict[str, Any]:
        a = self.aspect
        return dict(
            a.as_dict(),
            weight=self.weight,
            soulmate=self.soulmate,
            description_key=f"synastry.{a.body_a.value}.{a.type.value}.{a.body_b.value}",
        )


@dataclass(frozen=True)
class ElementalBalance:
    counts: Dict[Element, int]
    label: BalanceLabel

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def dominant(self) -> Optional[Element]:
        if not self.total:
            return None
        return max(Element, key=lambda e: self.counts[e])

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {e.value: self.counts[e] for e in Element}
        out["balance"] = self.label.value
        return out


@dataclass(frozen=True)
class CompositeChart:
    points: Dict[Body, float]
    graph: AspectGraph

    @property
    def aspects(self) -> List[Aspect]:
        return self.graph.aspects

    def patterns(self, *, allow_overlap: bool = False) -> List[AspectPattern]:
        return detect_patterns(self.graph, allow_overlap=allow_overlap)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "positions": {
                b.value: dict(sign_of(lon).as_dict(), longitude=lon) for b, lon in self.points.items()
            },
            "aspects": [a.as_dict() for a in self.aspects],
            "patterns": [p.as_dict() for p in self.patterns()],
        }


@dataclass(frozen=True)
class SynastryReport:
    aspects: Tuple[SynastryAspect, ...]
    balance: ElementalBalance
    compatibility: float
    categories: Dict[Category, float]
    composite: CompositeChart
    theme_key: str
    strength_keys: Tuple[str, ...]
    challenge_keys: Tuple[str, ...]

    @property
    def soulmate_count(self) -> int:
        return sum(1 for s in self.aspects if s.soulmate)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "aspects": [s.as_dict() for s in self.aspects],
            "compatibility": self.compatibility,
            "scores": dict({c.value: v for c, v in self.categories.items()}, overall=self.compatibility),
            "elemental_balance": self.balance.as_dict(),
            "composite": self.composite.as_dict(),
            "theme_key": self.theme_key,
            "strength_keys": list(self.strength_keys),
            "challenge_keys": list(self.challenge_keys),
            "soulmate_count": self.soulmate_count,
        }


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _points(chart: ChartLike) -> Dict[Body, Tuple[float, Optional[float]]]:
    """(longitude, speed or None) per body from a Chart or a body→position mapping."""
    src = getattr(chart, "positions", chart)
    out: Dict[Body, Tuple[float, Optional[float]]] = {}
    for body, pos in src.items():
        if isinstance(pos, BodyPosition):
            out[parse_body(body)] = (pos.longitude, pos.speed)
        else:
            out[parse_body(body)] = (normalize(pos), None)
    if not out:
        raise InvalidInputError("validation", "chart has no positions")
    return out


def _clamp_score(score: float) -> float:
    return round(min(10.0, max(1.0, score)), 1)


def _weighted_sum(aspects: Iterable[SynastryAspect], hard_factor: float) -> float:
    score = 5.0
    for s in aspects:
        if s.type in (AspectType.TRINE, AspectType.SEXTILE):
            score += 0.5 * s.weight
        elif s.type is AspectType.CONJUNCTION:
            score += 0.3 * s.weight
        elif s.type in (AspectType.OPPOSITION, AspectType.SQUARE):
            score -= hard_factor * s.weight
    return score


# ─────────────────────────────────────────────────────────────────────────────
# Cross-chart aspects
# ─────────────────────────────────────────────────────────────────────────────

def aspect_weight(a: Body, b: Body, kind: AspectType) -> float:
    personal = (a in PERSONAL_BODIES) + (b in PERSONAL_BODIES)
    w = (1.0, 2.0, 3.0)[personal]
    if kind in (AspectType.CONJUNCTION, AspectType.OPPOSITION):
        w *= 1.5
    elif kind in (AspectType.TRINE, AspectType.SQUARE):
        w *= 1.2
    return min(5.0, w)


def is_soulmate_aspect(a: Body, b: Body, kind: AspectType) -> bool:
    return (frozenset((a, b)), kind) in _SOULMATE


def synastry_aspects(
    first: ChartLike,
    second: ChartLike,
    table: Iterable[AspectDefinition] = DEFAULT_ASPECT_TABLE,
) -> List[SynastryAspect]:
    """Best aspect for every (first-chart body, second-chart body) pair that has one."""
    pa, pb = _points(first), _points(second)
    table = tuple(table)
    out: List[SynastryAspect] = []
    for a, (lon_a, spd_a) in pa.items():
        for b, (lon_b, spd_b) in pb.items():
            m = match_aspect(lon_a, lon_b, table)
            if m is None:
                continue
            asp = Aspect(
                body_a=a,
                body_b=b,
                type=m.type,
                orb=m.orb,
                separation=m.separation,
                applying=is_applying(lon_a, spd_a, lon_b, spd_b, m.exact_angle),
                max_orb=m.max_orb,
            )
            out.append(SynastryAspect(
                aspect=asp,
                weight=aspect_weight(a, b, m.type),
                soulmate=is_soulmate_aspect(a, b, m.type),
            ))
    log.debug("synastry: %d x %d bodies, %d aspects", len(pa), len(pb), len(out))
    return out


# ─────────────────────────────────────────────────────────────────────────────
# Scores
# ─────────────────────────────────────────────────────────────────────────────

def elemental_balance(first: ChartLike, second: ChartLike) -> ElementalBalance:
    counts = {e: 0 for e in Element}
    for chart in (first, second):
        for lon, _speed in _points(chart).values():
            counts[sign_of(lon).sign.element] += 1
    total = sum(counts.values())
    spread = max(counts.values()) - min(counts.values())
    if spread > 0.4 * total:
        label = BalanceLabel.IMBALANCED
    elif spread < 0.15 * total:
        label = BalanceLabel.WELL_BALANCED
    else:
        label = BalanceLabel.BALANCED
    return ElementalBalance(counts=counts, label=label)


def compatibility_score(aspects: Sequence[SynastryAspect], balance: ElementalBalance) -> float:
    return _clamp_score(_weighted_sum(aspects, 0.3) + _BALANCE_BONUS[balance.label])


def category_scores(aspects: Sequence[SynastryAspect]) -> Dict[Category, float]:
    return {
        cat: _clamp_score(_weighted_sum((s for s in aspects if s.touches(bodies)), 0.2))
        for cat, bodies in CATEGORY_BODIES.items()
    }


# ─────────────────────────────────────────────────────────────────────────────
# Composite
# ─────────────────────────────────────────────────────────────────────────────

def midpoint(a: float, b: float) -> float:
    """Midpoint on the shorter arc; exact oppositions resolve forward of `a`."""
    return normalize(a + signed_delta(a, b) / 2.0)


def composite_chart(
    first: ChartLike,
    second: ChartLike,
    table: Iterable[AspectDefinition] = DEFAULT_ASPECT_TABLE,
) -> CompositeChart:
    pa, pb = _points(first), _points(second)
    points = {b: midpoint(pa[b][0], pb[b][0]) for b in pa if b in pb}
    if not points:
        raise InvalidInputError("validation", "charts share no bodies",
                                first=[b.value for b in pa], second=[b.value for b in pb])
    return CompositeChart(points=points, graph=build_aspect_graph(points, table))


# ─────────────────────────────────────────────────────────────────────────────
# Report
# ─────────────────────────────────────────────────────────────────────────────

def _theme_key(score: float) -> str:
    if score >= 8.0:
        return "synastry.theme.harmonious"
    if score >= 6.0:
        return "synastry.theme.mixed"
    return "synastry.theme.challenging"


def _count(aspects: Sequence[SynastryAspect], kind: AspectType) -> int:
    return sum(1 for s in aspects if s.type is kind)


def _strength_keys(aspects: Sequence[SynastryAspect]) -> Tuple[str, ...]:
    keys = []
    if _count(aspects, AspectType.TRINE) >= 3:
        keys.append("synastry.strength.flow")
    if _count(aspects, AspectType.SEXTILE) >= 3:
        keys.append("synastry.strength.cooperation")
    if any(s.soulmate for s in aspects):
        keys.append("synastry.strength.soul-connection")
    return tuple(keys) or ("synastry.strength.individual",)


def _challenge_keys(aspects: Sequence[SynastryAspect]) -> Tuple[str, ...]:
    keys = []
    if _count(aspects, AspectType.SQUARE) >= 2:
        keys.append("synastry.challenge.friction")
    if _count(aspects, AspectType.OPPOSITION) >= 2:
        keys.append("synastry.challenge.polarity")
    if _count(aspects, AspectType.QUINCUNX) >= 2:
        keys.append("synastry.challenge.adjustment")
    return tuple(keys) or ("synastry.challenge.effort",)


def compare_charts(
    first: ChartLike,
    second: ChartLike,
    table: Iterable[AspectDefinition] = DEFAULT_ASPECT_TABLE,
) -> SynastryReport:
    table = tuple(table)
    aspects = synastry_aspects(first, second, table)
    balance = elemental_balance(first, second)
    score = compatibility_score(aspects, balance)
    return SynastryReport(
        aspects=tuple(aspects),
        balance=balance,
        compatibility=score,
        categories=category_scores(aspects),
        composite=composite_chart(first, second, table),
        theme_key=_theme_key(score),
        strength_keys=_strength_keys(aspects),
        challenge_keys=_challenge_keys(aspects),
    )
