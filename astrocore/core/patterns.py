# astrocore/core/patterns.py
"""
Aspect pattern detection over an AspectGraph.

Patterns
--------
- stellium      : >= 3 bodies sharing a sign (or a house, when houses are given)
- grand-trine   : 3 bodies, all pairs trine
- t-square      : one opposition + a third body square to both ends
- grand-cross   : two oppositions whose four cross pairs are all square
- yod           : two bodies in sextile, both quincunx to a third (apex)
- kite          : a grand trine + a fourth body opposite one member and
                  sextile to the other two

Overlap policy
--------------
By default a T-Square wholly contained in a reported Grand Cross, and a Grand
Trine wholly contained in a reported Kite, are not reported again.
Pass allow_overlap=True to get every structure found.

Intensity
---------
1.0–10.0 (one decimal): 1 + 6·tightness + min(extra bodies, 3), where
tightness = 1 − mean(orb / max orb) over the pattern's edges (for stelliums,
1 − spread / 30°).
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import itertools
import logging

from astrocore.core.angles import normalize, sign_of
from astrocore.core.aspects import DEFAULT_ORBS_DEG, AspectGraph, AspectType
from astrocore.core.bodies import Body, parse_body

log = logging.getLogger(__name__)

__all__ = ["PatternType", "AspectPattern", "detect_patterns", "detect_stelliums", "pattern_intensity"]

STELLIUM_MIN = 3


class PatternType(str, Enum):
    STELLIUM = "stellium"
    GRAND_TRINE = "grand-trine"
    T_SQUARE = "t-square"
    GRAND_CROSS = "grand-cross"
    YOD = "yod"
    KITE = "kite"

    def __str__(self) -> str:
        return self.value

    @property
    def min_bodies(self) -> int:
        return 4 if self in (PatternType.GRAND_CROSS, PatternType.KITE) else 3


@dataclass(frozen=True)
class AspectPattern:
    type: PatternType
    bodies: Tuple[Body, ...]
    intensity: float
    description_key: str
    basis: Optional[str] = None  # e.g. "sign:aries" / "house:10" for stelliums

    def __post_init__(self) -> None:
        if len(set(self.bodies)) < self.type.min_bodies:
            raise ValueError(f"{self.type.value} needs {self.type.min_bodies} distinct bodies")

    def as_dict(self) -> Dict[str, Any]:
        out = {
            "type": self.type.value,
            "bodies": [b.value for b in self.bodies],
            "intensity": self.intensity,
            "description_key": self.description_key,
        }
        if self.basis is not None:
            out["basis"] = self.basis
        return out


# ─────────────────────────────────────────────────────────────────────────────
# Scoring
# ─────────────────────────────────────────────────────────────────────────────

def pattern_intensity(n_bodies: int, tightness: float) -> float:
    t = min(1.0, max(0.0, float(tightness)))
    score = 1.0 + 6.0 * t + min(max(n_bodies - 3, 0), 3)
    return round(min(10.0, max(1.0, score)), 1)


def _edge_tightness(graph: AspectGraph, pairs: Iterable[Tuple[Body, Body]]) -> float:
    ratios = []
    for a, b in pairs:
        asp = graph.get(a, b)
        if asp is None:
            continue
        max_orb = asp.max_orb if asp.max_orb is not None else DEFAULT_ORBS_DEG[asp.type]
        ratios.append(asp.orb / max_orb if max_orb > 0 else 0.0)
    if not ratios:
        return 0.0
    return 1.0 - sum(ratios) / len(ratios)


def _arc_spread(lons: Sequence[float]) -> float:
    """Smallest arc containing every longitude."""
    s = sorted(normalize(x) for x in lons)
    if len(s) < 2:
        return 0.0
    gaps = [s[i + 1] - s[i] for i in range(len(s) - 1)] + [360.0 - s[-1] + s[0]]
    return 360.0 - max(gaps)


def _make(graph: AspectGraph, kind: PatternType, bodies: Sequence[Body]) -> AspectPattern:
    pairs = list(itertools.combinations(bodies, 2))
    return AspectPattern(
        type=kind,
        bodies=tuple(bodies),
        intensity=pattern_intensity(len(bodies), _edge_tightness(graph, pairs)),
        description_key=f"pattern.{kind.value}",
    )


# ─────────────────────────────────────────────────────────────────────────────
# Detectors (pure functions of the graph)
# ─────────────────────────────────────────────────────────────────────────────

def detect_stelliums(
    points: Mapping[Body, float],
    houses: Optional[Mapping[Body, int]] = None,
) -> List[AspectPattern]:
    order = {b: i for i, b in enumerate(points)}
    groups: Dict[str, List[Body]] = {}
    for body, lon in points.items():
        groups.setdefault(f"sign:{sign_of(lon).sign.value}", []).append(body)
    for body, house in (houses or {}).items():
        body = parse_body(body)
        if body in order:
            groups.setdefault(f"house:{int(house)}", []).append(body)

    out = []
    for basis, members in groups.items():
        if len(members) < STELLIUM_MIN:
            continue
        members = sorted(members, key=order.__getitem__)
        spread = _arc_spread([points[b] for b in members])
        out.append(AspectPattern(
            type=PatternType.STELLIUM,
            bodies=tuple(members),
            intensity=pattern_intensity(len(members), 1.0 - spread / 30.0),
            description_key=f"pattern.{PatternType.STELLIUM.value}",
            basis=basis,
        ))
    return out


def _grand_trines(graph: AspectGraph) -> List[Tuple[Body, ...]]:
    return [
        tri for tri in itertools.combinations(graph.bodies, 3)
        if all(graph.has(a, b, AspectType.TRINE) for a, b in itertools.combinations(tri, 2))
    ]


def _t_squares(graph: AspectGraph) -> List[Tuple[Body, ...]]:
    out = []
    for opp in graph.of_type(AspectType.OPPOSITION):
        a, b = opp.body_a, opp.body_b
        for apex in graph.bodies:
            if apex in (a, b):
                continue
            if graph.has(apex, a, AspectType.SQUARE) and graph.has(apex, b, AspectType.SQUARE):
                out.append((a, b, apex))
    return out


def _grand_crosses(graph: AspectGraph) -> List[Tuple[Body, ...]]:
    out = []
    for o1, o2 in itertools.combinations(graph.of_type(AspectType.OPPOSITION), 2):
        a, b, c, d = o1.body_a, o1.body_b, o2.body_a, o2.body_b
        if len({a, b, c, d}) < 4:
            continue
        if all(graph.has(x, y, AspectType.SQUARE) for x in (a, b) for y in (c, d)):
            out.append((a, b, c, d))
    return out


def _yods(graph: AspectGraph) -> List[Tuple[Body, ...]]:
    out = []
    for sx in graph.of_type(AspectType.SEXTILE):
        a, b = sx.body_a, sx.body_b
        for apex in graph.bodies:
            if apex in (a, b):
                continue
            if graph.has(apex, a, AspectType.QUINCUNX) and graph.has(apex, b, AspectType.QUINCUNX):
                out.append((a, b, apex))
    return out


def _kites(graph: AspectGraph, trines: List[Tuple[Body, ...]]) -> List[Tuple[Body, ...]]:
    out = []
    for tri in trines:
        for tail in graph.bodies:
            if tail in tri:
                continue
            for head in tri:
                wings = [x for x in tri if x is not head]
                if graph.has(tail, head, AspectType.OPPOSITION) and all(
                    graph.has(tail, w, AspectType.SEXTILE) for w in wings
                ):
                    out.append((*tri, tail))
    return out


def detect_patterns(
    graph: AspectGraph,
    houses: Optional[Mapping[Body, int]] = None,
    *,
    allow_overlap: bool = False,
) -> List[AspectPattern]:
    """Every pattern in the graph, grouped by type in a stable order."""
    trines = _grand_trines(graph)
    crosses = _grand_crosses(graph)
    kites = _kites(graph, trines)
    t_squares = _t_squares(graph)

    if not allow_overlap:
        cross_sets = [frozenset(c) for c in crosses]
        kite_sets = [frozenset(k) for k in kites]
        t_squares = [t for t in t_squares if not any(frozenset(t) <= c for c in cross_sets)]
        trines = [t for t in trines if not any(frozenset(t) <= k for k in kite_sets)]

    out: List[AspectPattern] = list(detect_stelliums(graph.points, houses))
    out += [_make(graph, PatternType.GRAND_TRINE, t) for t in trines]
    out += [_make(graph, PatternType.T_SQUARE, t) for t in t_squares]
    out += [_make(graph, PatternType.GRAND_CROSS, c) for c in crosses]
    out += [_make(graph, PatternType.YOD, y) for y in _yods(graph)]
    out += [_make(graph, PatternType.KITE, k) for k in kites]
    log.debug("patterns: %d found (allow_overlap=%s)", len(out), allow_overlap)
    return out
