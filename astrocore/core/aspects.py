# astrocore/core/aspects.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Tuple, Union
import itertools
import logging
import math

from astrocore.core.angles import normalize, separation
from astrocore.core.bodies import Body, parse_body
from astrocore.core.errors import InvalidInputError, UnknownAspectTypeError

log = logging.getLogger(__name__)

__all__ = [
    "AspectType",
    "AspectDefinition",
    "AspectMatch",
    "Aspect",
    "AspectGraph",
    "DEFAULT_ASPECT_TABLE",
    "MAJOR_ASPECT_TYPES",
    "parse_aspect_type",
    "aspect_table",
    "match_aspect",
    "is_applying",
    "build_aspect_graph",
]

# ─────────────────────────────────────────────────────────────────────────────
# Aspect catalog & default orbs
# ─────────────────────────────────────────────────────────────────────────────

class AspectType(str, Enum):
    # declaration order is the tie-break priority
    CONJUNCTION = "conjunction"
    OPPOSITION = "opposition"
    TRINE = "trine"
    SQUARE = "square"
    SEXTILE = "sextile"
    QUINCUNX = "quincunx"
    SEMISEXTILE = "semisextile"

    def __str__(self) -> str:
        return self.value

    @property
    def angle(self) -> float:
        return EXACT_ANGLES[self]

    @property
    def harmonious(self) -> bool:
        return self in _HARMONIOUS

    @property
    def priority(self) -> int:
        return _PRIORITY[self]


EXACT_ANGLES: Dict[AspectType, float] = {
    AspectType.CONJUNCTION: 0.0,
    AspectType.OPPOSITION: 180.0,
    AspectType.TRINE: 120.0,
    AspectType.SQUARE: 90.0,
    AspectType.SEXTILE: 60.0,
    AspectType.QUINCUNX: 150.0,
    AspectType.SEMISEXTILE: 30.0,
}

DEFAULT_ORBS_DEG: Dict[AspectType, float] = {
    AspectType.CONJUNCTION: 10.0,
    AspectType.OPPOSITION: 8.0,
    AspectType.TRINE: 8.0,
    AspectType.SQUARE: 8.0,
    AspectType.SEXTILE: 6.0,
    AspectType.QUINCUNX: 3.0,
    AspectType.SEMISEXTILE: 2.0,
}

_HARMONIOUS = frozenset({AspectType.TRINE, AspectType.SEXTILE, AspectType.SEMISEXTILE})
_PRIORITY: Dict[AspectType, int] = {t: i for i, t in enumerate(AspectType)}

MAJOR_ASPECT_TYPES: Tuple[AspectType, ...] = (
    AspectType.CONJUNCTION, AspectType.OPPOSITION, AspectType.TRINE,
    AspectType.SQUARE, AspectType.SEXTILE,
)

for _t in AspectType:
    if _t not in EXACT_ANGLES or _t not in DEFAULT_ORBS_DEG:
        raise RuntimeError(f"aspect tables missing entry for {_t!r}")


def parse_aspect_type(name: Union[str, AspectType]) -> AspectType:
    if isinstance(name, AspectType):
        return name
    key = str(name).strip().lower().replace("_", "").replace("-", "").replace(" ", "")
    if key == "inconjunct":
        key = "quincunx"
    for t in AspectType:
        if t.value == key:
            return t
    raise UnknownAspectTypeError(
        "config", f"Unknown aspect type '{name}'",
        requested=str(name), supported=[t.value for t in AspectType],
    )


# ─────────────────────────────────────────────────────────────────────────────
# Definitions & results
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AspectDefinition:
    type: AspectType
    angle: float
    orb: float  # maximum allowed deviation from `angle`


def aspect_table(
    orbs: Optional[Mapping[Union[str, AspectType], float]] = None,
    include: Optional[Iterable[Union[str, AspectType]]] = None,
) -> Tuple[AspectDefinition, ...]:
    """
    Build an aspect table in priority order.

    `orbs` overrides default maximum orbs per type; `include` restricts the table
    to the named types. Unknown names raise UnknownAspectTypeError.
    """
    wanted = {parse_aspect_type(t) for t in include} if include is not None else set(AspectType)
    custom = {parse_aspect_type(k): v for k, v in (orbs or {}).items()}
    table: List[AspectDefinition] = []
    for t in AspectType:
        if t not in wanted:
            continue
        orb = float(custom.get(t, DEFAULT_ORBS_DEG[t]))
        if not math.isfinite(orb) or orb < 0.0:
            raise InvalidInputError("validation", f"orb for {t.value} must be a finite non-negative number",
                                    orb=orb)
        table.append(AspectDefinition(type=t, angle=EXACT_ANGLES[t], orb=orb))
    return tuple(table)


DEFAULT_ASPECT_TABLE: Tuple[AspectDefinition, ...] = aspect_table()


@dataclass(frozen=True)
class AspectMatch:
    type: AspectType
    orb: float          # |separation - exact angle|
    separation: float   # [0, 180]
    max_orb: float

    @property
    def exact_angle(self) -> float:
        return EXACT_ANGLES[self.type]


@dataclass(frozen=True)
class Aspect:
    body_a: Body
    body_b: Body
    type: AspectType
    orb: float
    separation: float
    applying: Optional[bool] = None  # None when speeds are unknown
    max_orb: Optional[float] = None   # orb limit of the table entry that matched

    @property
    def pair(self) -> FrozenSet[Body]:
        return frozenset((self.body_a, self.body_b))

    def involves(self, body: Body) -> bool:
        return body in (self.body_a, self.body_b)

    def other(self, body: Body) -> Body:
        if body is self.body_a:
            return self.body_b
        if body is self.body_b:
            return self.body_a
        raise KeyError(body)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "body_a": self.body_a.value,
            "body_b": self.body_b.value,
            "type": self.type.value,
            "orb": float(self.orb),
            "separation": float(self.separation),
            "applying": self.applying,
            "max_orb": None if self.max_orb is None else float(self.max_orb),
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Aspect":
        applying = d.get("applying")
        max_orb = d.get("max_orb")
        return cls(
            body_a=parse_body(d["body_a"]),
            body_b=parse_body(d["body_b"]),
            type=parse_aspect_type(d["type"]),
            orb=float(d["orb"]),
            separation=float(d["separation"]),
            applying=None if applying is None else bool(applying),
            max_orb=None if max_orb is None else float(max_orb),
        )


# ─────────────────────────────────────────────────────────────────────────────
# AspectMatcher
# ─────────────────────────────────────────────────────────────────────────────

def match_aspect(
    lon_a: float,
    lon_b: float,
    table: Iterable[AspectDefinition] = DEFAULT_ASPECT_TABLE,
) -> Optional[AspectMatch]:
    """
    Best aspect between two longitudes, or None.

    Candidates are table entries whose deviation from the exact angle is within
    their orb. The smallest deviation wins; ties go to the smaller orb, then to
    the fixed type priority (conjunction first, semisextile last).
    """
    sep = separation(lon_a, lon_b)
    best: Optional[Tuple[Tuple[float, float, int], AspectDefinition, float]] = None
    for d in table:
        dev = abs(sep - d.angle)
        if dev > d.orb:
            continue
        key = (dev, d.orb, d.type.priority)
        if best is None or key < best[0]:
            best = (key, d, dev)
    if best is None:
        return None
    _key, d, dev = best
    return AspectMatch(type=d.type, orb=dev, separation=sep, max_orb=d.orb)


def is_applying(
    lon_a: float, speed_a: Optional[float],
    lon_b: float, speed_b: Optional[float],
    exact_angle: float,
    step_days: float = 1e-3,
) -> Optional[bool]:
    """True when the deviation from `exact_angle` shrinks over the next instant; None without speeds."""
    if speed_a is None or speed_b is None:
        return None
    now = abs(separation(lon_a, lon_b) - exact_angle)
    later = abs(separation(lon_a + speed_a * step_days, lon_b + speed_b * step_days) - exact_angle)
    return later < now


# ─────────────────────────────────────────────────────────────────────────────
# AspectGraphBuilder
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AspectGraph:
    """Undirected aspect graph over a fixed set of bodies."""
    points: Dict[Body, float]
    edges: Dict[FrozenSet[Body], Aspect] = field(default_factory=dict)

    @property
    def bodies(self) -> Tuple[Body, ...]:
        return tuple(self.points)

    @property
    def aspects(self) -> List[Aspect]:
        return list(self.edges.values())

    def __len__(self) -> int:
        return len(self.edges)

    def __iter__(self) -> Iterator[Aspect]:
        return iter(self.edges.values())

    def get(self, a: Body, b: Body) -> Optional[Aspect]:
        return self.edges.get(frozenset((parse_body(a), parse_body(b))))

    def has(self, a: Body, b: Body, kind: AspectType) -> bool:
        asp = self.get(a, b)
        return asp is not None and asp.type is kind

    def neighbours(self, body: Body, kind: Optional[AspectType] = None) -> List[Body]:
        body = parse_body(body)
        out = []
        for asp in self.edges.values():
            if asp.involves(body) and (kind is None or asp.type is kind):
                out.append(asp.other(body))
        return out

    def of_type(self, kind: AspectType) -> List[Aspect]:
        return [a for a in self.edges.values() if a.type is kind]


def build_aspect_graph(
    points: Mapping[Union[str, Body], float],
    table: Iterable[AspectDefinition] = DEFAULT_ASPECT_TABLE,
    speeds: Optional[Mapping[Union[str, Body], float]] = None,
) -> AspectGraph:
    """Match every unordered pair of bodies (N·(N−1)/2 pairs) and keep those with an aspect."""
    table = tuple(table)
    lons = {parse_body(b): normalize(v) for b, v in points.items()}
    spd = {parse_body(b): float(v) for b, v in (speeds or {}).items()}

    edges: Dict[FrozenSet[Body], Aspect] = {}
    for a, b in itertools.combinations(lons, 2):
        m = match_aspect(lons[a], lons[b], table)
        if m is None:
            continue
        edges[frozenset((a, b))] = Aspect(
            body_a=a,
            body_b=b,
            type=m.type,
            orb=m.orb,
            separation=m.separation,
            applying=is_applying(lons[a], spd.get(a), lons[b], spd.get(b), m.exact_angle),
            max_orb=m.max_orb,
        )
    log.debug("aspect graph: %d bodies, %d edges", len(lons), len(edges))
    return AspectGraph(points=lons, edges=edges)
