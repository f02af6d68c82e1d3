# astrocore/core/chart.py
"""
Chart assembly and the persisted chart shape.

A Chart is built once per computation and never mutated; recomputing yields a
new Chart. `to_dict()`/`from_dict()` (and the JSON wrappers) round-trip the
stored record losslessly:

    {
      "jd": float, "datetime": ISO-8601 UTC,
      "location": {"latitude": float, "longitude": float},
      "house_system": str,
      "positions": {body: {longitude, latitude, distance, speed, retrograde}},
      "houses": {system, ascendant, midheaven, cusps: [{house, longitude, sign, offset}], ...},
      "aspects": [{body_a, body_b, type, orb, separation, applying, max_orb}]
    }
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union
import json
import logging

from astrocore.core.angles import SignPosition, sign_of
from astrocore.core.aspects import DEFAULT_ASPECT_TABLE, Aspect, AspectDefinition, AspectGraph, build_aspect_graph
from astrocore.core.bodies import MAJOR_BODIES, Body, parse_body
from astrocore.core.ephemeris import BodyPosition, EphemerisProvider, positions_at
from astrocore.core.errors import InvalidInputError
from astrocore.core.houses import (
    HouseResult,
    HouseSystem,
    calculate_houses,
    calculate_houses_with_fallback,
    parse_house_system,
)
from astrocore.core.patterns import AspectPattern, detect_patterns
from astrocore.core.timescales import datetime_from_jd

log = logging.getLogger(__name__)

__all__ = ["Location", "Chart", "compute_chart"]


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float

    def as_dict(self) -> Dict[str, float]:
        return {"latitude": float(self.latitude), "longitude": float(self.longitude)}


@dataclass(frozen=True)
class Chart:
    jd: float
    location: Location
    house_system: HouseSystem
    positions: Dict[Body, BodyPosition]
    houses: HouseResult
    aspects: Tuple[Aspect, ...]

    # ---- derived views ----------------------------------------------------
    @property
    def datetime(self) -> datetime:
        return datetime_from_jd(self.jd)

    @property
    def graph(self) -> AspectGraph:
        points = {b: p.longitude for b, p in self.positions.items()}
        return AspectGraph(points=points, edges={a.pair: a for a in self.aspects})

    def sign_of(self, body: Union[str, Body]) -> SignPosition:
        return sign_of(self.positions[parse_body(body)].longitude)

    def house_of(self, body: Union[str, Body]) -> int:
        return self.houses.house_of(self.positions[parse_body(body)].longitude)

    def placements(self) -> Dict[Body, int]:
        return {b: self.houses.house_of(p.longitude) for b, p in self.positions.items()}

    def patterns(self, *, allow_overlap: bool = False) -> List[AspectPattern]:
        return detect_patterns(self.graph, self.placements(), allow_overlap=allow_overlap)

    # ---- persistence ------------------------------------------------------
    def to_dict(self) -> Dict[str, Any]:
        return {
            "jd": float(self.jd),
            "datetime": self.datetime.isoformat(),
            "location": self.location.as_dict(),
            "house_system": self.house_system.value,
            "positions": {b.value: p.as_dict() for b, p in self.positions.items()},
            "houses": self.houses.as_dict(),
            "aspects": [a.as_dict() for a in self.aspects],
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Chart":
        try:
            loc = d["location"]
            return cls(
                jd=float(d["jd"]),
                location=Location(float(loc["latitude"]), float(loc["longitude"])),
                house_system=parse_house_system(d["house_system"]),
                positions={parse_body(k): BodyPosition.from_dict(k, v) for k, v in d["positions"].items()},
                houses=HouseResult.from_dict(d["houses"]),
                aspects=tuple(Aspect.from_dict(a) for a in d.get("aspects", ())),
            )
        except (KeyError, TypeError) as e:
            raise InvalidInputError("validation", "malformed chart record", error=repr(e)) from e

    def to_json(self, **kwargs: Any) -> str:
        return json.dumps(self.to_dict(), **kwargs)

    @classmethod
    def from_json(cls, text: str) -> "Chart":
        return cls.from_dict(json.loads(text))


def compute_chart(
    jd: float,
    latitude: float,
    longitude: float,
    provider: EphemerisProvider,
    *,
    house_system: Union[str, HouseSystem] = HouseSystem.PLACIDUS,
    bodies: Iterable[Union[str, Body]] = MAJOR_BODIES,
    table: Iterable[AspectDefinition] = DEFAULT_ASPECT_TABLE,
    fallback: Optional[Union[str, HouseSystem]] = HouseSystem.WHOLE_SIGN,
) -> Chart:
    """
    Positions, houses and the aspect list for one instant and place.

    With `fallback=None` an undefined quadrant system raises
    UndefinedHouseSystemError instead of falling back.
    """
    hs = parse_house_system(house_system)
    if fallback is None:
        houses = calculate_houses(jd, latitude, longitude, hs)
    else:
        houses = calculate_houses_with_fallback(jd, latitude, longitude, hs, fallback=fallback)

    positions = positions_at(provider, float(jd), bodies)
    graph = build_aspect_graph(
        {b: p.longitude for b, p in positions.items()},
        table,
        speeds={b: p.speed for b, p in positions.items()},
    )
    log.debug("chart jd=%.6f: %d bodies, %d aspects", jd, len(positions), len(graph))
    return Chart(
        jd=float(jd),
        location=Location(houses.latitude, houses.longitude),
        house_system=hs,
        positions=positions,
        houses=houses,
        aspects=tuple(graph.aspects),
    )
