# astrocore/core/returns.py
# -----------------------------------------------------------------------------
# Returns: next instant a body comes back to a reference longitude
#
# Method
# • linear (default): gap to the reference along the direction of mean motion,
#   divided by the mean daily motion. Always the NEXT future crossing; a zero
#   gap means one full cycle ahead. This is a mean-motion approximation: the
#   real body moves non-uniformly, so the estimate can be off by hours (Moon)
#   or days (Sun, near perihelion it is much better). The provider's actual
#   longitude at the estimate and the residual are reported, and
#   `within_tolerance` says whether the estimate met the configured tolerance.
# • secant (opt-in): Newton–secant refinement of the linear seed against the
#   provider, using its reported speed when available.
#
# ReturnChart: position, sign, moon phase (Moon), house at the return instant,
# aspects to a fixed set of reference bodies, theme key and intensity score.
# -----------------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union
import logging
import math

from astrocore.core.angles import SignPosition, normalize, sign_of, signed_delta
from astrocore.core.aspects import (
    MAJOR_ASPECT_TYPES,
    Aspect,
    AspectDefinition,
    AspectType,
    aspect_table,
    is_applying,
    match_aspect,
)
from astrocore.core.bodies import MEAN_DAILY_MOTION_DEG, Body, parse_body
from astrocore.core.ephemeris import BodyPosition, EphemerisProvider
from astrocore.core.errors import InvalidInputError
from astrocore.core.houses import HouseSystem, calculate_houses_with_fallback
from astrocore.core.interpretation import theme_key
from astrocore.core.moon import PHASE_START_DEG, MoonPhase, MoonPhaseInfo, moon_phase, next_phase_jd
from astrocore.core.timescales import datetime_from_jd, jd_from_datetime, now_jd

log = logging.getLogger(__name__)

__all__ = [
    "ReturnEstimate",
    "ReturnChart",
    "KeyDate",
    "RETURN_REFERENCE_BODIES",
    "RETURN_ASPECT_TABLE",
    "solve_return",
    "build_return_chart",
    "return_intensity",
    "lunar_return",
    "solar_return",
]

DEFAULT_TOLERANCE_DEG = 1.0
SECANT_MAX_ITERS = 20
SECANT_TOL_DEG = 1e-6

RETURN_REFERENCE_BODIES: Tuple[Body, ...] = (Body.SUN, Body.MERCURY, Body.VENUS, Body.MARS, Body.JUPITER)
RETURN_ASPECT_TABLE: Tuple[AspectDefinition, ...] = aspect_table(include=MAJOR_ASPECT_TYPES)

_EMOTIONAL_HOUSES = frozenset({4, 8, 12})
_ASPECT_WEIGHT: Dict[AspectType, int] = {
    AspectType.CONJUNCTION: 2,
    AspectType.OPPOSITION: 1,
    AspectType.SQUARE: 1,
}

InstantLike = Union[float, datetime, None]


# ─────────────────────────────────────────────────────────────────────────────
# Types
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ReturnEstimate:
    body: Body
    reference_longitude: float
    now_jd: float
    jd: float
    mean_motion: float          # deg/day used for the seed
    start_longitude: float      # provider longitude at now
    actual_longitude: float     # provider longitude at jd
    residual: float             # signed deg, actual − reference, (−180, 180]
    tolerance_deg: float
    method: str = "linear"
    iterations: int = 0

    @property
    def days_ahead(self) -> float:
        return self.jd - self.now_jd

    @property
    def within_tolerance(self) -> bool:
        return abs(self.residual) <= self.tolerance_deg

    @property
    def datetime(self) -> datetime:
        return datetime_from_jd(self.jd)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "body": self.body.value,
            "reference_longitude": self.reference_longitude,
            "now_jd": self.now_jd,
            "jd": self.jd,
            "datetime": self.datetime.isoformat(),
            "days_ahead": self.days_ahead,
            "mean_motion": self.mean_motion,
            "start_longitude": self.start_longitude,
            "actual_longitude": self.actual_longitude,
            "residual": self.residual,
            "tolerance_deg": self.tolerance_deg,
            "within_tolerance": self.within_tolerance,
            "method": self.method,
            "iterations": self.iterations,
        }


@dataclass(frozen=True)
class KeyDate:
    kind: str   # "return" | "new-moon" | "full-moon"
    jd: float

    def as_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "jd": self.jd, "datetime": datetime_from_jd(self.jd).isoformat()}


@dataclass(frozen=True)
class ReturnChart:
    estimate: ReturnEstimate
    position: BodyPosition
    sign: SignPosition
    house: int
    house_system: HouseSystem
    aspects: Tuple[Aspect, ...]
    theme_key: str
    intensity: int
    moon_phase: Optional[MoonPhaseInfo] = None
    key_dates: Tuple[KeyDate, ...] = field(default_factory=tuple)
    warnings: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def jd(self) -> float:
        return self.estimate.jd

    def as_dict(self) -> Dict[str, Any]:
        return {
            "return": self.estimate.as_dict(),
            "position": dict(self.position.as_dict(), body=self.position.body.value),
            "sign": self.sign.as_dict(),
            "house": self.house,
            "house_system": self.house_system.value,
            "moon_phase": self.moon_phase.as_dict() if self.moon_phase else None,
            "aspects": [a.as_dict() for a in self.aspects],
            "theme_key": self.theme_key,
            "intensity": self.intensity,
            "key_dates": [k.as_dict() for k in self.key_dates],
            "warnings": list(self.warnings),
        }


# ─────────────────────────────────────────────────────────────────────────────
# ReturnSolver
# ─────────────────────────────────────────────────────────────────────────────

def _as_jd(now: InstantLike) -> float:
    if now is None:
        return now_jd()
    if isinstance(now, datetime):
        return jd_from_datetime(now)
    v = float(now)
    if not math.isfinite(v):
        raise InvalidInputError("validation", "now must be a finite Julian Day", now=repr(now))
    return v


def _refine_secant(
    provider: EphemerisProvider, body: Body, ref: float, seed: float, floor_jd: float, motion: float,
) -> Tuple[float, int]:
    """
    Newton–secant hybrid on δ(jd) = signed_delta(ref, lon(jd)).
    Speed from the provider gives the Newton step; otherwise secant, and the
    mean motion as a last resort. Each step covers at most ~30° of mean travel
    so the root stays on the seeded crossing, and never lands before floor_jd.
    """
    cap = 30.0 / abs(motion)
    jd = seed
    pos = provider.position(body, jd)
    d, spd = signed_delta(ref, pos.longitude), pos.speed
    prev_jd: Optional[float] = None
    prev_d: Optional[float] = None
    for it in range(1, SECANT_MAX_ITERS + 1):
        if abs(d) <= SECANT_TOL_DEG:
            return jd, it - 1
        if abs(spd) > 1e-6:
            step = -d / spd
        elif prev_jd is not None and prev_d is not None and abs(d - prev_d) > 1e-12:
            step = -d * (jd - prev_jd) / (d - prev_d)
        else:
            step = -d / motion
        step = max(-cap, min(cap, step))
        nxt = jd + step
        if nxt <= floor_jd:
            nxt = (jd + floor_jd) / 2.0
        prev_jd, prev_d = jd, d
        jd = nxt
        pos = provider.position(body, jd)
        d, spd = signed_delta(ref, pos.longitude), pos.speed
    log.debug("secant refinement for %s stopped at %.6f deg after %d steps", body.value, d, SECANT_MAX_ITERS)
    return jd, SECANT_MAX_ITERS


def solve_return(
    body: Union[str, Body],
    reference_longitude: float,
    provider: EphemerisProvider,
    *,
    now: InstantLike = None,
    mean_motion: Optional[float] = None,
    tolerance_deg: float = DEFAULT_TOLERANCE_DEG,
    method: str = "linear",
) -> ReturnEstimate:
    """Next future instant at which `body` is back at `reference_longitude`."""
    b = parse_body(body)
    ref = normalize(reference_longitude)
    t0 = _as_jd(now)
    motion = float(MEAN_DAILY_MOTION_DEG[b] if mean_motion is None else mean_motion)
    if not math.isfinite(motion) or motion == 0.0:
        raise InvalidInputError("validation", "mean_motion must be finite and non-zero", mean_motion=mean_motion)
    if not (math.isfinite(float(tolerance_deg)) and float(tolerance_deg) >= 0.0):
        raise InvalidInputError("validation", "tolerance_deg must be non-negative", tolerance_deg=tolerance_deg)
    method = str(method).strip().lower()
    if method not in ("linear", "secant"):
        raise InvalidInputError("validation", f"unknown return method '{method}'", supported=["linear", "secant"])

    current = provider.position(b, t0).longitude
    # distance still to travel along the direction of motion
    gap = normalize(ref - current) if motion > 0 else normalize(current - ref)
    if gap == 0.0:
        gap = 360.0
    jd = t0 + gap / abs(motion)
    iterations = 0

    if method == "secant":
        jd, iterations = _refine_secant(provider, b, ref, jd, t0, motion)

    actual = provider.position(b, jd).longitude
    est = ReturnEstimate(
        body=b,
        reference_longitude=ref,
        now_jd=t0,
        jd=jd,
        mean_motion=motion,
        start_longitude=current,
        actual_longitude=actual,
        residual=signed_delta(ref, actual),
        tolerance_deg=float(tolerance_deg),
        method=method,
        iterations=iterations,
    )
    if not est.within_tolerance:
        log.warning(
            "%s return estimate off by %.4f deg (tolerance %.4f, method=%s)",
            b.value, est.residual, est.tolerance_deg, method,
        )
    return est


# ─────────────────────────────────────────────────────────────────────────────
# ReturnChart
# ─────────────────────────────────────────────────────────────────────────────

def return_intensity(house: int, phase: Optional[MoonPhase], aspects: Iterable[Aspect]) -> int:
    """5 + emotional house + new/full Moon + per-aspect weights, clamped to 1..10."""
    score = 5
    if int(house) in _EMOTIONAL_HOUSES:
        score += 1
    if phase in (MoonPhase.NEW, MoonPhase.FULL):
        score += 1
    score += sum(_ASPECT_WEIGHT.get(a.type, 0) for a in aspects)
    return max(1, min(10, score))


def _key_dates(jd: float, phase: Optional[MoonPhaseInfo]) -> Tuple[KeyDate, ...]:
    out = [KeyDate("return", jd)]
    if phase is not None:
        out.append(KeyDate("new-moon", next_phase_jd(jd, phase.elongation, PHASE_START_DEG[MoonPhase.NEW])))
        out.append(KeyDate("full-moon", next_phase_jd(jd, phase.elongation, PHASE_START_DEG[MoonPhase.FULL])))
    return tuple(sorted(out, key=lambda k: k.jd))


def build_return_chart(
    estimate: ReturnEstimate,
    provider: EphemerisProvider,
    latitude: float,
    longitude: float,
    *,
    reference_points: Optional[Mapping[Union[str, Body], float]] = None,
    house_system: Union[str, HouseSystem] = HouseSystem.PLACIDUS,
    table: Iterable[AspectDefinition] = RETURN_ASPECT_TABLE,
) -> ReturnChart:
    """
    Assemble the chart for a solved return.

    Aspects are taken from the returning body to RETURN_REFERENCE_BODIES, at
    the longitudes given in `reference_points` (natal positions) or, when not
    given, the sky at the return instant.
    """
    b, jd = estimate.body, estimate.jd
    pos = provider.position(b, jd)

    houses = calculate_houses_with_fallback(jd, latitude, longitude, house_system)
    house = houses.house_of(pos.longitude)

    phase: Optional[MoonPhaseInfo] = None
    if b is Body.MOON:
        phase = moon_phase(pos.longitude, provider.position(Body.SUN, jd).longitude)

    if reference_points is not None:
        refs = {parse_body(k): (float(v), 0.0) for k, v in reference_points.items()}
    else:
        refs = {}
        for rb in RETURN_REFERENCE_BODIES:
            if rb is not b:
                rp = provider.position(rb, jd)
                refs[rb] = (rp.longitude, rp.speed)

    table = tuple(table)
    aspects: List[Aspect] = []
    for rb in RETURN_REFERENCE_BODIES:
        if rb is b or rb not in refs:
            continue
        ref_lon, ref_speed = refs[rb]
        m = match_aspect(pos.longitude, ref_lon, table)
        if m is None:
            continue
        aspects.append(Aspect(
            body_a=b, body_b=rb, type=m.type, orb=m.orb, separation=m.separation,
            applying=is_applying(pos.longitude, pos.speed, ref_lon, ref_speed, m.exact_angle),
            max_orb=m.max_orb,
        ))

    return ReturnChart(
        estimate=estimate,
        position=pos,
        sign=sign_of(pos.longitude),
        house=house,
        house_system=houses.system,
        aspects=tuple(aspects),
        theme_key=theme_key(house, phase.phase if phase else None),
        intensity=return_intensity(house, phase.phase if phase else None, aspects),
        moon_phase=phase,
        key_dates=_key_dates(jd, phase),
        warnings=houses.warnings,
    )


def _chart_return(
    body: Body, chart: Any, provider: EphemerisProvider, now: InstantLike,
    latitude: Optional[float], longitude: Optional[float], **kwargs: Any,
) -> ReturnChart:
    natal = chart.positions
    if body not in natal:
        raise InvalidInputError("validation", f"chart has no {body.value} position", body=body.value)
    tol = kwargs.pop("tolerance_deg", DEFAULT_TOLERANCE_DEG)
    method = kwargs.pop("method", "linear")
    est = solve_return(body, natal[body].longitude, provider, now=now, tolerance_deg=tol, method=method)
    lat = chart.location.latitude if latitude is None else latitude
    lon = chart.location.longitude if longitude is None else longitude
    kwargs.setdefault("house_system", chart.house_system)
    refs = {rb: natal[rb].longitude for rb in RETURN_REFERENCE_BODIES if rb in natal}
    return build_return_chart(est, provider, lat, lon, reference_points=refs, **kwargs)


def lunar_return(
    chart: Any,
    provider: EphemerisProvider,
    *,
    now: InstantLike = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    **kwargs: Any,
) -> ReturnChart:
    """Next lunar return for a natal Chart (location defaults to the chart's)."""
    return _chart_return(Body.MOON, chart, provider, now, latitude, longitude, **kwargs)


def solar_return(
    chart: Any,
    provider: EphemerisProvider,
    *,
    now: InstantLike = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    **kwargs: Any,
) -> ReturnChart:
    """Next solar return for a natal Chart (location defaults to the chart's)."""
    return _chart_return(Body.SUN, chart, provider, now, latitude, longitude, **kwargs)
