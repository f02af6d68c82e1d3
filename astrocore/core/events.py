# astrocore/core/events.py
# -----------------------------------------------------------------------------
# Global sky events: things that happen for everyone, independent of a chart
#
# Highlights
# • Stations and retrograde periods (with pre/post shadow) from the sign of the
#   provider's longitude speed
# • Sign ingresses, including re-entries during retrograde motion
# • Seasons: the Sun's ingresses into the four cardinal signs
# • Lunations: exact new / first-quarter / full / last-quarter instants per month
# • Eclipse candidates: lunations close enough to a lunar node
#
# Every event is bracketed on a fixed sampling step and refined by bisection
# against the provider, so accuracy follows the provider, not the step.
# -----------------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union
import logging
import math

from astrocore.core.angles import SignPosition, normalize, separation, signed_delta, sign_of
from astrocore.core.bodies import Body, Sign, parse_body
from astrocore.core.ephemeris import EphemerisProvider
from astrocore.core.errors import EphemerisRangeError, InvalidInputError
from astrocore.core.moon import MoonPhase
from astrocore.core.timescales import datetime_from_jd, parse_date, to_continuous_time
from astrocore.utils.metrics import EPHEMERIS_ERRORS

log = logging.getLogger(__name__)

__all__ = [
    "Station",
    "RetrogradePeriod",
    "Ingress",
    "Season",
    "SeasonalIngress",
    "Lunation",
    "EclipseKind",
    "Eclipse",
    "SkyEvents",
    "RETROGRADE_BODIES",
    "find_stations",
    "retrograde_periods",
    "sign_ingresses",
    "seasonal_ingresses",
    "lunations",
    "eclipses",
    "sky_events",
]

RETROGRADE_BODIES: Tuple[Body, ...] = (
    Body.MERCURY, Body.VENUS, Body.MARS, Body.JUPITER, Body.SATURN,
    Body.URANUS, Body.NEPTUNE, Body.PLUTO,
)

ROOT_TOL_DAYS = 1e-5       # ~0.9 s
ROOT_MAX_ITER = 60
# upper ecliptic limits: beyond these no eclipse is possible
SOLAR_ECLIPSE_LIMIT_DEG = 18.5
LUNAR_ECLIPSE_LIMIT_DEG = 12.2

LUNATION_PHASES: Dict[MoonPhase, float] = {
    MoonPhase.NEW: 0.0,
    MoonPhase.FIRST_QUARTER: 90.0,
    MoonPhase.FULL: 180.0,
    MoonPhase.LAST_QUARTER: 270.0,
}

DateLike = Union[date, str]


# ─────────────────────────────────────────────────────────────────────────────
# Types
# ─────────────────────────────────────────────────────────────────────────────

def _iso(jd: Optional[float]) -> Optional[str]:
    return None if jd is None else datetime_from_jd(jd).isoformat()


@dataclass(frozen=True)
class Station:
    body: Body
    jd: float
    longitude: float
    turns_retrograde: bool   # False: turns direct

    @property
    def kind(self) -> str:
        return "retrograde" if self.turns_retrograde else "direct"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "body": self.body.value,
            "jd": self.jd,
            "datetime": _iso(self.jd),
            "longitude": self.longitude,
            "kind": self.kind,
        }


@dataclass(frozen=True)
class RetrogradePeriod:
    """
    One retrograde loop. A station outside the searched window is None
    (the body was already retrograde at the start, or still is at the end).
    Shadows are the instants the body first reaches the direct-station
    longitude before the loop, and last leaves the retrograde-station
    longitude after it.
    """
    body: Body
    station_retrograde: Optional[Station]
    station_direct: Optional[Station]
    shadow_start_jd: Optional[float] = None
    shadow_end_jd: Optional[float] = None

    @property
    def start_jd(self) -> Optional[float]:
        return None if self.station_retrograde is None else self.station_retrograde.jd

    @property
    def end_jd(self) -> Optional[float]:
        return None if self.station_direct is None else self.station_direct.jd

    @property
    def duration_days(self) -> Optional[float]:
        if self.start_jd is None or self.end_jd is None:
            return None
        return self.end_jd - self.start_jd

    def as_dict(self) -> Dict[str, Any]:
        return {
            "body": self.body.value,
            "start": _iso(self.start_jd),
            "end": _iso(self.end_jd),
            "start_longitude": None if self.station_retrograde is None else self.station_retrograde.longitude,
            "end_longitude": None if self.station_direct is None else self.station_direct.longitude,
            "shadow_start": _iso(self.shadow_start_jd),
            "shadow_end": _iso(self.shadow_end_jd),
            "duration_days": self.duration_days,
        }


@dataclass(frozen=True)
class Ingress:
    body: Body
    jd: float
    sign: Sign            # sign entered
    retrograde: bool      # entered moving backwards

    def as_dict(self) -> Dict[str, Any]:
        return {
            "body": self.body.value,
            "jd": self.jd,
            "datetime": _iso(self.jd),
            "sign": self.sign.value,
            "retrograde": self.retrograde,
        }


class Season(str, Enum):
    # northern-hemisphere names
    SPRING = "spring"
    SUMMER = "summer"
    AUTUMN = "autumn"
    WINTER = "winter"

    def __str__(self) -> str:
        return self.value


_CARDINAL_SEASONS: Dict[Sign, Tuple[Season, str]] = {
    Sign.ARIES: (Season.SPRING, "equinox"),
    Sign.CANCER: (Season.SUMMER, "solstice"),
    Sign.LIBRA: (Season.AUTUMN, "equinox"),
    Sign.CAPRICORN: (Season.WINTER, "solstice"),
}


@dataclass(frozen=True)
class SeasonalIngress:
    season: Season
    kind: str          # "equinox" | "solstice"
    ingress: Ingress

    @property
    def jd(self) -> float:
        return self.ingress.jd

    def as_dict(self) -> Dict[str, Any]:
        return {
            "season": self.season.value,
            "type": self.kind,
            "sign": self.ingress.sign.value,
            "jd": self.jd,
            "datetime": _iso(self.jd),
        }


@dataclass(frozen=True)
class Lunation:
    phase: MoonPhase
    jd: float
    moon_longitude: float
    sun_longitude: float

    @property
    def sign(self) -> SignPosition:
        return sign_of(self.moon_longitude)

    @property
    def illumination(self) -> float:
        e = LUNATION_PHASES[self.phase]
        return round((1.0 - math.cos(math.radians(e))) / 2.0, 6)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "jd": self.jd,
            "datetime": _iso(self.jd),
            "moon_longitude": self.moon_longitude,
            "sign": self.sign.as_dict(),
            "illumination": self.illumination,
        }


class EclipseKind(str, Enum):
    SOLAR = "solar"
    LUNAR = "lunar"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Eclipse:
    """An eclipse season lunation: no magnitude or visibility is computed."""
    kind: EclipseKind
    lunation: Lunation
    node_distance: float   # Sun's distance from the nearer lunar node, degrees

    @property
    def jd(self) -> float:
        return self.lunation.jd

    @property
    def longitude(self) -> float:
        # solar eclipses happen at the Sun; lunar ones opposite it, at the Moon
        return self.lunation.sun_longitude if self.kind is EclipseKind.SOLAR else self.lunation.moon_longitude

    def as_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "jd": self.jd,
            "datetime": _iso(self.jd),
            "longitude": self.longitude,
            "sign": sign_of(self.longitude).as_dict(),
            "node_distance": self.node_distance,
        }


# ─────────────────────────────────────────────────────────────────────────────
# Root finding
# ─────────────────────────────────────────────────────────────────────────────

def _refine_zero(f: Callable[[float], float], t0: float, t1: float, f0: float, f1: float) -> float:
    """Bisection on a bracketed sign change of f over [t0, t1]."""
    if f0 == 0.0:
        return t0
    if f1 == 0.0:
        return t1
    a, b, fa = t0, t1, f0
    for _ in range(ROOT_MAX_ITER):
        m = 0.5 * (a + b)
        if (b - a) <= ROOT_TOL_DAYS:
            return m
        fm = f(m)
        if fm == 0.0:
            return m
        if (fa < 0.0) != (fm < 0.0):
            b = m
        else:
            a, fa = m, fm
    return 0.5 * (a + b)


def _roots(
    f: Callable[[float], float],
    jd0: float,
    jd1: float,
    step: float,
    *,
    angular: bool = False,
) -> List[float]:
    """
    Every zero of f in [jd0, jd1), bracketed on `step`.

    With angular=True f is a signed arc in (-180, 180]: a jump across ±180
    is the far side of the circle, not a crossing.
    """
    out: List[float] = []
    t_prev, f_prev = jd0, f(jd0)
    if f_prev == 0.0:
        out.append(jd0)
    t = jd0
    while t < jd1:
        t = min(t + step, jd1)
        f_cur = f(t)
        if f_cur == 0.0:
            if t < jd1:
                out.append(t)
        elif f_prev != 0.0 and (f_prev < 0.0) != (f_cur < 0.0):
            if not (angular and abs(f_cur - f_prev) > 180.0):
                root = _refine_zero(f, t_prev, t, f_prev, f_cur)
                if root < jd1:
                    out.append(root)
        t_prev, f_prev = t, f_cur
    return out


def _first_root(
    f: Callable[[float], float],
    jd_from: float,
    direction: int,
    limit_days: float,
    step: float,
) -> Optional[float]:
    """First angular zero of f walking away from jd_from (direction ±1), or None."""
    t_prev, f_prev = jd_from, f(jd_from)
    walked = 0.0
    while walked < limit_days:
        walked += step
        t = jd_from + direction * walked
        f_cur = f(t)
        if (f_prev < 0.0) != (f_cur < 0.0) and abs(f_cur - f_prev) <= 180.0:
            lo, hi = (t, t_prev) if direction < 0 else (t_prev, t)
            flo, fhi = (f_cur, f_prev) if direction < 0 else (f_prev, f_cur)
            return _refine_zero(f, lo, hi, flo, fhi)
        t_prev, f_prev = t, f_cur
    return None


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _position(provider: EphemerisProvider, body: Body, jd: float):
    try:
        return provider.position(body, jd)
    except EphemerisRangeError:
        EPHEMERIS_ERRORS.labels(kind="range").inc()
        raise


def _window(start: DateLike, end: DateLike) -> Tuple[float, float]:
    """[midnight UTC of start, midnight UTC after end)."""
    d0, d1 = parse_date(start), parse_date(end)
    if d1 < d0:
        raise InvalidInputError("validation", "end date precedes start date",
                                start=d0.isoformat(), end=d1.isoformat())
    jd0 = to_continuous_time(d0, "00:00:00", "UTC")
    jd1 = to_continuous_time(d1, "00:00:00", "UTC") + 1.0
    return jd0, jd1


def _year_window(year: int) -> Tuple[float, float]:
    y = int(year)
    return to_continuous_time(date(y, 1, 1)), to_continuous_time(date(y + 1, 1, 1))


def _month_window(year: int, month: int) -> Tuple[float, float]:
    y, m = int(year), int(month)
    if not (1 <= m <= 12):
        raise InvalidInputError("validation", "month must be within 1..12", month=month)
    nxt = date(y + 1, 1, 1) if m == 12 else date(y, m + 1, 1)
    return to_continuous_time(date(y, m, 1)), to_continuous_time(nxt)


def _check_step(step_days: float) -> float:
    step = float(step_days)
    if not (math.isfinite(step) and step > 0.0):
        raise InvalidInputError("validation", "step_days must be a positive number", step_days=step_days)
    return step


# ─────────────────────────────────────────────────────────────────────────────
# Stations & retrograde periods
# ─────────────────────────────────────────────────────────────────────────────

def find_stations(
    body: Union[str, Body],
    start: DateLike,
    end: DateLike,
    provider: EphemerisProvider,
    *,
    step_days: float = 1.0,
) -> List[Station]:
    """Instants where the body's longitude speed changes sign, in date order."""
    b = parse_body(body)
    step = _check_step(step_days)
    jd0, jd1 = _window(start, end)

    def speed(jd: float) -> float:
        return _position(provider, b, jd).speed

    out = []
    for root in _roots(speed, jd0, jd1, step):
        after = speed(min(root + ROOT_TOL_DAYS * 10, jd1))
        before = speed(max(root - ROOT_TOL_DAYS * 10, jd0))
        if before == after:
            continue
        out.append(Station(
            body=b,
            jd=root,
            longitude=_position(provider, b, root).longitude,
            turns_retrograde=after < before,
        ))
    log.debug("%s: %d stations", b.value, len(out))
    return out


def _shadow(
    provider: EphemerisProvider,
    body: Body,
    jd_from: float,
    target_lon: float,
    direction: int,
    limit_days: float,
    step: float,
) -> Optional[float]:
    def arc(jd: float) -> float:
        return signed_delta(target_lon, _position(provider, body, jd).longitude)
    return _first_root(arc, jd_from, direction, limit_days, step)


def retrograde_periods(
    body: Union[str, Body],
    start: DateLike,
    end: DateLike,
    provider: EphemerisProvider,
    *,
    step_days: float = 1.0,
    shadows: bool = True,
) -> List[RetrogradePeriod]:
    """
    Retrograde loops that overlap [start, end].

    A loop already under way at `start` has station_retrograde=None; one
    still running at `end` has station_direct=None. Shadows are searched
    outside the window as needed, up to three loop lengths away.
    """
    b = parse_body(body)
    if b not in RETROGRADE_BODIES:
        raise InvalidInputError("validation", f"{b.value} has no retrograde periods",
                                body=b.value, supported=[x.value for x in RETROGRADE_BODIES])
    step = _check_step(step_days)
    jd0, _jd1 = _window(start, end)
    stations = find_stations(b, start, end, provider, step_days=step)

    periods: List[RetrogradePeriod] = []
    pending: Optional[Station] = None
    if _position(provider, b, jd0).speed < 0.0:
        periods.append(RetrogradePeriod(body=b, station_retrograde=None, station_direct=None))
    for st in stations:
        if st.turns_retrograde:
            pending = st
            continue
        if pending is None and periods and periods[-1].station_direct is None and periods[-1].station_retrograde is None:
            periods[-1] = RetrogradePeriod(body=b, station_retrograde=None, station_direct=st)
        elif pending is not None:
            periods.append(RetrogradePeriod(body=b, station_retrograde=pending, station_direct=st))
            pending = None
    if pending is not None:
        periods.append(RetrogradePeriod(body=b, station_retrograde=pending, station_direct=None))

    if not shadows:
        return periods

    out = []
    for p in periods:
        shadow_start = shadow_end = None
        if p.station_retrograde is not None and p.station_direct is not None:
            limit = max(30.0, 3.0 * (p.station_direct.jd - p.station_retrograde.jd))
            shadow_start = _shadow(provider, b, p.station_retrograde.jd, p.station_direct.longitude, -1, limit, step)
            shadow_end = _shadow(provider, b, p.station_direct.jd, p.station_retrograde.longitude, +1, limit, step)
        out.append(RetrogradePeriod(
            body=b,
            station_retrograde=p.station_retrograde,
            station_direct=p.station_direct,
            shadow_start_jd=shadow_start,
            shadow_end_jd=shadow_end,
        ))
    return out


# ─────────────────────────────────────────────────────────────────────────────
# Ingresses
# ─────────────────────────────────────────────────────────────────────────────

def _ingresses_between(
    provider: EphemerisProvider, b: Body, jd0: float, jd1: float, step: float,
) -> List[Ingress]:
    out: List[Ingress] = []
    prev = _position(provider, b, jd0)
    t = jd0
    while t < jd1:
        t_next = min(t + step, jd1)
        cur = _position(provider, b, t_next)
        i_prev, i_cur = sign_of(prev.longitude).index, sign_of(cur.longitude).index
        if i_prev != i_cur:
            forward = signed_delta(prev.longitude, cur.longitude) > 0.0
            boundary = 30.0 * (i_cur if forward else i_prev)

            def arc(jd: float, _boundary: float = boundary) -> float:
                return signed_delta(_boundary, _position(provider, b, jd).longitude)

            root = _refine_zero(arc, t, t_next, arc(t), arc(t_next))
            if jd0 <= root < jd1:
                out.append(Ingress(body=b, jd=root, sign=Sign.from_index(i_cur), retrograde=not forward))
        t, prev = t_next, cur
    return out


def sign_ingresses(
    body: Union[str, Body],
    start: DateLike,
    end: DateLike,
    provider: EphemerisProvider,
    *,
    step_days: Optional[float] = None,
) -> List[Ingress]:
    """
    Sign changes of `body` in [start, end]. The sampling step must stay under
    a sign's width of motion; it defaults to 0.5 day for the Moon, 1 day
    otherwise.
    """
    b = parse_body(body)
    step = _check_step(step_days if step_days is not None else (0.5 if b is Body.MOON else 1.0))
    jd0, jd1 = _window(start, end)
    return _ingresses_between(provider, b, jd0, jd1, step)


def seasonal_ingresses(year: int, provider: EphemerisProvider) -> List[SeasonalIngress]:
    """The Sun's ingresses into Aries, Cancer, Libra and Capricorn during `year` (UTC)."""
    jd0, jd1 = _year_window(year)
    out = []
    for ing in _ingresses_between(provider, Body.SUN, jd0, jd1, 1.0):
        if ing.sign in _CARDINAL_SEASONS:
            season, kind = _CARDINAL_SEASONS[ing.sign]
            out.append(SeasonalIngress(season=season, kind=kind, ingress=ing))
    return out


# ─────────────────────────────────────────────────────────────────────────────
# Lunations & eclipses
# ─────────────────────────────────────────────────────────────────────────────

def _lunations_between(provider: EphemerisProvider, jd0: float, jd1: float) -> List[Lunation]:
    def elongation(jd: float) -> float:
        return normalize(_position(provider, Body.MOON, jd).longitude - _position(provider, Body.SUN, jd).longitude)

    out: List[Lunation] = []
    for phase, target in LUNATION_PHASES.items():
        def arc(jd: float, _target: float = target) -> float:
            return signed_delta(_target, elongation(jd))

        for root in _roots(arc, jd0, jd1, 0.5, angular=True):
            out.append(Lunation(
                phase=phase,
                jd=root,
                moon_longitude=_position(provider, Body.MOON, root).longitude,
                sun_longitude=_position(provider, Body.SUN, root).longitude,
            ))
    out.sort(key=lambda x: x.jd)
    return out


def lunations(year: int, month: int, provider: EphemerisProvider) -> List[Lunation]:
    """New, first-quarter, full and last-quarter Moons within a calendar month (UTC), in date order."""
    jd0, jd1 = _month_window(year, month)
    return _lunations_between(provider, jd0, jd1)


def _node_distance(sun_lon: float, node_lon: float) -> float:
    d = separation(sun_lon, node_lon)
    return min(d, 180.0 - d)


def eclipses(
    year: int,
    provider: EphemerisProvider,
    *,
    node: Body = Body.MEAN_NODE,
) -> List[Eclipse]:
    """
    New Moons (solar) and full Moons (lunar) of `year` close enough to a lunar
    node for an eclipse to be possible.
    """
    jd0, jd1 = _year_window(year)
    out = []
    for lun in _lunations_between(provider, jd0, jd1):
        if lun.phase is MoonPhase.NEW:
            kind, limit = EclipseKind.SOLAR, SOLAR_ECLIPSE_LIMIT_DEG
        elif lun.phase is MoonPhase.FULL:
            kind, limit = EclipseKind.LUNAR, LUNAR_ECLIPSE_LIMIT_DEG
        else:
            continue
        dist = _node_distance(lun.sun_longitude, _position(provider, node, lun.jd).longitude)
        if dist <= limit:
            out.append(Eclipse(kind=kind, lunation=lun, node_distance=dist))
    log.debug("%d: %d eclipse candidates", year, len(out))
    return out


# ─────────────────────────────────────────────────────────────────────────────
# Yearly overview
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SkyEvents:
    year: int
    retrogrades: Tuple[RetrogradePeriod, ...]
    seasons: Tuple[SeasonalIngress, ...]
    eclipses: Tuple[Eclipse, ...]
    lunations: Tuple[Lunation, ...] = field(default_factory=tuple)
    month: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        out = {
            "year": self.year,
            "retrogrades": [p.as_dict() for p in self.retrogrades],
            "seasons": [s.as_dict() for s in self.seasons],
            "eclipses": [e.as_dict() for e in self.eclipses],
        }
        if self.month is not None:
            out["month"] = self.month
            out["lunations"] = [x.as_dict() for x in self.lunations]
        return out


def sky_events(
    year: int,
    provider: EphemerisProvider,
    *,
    month: Optional[int] = None,
    bodies: Iterable[Union[str, Body]] = RETROGRADE_BODIES,
) -> SkyEvents:
    """Retrograde periods, seasons and eclipse candidates of a year, plus the lunations of `month` if given."""
    y = int(year)
    start, end = date(y, 1, 1), date(y, 12, 31)
    retro: List[RetrogradePeriod] = []
    for b in dict.fromkeys(parse_body(x) for x in bodies):
        retro.extend(retrograde_periods(b, start, end, provider))
    retro.sort(key=lambda p: (p.start_jd if p.start_jd is not None else -math.inf, p.body.value))
    return SkyEvents(
        year=y,
        retrogrades=tuple(retro),
        seasons=tuple(seasonal_ingresses(y, provider)),
        eclipses=tuple(eclipses(y, provider)),
        lunations=tuple(lunations(y, month, provider)) if month is not None else (),
        month=None if month is None else int(month),
    )
