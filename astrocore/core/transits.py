# astrocore/core/transits.py
# -----------------------------------------------------------------------------
# Transit scanning: transiting bodies vs. fixed reference positions, day by day
#
# Highlights
# • scan_transits: one evaluation per UTC midnight, window capped at max_days
# • Optional fixed-size thread pool; results re-joined in ascending date order
# • Cancellation (threading.Event) and timeout checked per date; the contiguous
#   prefix computed so far is returned with truncated=True
# • EphemerisRangeError from the provider propagates unchanged
# • Forecast windows, transit intensity, grouping and a monthly calendar
# -----------------------------------------------------------------------------
from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
import calendar
import logging
import threading
import time

from astrocore.core.aspects import (
    DEFAULT_ASPECT_TABLE,
    Aspect,
    AspectDefinition,
    AspectType,
    is_applying,
    match_aspect,
    parse_aspect_type,
)
from astrocore.core.bodies import MAJOR_BODIES, OUTER_BODIES, Body, parse_body
from astrocore.core.ephemeris import BodyPosition, EphemerisProvider
from astrocore.core.errors import EphemerisRangeError, InvalidInputError
from astrocore.core.moon import MoonPhase, MoonPhaseInfo, moon_phase
from astrocore.core.timescales import parse_date, to_continuous_time
from astrocore.utils.metrics import EPHEMERIS_ERRORS, TRANSIT_DAYS, TRANSIT_SCANS

log = logging.getLogger(__name__)

__all__ = [
    "TransitFilter",
    "TransitEvent",
    "TransitScanResult",
    "ForecastDuration",
    "CalendarDay",
    "DEFAULT_TRANSIT_FILTER",
    "MAX_SCAN_DAYS",
    "scan_transits",
    "parse_duration",
    "forecast_window",
    "TransitForecast",
    "transit_forecast",
    "transit_intensity",
    "group_by_type",
    "transit_calendar",
]

MAX_SCAN_DAYS = 365
FORECAST_LIMIT = 50

ReferenceLike = Union[Mapping[Any, Union[BodyPosition, float]], Any]
DateLike = Union[date, str]


# ─────────────────────────────────────────────────────────────────────────────
# Types
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TransitFilter:
    aspects: FrozenSet[AspectType]
    max_orb: float

    @classmethod
    def of(cls, aspects: Iterable[Union[str, AspectType]], max_orb: float) -> "TransitFilter":
        orb = float(max_orb)
        if not orb >= 0.0:
            raise InvalidInputError("validation", "max_orb must be non-negative", max_orb=max_orb)
        return cls(aspects=frozenset(parse_aspect_type(a) for a in aspects), max_orb=orb)

    def passes(self, kind: AspectType, orb: float) -> bool:
        return kind in self.aspects and orb <= self.max_orb


DEFAULT_TRANSIT_FILTER = TransitFilter.of(
    (AspectType.CONJUNCTION, AspectType.OPPOSITION, AspectType.TRINE, AspectType.SQUARE), 3.0,
)


@dataclass(frozen=True)
class TransitEvent:
    date: date
    jd: float
    transiting: Body
    reference: Body
    aspect: Aspect

    def as_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "jd": self.jd,
            "transiting": self.transiting.value,
            "reference": self.reference.value,
            "aspect": self.aspect.as_dict(),
        }


@dataclass(frozen=True)
class TransitScanResult:
    start: date
    end: date
    events: Tuple[TransitEvent, ...]
    days_requested: int
    days_scanned: int
    capped: bool = False      # window longer than max_days
    truncated: bool = False   # stopped early by cancellation / timeout

    def as_dict(self) -> Dict[str, Any]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "days_requested": self.days_requested,
            "days_scanned": self.days_scanned,
            "capped": self.capped,
            "truncated": self.truncated,
            "count": len(self.events),
            "events": [e.as_dict() for e in self.events],
        }


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _reference_positions(reference: ReferenceLike) -> Dict[Body, Tuple[float, float]]:
    """(longitude, speed) per reference body from a Chart or a body→position mapping."""
    src = getattr(reference, "positions", reference)
    out: Dict[Body, Tuple[float, float]] = {}
    for body, pos in src.items():
        if isinstance(pos, BodyPosition):
            out[parse_body(body)] = (pos.longitude, pos.speed)
        else:
            out[parse_body(body)] = (float(pos), 0.0)
    if not out:
        raise InvalidInputError("validation", "reference chart has no positions")
    return out


def _as_date(value: DateLike) -> date:
    return parse_date(value)


def _day_positions(provider: EphemerisProvider, jd: float, bodies: Sequence[Body]) -> Dict[Body, BodyPosition]:
    try:
        return {b: provider.position(b, jd) for b in bodies}
    except EphemerisRangeError:
        EPHEMERIS_ERRORS.labels(kind="range").inc()
        raise


def _day_events(
    day: date,
    jd: float,
    positions: Mapping[Body, BodyPosition],
    reference: Mapping[Body, Tuple[float, float]],
    table: Sequence[AspectDefinition],
    flt: TransitFilter,
) -> List[TransitEvent]:
    events = []
    for tb, pos in positions.items():
        for rb, (ref_lon, ref_speed) in reference.items():
            m = match_aspect(pos.longitude, ref_lon, table)
            if m is None or not flt.passes(m.type, m.orb):
                continue
            asp = Aspect(
                body_a=tb,
                body_b=rb,
                type=m.type,
                orb=m.orb,
                separation=m.separation,
                # reference side is fixed in time
                applying=is_applying(pos.longitude, pos.speed, ref_lon, 0.0, m.exact_angle),
                max_orb=m.max_orb,
            )
            events.append(TransitEvent(date=day, jd=jd, transiting=tb, reference=rb, aspect=asp))
    return events


def _midnight_jd(day: date) -> float:
    return to_continuous_time(day, "00:00:00", "UTC")


# ─────────────────────────────────────────────────────────────────────────────
# TransitScanner
# ─────────────────────────────────────────────────────────────────────────────

def scan_transits(
    reference: ReferenceLike,
    start: DateLike,
    end: DateLike,
    provider: EphemerisProvider,
    *,
    transiting: Iterable[Union[str, Body]] = MAJOR_BODIES,
    significance: TransitFilter = DEFAULT_TRANSIT_FILTER,
    table: Iterable[AspectDefinition] = DEFAULT_ASPECT_TABLE,
    max_days: int = MAX_SCAN_DAYS,
    workers: int = 1,
    cancel: Optional[threading.Event] = None,
    timeout: Optional[float] = None,
    clock: Callable[[], float] = time.monotonic,
) -> TransitScanResult:
    """
    Date-ordered transiting→reference aspects for each UTC day in [start, end].

    At most `max_days` dates are evaluated (capped=True when the window is
    longer). With workers > 1 dates are evaluated on a thread pool; output order
    is always ascending by date, then transiting body, then reference body.
    Setting `cancel` or exceeding `timeout` seconds stops the scan between
    dates; the events of every date before the stopping point are returned
    with truncated=True.
    """
    d0, d1 = _as_date(start), _as_date(end)
    if d1 < d0:
        raise InvalidInputError("validation", "end date precedes start date",
                                start=d0.isoformat(), end=d1.isoformat())
    if int(max_days) < 1:
        raise InvalidInputError("validation", "max_days must be >= 1", max_days=max_days)
    if int(workers) < 1:
        raise InvalidInputError("validation", "workers must be >= 1", workers=workers)

    ref = _reference_positions(reference)
    bodies = tuple(dict.fromkeys(parse_body(b) for b in transiting))
    table = tuple(table)

    requested = (d1 - d0).days + 1
    n = min(requested, int(max_days))
    days = [d0 + timedelta(days=i) for i in range(n)]
    deadline = None if timeout is None else clock() + float(timeout)
    stop = threading.Event()

    def _should_stop() -> bool:
        if stop.is_set() or (cancel is not None and cancel.is_set()):
            return True
        return deadline is not None and clock() >= deadline

    def _evaluate(day: date) -> Optional[List[TransitEvent]]:
        if _should_stop():
            return None
        jd = _midnight_jd(day)
        return _day_events(day, jd, _day_positions(provider, jd, bodies), ref, table, significance)

    per_day: List[List[TransitEvent]] = []
    truncated = False
    try:
        if workers == 1 or n == 1:
            for day in days:
                out = _evaluate(day)
                if out is None:
                    truncated = True
                    break
                per_day.append(out)
        else:
            pool = ThreadPoolExecutor(max_workers=int(workers), thread_name_prefix="transit-scan")
            try:
                futures: List[Future] = [pool.submit(_evaluate, d) for d in days]
                for fut in futures:
                    if _should_stop():
                        truncated = True
                        break
                    remaining = None if deadline is None else max(0.0, deadline - clock())
                    try:
                        out = fut.result(timeout=remaining)
                    except FutureTimeout:
                        truncated = True
                        break
                    if out is None:
                        truncated = True
                        break
                    per_day.append(out)
            finally:
                # queued dates are dropped; dates already running finish before we return
                stop.set()
                pool.shutdown(wait=True, cancel_futures=True)
    except EphemerisRangeError:
        TRANSIT_SCANS.labels(outcome="error").inc()
        raise

    events = tuple(e for day_events in per_day for e in day_events)
    TRANSIT_DAYS.inc(len(per_day))
    TRANSIT_SCANS.labels(outcome="truncated" if truncated else "complete").inc()
    if truncated:
        log.warning("Transit scan truncated after %d of %d days", len(per_day), n)
    if requested > n:
        log.debug("Transit window of %d days capped at %d", requested, n)
    log.debug("Transit scan %s..%s: %d events", d0, d1, len(events))

    return TransitScanResult(
        start=d0,
        end=d1,
        events=events,
        days_requested=requested,
        days_scanned=len(per_day),
        capped=requested > n,
        truncated=truncated,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Forecasts
# ─────────────────────────────────────────────────────────────────────────────

class ForecastDuration(str, Enum):
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"

    def __str__(self) -> str:
        return self.value


def _add_months(d: date, months: int) -> date:
    m = d.month - 1 + months
    y, m = d.year + m // 12, m % 12 + 1
    return date(y, m, min(d.day, calendar.monthrange(y, m)[1]))


def parse_duration(duration: Union[str, ForecastDuration]) -> ForecastDuration:
    try:
        return ForecastDuration(str(duration).strip().lower())
    except ValueError:
        raise InvalidInputError(
            "validation", f"unknown forecast duration '{duration}'",
            supported=[d.value for d in ForecastDuration],
        ) from None


def forecast_window(duration: Union[str, ForecastDuration], start: Optional[DateLike] = None) -> Tuple[date, date]:
    """Inclusive (first, last) dates: the window ends the day before the same date a week/months later."""
    dur = parse_duration(duration)
    d0 = _as_date(start) if start is not None else datetime.now(timezone.utc).date()
    if dur is ForecastDuration.WEEK:
        d1 = d0 + timedelta(days=7)
    elif dur is ForecastDuration.MONTH:
        d1 = _add_months(d0, 1)
    elif dur is ForecastDuration.QUARTER:
        d1 = _add_months(d0, 3)
    else:
        d1 = _add_months(d0, 12)
    return d0, d1 - timedelta(days=1)


_INTENSITY_BASE: Dict[AspectType, int] = {
    AspectType.CONJUNCTION: 10,
    AspectType.OPPOSITION: 9,
    AspectType.SQUARE: 8,
    AspectType.TRINE: 7,
    AspectType.SEXTILE: 5,
    AspectType.QUINCUNX: 3,
    AspectType.SEMISEXTILE: 2,
}

_PLANET_FACTOR: Dict[Body, float] = {
    Body.SUN: 1.0, Body.MOON: 0.9, Body.MERCURY: 0.6, Body.VENUS: 0.7, Body.MARS: 0.8,
    Body.JUPITER: 1.0, Body.SATURN: 1.0, Body.URANUS: 0.9, Body.NEPTUNE: 0.9, Body.PLUTO: 0.9,
}


def transit_intensity(event: TransitEvent) -> int:
    """type base × orb factor (1 − orb/10) × transiting-planet factor, rounded."""
    orb_factor = max(0.0, 1.0 - event.aspect.orb / 10.0)
    return int(round(_INTENSITY_BASE[event.aspect.type] * orb_factor * _PLANET_FACTOR.get(event.transiting, 0.5)))


def group_by_type(events: Iterable[TransitEvent]) -> Dict[AspectType, List[TransitEvent]]:
    out: Dict[AspectType, List[TransitEvent]] = {}
    for e in events:
        out.setdefault(e.aspect.type, []).append(e)
    return out


@dataclass(frozen=True)
class TransitForecast:
    duration: ForecastDuration
    scan: TransitScanResult
    events: Tuple[TransitEvent, ...]   # first FORECAST_LIMIT events
    intensities: Tuple[int, ...]

    def as_dict(self) -> Dict[str, Any]:
        grouped = group_by_type(self.scan.events)
        return {
            "duration": self.duration.value,
            "start": self.scan.start.isoformat(),
            "end": self.scan.end.isoformat(),
            "truncated": self.scan.truncated,
            "grouped_by_type": {k.value: len(v) for k, v in grouped.items()},
            "forecast": [dict(e.as_dict(), intensity=i) for e, i in zip(self.events, self.intensities)],
        }


def transit_forecast(
    reference: ReferenceLike,
    provider: EphemerisProvider,
    duration: Union[str, ForecastDuration] = ForecastDuration.MONTH,
    start: Optional[DateLike] = None,
    *,
    max_orb: float = 1.0,
    **scan_kwargs: Any,
) -> TransitForecast:
    """Outer-planet transits (any aspect type within `max_orb`) over a forecast window."""
    d0, d1 = forecast_window(duration, start)
    # a forecast always covers its whole window, leap years included
    scan_kwargs.setdefault("max_days", max(MAX_SCAN_DAYS, (d1 - d0).days + 1))
    scan = scan_transits(
        reference, d0, d1, provider,
        transiting=OUTER_BODIES,
        significance=TransitFilter.of(AspectType, max_orb),
        **scan_kwargs,
    )
    top = scan.events[:FORECAST_LIMIT]
    return TransitForecast(
        duration=parse_duration(duration),
        scan=scan,
        events=top,
        intensities=tuple(transit_intensity(e) for e in top),
    )


# ─────────────────────────────────────────────────────────────────────────────
# Monthly calendar
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CalendarDay:
    date: date
    events: Tuple[TransitEvent, ...]
    moon: MoonPhaseInfo
    retrogrades: Tuple[Body, ...]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "day": self.date.day,
            "aspects": [e.as_dict() for e in self.events],
            "moon_phase": self.moon.as_dict(),
            "retrogrades": [b.value for b in self.retrogrades],
        }


CALENDAR_FILTER = TransitFilter.of(
    (AspectType.CONJUNCTION, AspectType.OPPOSITION, AspectType.TRINE, AspectType.SQUARE), 2.0,
)


def transit_calendar(
    reference: ReferenceLike,
    year: int,
    month: int,
    provider: EphemerisProvider,
    *,
    transiting: Iterable[Union[str, Body]] = MAJOR_BODIES,
    table: Iterable[AspectDefinition] = DEFAULT_ASPECT_TABLE,
) -> List[CalendarDay]:
    """
    Days of a month worth marking: major aspects within 2°, a new or full
    Moon, or any retrograde transiting body.
    """
    if not (1 <= int(month) <= 12):
        raise InvalidInputError("validation", "month must be within 1..12", month=month)
    ref = _reference_positions(reference)
    bodies = tuple(dict.fromkeys([*(parse_body(b) for b in transiting), Body.SUN, Body.MOON]))
    tracked = set(parse_body(b) for b in transiting)
    table = tuple(table)

    out = []
    for day_no in range(1, calendar.monthrange(int(year), int(month))[1] + 1):
        day = date(int(year), int(month), day_no)
        jd = _midnight_jd(day)
        pos = _day_positions(provider, jd, bodies)
        events = _day_events(day, jd, {b: p for b, p in pos.items() if b in tracked}, ref, table, CALENDAR_FILTER)
        phase = moon_phase(pos[Body.MOON].longitude, pos[Body.SUN].longitude)
        retro = tuple(b for b, p in pos.items() if b in tracked and p.retrograde)
        if events or phase.phase in (MoonPhase.NEW, MoonPhase.FULL) or retro:
            out.append(CalendarDay(date=day, events=tuple(events), moon=phase, retrogrades=retro))
    return out
