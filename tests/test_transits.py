# tests/test_transits.py
from __future__ import annotations

import itertools
import threading
import time
from datetime import date, datetime, timedelta, timezone

import pytest

from astrocore.core.aspects import Aspect, AspectType
from astrocore.core.bodies import MAJOR_BODIES, OUTER_BODIES, Body
from astrocore.core.errors import EphemerisRangeError, InvalidInputError
from astrocore.core.moon import MoonPhase
from astrocore.core.timescales import J2000_JD, to_continuous_time
from astrocore.core.transits import (
    ForecastDuration,
    TransitEvent,
    TransitFilter,
    forecast_window,
    group_by_type,
    scan_transits,
    transit_calendar,
    transit_forecast,
    transit_intensity,
)

NATAL = {Body.SUN: 295.5, Body.MOON: 12.0, Body.VENUS: 140.0, Body.MARS: 222.0}
CONJ_OPP = TransitFilter.of(["conjunction", "opposition"], 3.0)


def _event(kind: AspectType, orb: float, transiting: Body = Body.SATURN) -> TransitEvent:
    asp = Aspect(transiting, Body.SUN, kind, orb, kind.angle + orb, None)
    return TransitEvent(date=date(2024, 1, 1), jd=2460310.5, transiting=transiting, reference=Body.SUN, aspect=asp)


# ─────────────────────────────────────────────────────────────────────────────
# scan_transits
# ─────────────────────────────────────────────────────────────────────────────

def test_half_year_window_is_bounded_and_ordered(provider) -> None:
    res = scan_transits(NATAL, "2024-01-01", "2024-06-28", provider, significance=CONJ_OPP)
    assert res.days_requested == res.days_scanned == 180
    assert not res.capped and not res.truncated
    assert 0 < len(res.events) <= 180 * len(MAJOR_BODIES) * len(NATAL)
    dates = [e.date for e in res.events]
    assert dates == sorted(dates)
    for e in res.events:
        assert e.aspect.type in (AspectType.CONJUNCTION, AspectType.OPPOSITION)
        assert e.aspect.orb <= 3.0
        assert e.jd == pytest.approx(to_continuous_time(e.date, "00:00:00", "UTC"))
    # the Moon sweeps the zodiac every month, so it must hit every natal point
    assert {e.reference for e in res.events if e.transiting is Body.MOON} == set(NATAL)

def test_window_capped_at_max_days(provider) -> None:
    res = scan_transits(NATAL, "2024-01-01", "2025-12-31", provider, significance=CONJ_OPP)
    assert res.days_requested == 731
    assert res.days_scanned == 365
    assert res.capped and not res.truncated
    assert max(e.date for e in res.events) <= date(2024, 12, 30)

def test_custom_cap(provider) -> None:
    res = scan_transits(NATAL, date(2024, 1, 1), date(2024, 1, 31), provider, max_days=10)
    assert res.days_scanned == 10 and res.capped

def test_single_day(provider) -> None:
    res = scan_transits(NATAL, "2024-03-01", "2024-03-01", provider, workers=4)
    assert res.days_requested == res.days_scanned == 1

def test_thread_pool_matches_sequential(provider) -> None:
    seq = scan_transits(NATAL, "2024-01-01", "2024-03-31", provider)
    par = scan_transits(NATAL, "2024-01-01", "2024-03-31", provider, workers=4)
    assert par.events == seq.events
    assert par.days_scanned == seq.days_scanned == 91

def test_end_before_start(provider) -> None:
    with pytest.raises(InvalidInputError):
        scan_transits(NATAL, "2024-02-01", "2024-01-01", provider)

@pytest.mark.parametrize("kwargs", [{"max_days": 0}, {"workers": 0}])
def test_bad_scan_parameters(provider, kwargs) -> None:
    with pytest.raises(InvalidInputError):
        scan_transits(NATAL, "2024-01-01", "2024-01-05", provider, **kwargs)

def test_empty_reference(provider) -> None:
    with pytest.raises(InvalidInputError):
        scan_transits({}, "2024-01-01", "2024-01-05", provider)


# ─────────────────────────────────────────────────────────────────────────────
# Cancellation / timeout / range
# ─────────────────────────────────────────────────────────────────────────────

def test_cancelled_before_start(provider) -> None:
    cancel = threading.Event()
    cancel.set()
    res = scan_transits(NATAL, "2024-01-01", "2024-01-31", provider, cancel=cancel)
    assert res.truncated
    assert res.days_scanned == 0
    assert res.events == ()
    assert provider.calls == 0

@pytest.mark.parametrize("workers", [1, 4])
def test_cancel_mid_scan_returns_contiguous_prefix(linear_provider_factory, workers) -> None:
    full = scan_transits(NATAL, "2024-01-01", "2024-03-31", linear_provider_factory())

    cancel = threading.Event()
    trigger = to_continuous_time("2024-02-10", "00:00:00", "UTC")

    def _on_call(body, jd):
        if jd >= trigger:
            cancel.set()

    res = scan_transits(
        NATAL, "2024-01-01", "2024-03-31", linear_provider_factory(on_call=_on_call),
        workers=workers, cancel=cancel,
    )
    assert res.truncated
    assert 0 <= res.days_scanned < 91
    cutoff = date(2024, 1, 1) + timedelta(days=res.days_scanned)
    assert res.events == tuple(e for e in full.events if e.date < cutoff)
    if workers == 1:
        # the day that raised the flag still completes
        assert res.days_scanned == (date(2024, 2, 10) - date(2024, 1, 1)).days + 1

def test_pool_has_no_calls_in_flight_after_cancel(linear_provider_factory) -> None:
    cancel = threading.Event()
    trigger = to_continuous_time("2024-01-20", "00:00:00", "UTC")

    def _on_call(body, jd):
        time.sleep(0.0005)
        if jd >= trigger:
            cancel.set()

    slow = linear_provider_factory(on_call=_on_call)
    res = scan_transits(NATAL, "2024-01-01", "2024-06-30", slow, workers=4, cancel=cancel)
    assert res.truncated
    settled = slow.calls
    time.sleep(0.05)
    assert slow.calls == settled

def test_zero_timeout_scans_nothing(provider) -> None:
    res = scan_transits(NATAL, "2024-01-01", "2024-01-31", provider, timeout=0)
    assert res.truncated and res.days_scanned == 0

def test_timeout_with_fake_clock(provider) -> None:
    ticks = itertools.count()
    res = scan_transits(
        NATAL, "2024-01-01", "2024-01-31", provider,
        timeout=5, clock=lambda: float(next(ticks)),
    )
    # deadline is tick 5; each date consumes one tick before evaluating
    assert res.truncated
    assert res.days_scanned == 4

@pytest.mark.parametrize("workers", [1, 3])
def test_ephemeris_range_error_propagates(linear_provider_factory, workers) -> None:
    short = linear_provider_factory(jd_max=J2000_JD + 10.0)
    with pytest.raises(EphemerisRangeError):
        scan_transits(NATAL, "2000-01-01", "2000-02-01", short, workers=workers)


# ─────────────────────────────────────────────────────────────────────────────
# Forecasts
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("duration,start,end", [
    ("week", date(2024, 1, 1), date(2024, 1, 7)),
    ("month", date(2024, 1, 31), date(2024, 2, 28)),
    ("quarter", date(2024, 11, 15), date(2025, 2, 14)),
    ("YEAR", date(2024, 2, 29), date(2025, 2, 27)),
    ("year", date(2025, 1, 1), date(2025, 12, 31)),
])
def test_forecast_window(duration, start, end) -> None:
    assert forecast_window(duration, start) == (start, end)

def test_forecast_window_defaults_to_today() -> None:
    d0, _ = forecast_window(ForecastDuration.WEEK)
    assert abs((d0 - datetime.now(timezone.utc).date()).days) <= 1

def test_unknown_duration() -> None:
    with pytest.raises(InvalidInputError):
        forecast_window("decade")

def test_transit_intensity() -> None:
    assert transit_intensity(_event(AspectType.CONJUNCTION, 0.0)) == 10
    assert transit_intensity(_event(AspectType.SQUARE, 5.0, Body.MERCURY)) == 2   # 8 × 0.5 × 0.6
    assert transit_intensity(_event(AspectType.TRINE, 12.0)) == 0

def test_group_by_type() -> None:
    evs = [_event(AspectType.TRINE, 1.0), _event(AspectType.SQUARE, 0.5), _event(AspectType.TRINE, 0.2)]
    grouped = group_by_type(evs)
    assert {k: len(v) for k, v in grouped.items()} == {AspectType.TRINE: 2, AspectType.SQUARE: 1}

def test_transit_forecast(provider) -> None:
    fc = transit_forecast(NATAL, provider, "quarter", "2024-01-01")
    assert fc.scan.end == date(2024, 3, 31)
    assert fc.scan.days_scanned == 91 and not fc.scan.capped
    assert len(fc.events) <= 50
    assert len(fc.intensities) == len(fc.events)
    for e in fc.events:
        assert e.transiting in OUTER_BODIES
        assert e.aspect.orb <= 1.0
    body = fc.as_dict()
    assert body["duration"] == "quarter"
    assert sum(body["grouped_by_type"].values()) == len(fc.scan.events)

@pytest.mark.parametrize("start", ["2024-01-01", "2023-03-01", "2025-01-01"])
def test_year_forecast_is_never_capped(provider, start) -> None:
    fc = transit_forecast(NATAL, provider, "year", start)
    assert not fc.scan.capped
    assert fc.scan.days_scanned == fc.scan.days_requested
    assert fc.scan.days_requested in (365, 366)


# ─────────────────────────────────────────────────────────────────────────────
# Calendar
# ─────────────────────────────────────────────────────────────────────────────

def test_calendar_marks_lunations_and_aspects(provider) -> None:
    days = transit_calendar(NATAL, 2024, 2, provider)
    assert days
    assert all(d.date.year == 2024 and d.date.month == 2 for d in days)
    assert [d.date for d in days] == sorted(d.date for d in days)
    for d in days:
        assert d.events or d.retrogrades or d.moon.phase in (MoonPhase.NEW, MoonPhase.FULL)
        assert all(e.aspect.orb <= 2.0 for e in d.events)

def test_calendar_lists_retrograde_bodies(provider) -> None:
    days = transit_calendar(NATAL, 2024, 2, provider, transiting=[Body.SUN, Body.MEAN_NODE])
    assert len(days) == 29  # the node moves backwards every day
    assert all(d.retrogrades == (Body.MEAN_NODE,) for d in days)

def test_calendar_rejects_bad_month(provider) -> None:
    with pytest.raises(InvalidInputError):
        transit_calendar(NATAL, 2024, 13, provider)
