# tests/test_moon.py
from __future__ import annotations

import math

import pytest
from hypothesis import given, strategies as st

from astrocore.core.bodies import LUNAR_SYNODIC_D
from astrocore.core.moon import PHASE_START_DEG, MoonPhase, moon_phase, moon_phase_at, next_phase_jd
from astrocore.core.timescales import J2000_JD

lon = st.floats(min_value=0.0, max_value=360.0, exclude_max=True)


def test_full_moon() -> None:
    info = moon_phase(180.0, 0.0)
    assert info.phase is MoonPhase.FULL
    assert info.illumination == pytest.approx(1.0)
    assert not info.waxing

def test_new_moon() -> None:
    info = moon_phase(42.0, 42.0)
    assert info.phase is MoonPhase.NEW
    assert info.illumination == pytest.approx(0.0)
    assert info.lunar_day == pytest.approx(1.0)

@pytest.mark.parametrize("elong,phase", [
    (0.0, MoonPhase.NEW),
    (44.999, MoonPhase.NEW),
    (45.0, MoonPhase.WAXING_CRESCENT),
    (90.0, MoonPhase.FIRST_QUARTER),
    (135.0, MoonPhase.WAXING_GIBBOUS),
    (225.0, MoonPhase.WANING_GIBBOUS),
    (270.0, MoonPhase.LAST_QUARTER),
    (315.0, MoonPhase.WANING_CRESCENT),
    (359.999, MoonPhase.WANING_CRESCENT),
])
def test_phase_buckets(elong: float, phase: MoonPhase) -> None:
    assert moon_phase(100.0 + elong, 100.0).phase is phase

def test_bucket_starts_are_45_apart() -> None:
    assert list(PHASE_START_DEG.values()) == [45.0 * i for i in range(8)]

def test_elongation_wraps() -> None:
    info = moon_phase(10.0, 350.0)
    assert info.elongation == pytest.approx(20.0)
    assert info.phase is MoonPhase.NEW
    assert info.waxing

def test_quarter_illumination_is_half() -> None:
    assert moon_phase(90.0, 0.0).illumination == pytest.approx(0.5)
    assert moon_phase(270.0, 0.0).illumination == pytest.approx(0.5)

@given(lon, lon)
def test_value_ranges(moon: float, sun: float) -> None:
    info = moon_phase(moon, sun)
    assert 0.0 <= info.elongation < 360.0
    assert 0.0 <= info.illumination <= 1.0
    assert 1.0 <= info.lunar_day < 1.0 + LUNAR_SYNODIC_D
    assert list(MoonPhase).index(info.phase) == min(int(info.elongation // 45.0), 7)

@given(st.floats(min_value=0.0, max_value=359.0))
def test_illumination_is_continuous(elong: float) -> None:
    a = moon_phase(elong, 0.0).illumination
    b = moon_phase(elong + 0.01, 0.0).illumination
    assert abs(a - b) <= math.radians(0.01) / 2 + 1e-12

def test_phase_from_provider(provider) -> None:
    # J2000 fixture: Sun 10°, Moon 20°
    info = moon_phase_at(provider, J2000_JD)
    assert info.elongation == pytest.approx(10.0)
    assert info.phase is MoonPhase.NEW

def test_next_phase_is_strictly_later() -> None:
    assert next_phase_jd(100.0, 0.0, 180.0) == pytest.approx(100.0 + LUNAR_SYNODIC_D / 2)
    assert next_phase_jd(100.0, 180.0, 180.0) == pytest.approx(100.0 + LUNAR_SYNODIC_D)
    assert next_phase_jd(100.0, 350.0, 0.0) == pytest.approx(100.0 + LUNAR_SYNODIC_D / 36)
