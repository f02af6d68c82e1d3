# tests/test_ephemeris.py
from __future__ import annotations

import os

import pytest

from astrocore.core.bodies import MEAN_DAILY_MOTION_DEG, Body
from astrocore.core.ephemeris import (
    BodyPosition,
    EphemerisConfig,
    EphemerisProvider,
    SkyfieldEphemeris,
    positions_at,
)
from astrocore.core.errors import EphemerisRangeError
from astrocore.core.timescales import J2000_JD


def test_body_position_record() -> None:
    p = BodyPosition(body=Body.MARS, longitude=12.5, latitude=1.0, distance=1.5, speed=-0.2)
    assert p.retrograde
    d = p.as_dict()
    assert d["retrograde"] is True
    assert BodyPosition.from_dict("mars", d) == p

def test_linear_provider_satisfies_protocol(provider) -> None:
    assert isinstance(provider, EphemerisProvider)
    assert isinstance(SkyfieldEphemeris(), EphemerisProvider)

def test_positions_at_keeps_order(provider) -> None:
    out = positions_at(provider, J2000_JD, ["moon", Body.SUN, "mean_node"])
    assert list(out) == [Body.MOON, Body.SUN, Body.MEAN_NODE]
    assert out[Body.SUN].longitude == pytest.approx(10.0)


# ─────────────────────────────────────────────────────────────────────────────
# Skyfield provider (no kernel needed for the range guard and lunar nodes)
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("jd", [2_400_000.5, 2_500_000.5])
def test_range_guard(jd) -> None:
    eph = SkyfieldEphemeris(EphemerisConfig(kernel="does-not-exist.bsp", data_dir="/nonexistent", enforce_jd_range=True))
    with pytest.raises(EphemerisRangeError) as ei:
        eph.position(Body.SUN, jd)
    assert ei.value.context["jd"] == jd

def test_mean_node_at_j2000(ensure_erfa) -> None:
    eph = SkyfieldEphemeris(EphemerisConfig(kernel="does-not-exist.bsp", data_dir="/nonexistent"))
    p = eph.position(Body.MEAN_NODE, J2000_JD)
    assert p.longitude == pytest.approx(125.04, abs=0.01)
    assert p.speed == pytest.approx(MEAN_DAILY_MOTION_DEG[Body.MEAN_NODE], rel=1e-3)
    assert p.retrograde

def test_true_node_oscillates_about_mean(ensure_erfa) -> None:
    eph = SkyfieldEphemeris(EphemerisConfig(kernel="does-not-exist.bsp", data_dir="/nonexistent"))
    for k in range(0, 400, 37):
        mean = eph.position(Body.MEAN_NODE, J2000_JD + k).longitude
        true = eph.position(Body.TRUE_NODE, J2000_JD + k).longitude
        assert abs((true - mean + 180.0) % 360.0 - 180.0) < 2.1


_KERNEL = os.path.join(os.getenv("ASTROCORE_EPHEMERIS_DIR", "data"), os.getenv("ASTROCORE_EPHEMERIS", "de421.bsp"))


@pytest.mark.slow
@pytest.mark.skipif(not os.path.exists(_KERNEL), reason="JPL kernel not present")
def test_sun_and_moon_at_j2000() -> None:
    eph = SkyfieldEphemeris()
    sun = eph.position(Body.SUN, J2000_JD)
    moon = eph.position(Body.MOON, J2000_JD)
    # apparent ecliptic of date
    assert sun.longitude == pytest.approx(280.37, abs=0.05)
    assert sun.speed == pytest.approx(1.019, abs=0.01)
    assert moon.longitude == pytest.approx(223.3, abs=0.5)
    assert 11.0 < moon.speed < 15.5
