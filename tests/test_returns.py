# tests/test_returns.py
from __future__ import annotations

import logging
from datetime import datetime, timezone

import pytest

from astrocore.core.angles import sign_of
from astrocore.core.aspects import Aspect, AspectType
from astrocore.core.bodies import MEAN_DAILY_MOTION_DEG, Body
from astrocore.core.chart import compute_chart
from astrocore.core.errors import InvalidInputError
from astrocore.core.houses import HouseSystem
from astrocore.core.moon import MoonPhase
from astrocore.core.returns import (
    RETURN_REFERENCE_BODIES,
    build_return_chart,
    lunar_return,
    return_intensity,
    solar_return,
    solve_return,
)
from astrocore.core.timescales import J2000_JD

LONDON = (51.5074, -0.1278)


def _asp(kind: AspectType) -> Aspect:
    return Aspect(Body.MOON, Body.SUN, kind, 0.0, kind.angle, None)


# ─────────────────────────────────────────────────────────────────────────────
# solve_return
# ─────────────────────────────────────────────────────────────────────────────

def test_lunar_return_is_next_future_crossing(provider) -> None:
    # fixture Moon sits at 20° at J2000
    est = solve_return(Body.MOON, 100.0, provider, now=J2000_JD)
    assert est.jd > est.now_jd == J2000_JD
    assert est.days_ahead == pytest.approx(80.0 / MEAN_DAILY_MOTION_DEG[Body.MOON])
    assert est.start_longitude == pytest.approx(20.0)
    assert est.within_tolerance
    assert abs(est.residual) < 0.01
    assert est.method == "linear" and est.iterations == 0

def test_zero_gap_means_a_full_cycle(provider) -> None:
    est = solve_return("moon", 20.0, provider, now=J2000_JD)
    assert est.days_ahead == pytest.approx(360.0 / MEAN_DAILY_MOTION_DEG[Body.MOON])
    assert est.within_tolerance

def test_reference_behind_the_body_wraps_forward(provider) -> None:
    est = solve_return(Body.SUN, 5.0, provider, now=J2000_JD)  # Sun at 10°
    assert est.days_ahead == pytest.approx(355.0 / MEAN_DAILY_MOTION_DEG[Body.SUN])
    assert est.within_tolerance

def test_retrograde_mean_motion(provider) -> None:
    # node at 125° moving backwards: 120° is 5° ahead along its motion
    est = solve_return(Body.MEAN_NODE, 120.0, provider, now=J2000_JD)
    assert est.days_ahead == pytest.approx(5.0 / abs(MEAN_DAILY_MOTION_DEG[Body.MEAN_NODE]))
    assert est.within_tolerance

def test_datetime_now(provider) -> None:
    est = solve_return(Body.MOON, 100.0, provider, now=datetime(2000, 1, 1, 12, tzinfo=timezone.utc))
    assert est.now_jd == pytest.approx(J2000_JD, abs=1e-6)

def test_out_of_tolerance_is_reported(provider, caplog) -> None:
    # fixture Mercury runs at 1.2°/day against a 0.9856°/day mean motion
    with caplog.at_level(logging.WARNING, logger="astrocore.core.returns"):
        est = solve_return(Body.MERCURY, 200.0, provider, now=J2000_JD)
    assert not est.within_tolerance
    assert "return estimate off by" in caplog.text
    assert est.as_dict()["within_tolerance"] is False

def test_secant_refinement_converges(provider) -> None:
    est = solve_return(Body.MERCURY, 200.0, provider, now=J2000_JD, method="secant", tolerance_deg=1e-4)
    assert est.method == "secant"
    assert est.iterations >= 1
    assert est.within_tolerance
    assert est.jd > J2000_JD
    assert est.days_ahead == pytest.approx(170.0 / 1.2, abs=1e-4)

@pytest.mark.parametrize("kwargs", [
    {"mean_motion": 0.0},
    {"mean_motion": float("inf")},
    {"tolerance_deg": -1.0},
    {"method": "bisect"},
    {"now": float("nan")},
])
def test_invalid_solver_inputs(provider, kwargs) -> None:
    kwargs.setdefault("now", J2000_JD)
    with pytest.raises(InvalidInputError):
        solve_return(Body.MOON, 100.0, provider, **kwargs)


# ─────────────────────────────────────────────────────────────────────────────
# Return charts
# ─────────────────────────────────────────────────────────────────────────────

def test_return_intensity() -> None:
    assert return_intensity(1, None, []) == 5
    assert return_intensity(4, MoonPhase.FULL, [_asp(AspectType.CONJUNCTION), _asp(AspectType.SQUARE)]) == 10
    assert return_intensity(8, None, [_asp(AspectType.TRINE)]) == 6
    assert return_intensity(12, MoonPhase.NEW, [_asp(AspectType.CONJUNCTION)] * 5) == 10

def test_build_return_chart_fields(provider) -> None:
    est = solve_return(Body.MOON, 100.0, provider, now=J2000_JD)
    rc = build_return_chart(est, provider, *LONDON)
    assert rc.position.body is Body.MOON
    assert rc.sign == sign_of(rc.position.longitude)
    assert 1 <= rc.house <= 12
    assert rc.moon_phase is not None
    assert rc.theme_key == f"theme.house-{rc.house}.{rc.moon_phase.phase.value}"
    assert rc.intensity == return_intensity(rc.house, rc.moon_phase.phase, rc.aspects)
    kinds = [k.kind for k in rc.key_dates]
    assert kinds[0] == "return" and set(kinds) == {"return", "new-moon", "full-moon"}
    assert [k.jd for k in rc.key_dates] == sorted(k.jd for k in rc.key_dates)
    for a in rc.aspects:
        assert a.body_a is Body.MOON and a.body_b in RETURN_REFERENCE_BODIES
    body = rc.as_dict()
    assert body["return"]["body"] == "moon"
    assert body["house_system"] == "placidus"

def test_solar_return_has_no_moon_phase(provider) -> None:
    est = solve_return(Body.SUN, 10.5, provider, now=J2000_JD)
    rc = build_return_chart(est, provider, *LONDON, house_system="whole-sign")
    assert rc.moon_phase is None
    assert [k.kind for k in rc.key_dates] == ["return"]
    assert rc.theme_key == f"theme.house-{rc.house}"
    assert all(a.body_b is not Body.SUN for a in rc.aspects)

def test_reference_points_drive_aspects(provider) -> None:
    est = solve_return(Body.MOON, 100.0, provider, now=J2000_JD)
    lon = provider.position(Body.MOON, est.jd).longitude
    rc = build_return_chart(est, provider, *LONDON, reference_points={"venus": lon + 180.0})
    assert [(a.body_b, a.type) for a in rc.aspects] == [(Body.VENUS, AspectType.OPPOSITION)]


# ─────────────────────────────────────────────────────────────────────────────
# From a natal chart
# ─────────────────────────────────────────────────────────────────────────────

def test_lunar_return_from_chart(provider) -> None:
    natal = compute_chart(J2000_JD, *LONDON, provider)
    rc = lunar_return(natal, provider, now=J2000_JD + 3.0)
    assert rc.estimate.reference_longitude == pytest.approx(natal.positions[Body.MOON].longitude)
    assert rc.jd > J2000_JD + 3.0
    assert rc.estimate.within_tolerance
    assert rc.house_system is HouseSystem.PLACIDUS

def test_solar_return_uses_chart_settings(provider) -> None:
    natal = compute_chart(J2000_JD, 80.0, 10.0, provider)  # Placidus undefined at 80°N
    rc = solar_return(natal, provider, now=J2000_JD, method="secant")
    assert rc.house_system is HouseSystem.WHOLE_SIGN
    assert rc.warnings == ("placidus_undefined_fallback_whole-sign",)
    assert rc.estimate.method == "secant"

def test_return_relocated(provider) -> None:
    natal = compute_chart(J2000_JD, *LONDON, provider)
    rc = lunar_return(natal, provider, now=J2000_JD, latitude=-33.87, longitude=151.21)
    home = lunar_return(natal, provider, now=J2000_JD)
    assert rc.jd == home.jd
    assert rc.position == home.position

def test_chart_without_the_body(provider) -> None:
    natal = compute_chart(J2000_JD, *LONDON, provider, bodies=[Body.SUN, Body.MARS])
    with pytest.raises(InvalidInputError):
        lunar_return(natal, provider, now=J2000_JD)
