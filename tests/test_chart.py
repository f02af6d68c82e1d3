# tests/test_chart.py
from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from astrocore.core.aspects import AspectType
from astrocore.core.bodies import MAJOR_BODIES, Body, Sign
from astrocore.core.chart import Chart, compute_chart
from astrocore.core.errors import InvalidInputError, UndefinedHouseSystemError
from astrocore.core.houses import HouseSystem
from astrocore.core.patterns import PatternType
from astrocore.core.timescales import J2000_JD, to_continuous_time


@pytest.fixture
def natal(provider) -> Chart:
    return compute_chart(to_continuous_time("1990-06-15", "14:30:00", "Europe/London"), 51.5074, -0.1278, provider)


def test_chart_contents(natal: Chart) -> None:
    assert tuple(natal.positions) == MAJOR_BODIES
    assert natal.house_system is HouseSystem.PLACIDUS
    assert natal.houses.system is HouseSystem.PLACIDUS
    assert len(natal.houses.cusps) == 12
    assert natal.location.latitude == pytest.approx(51.5074)
    placements = natal.placements()
    assert set(placements) == set(MAJOR_BODIES)
    assert all(1 <= h <= 12 for h in placements.values())
    assert natal.house_of("sun") == placements[Body.SUN]

def test_aspects_match_graph(natal: Chart) -> None:
    g = natal.graph
    assert len(g) == len(natal.aspects)
    for a in natal.aspects:
        assert g.get(a.body_a, a.body_b) is a
        assert a.applying is not None  # the provider reports speeds

def test_sign_of_body(provider) -> None:
    ch = compute_chart(J2000_JD, 0.0, 0.0, provider)
    # fixture Sun at 10°
    assert ch.sign_of(Body.SUN).sign is Sign.ARIES
    assert ch.sign_of("sun").offset == pytest.approx(10.0)

def test_patterns_from_chart(linear_provider_factory) -> None:
    prov = linear_provider_factory(
        base={Body.SUN: 0.0, Body.MOON: 120.0, Body.MARS: 240.0},
        speed={Body.SUN: 0.0, Body.MOON: 0.0, Body.MARS: 0.0},
    )
    ch = compute_chart(J2000_JD, 40.0, -74.0, prov, bodies=[Body.SUN, Body.MOON, Body.MARS])
    kinds = [p.type for p in ch.patterns()]
    assert kinds == [PatternType.GRAND_TRINE]
    assert all(a.type is AspectType.TRINE for a in ch.aspects)

def test_round_trip_dict_and_json(natal: Chart) -> None:
    d = natal.to_dict()
    assert Chart.from_dict(d) == natal
    text = natal.to_json()
    assert Chart.from_json(text) == natal
    assert json.loads(text)["house_system"] == "placidus"
    expected = datetime(1990, 6, 15, 13, 30, tzinfo=timezone.utc)  # 14:30 BST
    assert abs(datetime.fromisoformat(d["datetime"]) - expected) < timedelta(seconds=1)

def test_round_trip_keeps_fallback(provider) -> None:
    ch = compute_chart(J2000_JD, 78.0, 15.0, provider, house_system="koch")
    assert ch.houses.system is HouseSystem.WHOLE_SIGN
    assert ch.houses.fallback_from is HouseSystem.KOCH
    back = Chart.from_json(ch.to_json())
    assert back == ch
    assert back.houses.warnings == ("koch_undefined_fallback_whole-sign",)

def test_strict_mode_raises(provider) -> None:
    with pytest.raises(UndefinedHouseSystemError):
        compute_chart(J2000_JD, 78.0, 15.0, provider, fallback=None)

def test_malformed_record() -> None:
    with pytest.raises(InvalidInputError):
        Chart.from_dict({"jd": 2451545.0})
    with pytest.raises(InvalidInputError):
        Chart.from_dict({"jd": 2451545.0, "location": None, "house_system": "placidus",
                         "positions": {}, "houses": {}})
