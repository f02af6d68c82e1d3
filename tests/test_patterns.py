# tests/test_patterns.py
from __future__ import annotations

import pytest
from hypothesis import given, strategies as st

from astrocore.core.aspects import aspect_table, build_aspect_graph
from astrocore.core.bodies import Body
from astrocore.core.patterns import (
    AspectPattern,
    PatternType,
    detect_patterns,
    detect_stelliums,
    pattern_intensity,
)


def _types(patterns):
    return sorted(p.type.value for p in patterns)


def test_single_grand_trine() -> None:
    g = build_aspect_graph({Body.SUN: 0.0, Body.MOON: 120.0, Body.MARS: 240.0})
    found = detect_patterns(g)
    assert _types(found) == ["grand-trine"]
    gt = found[0]
    assert set(gt.bodies) == {Body.SUN, Body.MOON, Body.MARS}
    assert gt.intensity == pytest.approx(7.0)  # exact orbs, 3 bodies
    assert gt.description_key == "pattern.grand-trine"

def test_intensity_measured_against_the_matching_orb_table() -> None:
    wide = aspect_table(orbs={"trine": 12})
    # trine orbs 11, 9 and 2 against a 12° limit
    g = build_aspect_graph({Body.SUN: 0.0, Body.MOON: 131.0, Body.MARS: 249.0}, wide)
    assert {a.max_orb for a in g} == {12.0}
    found = detect_patterns(g)
    assert _types(found) == ["grand-trine"]
    assert found[0].intensity == pytest.approx(3.3)

def test_t_square_apex() -> None:
    g = build_aspect_graph({Body.SUN: 0.0, Body.MOON: 180.0, Body.MARS: 92.0})
    found = detect_patterns(g)
    assert _types(found) == ["t-square"]
    assert found[0].bodies[-1] is Body.MARS
    assert 1.0 <= found[0].intensity < 7.0

def test_grand_cross_suppresses_contained_t_squares() -> None:
    g = build_aspect_graph({Body.SUN: 0.0, Body.MOON: 180.0, Body.MARS: 90.0, Body.VENUS: 270.0})
    assert _types(detect_patterns(g)) == ["grand-cross"]

    everything = detect_patterns(g, allow_overlap=True)
    assert _types(everything).count("t-square") == 4
    assert _types(everything).count("grand-cross") == 1
    cross = next(p for p in everything if p.type is PatternType.GRAND_CROSS)
    assert cross.intensity == pytest.approx(8.0)  # one extra body

def test_yod_apex_is_last() -> None:
    g = build_aspect_graph({Body.SUN: 0.0, Body.MOON: 60.0, Body.SATURN: 210.0})
    found = detect_patterns(g)
    assert _types(found) == ["yod"]
    assert found[0].bodies[-1] is Body.SATURN

def test_kite_suppresses_its_grand_trine() -> None:
    g = build_aspect_graph({Body.SUN: 0.0, Body.MOON: 120.0, Body.MARS: 240.0, Body.VENUS: 180.0})
    assert _types(detect_patterns(g)) == ["kite"]
    assert _types(detect_patterns(g, allow_overlap=True)) == ["grand-trine", "kite"]

def test_unrelated_grand_trine_survives_next_to_kite() -> None:
    pts = {
        Body.SUN: 0.0, Body.MOON: 120.0, Body.MARS: 240.0, Body.VENUS: 180.0,
        # a second, independent trine set offset by 45°
        Body.JUPITER: 45.0, Body.SATURN: 165.0, Body.URANUS: 285.0,
    }
    found = detect_patterns(build_aspect_graph(pts))
    trines = [p for p in found if p.type is PatternType.GRAND_TRINE]
    assert [set(t.bodies) for t in trines] == [{Body.JUPITER, Body.SATURN, Body.URANUS}]

def test_no_patterns_in_empty_sky() -> None:
    g = build_aspect_graph({Body.SUN: 0.0, Body.MOON: 40.0, Body.MARS: 100.0})
    assert detect_patterns(g) == []


# ─────────────────────────────────────────────────────────────────────────────
# Stelliums
# ─────────────────────────────────────────────────────────────────────────────

def test_sign_stellium() -> None:
    pts = {Body.SUN: 1.0, Body.MERCURY: 5.0, Body.VENUS: 12.0, Body.MOON: 200.0}
    [st_] = detect_stelliums(pts)
    assert st_.basis == "sign:aries"
    assert st_.bodies == (Body.SUN, Body.MERCURY, Body.VENUS)
    # spread 11° -> tightness 19/30
    assert st_.intensity == pytest.approx(round(1.0 + 6.0 * 19.0 / 30.0, 1))

def test_house_stellium_across_signs() -> None:
    pts = {Body.SUN: 28.0, Body.MERCURY: 33.0, Body.VENUS: 40.0}
    houses = {Body.SUN: 10, Body.MERCURY: 10, Body.VENUS: 10}
    found = detect_stelliums(pts, houses)
    assert [p.basis for p in found] == ["house:10"]
    assert found[0].as_dict()["basis"] == "house:10"

def test_pattern_needs_distinct_bodies() -> None:
    with pytest.raises(ValueError):
        AspectPattern(PatternType.GRAND_TRINE, (Body.SUN, Body.SUN, Body.MOON), 5.0, "pattern.grand-trine")
    with pytest.raises(ValueError):
        AspectPattern(PatternType.KITE, (Body.SUN, Body.MOON, Body.MARS), 5.0, "pattern.kite")

@given(st.integers(min_value=0, max_value=12), st.floats(min_value=-2.0, max_value=3.0))
def test_intensity_bounds(n: int, tightness: float) -> None:
    v = pattern_intensity(n, tightness)
    assert 1.0 <= v <= 10.0
    assert round(v, 1) == v
