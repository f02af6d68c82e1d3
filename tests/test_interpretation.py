# tests/test_interpretation.py
from __future__ import annotations

import pytest

from astrocore.core.bodies import Body, Sign
from astrocore.core.aspects import AspectType
from astrocore.core.interpretation import (
    DEFAULT_TEXT,
    HOUSE_THEMES,
    InterpretationLookup,
    StaticInterpretations,
    aspect_key,
    house_key,
    pattern_key,
    phase_key,
    sign_key,
    theme_key,
)
from astrocore.core.moon import MoonPhase
from astrocore.core.patterns import PatternType


def test_keys() -> None:
    assert sign_key(Sign.LEO) == "sign.leo"
    assert house_key(7) == "house.7"
    assert pattern_key(PatternType.YOD) == "pattern.yod"
    assert phase_key(MoonPhase.FULL) == "phase.full"
    assert theme_key(4) == "theme.house-4"
    assert theme_key(4, MoonPhase.NEW) == "theme.house-4.new"
    assert aspect_key(Body.MOON, AspectType.TRINE, Body.VENUS) == "aspect.moon.trine.venus"

def test_builtin_table() -> None:
    interp = StaticInterpretations()
    assert isinstance(interp, InterpretationLookup)
    assert interp.describe(theme_key(10)) == HOUSE_THEMES[10]
    assert interp.describe(theme_key(1, MoonPhase.FULL)).endswith("with Culmination and Clarity")
    assert interp.describe("pattern.kite").startswith("Grand-trine")
    assert theme_key(12, MoonPhase.WANING_CRESCENT) in interp

def test_unknown_key_gets_default() -> None:
    assert StaticInterpretations().describe("nope.nothing") == DEFAULT_TEXT
    assert StaticInterpretations(default="?").describe("nope") == "?"

def test_overrides_and_yaml(tmp_path, monkeypatch) -> None:
    f = tmp_path / "texts.yaml"
    f.write_text("theme.house-1: Custom one\nsign.aries: Ram\n", encoding="utf-8")
    interp = StaticInterpretations(overrides={"sign.aries": "Explicit"}, path=str(f))
    assert interp.describe("theme.house-1") == "Custom one"
    assert interp.describe("sign.aries") == "Explicit"

    monkeypatch.setenv("ASTROCORE_INTERPRETATIONS", str(f))
    assert StaticInterpretations().describe("theme.house-1") == "Custom one"

def test_yaml_must_be_a_mapping(tmp_path) -> None:
    f = tmp_path / "bad.yaml"
    f.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        StaticInterpretations(path=str(f))

def test_synastry_texts() -> None:
    interp = StaticInterpretations()
    assert interp.describe("synastry.theme.mixed").startswith("Generally compatible")
    assert "synastry.venus.conjunction.mars" in interp
    assert "synastry.challenge.effort" in interp
