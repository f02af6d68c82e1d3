# astrocore/core/bodies.py
# -*- coding: utf-8 -*-
"""
Core enumerations & small constant tables

Purpose
-------
Single source of truth for:
- celestial bodies (identifiers, glyphs, mean geocentric motion)
- zodiac signs with their element and modality
- time constants used by returns and moon phases

Design
------
- Every table is keyed by an Enum and built exhaustively, so an unknown key is
  impossible rather than a runtime surprise. `_check_exhaustive` asserts that at
  import time.
- Enums subclass `str` so values serialize directly to JSON and compare equal
  to their persisted string form.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Mapping, Tuple, Type

from astrocore.core.errors import InvalidInputError

__all__ = [
    "Body", "Sign", "Element", "Modality",
    "MAJOR_BODIES", "OUTER_BODIES", "LUMINARIES",
    "BODY_SYMBOLS", "MEAN_DAILY_MOTION_DEG",
    "SIGN_ELEMENTS", "SIGN_MODALITIES",
    "TROPICAL_YEAR_D", "LUNAR_SYNODIC_D", "LUNAR_SIDEREAL_D",
    "parse_body",
]


class Body(str, Enum):
    SUN = "sun"
    MOON = "moon"
    MERCURY = "mercury"
    VENUS = "venus"
    MARS = "mars"
    JUPITER = "jupiter"
    SATURN = "saturn"
    URANUS = "uranus"
    NEPTUNE = "neptune"
    PLUTO = "pluto"
    MEAN_NODE = "mean_node"
    TRUE_NODE = "true_node"

    def __str__(self) -> str:
        return self.value

    @property
    def symbol(self) -> str:
        return BODY_SYMBOLS[self]

    @property
    def is_node(self) -> bool:
        return self in (Body.MEAN_NODE, Body.TRUE_NODE)


class Element(str, Enum):
    FIRE = "fire"
    EARTH = "earth"
    AIR = "air"
    WATER = "water"


class Modality(str, Enum):
    CARDINAL = "cardinal"
    FIXED = "fixed"
    MUTABLE = "mutable"


class Sign(str, Enum):
    ARIES = "aries"
    TAURUS = "taurus"
    GEMINI = "gemini"
    CANCER = "cancer"
    LEO = "leo"
    VIRGO = "virgo"
    LIBRA = "libra"
    SCORPIO = "scorpio"
    SAGITTARIUS = "sagittarius"
    CAPRICORN = "capricorn"
    AQUARIUS = "aquarius"
    PISCES = "pisces"

    def __str__(self) -> str:
        return self.value

    @property
    def index(self) -> int:
        return _SIGN_ORDER.index(self)

    @property
    def element(self) -> Element:
        return SIGN_ELEMENTS[self]

    @property
    def modality(self) -> Modality:
        return SIGN_MODALITIES[self]

    @classmethod
    def from_index(cls, idx: int) -> "Sign":
        return _SIGN_ORDER[idx % 12]


_SIGN_ORDER: Tuple[Sign, ...] = tuple(Sign)

# ── body sets ────────────────────────────────────────────────────────────────
MAJOR_BODIES: Tuple[Body, ...] = (
    Body.SUN, Body.MOON, Body.MERCURY, Body.VENUS, Body.MARS,
    Body.JUPITER, Body.SATURN, Body.URANUS, Body.NEPTUNE, Body.PLUTO,
)
OUTER_BODIES: Tuple[Body, ...] = (Body.JUPITER, Body.SATURN, Body.URANUS, Body.NEPTUNE, Body.PLUTO)
LUMINARIES: Tuple[Body, ...] = (Body.SUN, Body.MOON)

BODY_SYMBOLS: Dict[Body, str] = {
    Body.SUN: "☉",
    Body.MOON: "☽",
    Body.MERCURY: "☿",
    Body.VENUS: "♀",
    Body.MARS: "♂",
    Body.JUPITER: "♃",
    Body.SATURN: "♄",
    Body.URANUS: "♅",
    Body.NEPTUNE: "♆",
    Body.PLUTO: "♇",
    Body.MEAN_NODE: "☊",
    Body.TRUE_NODE: "☊",
}

# Mean geocentric motion in ecliptic longitude (deg/day). Nodes regress.
MEAN_DAILY_MOTION_DEG: Dict[Body, float] = {
    Body.SUN: 0.98564736,
    Body.MOON: 13.1763966,
    Body.MERCURY: 0.98564736,   # tied to the Sun on average
    Body.VENUS: 0.98564736,
    Body.MARS: 0.52402068,
    Body.JUPITER: 0.08308529,
    Body.SATURN: 0.03344414,
    Body.URANUS: 0.01172834,
    Body.NEPTUNE: 0.00598103,
    Body.PLUTO: 0.00397,
    Body.MEAN_NODE: -0.05295377,
    Body.TRUE_NODE: -0.05295377,
}

SIGN_ELEMENTS: Dict[Sign, Element] = {
    Sign.ARIES: Element.FIRE, Sign.LEO: Element.FIRE, Sign.SAGITTARIUS: Element.FIRE,
    Sign.TAURUS: Element.EARTH, Sign.VIRGO: Element.EARTH, Sign.CAPRICORN: Element.EARTH,
    Sign.GEMINI: Element.AIR, Sign.LIBRA: Element.AIR, Sign.AQUARIUS: Element.AIR,
    Sign.CANCER: Element.WATER, Sign.SCORPIO: Element.WATER, Sign.PISCES: Element.WATER,
}

SIGN_MODALITIES: Dict[Sign, Modality] = {
    Sign.ARIES: Modality.CARDINAL, Sign.CANCER: Modality.CARDINAL,
    Sign.LIBRA: Modality.CARDINAL, Sign.CAPRICORN: Modality.CARDINAL,
    Sign.TAURUS: Modality.FIXED, Sign.LEO: Modality.FIXED,
    Sign.SCORPIO: Modality.FIXED, Sign.AQUARIUS: Modality.FIXED,
    Sign.GEMINI: Modality.MUTABLE, Sign.VIRGO: Modality.MUTABLE,
    Sign.SAGITTARIUS: Modality.MUTABLE, Sign.PISCES: Modality.MUTABLE,
}

# ── time constants ────────────────────────────────────────────────────────────
TROPICAL_YEAR_D: float = 365.242189
LUNAR_SYNODIC_D: float = 29.530588
LUNAR_SIDEREAL_D: float = 27.321582


def _check_exhaustive(enum_cls: Type[Enum], table: Mapping, name: str) -> None:
    missing = [m for m in enum_cls if m not in table]
    if missing:
        raise RuntimeError(f"{name} missing entries: {missing}")


_check_exhaustive(Body, BODY_SYMBOLS, "BODY_SYMBOLS")
_check_exhaustive(Body, MEAN_DAILY_MOTION_DEG, "MEAN_DAILY_MOTION_DEG")
_check_exhaustive(Sign, SIGN_ELEMENTS, "SIGN_ELEMENTS")
_check_exhaustive(Sign, SIGN_MODALITIES, "SIGN_MODALITIES")


_BODY_ALIASES: Dict[str, Body] = {
    "meannode": Body.MEAN_NODE,
    "mean_node": Body.MEAN_NODE,
    "north_node": Body.MEAN_NODE,
    "truenode": Body.TRUE_NODE,
    "true_node": Body.TRUE_NODE,
}


def parse_body(name: str) -> Body:
    """Resolve 'Sun', 'sun', 'meanNode', 'true_node' ... to a Body."""
    if isinstance(name, Body):
        return name
    key = str(name).strip().lower().replace(" ", "_").replace("-", "_")
    if key in _BODY_ALIASES:
        return _BODY_ALIASES[key]
    try:
        return Body(key)
    except ValueError:
        raise InvalidInputError("validation", f"unknown body '{name}'", body=str(name)) from None
