# astrocore/core/interpretation.py
"""
Interpretation lookup: key -> human-readable text.

Purely informational; nothing here feeds back into computed values.

Keys
----
sign.<sign>                         e.g. sign.capricorn
house.<n>                           e.g. house.4
aspect.<body>.<type>.<body>         e.g. aspect.moon.trine.venus
pattern.<type>                      e.g. pattern.grand-trine
phase.<phase>                       e.g. phase.full
theme.house-<n>[.<phase>]           return-chart theme (house theme + phase modifier)
synastry.<body>.<type>.<body>       cross-chart aspect, first chart's body first
synastry.theme.<level>              harmonious | mixed | challenging
synastry.strength.<name>            flow, cooperation, soul-connection, individual
synastry.challenge.<name>           friction, polarity, adjustment, effort
"""
from __future__ import annotations

from typing import Dict, Mapping, Optional, Protocol, runtime_checkable
import logging
import os

import yaml

from astrocore.core.aspects import AspectType
from astrocore.core.bodies import Body, Sign
from astrocore.core.moon import MoonPhase

log = logging.getLogger(__name__)

__all__ = [
    "InterpretationLookup",
    "StaticInterpretations",
    "sign_key",
    "house_key",
    "aspect_key",
    "pattern_key",
    "phase_key",
    "theme_key",
]


@runtime_checkable
class InterpretationLookup(Protocol):
    def describe(self, key: str) -> str: ...


# ── key builders ─────────────────────────────────────────────────────────────
def sign_key(sign: Sign) -> str:
    return f"sign.{Sign(sign).value}"

def house_key(house: int) -> str:
    return f"house.{int(house)}"

def aspect_key(a: Body, kind: AspectType, b: Body) -> str:
    return f"aspect.{Body(a).value}.{AspectType(kind).value}.{Body(b).value}"

def pattern_key(kind: str) -> str:
    return f"pattern.{getattr(kind, 'value', kind)}"

def phase_key(phase: MoonPhase) -> str:
    return f"phase.{MoonPhase(phase).value}"

def theme_key(house: int, phase: Optional[MoonPhase] = None) -> str:
    base = f"theme.house-{int(house)}"
    return base if phase is None else f"{base}.{MoonPhase(phase).value}"


# ── built-in table ───────────────────────────────────────────────────────────
HOUSE_THEMES: Dict[int, str] = {
    1: "Self-Discovery and New Beginnings",
    2: "Values, Finances, and Possessions",
    3: "Communication, Learning, and Local Community",
    4: "Home, Family, and Emotional Foundations",
    5: "Creativity, Romance, and Self-Expression",
    6: "Work, Service, and Daily Routines",
    7: "Partnerships, Relationships, and Balance",
    8: "Transformation, Intimacy, and Shared Resources",
    9: "Philosophy, Travel, and Higher Learning",
    10: "Career, Ambition, and Public Image",
    11: "Friendship, Social Networks, and Community",
    12: "Spirituality, Endings, and the Unconscious",
}

PHASE_MODIFIERS: Dict[MoonPhase, str] = {
    MoonPhase.NEW: "with Fresh Intentions",
    MoonPhase.WAXING_CRESCENT: "with Growing Energy",
    MoonPhase.FIRST_QUARTER: "with Decisive Action",
    MoonPhase.WAXING_GIBBOUS: "with Building Momentum",
    MoonPhase.FULL: "with Culmination and Clarity",
    MoonPhase.WANING_GIBBOUS: "with Gratitude and Sharing",
    MoonPhase.LAST_QUARTER: "with Reflection and Release",
    MoonPhase.WANING_CRESCENT: "with Rest and Renewal",
}

_PATTERN_TEXT: Dict[str, str] = {
    "pattern.stellium": "A concentration of planets focusing energy in one area of life.",
    "pattern.grand-trine": "A closed circuit of ease and natural talent.",
    "pattern.t-square": "Dynamic tension seeking release through the apex planet.",
    "pattern.grand-cross": "Sustained pressure from four directions demanding balance.",
    "pattern.yod": "A 'finger of fate' pointing to an adjustment at the apex.",
    "pattern.kite": "Grand-trine talent given direction by an opposition.",
}

_ASPECT_TEXT: Dict[str, str] = {
    "aspect.moon.conjunction.sun": "Your conscious and emotional nature are aligned, creating harmony between your inner and outer self.",
    "aspect.moon.opposition.sun": "Tension between your emotional needs and your conscious desires creates an opportunity for growth and integration.",
    "aspect.moon.trine.sun": "Harmonious flow between your feelings and actions creates ease in self-expression.",
    "aspect.moon.square.mercury": "Emotional communications may be challenging; practice clarity and patience.",
    "aspect.moon.trine.venus": "Your emotional nature is in harmony with your capacity for love and connection.",
}

_SYNASTRY_TEXT: Dict[str, str] = {
    "synastry.sun.conjunction.moon": "A powerful emotional and conscious connection. You understand each other deeply.",
    "synastry.sun.opposition.moon": "Tension between conscious needs and emotional desires creates growth opportunities.",
    "synastry.sun.trine.moon": "Natural harmony between feelings and actions creates ease in the relationship.",
    "synastry.venus.conjunction.mars": "Strong romantic attraction. Love and desire are aligned.",
    "synastry.venus.opposition.mars": "A passionate but potentially challenging pull between love and desire.",
    "synastry.mercury.trine.mercury": "Excellent communication. You follow each other's thinking easily.",
    "synastry.moon.sextile.moon": "Emotional compatibility with room for growth.",
    "synastry.theme.harmonious": "Highly compatible relationship with strong potential for harmony and growth",
    "synastry.theme.mixed": "Generally compatible with areas of both strength and challenge",
    "synastry.theme.challenging": "Challenging relationship requiring conscious effort and understanding",
    "synastry.strength.flow": "Natural flow and ease in multiple areas of life",
    "synastry.strength.cooperation": "Opportunities for growth and cooperation",
    "synastry.strength.soul-connection": "Deep karmic or soul connections",
    "synastry.strength.individual": "Each person brings unique qualities to the relationship",
    "synastry.challenge.friction": "Tension and friction that requires conscious navigation",
    "synastry.challenge.polarity": "Balancing opposing needs and perspectives",
    "synastry.challenge.adjustment": "Need for adjustment and adaptation",
    "synastry.challenge.effort": "Every relationship requires effort and understanding",
}

DEFAULT_TEXT = "Emotional growth and self-awareness"


def _builtin_table() -> Dict[str, str]:
    table: Dict[str, str] = {}
    for n, text in HOUSE_THEMES.items():
        table[house_key(n)] = text
        table[theme_key(n)] = text
        for phase, mod in PHASE_MODIFIERS.items():
            table[theme_key(n, phase)] = f"{text} {mod}"
    for phase, mod in PHASE_MODIFIERS.items():
        table[phase_key(phase)] = mod
    for sign in Sign:
        table[sign_key(sign)] = f"{sign.value.title()}: {sign.element.value} sign, {sign.modality.value} mode."
    table.update(_PATTERN_TEXT)
    table.update(_ASPECT_TEXT)
    table.update(_SYNASTRY_TEXT)
    return table


class StaticInterpretations:
    """
    Static table lookup, optionally overlaid by a YAML mapping of key -> text
    (path argument or $ASTROCORE_INTERPRETATIONS).
    """

    def __init__(self, overrides: Optional[Mapping[str, str]] = None, path: Optional[str] = None,
                 default: str = DEFAULT_TEXT):
        self._table = _builtin_table()
        self._default = default
        path = path or os.getenv("ASTROCORE_INTERPRETATIONS")
        if path:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ValueError(f"interpretation file {path} must contain a mapping")
            self._table.update({str(k): str(v) for k, v in data.items()})
            log.info("Loaded %d interpretation overrides from %s", len(data), path)
        if overrides:
            self._table.update({str(k): str(v) for k, v in overrides.items()})

    def __contains__(self, key: str) -> bool:
        return key in self._table

    def describe(self, key: str) -> str:
        return self._table.get(str(key), self._default)
