# astrocore/core/moon.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict
import math

from astrocore.core.angles import normalize
from astrocore.core.bodies import LUNAR_SYNODIC_D, Body

__all__ = ["MoonPhase", "MoonPhaseInfo", "moon_phase", "moon_phase_at", "next_phase_jd", "PHASE_START_DEG"]


class MoonPhase(str, Enum):
    NEW = "new"
    WAXING_CRESCENT = "waxing-crescent"
    FIRST_QUARTER = "first-quarter"
    WAXING_GIBBOUS = "waxing-gibbous"
    FULL = "full"
    WANING_GIBBOUS = "waning-gibbous"
    LAST_QUARTER = "last-quarter"
    WANING_CRESCENT = "waning-crescent"

    def __str__(self) -> str:
        return self.value


_PHASES = tuple(MoonPhase)
# Moon−Sun elongation at which each 45° bucket starts
PHASE_START_DEG: Dict[MoonPhase, float] = {p: 45.0 * i for i, p in enumerate(_PHASES)}


@dataclass(frozen=True)
class MoonPhaseInfo:
    phase: MoonPhase
    elongation: float     # normalize(moon − sun), [0, 360)
    illumination: float   # [0, 1]
    lunar_day: float      # [1, 30.53)

    @property
    def waxing(self) -> bool:
        return self.elongation < 180.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "elongation": self.elongation,
            "illumination": self.illumination,
            "lunar_day": self.lunar_day,
            "waxing": self.waxing,
        }


def moon_phase(moon_longitude: float, sun_longitude: float) -> MoonPhaseInfo:
    """Classify the Moon−Sun elongation into one of 8 phases of 45° each."""
    diff = normalize(moon_longitude - sun_longitude)
    idx = min(int(diff // 45.0), 7)
    # illuminated fraction of the disc: 0 at new, 1 at full, continuous everywhere
    illum = (1.0 - math.cos(math.radians(diff))) / 2.0
    return MoonPhaseInfo(
        phase=_PHASES[idx],
        elongation=diff,
        illumination=min(1.0, max(0.0, illum)),
        lunar_day=1.0 + diff / 360.0 * LUNAR_SYNODIC_D,
    )


def moon_phase_at(provider, jd: float) -> MoonPhaseInfo:
    moon = provider.position(Body.MOON, jd)
    sun = provider.position(Body.SUN, jd)
    return moon_phase(moon.longitude, sun.longitude)


def next_phase_jd(jd: float, elongation: float, target: float) -> float:
    """
    Linear estimate of the next instant (strictly after jd) at which the
    elongation reaches `target`, assuming mean synodic motion.
    """
    gap = normalize(target - elongation)
    if gap == 0.0:
        gap = 360.0
    return float(jd) + gap / 360.0 * LUNAR_SYNODIC_D
