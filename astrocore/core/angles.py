# astrocore/core/angles.py
"""
Angle normalization and zodiac mapping.

Public API
----------
normalize(angle)            -> float in [0, 360)
signed_delta(a, b)          -> float in (-180, 180]   (b relative to a)
separation(a, b)            -> float in [0, 180]      (smaller arc)
sign_of(longitude)          -> SignPosition(sign, offset)

Notes
-----
- Every function is pure and total over finite floats. Non-finite or
  non-numeric input is a caller bug and raises InvalidInputError.
- Sign boundaries are fixed 30° multiples starting at 0° Aries.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple
import math

from astrocore.core.bodies import Sign
from astrocore.core.errors import InvalidInputError

__all__ = [
    "normalize",
    "signed_delta",
    "separation",
    "SignPosition",
    "sign_of",
]


# ─────────────────────────────────────────────────────────────────────────────
# Normalization
# ─────────────────────────────────────────────────────────────────────────────

def _as_finite(x: Any, what: str = "angle") -> float:
    try:
        v = float(x)
    except (TypeError, ValueError) as e:
        raise InvalidInputError("validation", f"{what} must be a real number", value=repr(x)) from e
    if not math.isfinite(v):
        raise InvalidInputError("validation", f"{what} must be finite", value=repr(x))
    return v


def normalize(angle: float) -> float:
    """Canonicalize any finite angle into [0, 360)."""
    r = math.fmod(_as_finite(angle), 360.0)
    if r < 0.0:
        r += 360.0
    # fmod of a tiny negative lands on 360.0 after the shift
    if r >= 360.0:
        r = 0.0
    return r + 0.0  # folds -0.0


def signed_delta(a: float, b: float) -> float:
    """Shortest signed arc from a to b, in (-180, 180]."""
    d = normalize(_as_finite(b) - _as_finite(a))
    return d - 360.0 if d > 180.0 else d


def separation(a: float, b: float) -> float:
    """Smallest separation on the circle in [0, 180]; exactly symmetric in a and b."""
    s = abs(normalize(a) - normalize(b))
    return 360.0 - s if s > 180.0 else s


# ─────────────────────────────────────────────────────────────────────────────
# Zodiac mapping
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SignPosition:
    sign: Sign
    offset: float  # degrees into the sign, [0, 30)

    @property
    def index(self) -> int:
        return self.sign.index

    @property
    def dms(self) -> Tuple[int, int, float]:
        """(degree, minute, second) of the in-sign offset."""
        deg = int(math.floor(self.offset))
        rem = (self.offset - deg) * 60.0
        minute = int(math.floor(rem))
        second = (rem - minute) * 60.0
        return deg, minute, second

    def as_dict(self) -> Dict[str, Any]:
        d, m, s = self.dms
        return {"sign": self.sign.value, "index": self.index, "offset": self.offset,
                "degree": d, "minute": m, "second": s}


def sign_of(longitude: float) -> SignPosition:
    lon = normalize(longitude)
    idx = int(math.floor(lon / 30.0))
    if idx > 11:  # lon within an ulp of 360
        idx = 11
    offset = lon - 30.0 * idx
    if offset < 0.0:
        offset = 0.0
    return SignPosition(sign=Sign.from_index(idx), offset=offset)
