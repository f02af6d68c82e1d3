# astrocore/core/houses.py
"""
House cusps (HouseCalculator) and house membership (HouseAssigner)

Public API
----------
parse_house_system(name)                                   -> HouseSystem
calculate_houses(jd, latitude, longitude, system)          -> HouseResult
calculate_houses_with_fallback(..., fallback=WHOLE_SIGN)   -> HouseResult
house_of(longitude, cusps)                                 -> int (1..12)
validate_cusps(cusps)                                      -> List[float]

Fundamental angles
------------------
- Apparent sidereal time (GAST) via IAU 2006/2000A (erfa.gst06a)
- True obliquity: mean IAU 2006 (erfa.obl06) + nutation in obliquity (erfa.nut06a)
- RAMC = GAST + east longitude
- MC  = atan2(sin RAMC, cos RAMC · cos ε)
- ASC = atan2(cos RAMC, −(sin RAMC · cos ε + tan φ · sin ε))

Systems
-------
- equal / whole-sign: arithmetic from the Ascendant alone
- porphyry: quadrant trisection between ASC/MC/DSC/IC
- placidus: semi-arc time division, secant solve per cusp
- koch: oblique-ascension trisection of the MC's ascensional difference
- regiomontanus / campanus / topocentric: closed forms through a "pole"
  latitude applied to the Ascendant formula

Polar policy
------------
Placidus and Koch are undefined inside the polar circle (|φ| ≥ 90° − ε) and
raise UndefinedHouseSystemError. Every quadrant system also raises when the
MC→ASC arc leaves (0°, 180°), when its numeric solve fails, or when the
assembled cusps do not partition the circle. Falling back is the caller's
choice (see calculate_houses_with_fallback).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union
import difflib
import logging
import math
import os

import erfa  # PyERFA: IAU SOFA routines

from astrocore.core.angles import normalize, sign_of
from astrocore.core.bodies import Sign
from astrocore.core.errors import (
    InvalidInputError,
    UndefinedHouseSystemError,
    UnknownHouseSystemError,
)
from astrocore.core.timescales import jd_tt_ut1
from astrocore.utils.metrics import HOUSE_FALLBACKS

log = logging.getLogger(__name__)

__all__ = [
    "HouseSystem",
    "HouseCusp",
    "HouseResult",
    "QUADRANT_SYSTEMS",
    "parse_house_system",
    "calculate_houses",
    "calculate_houses_with_fallback",
    "house_of",
    "validate_cusps",
]

# --------------------------- numeric policy ---------------------------

DEG_R = math.pi / 180.0
EPS_NUM = 1e-12

# Secant solver knobs (env-tunable for ops / testing)
PLACIDUS_MAX_ITERS = int(os.getenv("PLACIDUS_MAX_ITERS", "50"))
PLACIDUS_TOL_F = float(os.getenv("PLACIDUS_TOL_F", "1e-10"))        # function residual (deg)
PLACIDUS_TOL_STEP = float(os.getenv("PLACIDUS_TOL_STEP", "1e-9"))   # last step (deg)


class HouseSystem(str, Enum):
    EQUAL = "equal"
    WHOLE_SIGN = "whole-sign"
    PORPHYRY = "porphyry"
    PLACIDUS = "placidus"
    KOCH = "koch"
    REGIOMONTANUS = "regiomontanus"
    CAMPANUS = "campanus"
    TOPOCENTRIC = "topocentric"

    def __str__(self) -> str:
        return self.value


QUADRANT_SYSTEMS = frozenset({
    HouseSystem.PORPHYRY, HouseSystem.PLACIDUS, HouseSystem.KOCH,
    HouseSystem.REGIOMONTANUS, HouseSystem.CAMPANUS, HouseSystem.TOPOCENTRIC,
})
_POLAR_CIRCLE_SYSTEMS = frozenset({HouseSystem.PLACIDUS, HouseSystem.KOCH})


# ──────────────────────────────────────────────────────────────────────────────
# Selector normalization
# ──────────────────────────────────────────────────────────────────────────────
def _slug(s: str) -> str:
    return "".join(ch for ch in str(s).strip().lower() if ch.isalnum())


_CANON_FROM_SLUG: Dict[str, HouseSystem] = {
    # canonical slugs
    "equal": HouseSystem.EQUAL,
    "wholesign": HouseSystem.WHOLE_SIGN,
    "porphyry": HouseSystem.PORPHYRY,
    "placidus": HouseSystem.PLACIDUS,
    "koch": HouseSystem.KOCH,
    "regiomontanus": HouseSystem.REGIOMONTANUS,
    "campanus": HouseSystem.CAMPANUS,
    "topocentric": HouseSystem.TOPOCENTRIC,
    # aliases
    "equalhouse": HouseSystem.EQUAL,
    "whole": HouseSystem.WHOLE_SIGN,
    "ws": HouseSystem.WHOLE_SIGN,
    "porph": HouseSystem.PORPHYRY,
    "plac": HouseSystem.PLACIDUS,
    "regio": HouseSystem.REGIOMONTANUS,
    "polichpage": HouseSystem.TOPOCENTRIC,
    # single-letter codes
    "a": HouseSystem.EQUAL,
    "e": HouseSystem.EQUAL,
    "w": HouseSystem.WHOLE_SIGN,
    "o": HouseSystem.PORPHYRY,
    "p": HouseSystem.PLACIDUS,
    "k": HouseSystem.KOCH,
    "r": HouseSystem.REGIOMONTANUS,
    "c": HouseSystem.CAMPANUS,
    "t": HouseSystem.TOPOCENTRIC,
}


def parse_house_system(name: Union[str, HouseSystem]) -> HouseSystem:
    """Map user input to a HouseSystem; unknown selectors fail fast with suggestions."""
    if isinstance(name, HouseSystem):
        return name
    slug = _slug(name or "")
    hit = _CANON_FROM_SLUG.get(slug)
    if hit is not None:
        return hit
    choices = sorted({h.value for h in HouseSystem})
    suggestions = difflib.get_close_matches(str(name).strip().lower(), choices, n=3, cutoff=0.6)
    msg = f"Unknown house system '{name}'."
    if suggestions:
        msg += f" Did you mean: {', '.join(suggestions)}?"
    raise UnknownHouseSystemError("config", msg, requested=str(name), supported=choices)


# ──────────────────────────────────────────────────────────────────────────────
# Result types
# ──────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class HouseCusp:
    house: int          # 1..12
    longitude: float    # [0, 360)

    @property
    def sign(self) -> Sign:
        return sign_of(self.longitude).sign

    @property
    def offset(self) -> float:
        return sign_of(self.longitude).offset

    def as_dict(self) -> Dict[str, Any]:
        return {"house": self.house, "longitude": float(self.longitude),
                "sign": self.sign.value, "offset": float(self.offset)}


@dataclass(frozen=True)
class HouseResult:
    system: HouseSystem
    cusps: Tuple[HouseCusp, ...]
    ascendant: float
    midheaven: float
    latitude: float
    longitude: float
    fallback_from: Optional[HouseSystem] = None
    warnings: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def cusp_longitudes(self) -> List[float]:
        return [c.longitude for c in self.cusps]

    def house_of(self, longitude: float) -> int:
        return house_of(longitude, self.cusp_longitudes)

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "system": self.system.value,
            "ascendant": float(self.ascendant),
            "midheaven": float(self.midheaven),
            "latitude": float(self.latitude),
            "longitude": float(self.longitude),
            "cusps": [c.as_dict() for c in self.cusps],
        }
        if self.fallback_from is not None:
            out["fallback_from"] = self.fallback_from.value
        if self.warnings:
            out["warnings"] = list(self.warnings)
        return out

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "HouseResult":
        cusps = sorted(d["cusps"], key=lambda c: int(c["house"]))
        fb = d.get("fallback_from")
        return cls(
            system=parse_house_system(d["system"]),
            cusps=tuple(HouseCusp(int(c["house"]), float(c["longitude"])) for c in cusps),
            ascendant=float(d["ascendant"]),
            midheaven=float(d["midheaven"]),
            latitude=float(d.get("latitude", 0.0)),
            longitude=float(d.get("longitude", 0.0)),
            fallback_from=parse_house_system(fb) if fb else None,
            warnings=tuple(d.get("warnings", ())),
        )


# --------------------------- angle helpers ---------------------------

def _wrap180(x: float) -> float:
    d = normalize(x)
    return d - 360.0 if d > 180.0 else d

def _atan2d(y: float, x: float) -> float:
    if x == 0.0 and y == 0.0:
        raise ValueError("atan2(0,0) undefined in coordinate transformation")
    return normalize(math.degrees(math.atan2(y, x)))

def _sind(a: float) -> float: return math.sin(a * DEG_R)
def _cosd(a: float) -> float: return math.cos(a * DEG_R)
def _tand(a: float) -> float: return math.tan(a * DEG_R)

def _asin_strict_deg(x: float, ctx: str) -> float:
    if x < -1.0 - EPS_NUM or x > 1.0 + EPS_NUM:
        raise ValueError(f"domain error asin({x:.16e}) in {ctx}")
    return math.degrees(math.asin(max(-1.0, min(1.0, x))))

def _acos_strict_deg(x: float, ctx: str) -> float:
    if x < -1.0 - EPS_NUM or x > 1.0 + EPS_NUM:
        raise ValueError(f"domain error acos({x:.16e}) in {ctx}")
    return math.degrees(math.acos(max(-1.0, min(1.0, x))))

def _split_jd(jd: float) -> Tuple[float, float]:
    d = math.floor(jd)
    return d, jd - d


# --------------------------- ERFA / fundamental angles ---------------------------

def _gast_deg(jd_ut1: float, jd_tt: float) -> float:
    d1u, d2u = _split_jd(jd_ut1)
    d1t, d2t = _split_jd(jd_tt)
    return normalize(math.degrees(erfa.gst06a(d1u, d2u, d1t, d2t)))

def _true_obliquity_deg(jd_tt: float) -> float:
    d1, d2 = _split_jd(jd_tt)
    eps0 = erfa.obl06(d1, d2)
    _dpsi, deps = erfa.nut06a(d1, d2)
    return math.degrees(eps0 + deps)

def _mc_longitude_deg(ramc: float, eps: float) -> float:
    return _atan2d(_sind(ramc), _cosd(ramc) * _cosd(eps))

def _asc_longitude_deg(phi: float, ramc: float, eps: float) -> float:
    # eastern intersection of ecliptic and the horizon of pole height φ
    return _atan2d(_cosd(ramc), -((_sind(ramc) * _cosd(eps)) + (_tand(phi) * _sind(eps))))

def _ra_of_lambda_deg(lam: float, eps: float) -> float:
    return _atan2d(_sind(lam) * _cosd(eps), _cosd(lam))

def _decl_of_lambda_deg(lam: float, eps: float) -> float:
    return _asin_strict_deg(_sind(eps) * _sind(lam), "decl(lambda)")

def _sda_deg(dec: float, phi: float) -> float:
    # diurnal semi-arc: SDA = acos(−tan φ · tan δ)
    return _acos_strict_deg(-_tand(phi) * _tand(dec), "sda")


# --------------------------- cusp engines ---------------------------

def _blank() -> List[Optional[float]]:
    return [None] * 12

def _fill_opposites(cusps: List[Optional[float]]) -> List[float]:
    """Fill opposing cusps by exact 180° where only one side was computed."""
    for a in range(6):
        b = a + 6
        if cusps[a] is not None and cusps[b] is None:
            cusps[b] = normalize(cusps[a] + 180.0)
        elif cusps[b] is not None and cusps[a] is None:
            cusps[a] = normalize(cusps[b] + 180.0)
    return [normalize(c) for c in cusps]  # type: ignore[arg-type]

def _equal(asc: float) -> List[float]:
    return [normalize(asc + 30.0 * i) for i in range(12)]

def _whole(asc: float) -> List[float]:
    first = math.floor(normalize(asc) / 30.0) * 30.0
    return [normalize(first + 30.0 * i) for i in range(12)]

def _porphyry(asc: float, mc: float) -> List[float]:
    cusps = _blank()
    A = cusps[0] = normalize(asc)
    M = cusps[9] = normalize(mc)
    s = normalize(A - M)  # MC → ASC
    cusps[10] = normalize(M + s / 3.0)
    cusps[11] = normalize(M + 2.0 * s / 3.0)
    s = normalize((M + 180.0) - A)  # ASC → IC
    cusps[1] = normalize(A + s / 3.0)
    cusps[2] = normalize(A + 2.0 * s / 3.0)
    return _fill_opposites(cusps)

def _pole_cusps(phi: float, ramc: float, eps: float, asc: float, mc: float,
                pole_for: Callable[[float], float], oa_offset_for: Callable[[float], float]) -> List[float]:
    """
    Shared closed form: cusp = ASC formula evaluated at a pole latitude and a
    shifted RAMC. H ∈ {30, 60, 120, 150} indexes houses 11, 12, 2, 3.
    """
    cusps = _blank()
    cusps[0], cusps[9] = asc, mc
    for idx, H in ((10, 30.0), (11, 60.0), (1, 120.0), (2, 150.0)):
        cusps[idx] = _asc_longitude_deg(pole_for(H), normalize(ramc + oa_offset_for(H) - 90.0), eps)
    return _fill_opposites(cusps)

def _regiomontanus(phi: float, ramc: float, eps: float, asc: float, mc: float) -> List[float]:
    # equator divided in 30° steps; tan(pole) = tan φ · sin H
    return _pole_cusps(
        phi, ramc, eps, asc, mc,
        pole_for=lambda H: math.degrees(math.atan(_tand(phi) * _sind(H))),
        oa_offset_for=lambda H: H,
    )

def _campanus(phi: float, ramc: float, eps: float, asc: float, mc: float) -> List[float]:
    # prime vertical divided in 30° steps; sin(pole) = sin φ · sin H,
    # equator crossing at meridian distance atan2(cos φ · sin H, cos H)
    return _pole_cusps(
        phi, ramc, eps, asc, mc,
        pole_for=lambda H: _asin_strict_deg(_sind(phi) * _sind(H), "campanus:pole"),
        oa_offset_for=lambda H: math.degrees(math.atan2(_cosd(phi) * _sind(H), _cosd(H))),
    )

def _topocentric(phi: float, ramc: float, eps: float, asc: float, mc: float) -> List[float]:
    # Polich–Page: tan(pole) = tan φ · k/3 with k = 1 (11, 3) or 2 (12, 2)
    thirds = {30.0: 1.0, 60.0: 2.0, 120.0: 2.0, 150.0: 1.0}
    return _pole_cusps(
        phi, ramc, eps, asc, mc,
        pole_for=lambda H: math.degrees(math.atan(_tand(phi) * thirds[H] / 3.0)),
        oa_offset_for=lambda H: H,
    )

def _koch(phi: float, eps: float, ramc: float, mc: float) -> List[float]:
    D = _asin_strict_deg(_sind(mc) * _sind(eps), "koch:decl_mc")
    J = _asin_strict_deg(_tand(D) * _tand(phi), "koch:asc_diff")
    OAMC = normalize(ramc - J)
    DX = normalize((ramc + 90.0) - OAMC) / 3.0
    H11 = normalize(OAMC + DX - 90.0)
    H12 = normalize(H11 + DX)
    H1 = normalize(H12 + DX)
    H2 = normalize(H1 + DX)
    H3 = normalize(H2 + DX)

    cusps = _blank()
    cusps[9] = mc
    cusps[10] = _asc_longitude_deg(phi, H11, eps)
    cusps[11] = _asc_longitude_deg(phi, H12, eps)
    cusps[0] = _asc_longitude_deg(phi, H1, eps)
    cusps[1] = _asc_longitude_deg(phi, H2, eps)
    cusps[2] = _asc_longitude_deg(phi, H3, eps)
    return _fill_opposites(cusps)


# --------------------------- Placidus numeric solver ---------------------------

def _secant_solve(f: Callable[[float], float], seeds: List[float], label: str) -> float:
    """Secant iteration on the circle with a multi-seed strategy."""
    for seed in seeds:
        try:
            x0 = normalize(seed)
            x1 = normalize(seed + 1.0)
            f0, f1 = f(x0), f(x1)
            for _ in range(PLACIDUS_MAX_ITERS):
                dx = _wrap180(x1 - x0)
                denom = f1 - f0
                if abs(denom) < 1e-15 or dx == 0.0:
                    break
                step = -f1 * dx / denom
                x2 = normalize(x1 + step)
                f2 = f(x2)
                if abs(f2) < PLACIDUS_TOL_F or abs(step) < PLACIDUS_TOL_STEP:
                    return x2
                x0, f0, x1, f1 = x1, f1, x2, f2
        except ValueError:
            log.debug("placidus %s: seed %.6f hit a domain error", label, seed)
            continue
    raise ValueError(f"solver failed for {label} with all seed strategies")

def _placidus(phi: float, eps: float, ramc: float, asc: float, mc: float) -> List[float]:
    # RA(cusp) − RAMC as a function of that cusp's own diurnal semi-arc
    targets: Dict[int, Callable[[float], float]] = {
        10: lambda sda: sda / 3.0,                  # 11th
        11: lambda sda: 2.0 * sda / 3.0,            # 12th
        1: lambda sda: 60.0 + 2.0 * sda / 3.0,      # 2nd
        2: lambda sda: 120.0 + sda / 3.0,           # 3rd
    }
    por = _porphyry(asc, mc)
    eq = _equal(asc)

    cusps = _blank()
    cusps[0], cusps[9] = asc, mc
    for idx, target in targets.items():
        def f(lam: float, target=target) -> float:
            ra = _ra_of_lambda_deg(lam, eps)
            dec = _decl_of_lambda_deg(lam, eps)
            return _wrap180(ra - ramc - target(_sda_deg(dec, phi)))
        seeds = [por[idx], eq[idx], normalize(por[idx] + 5.0), normalize(por[idx] - 5.0)]
        cusps[idx] = _secant_solve(f, seeds, f"C{idx + 1}")
    return _fill_opposites(cusps)


# ──────────────────────────────────────────────────────────────────────────────
# HouseAssigner
# ──────────────────────────────────────────────────────────────────────────────
CuspsLike = Sequence[Union[float, HouseCusp]]

def validate_cusps(cusps: CuspsLike) -> List[float]:
    """Return 12 normalized cusp longitudes; raise unless they partition the circle in order."""
    if len(cusps) != 12:
        raise InvalidInputError("validation", "exactly 12 cusps are required", count=len(cusps))
    lons = [normalize(c.longitude if isinstance(c, HouseCusp) else c) for c in cusps]
    spans = [normalize(lons[(i + 1) % 12] - lons[i]) for i in range(12)]
    if any(s <= 0.0 for s in spans) or abs(math.fsum(spans) - 360.0) > 1e-6:
        raise InvalidInputError("validation", "cusps must be strictly increasing in circular order",
                                cusps=lons)
    return lons

def house_of(longitude: float, cusps: CuspsLike) -> int:
    """House number (1..12) containing longitude; cusp i belongs to house i."""
    lon = normalize(longitude)
    c = validate_cusps(cusps)
    for i in range(12):
        lo, hi = c[i], c[(i + 1) % 12]
        if lo < hi:
            if lo <= lon < hi:
                return i + 1
        elif lon >= lo or lon < hi:  # straddles 0°
            return i + 1
    # unreachable for a validated cusp set
    raise InvalidInputError("validation", "longitude matched no house", longitude=lon, cusps=c)


# ──────────────────────────────────────────────────────────────────────────────
# HouseCalculator
# ──────────────────────────────────────────────────────────────────────────────
def _validate_location(latitude: float, longitude: float) -> Tuple[float, float]:
    try:
        lat, lon = float(latitude), float(longitude)
    except (TypeError, ValueError) as e:
        raise InvalidInputError("validation", "latitude/longitude must be numbers") from e
    if not (math.isfinite(lat) and -90.0 <= lat <= 90.0):
        raise InvalidInputError("validation", "latitude must be within [-90, 90]", latitude=latitude)
    if not (math.isfinite(lon) and -180.0 <= lon <= 180.0):
        raise InvalidInputError("validation", "longitude must be within [-180, 180]", longitude=longitude)
    return lat, lon

def _undefined(system: HouseSystem, lat: float, reason: str, **ctx: Any) -> UndefinedHouseSystemError:
    return UndefinedHouseSystemError(
        "houses", f"{system.value} houses are undefined at latitude {lat:.4f}: {reason}",
        system=system.value, latitude=lat, **ctx,
    )

def calculate_houses(
    jd: float,
    latitude: float,
    longitude: float,
    system: Union[str, HouseSystem] = HouseSystem.PLACIDUS,
    *,
    dut1_seconds: float = 0.0,
) -> HouseResult:
    """
    Cusps, Ascendant and Midheaven for a UTC Julian Day and a geographic location
    (latitude north-positive, longitude east-positive).
    """
    hs = parse_house_system(system)
    lat, lon = _validate_location(latitude, longitude)

    jd_tt, jd_ut1 = jd_tt_ut1(float(jd), dut1_seconds)
    eps = _true_obliquity_deg(jd_tt)
    ramc = normalize(_gast_deg(jd_ut1, jd_tt) + lon)
    mc = _mc_longitude_deg(ramc, eps)
    asc = _asc_longitude_deg(lat, ramc, eps)

    if hs in QUADRANT_SYSTEMS:
        if hs in _POLAR_CIRCLE_SYSTEMS and abs(lat) >= 90.0 - eps:
            raise _undefined(hs, lat, "inside the polar circle", obliquity=eps)
        arc = normalize(asc - mc)
        if not (0.0 < arc < 180.0):
            raise _undefined(hs, lat, "ascendant and midheaven out of quadrant order",
                             ascendant=asc, midheaven=mc)

    try:
        if hs is HouseSystem.EQUAL:
            raw = _equal(asc)
        elif hs is HouseSystem.WHOLE_SIGN:
            raw = _whole(asc)
        elif hs is HouseSystem.PORPHYRY:
            raw = _porphyry(asc, mc)
        elif hs is HouseSystem.PLACIDUS:
            raw = _placidus(lat, eps, ramc, asc, mc)
        elif hs is HouseSystem.KOCH:
            raw = _koch(lat, eps, ramc, mc)
        elif hs is HouseSystem.REGIOMONTANUS:
            raw = _regiomontanus(lat, ramc, eps, asc, mc)
        elif hs is HouseSystem.CAMPANUS:
            raw = _campanus(lat, ramc, eps, asc, mc)
        else:
            raw = _topocentric(lat, ramc, eps, asc, mc)
    except ValueError as e:
        raise _undefined(hs, lat, str(e)) from e

    try:
        cusps = validate_cusps(raw)
    except InvalidInputError as e:
        raise _undefined(hs, lat, "cusps do not partition the circle", cusps=raw) from e

    log.debug("houses %s lat=%.4f lon=%.4f asc=%.6f mc=%.6f", hs.value, lat, lon, asc, mc)
    return HouseResult(
        system=hs,
        cusps=tuple(HouseCusp(i + 1, c) for i, c in enumerate(cusps)),
        ascendant=asc,
        midheaven=mc,
        latitude=lat,
        longitude=lon,
    )

def calculate_houses_with_fallback(
    jd: float,
    latitude: float,
    longitude: float,
    system: Union[str, HouseSystem] = HouseSystem.PLACIDUS,
    *,
    fallback: Union[str, HouseSystem] = HouseSystem.WHOLE_SIGN,
    dut1_seconds: float = 0.0,
) -> HouseResult:
    """calculate_houses, retrying with an arithmetic system when the requested one is undefined."""
    hs = parse_house_system(system)
    fb = parse_house_system(fallback)
    try:
        return calculate_houses(jd, latitude, longitude, hs, dut1_seconds=dut1_seconds)
    except UndefinedHouseSystemError as e:
        if fb is hs:
            raise
        log.warning("House system %s undefined (%s); falling back to %s", hs.value, e.message, fb.value)
        HOUSE_FALLBACKS.labels(requested=hs.value, fallback=fb.value).inc()
        res = calculate_houses(jd, latitude, longitude, fb, dut1_seconds=dut1_seconds)
        return HouseResult(
            system=res.system,
            cusps=res.cusps,
            ascendant=res.ascendant,
            midheaven=res.midheaven,
            latitude=res.latitude,
            longitude=res.longitude,
            fallback_from=hs,
            warnings=(f"{hs.value}_undefined_fallback_{fb.value}",),
        )
