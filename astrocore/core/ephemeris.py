# astrocore/core/ephemeris.py
# -----------------------------------------------------------------------------
# Ephemeris provider contract + Skyfield-backed implementation
#
# Highlights
# • BodyPosition: immutable row (longitude, latitude, distance, speed, retrograde)
# • EphemerisProvider protocol: position(body, jd) -> BodyPosition
# • SkyfieldEphemeris: DE421 kernel, ecliptic-of-date frame, central-difference
#   speeds, mean/true lunar node, JD range guard -> EphemerisRangeError
# • Thread-safe lazy kernel bootstrap; the provider itself holds no per-call state
# -----------------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol, runtime_checkable
import logging
import math
import os
import threading

from astrocore.core.angles import normalize, signed_delta
from astrocore.core.bodies import Body, parse_body
from astrocore.core.errors import AstroError, EphemerisRangeError
from astrocore.core.timescales import jd_tt_ut1

log = logging.getLogger(__name__)

__all__ = [
    "BodyPosition",
    "EphemerisProvider",
    "EphemerisConfig",
    "SkyfieldEphemeris",
    "positions_at",
]

# ─────────────────────────────────────────────────────────────────────────────
# Constants / environment (bounded; converted into EphemerisConfig defaults)
# ─────────────────────────────────────────────────────────────────────────────
EPHEMERIS_NAME_DEFAULT = "de421.bsp"

DE421_JD_MIN = float(os.getenv("ASTROCORE_JD_MIN", "2414992.5"))  # 1899-12-31
DE421_JD_MAX = float(os.getenv("ASTROCORE_JD_MAX", "2469807.5"))  # 2053-10-09
ENFORCE_JD_RANGE = os.getenv("ASTROCORE_ENFORCE_JD_RANGE", "1").lower() in ("1", "true", "yes", "on")

# Half-steps (days) for central-difference speeds
_SPEED_STEP_MAP = {
    Body.MOON: 0.05,     # ±1.2 h
    Body.MERCURY: 0.25,  # ±6 h
    Body.VENUS: 0.33,    # ±8 h
}
_SPEED_STEP_DEFAULT = float(os.getenv("ASTROCORE_SPEED_STEP_DEFAULT", "0.5"))  # ±12 h


# ─────────────────────────────────────────────────────────────────────────────
# Contract
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class BodyPosition:
    body: Body
    longitude: float          # deg, [0, 360)
    latitude: float = 0.0     # deg
    distance: float = 0.0     # AU (0 for mathematical points such as nodes)
    speed: float = 0.0        # deg/day in longitude

    def __post_init__(self) -> None:
        object.__setattr__(self, "body", parse_body(self.body))
        object.__setattr__(self, "longitude", normalize(self.longitude))

    @property
    def retrograde(self) -> bool:
        return self.speed < 0.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "longitude": float(self.longitude),
            "latitude": float(self.latitude),
            "distance": float(self.distance),
            "speed": float(self.speed),
            "retrograde": self.retrograde,
        }

    @classmethod
    def from_dict(cls, body: Any, d: Dict[str, Any]) -> "BodyPosition":
        return cls(
            body=parse_body(body),
            longitude=float(d["longitude"]),
            latitude=float(d.get("latitude", 0.0)),
            distance=float(d.get("distance", 0.0)),
            speed=float(d.get("speed", 0.0)),
        )


@runtime_checkable
class EphemerisProvider(Protocol):
    """Anything that can answer position(body, jd_utc). May raise EphemerisRangeError."""
    def position(self, body: Body, jd: float) -> BodyPosition: ...


def positions_at(provider: EphemerisProvider, jd: float, bodies: Iterable[Body]) -> Dict[Body, BodyPosition]:
    """Query several bodies at one instant, preserving the requested order."""
    return {parse_body(b): provider.position(parse_body(b), jd) for b in bodies}


# ─────────────────────────────────────────────────────────────────────────────
# Provider configuration
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class EphemerisConfig:
    kernel: str = field(default_factory=lambda: os.getenv("ASTROCORE_EPHEMERIS", EPHEMERIS_NAME_DEFAULT))
    data_dir: str = field(default_factory=lambda: os.getenv("ASTROCORE_EPHEMERIS_DIR", "data"))
    enforce_jd_range: bool = ENFORCE_JD_RANGE
    jd_min: float = DE421_JD_MIN
    jd_max: float = DE421_JD_MAX


# ─────────────────────────────────────────────────────────────────────────────
# Lunar nodes (geocentric, Meeus ch. 47)
# ─────────────────────────────────────────────────────────────────────────────
def _mean_node(jd_tt: float) -> float:
    T = (jd_tt - 2451545.0) / 36525.0
    omega = 125.0445479 - 1934.1362891 * T + 0.0020754 * (T ** 2) + (T ** 3) / 467441.0
    return normalize(omega)


def _true_node(jd_tt: float) -> float:
    T = (jd_tt - 2451545.0) / 36525.0
    D = math.radians(297.8501921 + 445267.1114034 * T)
    M = math.radians(357.5291092 + 35999.0502909 * T)
    Mp = math.radians(134.9633964 + 477198.8675055 * T)
    F = math.radians(93.2720950 + 483202.0175233 * T)
    corr = (
        -1.4979 * math.sin(2.0 * (D - F))
        - 0.1500 * math.sin(M)
        - 0.1226 * math.sin(2.0 * D)
        + 0.1176 * math.sin(2.0 * F)
        - 0.0801 * math.sin(2.0 * (Mp - F))
    )
    return normalize(_mean_node(jd_tt) + corr)


# ─────────────────────────────────────────────────────────────────────────────
# Skyfield provider
# ─────────────────────────────────────────────────────────────────────────────
_SKYFIELD_TARGETS: Dict[Body, str] = {
    Body.SUN: "sun",
    Body.MOON: "moon",
    Body.MERCURY: "mercury",
    Body.VENUS: "venus",
    Body.MARS: "mars",
    Body.JUPITER: "jupiter barycenter",
    Body.SATURN: "saturn barycenter",
    Body.URANUS: "uranus barycenter",
    Body.NEPTUNE: "neptune barycenter",
    Body.PLUTO: "pluto barycenter",
}


class SkyfieldEphemeris:
    """
    Geocentric apparent ecliptic-of-date positions from a JPL kernel via Skyfield.

    The kernel is loaded lazily on first use (thread-safe). Instants are Julian
    Days in UTC and are converted to TT through ERFA before hitting Skyfield.
    """

    def __init__(self, cfg: Optional[EphemerisConfig] = None):
        self.cfg = cfg or EphemerisConfig()
        self._lock = threading.Lock()
        self._ts = None
        self._kernel = None
        self._frame = None

    # ---- bootstrap -----------------------------------------------------------
    def _bootstrap(self):
        if self._kernel is not None:
            return self._ts, self._kernel, self._frame
        with self._lock:
            if self._kernel is None:
                from skyfield.api import Loader
                from skyfield.framelib import ecliptic_frame

                loader = Loader(self.cfg.data_dir)
                try:
                    kernel = loader(self.cfg.kernel)
                except Exception as e:
                    raise AstroError("kernel", f"Skyfield failed to load kernel: {self.cfg.kernel}",
                                     error=str(e)) from e
                self._ts = loader.timescale()
                self._frame = ecliptic_frame
                self._kernel = kernel
                log.info("Ephemeris kernel loaded: %s", self.cfg.kernel)
        return self._ts, self._kernel, self._frame

    # ---- validation ------------------------------------------------------------
    def _check_jd_guard(self, jd: float) -> None:
        if self.cfg.enforce_jd_range and not (self.cfg.jd_min <= float(jd) <= self.cfg.jd_max):
            raise EphemerisRangeError(
                "validation", "Julian date outside ephemeris span",
                jd=float(jd), jd_min=self.cfg.jd_min, jd_max=self.cfg.jd_max,
            )

    # ---- computations ------------------------------------------------------------
    def _lon_lat_dist(self, body: Body, jd_tt: float):
        if body is Body.MEAN_NODE:
            return _mean_node(jd_tt), 0.0, 0.0
        if body is Body.TRUE_NODE:
            return _true_node(jd_tt), 0.0, 0.0

        from skyfield.errors import EphemerisRangeError as _SkyfieldRangeError

        ts, kernel, frame = self._bootstrap()
        try:
            geo = kernel["earth"].at(ts.tt_jd(jd_tt)).observe(kernel[_SKYFIELD_TARGETS[body]]).apparent()
        except _SkyfieldRangeError as e:
            raise EphemerisRangeError("compute", str(e), jd_tt=float(jd_tt), body=body.value) from e
        lat, lon, dist = geo.frame_latlon(frame)
        return normalize(float(lon.degrees)), float(lat.degrees), float(dist.au)

    def position(self, body: Body, jd: float) -> BodyPosition:
        body = parse_body(body)
        self._check_jd_guard(jd)
        jd_tt, _jd_ut1 = jd_tt_ut1(jd)

        lon, lat, dist = self._lon_lat_dist(body, jd_tt)
        h = _SPEED_STEP_MAP.get(body, _SPEED_STEP_DEFAULT)
        lon_m, _, _ = self._lon_lat_dist(body, jd_tt - h)
        lon_p, _, _ = self._lon_lat_dist(body, jd_tt + h)
        speed = signed_delta(lon_m, lon_p) / (2.0 * h)

        return BodyPosition(body=body, longitude=lon, latitude=lat, distance=dist, speed=speed)

    def positions(self, jd: float, bodies: Iterable[Body]) -> List[BodyPosition]:
        return list(positions_at(self, jd, bodies).values())
