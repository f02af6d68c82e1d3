# tests/conftest.py
"""
Pytest configuration for the astrocore suite.

- Registers Hypothesis profiles for local dev and CI.
- Freezes the process TZ to UTC (we always pass IANA zones explicitly).
- Provides a deterministic linear-motion ephemeris provider so nothing here
  needs a JPL kernel on disk.
- Adds a 'slow' marker.
"""
from __future__ import annotations

import os
import threading
from typing import Callable, Dict, Optional

import pytest
from hypothesis import settings, HealthCheck

from astrocore.core.angles import normalize
from astrocore.core.bodies import Body
from astrocore.core.ephemeris import BodyPosition
from astrocore.core.errors import EphemerisRangeError
from astrocore.core.timescales import J2000_JD


# ──────────────────────────────────────────────────────────────────────────────
# Hypothesis profiles
# ──────────────────────────────────────────────────────────────────────────────
settings.register_profile(
    "dev",
    settings(
        deadline=None,           # avoid flaky timeouts on slower runners
        max_examples=60,         # fast local runs
        suppress_health_check=[HealthCheck.too_slow],
    ),
)
settings.register_profile(
    "ci",
    settings(
        deadline=None,
        max_examples=120,        # a bit more coverage in CI
        suppress_health_check=[HealthCheck.too_slow],
    ),
)

_profile = (
    "ci"
    if (os.getenv("CI") or os.getenv("GITHUB_ACTIONS"))
    else os.getenv("HYPOTHESIS_PROFILE", "dev")
)
settings.load_profile(_profile)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "slow: mark test as slow")


def pytest_report_header(config: pytest.Config) -> str:
    return f"Hypothesis profile: '{_profile}'"


# ──────────────────────────────────────────────────────────────────────────────
# Fake ephemeris
# ──────────────────────────────────────────────────────────────────────────────
BASE_LON: Dict[Body, float] = {  # arbitrary deterministic longitudes at J2000
    Body.SUN: 10.0, Body.MOON: 20.0, Body.MERCURY: 30.0, Body.VENUS: 40.0, Body.MARS: 50.0,
    Body.JUPITER: 60.0, Body.SATURN: 70.0, Body.URANUS: 80.0, Body.NEPTUNE: 90.0, Body.PLUTO: 100.0,
    Body.MEAN_NODE: 125.0, Body.TRUE_NODE: 125.0,
}
BASE_SPD: Dict[Body, float] = {  # constant "speeds" (deg/day)
    Body.SUN: 0.9856, Body.MOON: 13.1764, Body.MERCURY: 1.2, Body.VENUS: 1.0, Body.MARS: 0.5,
    Body.JUPITER: 0.08, Body.SATURN: 0.03, Body.URANUS: 0.01, Body.NEPTUNE: 0.006, Body.PLUTO: 0.004,
    Body.MEAN_NODE: -0.053, Body.TRUE_NODE: -0.053,
}


class LinearEphemeris:
    """
    lon(body, jd) = base + speed · (jd − J2000), exactly.

    `jd_min`/`jd_max` emulate a kernel span; `on_call` runs before every
    query (used to trigger cancellation mid-scan).
    """

    def __init__(
        self,
        base: Optional[Dict[Body, float]] = None,
        speed: Optional[Dict[Body, float]] = None,
        jd_min: float = 2_400_000.5,
        jd_max: float = 2_500_000.5,
        on_call: Optional[Callable[[Body, float], None]] = None,
    ):
        self.base = {**BASE_LON, **(base or {})}
        self.speed = {**BASE_SPD, **(speed or {})}
        self.jd_min, self.jd_max = jd_min, jd_max
        self.on_call = on_call
        self.calls = 0
        self._lock = threading.Lock()

    def position(self, body: Body, jd: float) -> BodyPosition:
        with self._lock:
            self.calls += 1
        if self.on_call is not None:
            self.on_call(body, jd)
        if not (self.jd_min <= jd <= self.jd_max):
            raise EphemerisRangeError("validation", "Julian date outside ephemeris span", jd=jd)
        body = Body(body)
        spd = self.speed[body]
        return BodyPosition(
            body=body,
            longitude=normalize(self.base[body] + spd * (jd - J2000_JD)),
            latitude=0.0,
            distance=1.0,
            speed=spd,
        )


@pytest.fixture
def provider() -> LinearEphemeris:
    return LinearEphemeris()


@pytest.fixture
def linear_provider_factory():
    return LinearEphemeris


# ──────────────────────────────────────────────────────────────────────────────
# Global fixtures
# ──────────────────────────────────────────────────────────────────────────────

@pytest.fixture(scope="session", autouse=True)
def freeze_tz_env():
    """Ensure the process TZ is UTC so anything that consults TZ is deterministic."""
    prev = os.environ.get("TZ")
    os.environ["TZ"] = "UTC"
    try:
        yield
    finally:
        if prev is None:
            os.environ.pop("TZ", None)
        else:
            os.environ["TZ"] = prev


@pytest.fixture(scope="session")
def ensure_erfa():
    """Fail early if pyERFA is missing key functions."""
    import erfa
    for fn in ("dtf2d", "utctai", "taitt", "utcut1", "gst06a", "obl06", "nut06a"):
        assert hasattr(erfa, fn), f"ERFA.{fn} not available"
    return erfa


@pytest.fixture(scope="session")
def ensure_tzdata():
    """Sanity-check that core IANA zones resolve on this machine."""
    from zoneinfo import ZoneInfo
    for name in ("UTC", "Asia/Kolkata", "America/New_York"):
        ZoneInfo(name)
