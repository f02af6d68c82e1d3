# astrocore/core/timescales.py
# -----------------------------------------------------------------------------
# Civil time -> continuous day number (Julian Day, UTC) and helper scales.
#
# Public API:
#   to_continuous_time(date, time_of_day="00:00:00", tz_name="UTC") -> float
#   jd_from_datetime(dt) -> float
#   datetime_from_jd(jd) -> datetime (UTC, aware)
#   jd_tt_ut1(jd_utc, dut1_seconds=0.0) -> (jd_tt, jd_ut1)
#   now_jd() -> float
#
# Guarantees:
#   • Calendar -> JD through ERFA (erfa.dtf2d, "UTC" scale).
#   • TT via erfa.utctai -> taitt; UT1 via erfa.utcut1 (DUT1 within ±0.9 s).
#   • Pure: identical inputs give identical outputs; no global state.
# -----------------------------------------------------------------------------
from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import math
import re

import erfa  # pyERFA

from astrocore.core.errors import InvalidInputError

__all__ = [
    "J2000_JD",
    "parse_date",
    "to_continuous_time",
    "jd_from_datetime",
    "datetime_from_jd",
    "jd_tt_ut1",
    "now_jd",
]

J2000_JD = 2451545.0
_J2000_DT = datetime(2000, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

_DATE_RE = re.compile(r"^\s*(\d{4})-(\d{2})-(\d{2})\s*$")
_TIME_RE = re.compile(r"^\s*(?P<h>\d{1,2}):(?P<m>\d{2})(?::(?P<s>\d{2})(?:\.(?P<f>\d+))?)?\s*$")

DateLike = Union[date, str]
TimeLike = Union[time, str]


# ───────────────────────────── Parsing helpers ─────────────────────────────

def parse_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    m = _DATE_RE.match(str(value or ""))
    if not m:
        raise InvalidInputError("validation", f"invalid date '{value}': expected YYYY-MM-DD")
    try:
        return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError as e:
        raise InvalidInputError("validation", f"invalid date '{value}'", error=str(e)) from e


def _parse_time(value: TimeLike) -> time:
    if isinstance(value, time):
        return value.replace(tzinfo=None)
    m = _TIME_RE.match(str(value or ""))
    if not m:
        raise InvalidInputError("validation", f"invalid time '{value}': expected HH:MM[:SS[.frac]]")
    hh, mm = int(m.group("h")), int(m.group("m"))
    ss = int(m.group("s") or 0)
    frac = (m.group("f") or "")[:6].ljust(6, "0")
    if not (0 <= hh <= 23 and 0 <= mm <= 59 and 0 <= ss <= 59):
        raise InvalidInputError("validation", f"time fields out of range in '{value}'")
    return time(hh, mm, ss, int(frac))


def _zone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(str(tz_name))
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidInputError("validation", f"unknown IANA time zone '{tz_name}'") from e


def _split_jd(jd: float) -> Tuple[float, float]:
    d1 = math.floor(jd)
    return float(d1), float(jd - d1)


# ───────────────────────────── Public API ─────────────────────────────

def jd_from_datetime(dt: datetime) -> float:
    """Julian Day (UTC) of an aware datetime, via erfa.dtf2d."""
    if dt.tzinfo is None:
        raise InvalidInputError("validation", "datetime must be timezone-aware")
    u = dt.astimezone(timezone.utc)
    sec = u.second + u.microsecond / 1e6
    try:
        d1, d2 = erfa.dtf2d("UTC", u.year, u.month, u.day, u.hour, u.minute, sec)
    except erfa.ErfaError as e:
        raise InvalidInputError("validation", "calendar conversion failed", error=str(e)) from e
    return math.fsum((float(d1), float(d2)))


def to_continuous_time(date_value: DateLike, time_of_day: TimeLike = "00:00:00", tz_name: str = "UTC") -> float:
    """
    Convert a civil date + time-of-day (in an IANA zone) to a Julian Day number (UTC).

    Monotonic in wall-clock time; the fractional part encodes time of day
    (JD days start at noon UTC).
    """
    d = parse_date(date_value)
    t = _parse_time(time_of_day)
    local = datetime.combine(d, t).replace(tzinfo=_zone(tz_name), fold=0)
    return jd_from_datetime(local)


def datetime_from_jd(jd: float) -> datetime:
    """UTC datetime for a Julian Day (leap seconds ignored, microsecond resolution)."""
    if not math.isfinite(jd):
        raise InvalidInputError("validation", "jd must be finite", jd=repr(jd))
    return _J2000_DT + timedelta(days=float(jd) - J2000_JD)


def jd_tt_ut1(jd_utc: float, dut1_seconds: float = 0.0) -> Tuple[float, float]:
    """(JD_TT, JD_UT1) for a UTC Julian Day. DUT1 must be within ±0.9 s."""
    if abs(dut1_seconds) > 0.9 + 1e-12:
        raise InvalidInputError("validation", "dut1_seconds out of range (|DUT1| ≤ 0.9 s)",
                                dut1=float(dut1_seconds))
    utc1, utc2 = _split_jd(jd_utc)
    tai1, tai2 = erfa.utctai(utc1, utc2)
    tt1, tt2 = erfa.taitt(tai1, tai2)
    ut11, ut12 = erfa.utcut1(utc1, utc2, float(dut1_seconds))
    return math.fsum((float(tt1), float(tt2))), math.fsum((float(ut11), float(ut12)))


def now_jd() -> float:
    return jd_from_datetime(datetime.now(timezone.utc))
