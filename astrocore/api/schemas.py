# astrocore/api/schemas.py
"""Request models for the HTTP surface (pydantic v2)."""
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from astrocore.core.aspects import parse_aspect_type
from astrocore.core.bodies import parse_body
from astrocore.core.houses import parse_house_system
from astrocore.core.timescales import parse_date, to_continuous_time


class ChartRequest(BaseModel):
    date: str
    time: str = "00:00:00"
    place_tz: str = "UTC"
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)
    house_system: Optional[str] = None
    bodies: Optional[List[str]] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        """Catch invalid dates before they cause 500 errors"""
        parse_date(v)
        return v

    @field_validator("house_system")
    @classmethod
    def validate_house_system(cls, v: Optional[str]) -> Optional[str]:
        return parse_house_system(v).value if v else v

    @field_validator("bodies")
    @classmethod
    def validate_bodies(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return [parse_body(b).value for b in v] if v else v

    def jd(self) -> float:
        return to_continuous_time(self.date, self.time, self.place_tz)


class MoonPhaseRequest(BaseModel):
    moon_longitude: Optional[float] = None
    sun_longitude: Optional[float] = None
    date: Optional[str] = None
    time: str = "00:00:00"
    place_tz: str = "UTC"

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            parse_date(v)
        return v


class TransitRequest(BaseModel):
    chart: ChartRequest
    start_date: str
    end_date: str
    aspects: Optional[List[str]] = None
    max_orb: Optional[float] = Field(None, ge=0.0, le=30.0)
    transiting: Optional[List[str]] = None
    workers: Optional[int] = Field(None, ge=1, le=32)

    @field_validator("start_date", "end_date")
    @classmethod
    def validate_dates(cls, v: str) -> str:
        parse_date(v)
        return v

    @field_validator("aspects")
    @classmethod
    def validate_aspects(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return [parse_aspect_type(a).value for a in v] if v else v

    @field_validator("transiting")
    @classmethod
    def validate_transiting(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return [parse_body(b).value for b in v] if v else v


class CalendarRequest(BaseModel):
    chart: ChartRequest
    year: int = Field(..., ge=1900, le=2100)
    month: int = Field(..., ge=1, le=12)


class SynastryRequest(BaseModel):
    first: ChartRequest
    second: ChartRequest


class SkyEventsRequest(BaseModel):
    year: int = Field(..., ge=1900, le=2100)
    month: Optional[int] = Field(None, ge=1, le=12)
    bodies: Optional[List[str]] = None

    @field_validator("bodies")
    @classmethod
    def validate_bodies(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return [parse_body(b).value for b in v] if v else v


class ReturnRequest(BaseModel):
    chart: ChartRequest
    body: str = "moon"
    now: Optional[str] = None          # ISO date; defaults to the current instant
    latitude: Optional[float] = Field(None, ge=-90.0, le=90.0)
    longitude: Optional[float] = Field(None, ge=-180.0, le=180.0)
    method: Optional[str] = None

    @field_validator("body")
    @classmethod
    def validate_body(cls, v: str) -> str:
        b = parse_body(v).value
        if b not in ("moon", "sun"):
            raise ValueError("body must be 'moon' or 'sun'")
        return b

    @field_validator("now")
    @classmethod
    def validate_now(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            parse_date(v)
        return v

    @field_validator("method")
    @classmethod
    def validate_method(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in ("linear", "secant"):
            raise ValueError("method must be 'linear' or 'secant'")
        return v


def error_details(errors: List[Dict]) -> List[Dict]:
    """JSON-safe subset of pydantic's error list."""
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in errors]
