# astrocore/api/routes.py
"""
astrocore API routes
- Ops: /api/health, /api/house-systems
- Chart: /api/chart (positions, houses, aspects, patterns)
- Moon: /api/moon-phase
- Transits: /api/transits, /api/transits/calendar
- Returns: /api/returns (lunar / solar)
- Synastry: /api/synastry (cross aspects, scores, composite)
- Sky events: /api/events (retrogrades, seasons, eclipses, lunations)

The ephemeris provider and config live in app.extensions["astrocore"]
(see astrocore.main.create_app). Core errors bubble up to the app-level
handlers, which map them to HTTP status codes.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import BadRequest

from astrocore.api.schemas import (
    CalendarRequest,
    ChartRequest,
    MoonPhaseRequest,
    ReturnRequest,
    SkyEventsRequest,
    SynastryRequest,
    TransitRequest,
)
from astrocore.core.bodies import MAJOR_BODIES, Body
from astrocore.core.chart import Chart, compute_chart
from astrocore.core.events import RETROGRADE_BODIES, sky_events
from astrocore.core.houses import QUADRANT_SYSTEMS, HouseSystem
from astrocore.core.moon import moon_phase, moon_phase_at
from astrocore.core.returns import lunar_return, solar_return
from astrocore.core.synastry import compare_charts
from astrocore.core.timescales import to_continuous_time
from astrocore.core.transits import DEFAULT_TRANSIT_FILTER, TransitFilter, scan_transits, transit_calendar

log = logging.getLogger(__name__)
api = Blueprint("api", __name__, url_prefix="/api")


# ───────────────────────── helpers ─────────────────────────
def _ctx() -> Dict[str, Any]:
    return current_app.extensions["astrocore"]


def _body_json() -> Dict[str, Any]:
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        raise BadRequest("JSON body must be an object")
    return data


def _chart_from(req: ChartRequest) -> Chart:
    ctx = _ctx()
    cfg = ctx["config"]
    return compute_chart(
        req.jd(),
        req.latitude,
        req.longitude,
        ctx["provider"],
        house_system=req.house_system or cfg.house_system,
        bodies=req.bodies or cfg.bodies,
        fallback=cfg.house_fallback,
    )


# ───────────────────────── ops ─────────────────────────
@api.get("/health")
def health():
    return jsonify(ok=True, status="ok"), 200


@api.get("/house-systems")
def house_systems():
    return jsonify(
        ok=True,
        systems=[h.value for h in HouseSystem],
        quadrant=sorted(h.value for h in QUADRANT_SYSTEMS),
        default=_ctx()["config"].house_system,
    ), 200


# ───────────────────────── chart ─────────────────────────
@api.post("/chart")
def chart():
    raw = _body_json()
    req = ChartRequest.model_validate(raw)
    ch = _chart_from(req)
    allow_overlap = bool(raw.get("allow_overlap", False))
    return jsonify(
        ok=True,
        chart=ch.to_dict(),
        patterns=[p.as_dict() for p in ch.patterns(allow_overlap=allow_overlap)],
    ), 200


# ───────────────────────── moon ─────────────────────────
@api.post("/moon-phase")
def moon():
    req = MoonPhaseRequest.model_validate(_body_json())
    if req.moon_longitude is not None and req.sun_longitude is not None:
        info = moon_phase(req.moon_longitude, req.sun_longitude)
    elif req.date is not None:
        info = moon_phase_at(_ctx()["provider"], to_continuous_time(req.date, req.time, req.place_tz))
    else:
        raise BadRequest("Provide 'moon_longitude'+'sun_longitude' or a 'date'")
    return jsonify(ok=True, moon_phase=info.as_dict()), 200


# ───────────────────────── transits ─────────────────────────
@api.post("/transits")
def transits():
    req = TransitRequest.model_validate(_body_json())
    cfg = _ctx()["config"].transits
    natal = _chart_from(req.chart)
    significance = TransitFilter.of(
        req.aspects or cfg.aspects or DEFAULT_TRANSIT_FILTER.aspects,
        req.max_orb if req.max_orb is not None else cfg.max_orb,
    )
    result = scan_transits(
        natal,
        req.start_date,
        req.end_date,
        _ctx()["provider"],
        transiting=req.transiting or MAJOR_BODIES,
        significance=significance,
        max_days=int(cfg.max_days),
        workers=int(req.workers or cfg.workers or 1),
        timeout=cfg.timeout_s,
    )
    return jsonify(ok=True, **result.as_dict()), 200


@api.post("/transits/calendar")
def transits_calendar():
    req = CalendarRequest.model_validate(_body_json())
    natal = _chart_from(req.chart)
    days = transit_calendar(natal, req.year, req.month, _ctx()["provider"])
    return jsonify(ok=True, year=req.year, month=req.month, calendar=[d.as_dict() for d in days]), 200


# ───────────────────────── returns ─────────────────────────
@api.post("/returns")
def returns():
    req = ReturnRequest.model_validate(_body_json())
    cfg = _ctx()["config"].returns
    natal = _chart_from(req.chart)
    now = to_continuous_time(req.now, "00:00:00", "UTC") if req.now else None
    solver = lunar_return if req.body == Body.MOON.value else solar_return
    rc = solver(
        natal,
        _ctx()["provider"],
        now=now,
        latitude=req.latitude,
        longitude=req.longitude,
        tolerance_deg=float(cfg.tolerance_deg),
        method=req.method or cfg.method,
    )
    interp = _ctx()["interpretations"]
    out = rc.as_dict()
    out["theme"] = interp.describe(rc.theme_key)
    return jsonify(ok=True, **out), 200


# ───────────────────────── synastry ─────────────────────────
@api.post("/synastry")
def synastry():
    req = SynastryRequest.model_validate(_body_json())
    report = compare_charts(_chart_from(req.first), _chart_from(req.second))
    interp = _ctx()["interpretations"]
    out = report.as_dict()
    out["theme"] = interp.describe(report.theme_key)
    out["strengths"] = [interp.describe(k) for k in report.strength_keys]
    out["challenges"] = [interp.describe(k) for k in report.challenge_keys]
    return jsonify(ok=True, **out), 200


# ───────────────────────── sky events ─────────────────────────
@api.post("/events")
def events():
    req = SkyEventsRequest.model_validate(_body_json())
    result = sky_events(
        req.year,
        _ctx()["provider"],
        month=req.month,
        bodies=req.bodies or RETROGRADE_BODIES,
    )
    return jsonify(ok=True, **result.as_dict()), 200
