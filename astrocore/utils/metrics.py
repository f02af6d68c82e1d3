# astrocore/utils/metrics.py
"""Prometheus metrics shared by the core and the HTTP layer (keep names stable)."""
from __future__ import annotations

from typing import Final

from prometheus_client import Counter, Gauge, Histogram

MET_REQUESTS: Final = Counter("astrocore_api_requests_total", "API requests", ["route"])
REQ_LATENCY: Final = Histogram("astrocore_request_seconds", "API request latency", ["route"])
HOUSE_FALLBACKS: Final = Counter(
    "astrocore_house_fallback_total", "House-system fallbacks (undefined quadrant systems)",
    ["requested", "fallback"],
)
TRANSIT_SCANS: Final = Counter(
    "astrocore_transit_scans_total", "Transit scans by outcome", ["outcome"],
)
TRANSIT_DAYS: Final = Counter("astrocore_transit_days_scanned_total", "Dates evaluated by transit scans")
EPHEMERIS_ERRORS: Final = Counter(
    "astrocore_ephemeris_errors_total", "Errors raised by the ephemeris provider", ["kind"],
)
GAUGE_APP_UP: Final = Gauge("astrocore_app_up", "1 if app is running")
