# astrocore/main.py
from __future__ import annotations

import logging
import os
import traceback
from time import perf_counter
from typing import Any, Dict, Optional

from flask import Flask, Response, jsonify, request
from flask_cors import CORS
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from astrocore.api.routes import api as _api_bp
from astrocore.api.schemas import error_details
from astrocore.core.ephemeris import EphemerisProvider, SkyfieldEphemeris
from astrocore.core.errors import (
    AstroError,
    EphemerisRangeError,
    InvalidInputError,
    UndefinedHouseSystemError,
    UnknownAspectTypeError,
    UnknownHouseSystemError,
)
from astrocore.core.interpretation import StaticInterpretations
from astrocore.utils.config import load_config, merge_config
from astrocore.utils.metrics import EPHEMERIS_ERRORS, GAUGE_APP_UP, HOUSE_FALLBACKS, MET_REQUESTS, REQ_LATENCY

log = logging.getLogger(__name__)

# core error class -> HTTP status
_STATUS = (
    (InvalidInputError, 400),
    (UnknownHouseSystemError, 400),
    (UnknownAspectTypeError, 400),
    (UndefinedHouseSystemError, 422),
    (EphemerisRangeError, 422),
)


# ───────────────────────── helpers: logging & errors ─────────────────────────
def _configure_logging(app: Flask) -> None:
    gerr = logging.getLogger("gunicorn.error")
    if gerr.handlers:
        app.logger.handlers = gerr.handlers
        app.logger.setLevel(gerr.level)
    else:
        logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))


def _register_errors(app: Flask) -> None:
    @app.errorhandler(HTTPException)
    def _http(e: HTTPException):
        app.logger.warning("HTTP %s at %s %s: %s", e.code, request.method, request.path, e.description)
        return jsonify(
            ok=False,
            error="http_error",
            code=e.code,
            name=e.name,
            message=e.description,
            path=request.path,
        ), e.code

    @app.errorhandler(ValidationError)
    def _validation(e: ValidationError):
        return jsonify(ok=False, error="validation_error", details=error_details(e.errors()), path=request.path), 400

    @app.errorhandler(AstroError)
    def _astro(e: AstroError):
        status = next((code for cls, code in _STATUS if isinstance(e, cls)), 500)
        if isinstance(e, EphemerisRangeError):
            EPHEMERIS_ERRORS.labels(kind="range_http").inc()
        app.logger.warning("%s at %s %s: %s", type(e).__name__, request.method, request.path, e)
        return jsonify(ok=False, path=request.path, **e.to_dict()), status

    @app.errorhandler(Exception)
    def _any(e: Exception):
        tb = traceback.format_exc()
        app.logger.error("UNHANDLED %s at %s %s\n%s", type(e).__name__, request.method, request.path, tb)
        return jsonify(
            ok=False,
            error="internal_error",
            type=type(e).__name__,
            message=str(e),
            path=request.path,
        ), 500


# ───────────────────────── app factory ─────────────────────────
def create_app(provider: Optional[EphemerisProvider] = None, config: Optional[Dict[str, Any]] = None) -> Flask:
    app = Flask(__name__)
    app.json.sort_keys = False
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)  # type: ignore

    _configure_logging(app)

    cfg = load_config()
    if config:
        cfg = merge_config(cfg, config)
    app.extensions["astrocore"] = {
        "config": cfg,
        "provider": provider or SkyfieldEphemeris(),
        "interpretations": StaticInterpretations(path=cfg.get("interpretations")),
    }

    # Seed metrics
    for route in ("/api/health", "/api/chart", "/api/transits", "/api/returns", "/api/synastry", "/api/events"):
        MET_REQUESTS.labels(route=route).inc(0)
    HOUSE_FALLBACKS.labels(requested="placidus", fallback="whole-sign").inc(0)
    GAUGE_APP_UP.set(1.0)

    @app.before_request
    def _before():
        p = request.path or ""
        if p.startswith("/api/"):
            MET_REQUESTS.labels(route=p).inc()
            request.environ["astrocore.t0"] = perf_counter()

    @app.after_request
    def _after(resp):
        t0 = request.environ.get("astrocore.t0")
        if t0 is not None:
            REQ_LATENCY.labels(route=request.path).observe(perf_counter() - t0)
        return resp

    _register_errors(app)
    app.register_blueprint(_api_bp)

    @app.route("/metrics", methods=["GET"])
    def metrics_endpoint():
        GAUGE_APP_UP.set(1.0)
        return Response(generate_latest(REGISTRY), mimetype=CONTENT_TYPE_LATEST)

    # CORS for browser UIs
    CORS(
        app,
        resources={r"/api/*": {"origins": os.environ.get("CORS_ALLOW_ORIGIN", "*")}},
        supports_credentials=False,
        methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=600,
    )

    app.logger.info("App initialized; house_system=%s, provider=%s",
                    cfg.house_system, type(app.extensions["astrocore"]["provider"]).__name__)
    return app


# ───────────────────────── app instance (gunicorn: astrocore.main:app) ─────────────────────────
app = create_app()

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))
