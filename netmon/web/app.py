"""Flask application factory and HTTP routes."""

from __future__ import annotations

import logging
from typing import Optional

from flask import Flask, Response, jsonify, request
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from werkzeug.middleware.proxy_fix import ProxyFix

from ..config import AppConfig
from ..errors import ProberUnavailableError, ValidationError
from ..measurements.models import MeasurementKind
from ..ondemand import OnDemandInvoker
from ..reporters.database import DatabaseReporter
from ..scheduler import PeriodicScheduler

LOGGER = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def create_web_app(
    config: AppConfig,
    invoker: OnDemandInvoker,
    scheduler: PeriodicScheduler,
    registry: CollectorRegistry,
    store: Optional[DatabaseReporter] = None,
) -> Flask:
    app = Flask(__name__)

    if config.web.reverse_proxy_headers:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)  # type: ignore

    @app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError):
        LOGGER.info("Rejected request %s: %s", request.path, exc)
        return jsonify({"error": str(exc)}), 400

    @app.errorhandler(ProberUnavailableError)
    def handle_prober_unavailable(exc: ProberUnavailableError):
        LOGGER.error("Prober unavailable for %s: %s", request.path, exc)
        return jsonify({"error": str(exc)}), 503

    @app.get("/health")
    def health():
        return "", 200

    @app.get("/ready")
    def ready():
        if scheduler.started:
            return "", 200
        return "", 503

    @app.get("/metrics")
    def metrics():
        return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)

    @app.get(f"{API_PREFIX}/<kind>")
    def api_configured_round(kind: str):
        round_ = invoker.invoke_configured(_route_kind(kind))
        return jsonify(round_.to_dict())

    @app.get(f"{API_PREFIX}/<kind>/<ids>")
    def api_on_demand_round(kind: str, ids: str):
        round_ = invoker.invoke(_route_kind(kind), ids.split(","))
        return jsonify(round_.to_dict())

    @app.get("/api/status")
    def api_status():
        return jsonify(scheduler.status())

    @app.get("/api/measurements")
    def api_measurements():
        if store is None:
            return jsonify({"error": "Measurement storage is disabled"}), 404
        limit = request.args.get("limit", type=int)
        raw_kind = request.args.get("kind")
        kind = MeasurementKind.parse(raw_kind) if raw_kind else None
        rows = store.get_measurements(limit=limit, kind=kind)
        return jsonify([store.to_dict(row) for row in rows])

    return app


def _route_kind(raw: str) -> MeasurementKind:
    # Only the short names from the v1 API are routable.
    if raw not in ("ping", "speed"):
        raise ValidationError(f"Unknown command {raw!r}, expected 'ping' or 'speed'")
    return MeasurementKind.parse(raw)
