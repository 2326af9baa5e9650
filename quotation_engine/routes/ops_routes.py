import logging

from flask import Blueprint, Response, current_app

from quotation_engine.db import get_db
from quotation_engine.observability import metrics_snapshot, prometheus_metrics_text


LOGGER = logging.getLogger("quotation_engine.ops")

ops_bp = Blueprint("ops", __name__)


def _backend_name() -> str:
    return "postgres" if str(current_app.config.get("DB_PATH") or "").startswith("postgres") else "sqlite"


@ops_bp.route("/health")
def health():
    status = "ok"
    try:
        get_db().execute("SELECT 1").fetchone()
    except Exception:  # noqa: BLE001
        LOGGER.exception("health_db_check_failed")
        status = "degraded"
    return {"status": status, "db": _backend_name(), "metrics": metrics_snapshot()}, 200


@ops_bp.route("/metrics")
def metrics():
    from quotation_engine.application.services import get_services

    try:
        status_counts = get_services().quotations.status_counts(get_db())
    except Exception:  # noqa: BLE001
        # Scrapes still get the HTTP and workflow counters when the db is down.
        LOGGER.exception("metrics_status_counts_failed")
        status_counts = {}
    return Response(prometheus_metrics_text(status_counts=status_counts), mimetype="text/plain; version=0.0.4")
