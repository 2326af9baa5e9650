from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Tuple

from flask import g, has_request_context, request


_NO_REQUEST = "n/a"
_request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("quotation_engine_request_id", default="")


def set_log_request_id(request_id: str | None) -> None:
    _request_id_var.set(str(request_id or "").strip())


@contextlib.contextmanager
def bind_request_id(request_id: str | None):
    """Tag log lines emitted outside a Flask request (CLI, event handlers)."""
    token = _request_id_var.set(str(request_id or "").strip())
    try:
        yield _request_id_var.get() or _NO_REQUEST
    finally:
        _request_id_var.reset(token)


def ensure_request_id() -> str:
    request_id = getattr(g, "request_id", None)
    if not request_id:
        request_id = str(request.headers.get("X-Request-Id") or "").strip() or uuid.uuid4().hex
        g.request_id = request_id
    set_log_request_id(request_id)
    return request_id


def current_request_id(default: str | None = None) -> str:
    if has_request_context() and getattr(g, "request_id", None):
        return g.request_id
    return _request_id_var.get() or default or _NO_REQUEST


# Attributes every LogRecord carries; anything else came in through ``extra=``.
_RECORD_ATTRIBUTES = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "taskName"}


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, object] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if has_request_context():
            entry["request_id"] = current_request_id()
            entry["method"] = request.method
            entry["path"] = request.path
            if request.url_rule is not None:
                entry["route"] = request.url_rule.rule
        else:
            entry["request_id"] = str(getattr(record, "request_id", "") or "").strip() or current_request_id()

        for key, value in vars(record).items():
            if key in _RECORD_ATTRIBUTES or key.startswith("_") or key in entry or callable(value):
                continue
            entry[key] = value
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=True, separators=(",", ":"), default=str)


def configure_json_logging(app) -> None:
    if not app.config.get("LOG_JSON", True):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter())
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))
    app.logger.handlers = []
    app.logger.propagate = True


LabelValues = Tuple[str, ...]


class CounterFamily:
    kind = "counter"

    def __init__(self, name: str, help_text: str, labels: Iterable[str]) -> None:
        self.name = name
        self.help_text = help_text
        self.labels = tuple(labels)
        self.values: Dict[LabelValues, float] = {}

    def inc(self, *label_values: str, amount: float = 1) -> None:
        key = tuple(str(value) for value in label_values)
        self.values[key] = self.values.get(key, 0) + amount

    def total(self) -> float:
        return sum(self.values.values())

    def by_label(self) -> Dict[str, int]:
        return {"/".join(key): int(value) for key, value in sorted(self.values.items())}

    def render(self) -> List[str]:
        return [
            _prom_line(self.name, int(value), dict(zip(self.labels, key)))
            for key, value in sorted(self.values.items())
        ]


class HistogramFamily(CounterFamily):
    kind = "histogram"

    def __init__(self, name: str, help_text: str, labels: Iterable[str], buckets: Iterable[float]) -> None:
        super().__init__(name, help_text, labels)
        self.buckets = tuple(buckets)
        self.series: Dict[LabelValues, dict] = {}

    def observe(self, value: float, *label_values: str) -> None:
        value = max(0.0, float(value))
        key = tuple(str(item) for item in label_values)
        state = self.series.setdefault(key, {"count": 0, "sum": 0.0, "le": [0] * len(self.buckets)})
        state["count"] += 1
        state["sum"] += value
        for position, limit in enumerate(self.buckets):
            if value <= limit:
                state["le"][position] += 1

    def render(self) -> List[str]:
        lines = []
        for key, state in sorted(self.series.items()):
            labels = dict(zip(self.labels, key))
            for limit, hits in zip(self.buckets, state["le"]):
                lines.append(_prom_line(f"{self.name}_bucket", hits, labels | {"le": f"{limit:g}"}))
            lines.append(_prom_line(f"{self.name}_bucket", state["count"], labels | {"le": "+Inf"}))
            lines.append(_prom_line(f"{self.name}_sum", round(state["sum"], 3), labels))
            lines.append(_prom_line(f"{self.name}_count", state["count"], labels))
        return lines


class MetricsRegistry:
    """In-process counters exported on /health (summary) and /metrics (Prometheus)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self.http_requests = CounterFamily(
                "http_request_total", "Total HTTP requests by method, route and status.", ("method", "route", "status")
            )
            self.http_duration = HistogramFamily(
                "http_request_duration_ms",
                "HTTP request duration in milliseconds.",
                ("method", "route"),
                (5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000),
            )
            self.domain_events = CounterFamily(
                "domain_event_emitted_total", "Domain events emitted by event type.", ("event_type",)
            )
            self.transitions = CounterFamily(
                "workflow_transition_total", "Status transitions applied by entity.", ("entity", "from", "to")
            )
            self.signatures = CounterFamily(
                "signature_verification_total", "Quotation signature checks by result.", ("result",)
            )
            self.notifications = CounterFamily(
                "notification_total", "Notifications dispatched by channel and result.", ("channel", "result")
            )

    def families(self) -> List[CounterFamily]:
        return [
            self.http_requests,
            self.http_duration,
            self.domain_events,
            self.transitions,
            self.signatures,
            self.notifications,
        ]

    def observe_http(self, method: str, route: str, status_code: int, duration_ms: float) -> None:
        method = (method or "GET").upper()
        route = route or "unknown"
        with self._lock:
            self.http_requests.inc(method, route, int(status_code))
            self.http_duration.observe(duration_ms, method, route)

    def count(self, family: str, *label_values: str) -> None:
        with self._lock:
            getattr(self, family).inc(*label_values)

    def snapshot(self) -> dict:
        with self._lock:
            errors = sum(value for key, value in self.http_requests.values.items() if int(key[2]) >= 400)
            return {
                "requests_total": int(self.http_requests.total()),
                "errors_total": int(errors),
                "domain_events": {
                    "emitted_total": int(self.domain_events.total()),
                    "by_type": self.domain_events.by_label(),
                },
                "workflow": {
                    "transitions_total": int(self.transitions.total()),
                    "signature_verifications": self.signatures.by_label(),
                },
                "notifications": self.notifications.by_label(),
            }

    def render_prometheus(self, status_counts: dict | None = None) -> str:
        lines: List[str] = []
        with self._lock:
            for family in self.families():
                lines.append(f"# HELP {family.name} {family.help_text}")
                lines.append(f"# TYPE {family.name} {family.kind}")
                lines.extend(family.render())
        lines.append("# HELP quotation_status_count Quotations currently in each status.")
        lines.append("# TYPE quotation_status_count gauge")
        for status, total in sorted((status_counts or {}).items()):
            lines.append(_prom_line("quotation_status_count", int(total), {"status": status}))
        return "\n".join(lines) + "\n"


def _prom_line(name: str, value: int | float, labels: dict | None = None) -> str:
    if not labels:
        return f"{name} {value}"
    rendered = ",".join(
        '{}="{}"'.format(key, str(val).replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"'))
        for key, val in sorted(labels.items())
    )
    return f"{name}{{{rendered}}} {value}"


_METRICS = MetricsRegistry()


def mark_request_start() -> None:
    g.request_started_at = time.perf_counter()


def observe_response(response):
    started = getattr(g, "request_started_at", None)
    elapsed_ms = (time.perf_counter() - started) * 1000.0 if started else 0.0
    route = request.url_rule.rule if request.url_rule is not None else request.path
    _METRICS.observe_http(request.method, route, response.status_code, elapsed_ms)
    response.headers["X-Response-Time-Ms"] = f"{elapsed_ms:.2f}"
    return response


def metrics_snapshot() -> dict:
    return _METRICS.snapshot()


def prometheus_metrics_text(*, status_counts: dict | None = None) -> str:
    return _METRICS.render_prometheus(status_counts)


def observe_domain_event_emitted(event_type: str) -> None:
    _METRICS.count("domain_events", event_type or "unknown")


def observe_workflow_transition(entity: str, from_status: str | None, to_status: str) -> None:
    _METRICS.count("transitions", entity, from_status or "none", to_status)


def observe_signature_verification(valid: bool) -> None:
    _METRICS.count("signatures", "valid" if valid else "invalid")


def observe_notification(channel: str, result: str) -> None:
    _METRICS.count("notifications", channel, result)


def reset_metrics_for_tests() -> None:
    _METRICS.reset()
    set_log_request_id(None)
