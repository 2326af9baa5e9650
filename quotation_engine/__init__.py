import logging
import os

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from quotation_engine.config import Config
from quotation_engine.db import close_db, init_db
from quotation_engine.db_migrations import register_db_cli, register_users_cli
from quotation_engine.errors import AppError, SystemError
from quotation_engine.observability import (
    configure_json_logging,
    ensure_request_id,
    mark_request_start,
    observe_response,
)
from quotation_engine.security import apply_security_headers, enforce_rate_limit


LOGGER = logging.getLogger("quotation_engine.http")


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    configure_json_logging(app)

    if app.config.get("DATABASE_DIR"):
        os.makedirs(app.config["DATABASE_DIR"], exist_ok=True)

    _install_request_lifecycle(app)
    _install_error_handlers(app)
    _install_workflow(app)
    register_db_cli(app)
    register_users_cli(app)
    _auto_init_schema(app)

    app.teardown_appcontext(close_db)
    return app


def _install_request_lifecycle(app: Flask) -> None:
    @app.before_request
    def _start_request():
        ensure_request_id()
        mark_request_start()
        return enforce_rate_limit()

    @app.after_request
    def _finish_request(response):
        response.headers["X-Request-Id"] = ensure_request_id()
        return apply_security_headers(observe_response(response))


def _request_context_fields(request_id: str) -> dict:
    return {"request_id": request_id, "request_path": request.path, "http_method": request.method}


def _install_error_handlers(app: Flask) -> None:
    @app.errorhandler(AppError)
    def _app_error(exc: AppError):
        request_id = ensure_request_id()
        LOGGER.log(
            logging.ERROR if exc.critical else logging.WARNING,
            "application_error",
            extra={
                **_request_context_fields(request_id),
                "error_code": exc.code,
                "http_status": exc.http_status,
                "details": exc.details,
            },
            exc_info=exc.critical,
        )
        return jsonify(exc.to_response_payload(request_id)), exc.http_status

    @app.errorhandler(Exception)
    def _unexpected_error(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc
        request_id = ensure_request_id()
        LOGGER.exception("unexpected_exception", extra=_request_context_fields(request_id))
        # Details stay in the log; the client only sees the generic code.
        mapped = SystemError(code="unexpected_error", message_key="unexpected_error", critical=True)
        return jsonify(mapped.to_response_payload(request_id)), mapped.http_status


def _install_workflow(app: Flask) -> None:
    from quotation_engine.application.services import EXTENSION_KEY, build_services
    from quotation_engine.core.event_bus import get_event_bus
    from quotation_engine.notifications import register_notifications
    from quotation_engine.routes.ops_routes import ops_bp
    from quotation_engine.routes.quotation_routes import quotation_bp
    from quotation_engine.routes.security_routes import security_bp

    bus = get_event_bus()
    app.extensions[EXTENSION_KEY] = build_services(app.config, event_bus=bus)
    register_notifications(app, bus)
    app.register_blueprint(quotation_bp)
    app.register_blueprint(ops_bp)
    app.register_blueprint(security_bp)


def _auto_init_schema(app: Flask) -> None:
    """Create the schema on startup for tests and local development only.

    Every other environment goes through ``flask db upgrade``.
    """
    if not (app.testing or app.config.get("DB_AUTO_INIT", False)):
        return
    flask_env = (os.environ.get("FLASK_ENV") or "development").strip().lower()
    if not app.testing and flask_env != "development":
        LOGGER.warning("db_auto_init_skipped", extra={"flask_env": flask_env})
        return
    with app.app_context():
        init_db()
