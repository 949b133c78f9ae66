"""Structured logging.

structlog renders engine and request events (JSON in production, console in
debug). Records from stdlib loggers, which the services use, go through a
python-json-logger handler so both streams share one format.
"""

import logging
import sys
import time
import uuid

import structlog
from flask import g, request
from pythonjsonlogger import jsonlogger

QUIET_LOGGERS = ("werkzeug", "sqlalchemy.engine")
ENGINE_LOGGERS = ("bookquest", "celery")

# Path parameters worth carrying on every log line of a request
CONTEXT_VIEW_ARGS = ("user_id", "quest_id", "book_id")

SKIP_PATHS = ("/health", "/ready")


def _log_level(app) -> int:
    if app.debug:
        return logging.DEBUG
    return logging.getLevelName(app.config.get("LOG_LEVEL", "INFO").upper())


def _configure_structlog(debug: bool, level: int):
    renderer = (
        structlog.dev.ConsoleRenderer() if debug else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _json_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"levelname": "level", "asctime": "timestamp"},
        )
    )
    handler.setLevel(level)
    return handler


def _attach(logger: logging.Logger, handler: logging.Handler, level: int):
    logger.handlers = [handler]
    logger.setLevel(level)


def setup_logging(app):
    """Configure logging and per-request context for the app."""
    level = _log_level(app)
    _configure_structlog(app.debug, level)

    if not app.debug:
        handler = _json_handler(level)
        _attach(app.logger, handler, level)
        for name in ENGINE_LOGGERS:
            _attach(logging.getLogger(name), handler, level)
        for name in QUIET_LOGGERS:
            _attach(logging.getLogger(name), handler, logging.WARNING)

    @app.before_request
    def bind_request_context():
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        g.request_start_time = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=g.request_id,
            method=request.method,
            path=request.path,
            **{
                key: value
                for key, value in (request.view_args or {}).items()
                if key in CONTEXT_VIEW_ARGS
            },
        )

    @app.after_request
    def log_request_completed(response):
        if "request_id" not in g:
            return response

        response.headers["X-Request-ID"] = g.request_id
        if request.path not in SKIP_PATHS:
            structlog.get_logger().info(
                "request_completed",
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - g.request_start_time) * 1000, 2),
            )
        return response

    return app
