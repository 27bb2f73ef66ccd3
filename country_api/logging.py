import logging
import time
from logging.config import dictConfig
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.engine import Engine
from starlette.middleware.base import BaseHTTPMiddleware

from country_api.config import Settings, settings

COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}


def build_logging_config(config: Settings = settings) -> Dict[str, Any]:
    """dictConfig for the service.

    Everything under ``country_api`` goes to one colored console handler.
    The refresh pipeline, the upstream clients, request timing and query
    timing each get their own logger so they can be tuned from the
    environment without touching the rest.
    """
    level = config.LOG_LEVEL.upper()
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "color": {
                "()": "colorlog.ColoredFormatter",
                "format": "%(log_color)s[%(asctime)s] %(levelname)s [%(name)s] %(message)s",
                "log_colors": COLORS,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "color",
                "level": config.CONSOLE_LOG_LEVEL.upper(),
            },
        },
        "loggers": {
            "uvicorn": {"level": "WARNING"},
            "uvicorn.error": {"level": "WARNING"},
            "uvicorn.access": {"level": "WARNING"},
            # Query text is reported by country_api.db instead
            "sqlalchemy.engine": {"level": "WARNING", "handlers": ["console"], "propagate": False},
            "country_api": {"level": level, "handlers": ["console"], "propagate": False},
            "country_api.refresh": {"level": (config.REFRESH_LOG_LEVEL or level).upper()},
            "country_api.clients": {"level": (config.CLIENTS_LOG_LEVEL or level).upper()},
            "country_api.limiter": {"level": level},
            "country_api.request": {"level": config.REQUEST_LOG_LEVEL.upper()},
            "country_api.db": {"level": config.QUERY_LOG_LEVEL.upper()},
        },
        "root": {"level": level, "handlers": ["console"]},
    }


def init_logging(config: Settings = settings) -> None:
    dictConfig(build_logging_config(config))


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One line per request with its status and wall time; 5xx at WARNING."""

    async def dispatch(self, request: Request, call_next):
        logger = logging.getLogger("country_api.request")
        start = time.perf_counter()

        response = await call_next(request)

        elapsed_ms = (time.perf_counter() - start) * 1000
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(level, "%s %s -> %s (%.2f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
        return response


def setup_query_logging(engine: Engine, threshold_ms: Optional[int] = None) -> None:
    """Time every statement on ``engine``.

    Pass ``async_engine.sync_engine`` for async engines. Statements at or over
    the threshold (``SLOW_QUERY_THRESHOLD_MS`` by default) are logged at
    WARNING, the rest at DEBUG.
    """
    logger = logging.getLogger("country_api.db")
    threshold = settings.SLOW_QUERY_THRESHOLD_MS if threshold_ms is None else threshold_ms

    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        context._query_start_time = time.perf_counter()

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        elapsed_ms = (time.perf_counter() - context._query_start_time) * 1000
        if elapsed_ms >= threshold:
            logger.warning("Slow query (%.2f ms, threshold %d ms): %s", elapsed_ms, threshold, statement)
        else:
            logger.debug("Query (%.2f ms): %s", elapsed_ms, statement)
