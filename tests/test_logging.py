import logging

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text

from country_api.config import Settings
from country_api.logging import RequestLoggingMiddleware, build_logging_config, setup_query_logging


@pytest.fixture
def capture_service_logs(caplog, monkeypatch):
    # init_logging stops country_api records at its own handler
    monkeypatch.setattr(logging.getLogger("country_api"), "propagate", True)
    caplog.set_level(logging.DEBUG, logger="country_api")
    # init_logging (run on importing country_api.main) may have set child levels
    caplog.set_level(logging.DEBUG, logger="country_api.db")
    return caplog


def test_service_loggers_follow_settings():
    config = build_logging_config(
        Settings(LOG_LEVEL="debug", REQUEST_LOG_LEVEL="warning", REFRESH_LOG_LEVEL="error", QUERY_LOG_LEVEL="info")
    )
    loggers = config["loggers"]

    assert loggers["country_api"]["level"] == "DEBUG"
    assert loggers["country_api.refresh"]["level"] == "ERROR"
    assert loggers["country_api.clients"]["level"] == "DEBUG"
    assert loggers["country_api.request"]["level"] == "WARNING"
    assert loggers["country_api.db"]["level"] == "INFO"
    assert config["handlers"]["console"]["formatter"] == "color"


def test_refresh_and_client_levels_default_to_log_level():
    loggers = build_logging_config(Settings(LOG_LEVEL="warning"))["loggers"]
    assert loggers["country_api.refresh"]["level"] == "WARNING"
    assert loggers["country_api.clients"]["level"] == "WARNING"


def test_statement_over_threshold_is_logged_as_slow(capture_service_logs):
    engine = create_engine("sqlite://")
    setup_query_logging(engine, threshold_ms=0)
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    engine.dispose()

    slow = [r for r in capture_service_logs.records if r.name == "country_api.db" and r.levelno == logging.WARNING]
    assert slow
    assert "SELECT 1" in slow[0].getMessage()


def test_fast_statement_is_logged_at_debug(capture_service_logs):
    engine = create_engine("sqlite://")
    setup_query_logging(engine, threshold_ms=60_000)
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    engine.dispose()

    records = [r for r in capture_service_logs.records if r.name == "country_api.db"]
    assert records
    assert all(r.levelno == logging.DEBUG for r in records)


def test_threshold_defaults_to_setting(capture_service_logs, monkeypatch):
    from country_api.config import settings

    monkeypatch.setattr(settings, "SLOW_QUERY_THRESHOLD_MS", 0)
    engine = create_engine("sqlite://")
    setup_query_logging(engine)
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    engine.dispose()

    assert any(r.name == "country_api.db" and r.levelno == logging.WARNING for r in capture_service_logs.records)


def test_request_middleware_logs_method_path_and_status(capture_service_logs):
    app = FastAPI()
    app.add_middleware(RequestLoggingMiddleware)

    @app.get("/ok")
    def ok():
        return {"ok": True}

    with TestClient(app) as client:
        client.get("/ok")
        client.get("/missing")

    lines = [(r.levelno, r.getMessage()) for r in capture_service_logs.records if r.name == "country_api.request"]
    assert lines[0][0] == logging.INFO
    assert lines[0][1].startswith("GET /ok -> 200")
    assert lines[1][1].startswith("GET /missing -> 404")
