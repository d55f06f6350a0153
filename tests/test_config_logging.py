import logging

from app.core.config import Settings
from app.core.logging import configure_logging, init_tracer, parse_headers, shutdown_tracer


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("SCANNER_API_KEY", "from-env")
    monkeypatch.setenv("STORE_TIMEOUT_SECONDS", "1.5")

    settings = Settings()

    assert settings.scanner_api_key == "from-env"
    assert settings.store_timeout_seconds == 1.5
    assert settings.scan_history_max_limit == 500


def test_parse_headers_skips_malformed_pairs():
    assert parse_headers(None) == {}
    assert parse_headers("x-api-key=abc, bad, =empty, tenant = gate") == {"x-api-key": "abc", "tenant": "gate"}


def test_configure_logging_names_service_logger_and_sets_levels():
    logger = configure_logging(Settings(log_level="debug", app_name="Gate 7 Scanner"))

    assert logger.name == "Gate 7 Scanner"
    assert logger.level == logging.DEBUG
    assert logging.getLogger("app.scanning.service").getEffectiveLevel() == logging.DEBUG
    assert logging.getLogger("asyncpg").level == logging.WARNING
    configure_logging(Settings(log_level="INFO"))


def test_tracer_disabled_by_default():
    provider = init_tracer(Settings(otel_enabled=False))

    assert provider is None
    shutdown_tracer(provider)
