"""
Tests for configuration management in `core/config.py`.

Covers:
- Environment parsing and debug defaults
- Logging level coercion to the expected Literal
- Threshold overrides from ALERT_* variables
- URL validation and normalization
- get_config cache behavior
- AppConfig validation (debug only allowed in development)
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from pydantic import ValidationError

from core.config import (
    THRESHOLD_ENV_VARS,
    AlertRunConfig,
    AppConfig,
    EmailConfig,
    LoggingConfig,
    WhoopAPIConfig,
    get_config,
    load_config_from_env,
)

_ENV_VARS = [
    *THRESHOLD_ENV_VARS,
    "ENVIRONMENT",
    "LOG_LEVEL",
    "ALERT_HISTORY_DAYS",
    "ALERT_MAX_CONCURRENT_CLIENTS",
    "DASHBOARD_BASE_URL",
    "WHOOP_API_URL",
    "WHOOP_TIMEOUT_SECONDS",
    "EMAIL_FUNCTION_URL",
    "EMAIL_FUNCTION_KEY",
    "EMAIL_PRODUCT_NAME",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Isolate tests from the developer's .env and clear the get_config cache."""
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    get_config.cache_clear()
    yield
    get_config.cache_clear()


def test_load_config_dev_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "development")

    config = load_config_from_env()

    assert config.environment == "development"
    assert config.debug is True
    assert config.logging.format == "console"
    assert config.alerts.history_days == 7
    assert config.alerts.max_concurrent_clients == 5
    assert config.whoop.base_url == "https://hos-fapi-whoop.onrender.com"
    assert config.email.is_configured is False


def test_production_uses_json_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "prod")

    config = load_config_from_env()

    assert config.environment == "production"
    assert config.debug is False
    assert config.logging.format == "json"


def test_logging_level_literal_coercion(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "staging")

    # Unknown level should coerce to INFO
    monkeypatch.setenv("LOG_LEVEL", "unknown")
    config = load_config_from_env()
    assert config.logging.level == "INFO"

    # Known level should pass through
    monkeypatch.setenv("LOG_LEVEL", "error")
    config = load_config_from_env()
    assert config.logging.level == "ERROR"


def test_threshold_overrides_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ALERT_RECOVERY_LOW", "45")
    monkeypatch.setenv("ALERT_STRAIN_HIGH", "16.5")
    monkeypatch.setenv("ALERT_DAYS_WITHOUT_CHECKIN", "4")

    thresholds = load_config_from_env().alerts.default_thresholds

    assert thresholds.recovery_low == 45
    assert thresholds.strain_high == 16.5
    assert thresholds.days_without_checkin == 4
    assert thresholds.recovery_critical == 33


def test_invalid_threshold_fails_fast(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ALERT_RECOVERY_LOW", "150")

    with pytest.raises(ValidationError):
        load_config_from_env()


def test_email_and_whoop_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EMAIL_FUNCTION_URL", "https://functions.test/send-email")
    monkeypatch.setenv("EMAIL_FUNCTION_KEY", "secret")
    monkeypatch.setenv("WHOOP_API_URL", "https://whoop.test/")
    monkeypatch.setenv("WHOOP_TIMEOUT_SECONDS", "3")
    monkeypatch.setenv("DASHBOARD_BASE_URL", "https://coach.test")

    config = load_config_from_env()

    assert config.email.is_configured is True
    assert config.email.api_key == "secret"
    assert config.whoop.base_url == "https://whoop.test"
    assert config.whoop.timeout_seconds == 3.0
    assert config.alerts.dashboard_base_url == "https://coach.test"


@pytest.mark.parametrize(
    "factory",
    [
        lambda: WhoopAPIConfig(base_url="whoop.test"),
        lambda: EmailConfig(function_url="ftp://functions.test"),
        lambda: AlertRunConfig(dashboard_base_url="localhost:5173"),
        lambda: AlertRunConfig(history_days=0),
    ],
)
def test_invalid_settings_rejected(factory) -> None:  # type: ignore[no-untyped-def]
    with pytest.raises(ValidationError):
        factory()


def test_blank_email_url_means_unconfigured() -> None:
    assert EmailConfig(function_url="").is_configured is False


def test_get_config_cache() -> None:
    # First call populates cache
    c1 = get_config()
    c2 = get_config()
    assert c1 is c2  # same object due to lru_cache


def test_app_config_debug_only_in_dev_validation() -> None:
    with pytest.raises(ValueError, match="debug mode is only allowed"):
        AppConfig(
            environment="production",
            debug=True,
            alerts=AlertRunConfig(),
            whoop=WhoopAPIConfig(),
            email=EmailConfig(),
            logging=LoggingConfig(),
        )
