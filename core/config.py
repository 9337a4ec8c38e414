"""
Configuration management with environment variable support and validation.

Design principles:
- Environment-specific configs (dev, staging, prod)
- Validation at startup (fail fast)
- Type safety with Pydantic
- Secure defaults (no API keys in code)
"""

import os
from functools import lru_cache
from typing import Literal, cast

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

from core.domain.thresholds import DEFAULT_THRESHOLDS, AlertThresholds, merge_thresholds

# Load environment variables from .env file
load_dotenv()


def _check_http_url(value: str) -> str:
    if not value.startswith(("http://", "https://")):
        raise ValueError(f"URL must start with http:// or https://, got {value!r}")
    return value.rstrip("/")


class AlertRunConfig(BaseModel):
    """Alert generation run settings."""

    history_days: int = Field(
        default=7, gt=0, le=30, description="Days of biometric history fetched per client"
    )
    max_concurrent_clients: int = Field(
        default=5, gt=0, description="Clients analyzed concurrently per coach"
    )
    dashboard_base_url: str = Field(
        default="http://localhost:5173", description="Base URL used for client dashboard links"
    )
    default_thresholds: AlertThresholds = Field(
        default=DEFAULT_THRESHOLDS, description="Thresholds before coach overrides"
    )

    @field_validator("dashboard_base_url")
    def validate_dashboard_url(cls, v: str) -> str:
        return _check_http_url(v)


class WhoopAPIConfig(BaseModel):
    """WHOOP raw-data service settings."""

    base_url: str = Field(
        default="https://hos-fapi-whoop.onrender.com", description="WHOOP raw-data API base URL"
    )
    timeout_seconds: float = Field(default=10.0, gt=0.0, description="Per-request timeout")

    @field_validator("base_url")
    def validate_base_url(cls, v: str) -> str:
        return _check_http_url(v)


class EmailConfig(BaseModel):
    """Alert email delivery settings."""

    function_url: str | None = Field(None, description="Email-sending function endpoint")
    api_key: str | None = Field(None, description="Bearer key for the email function")
    timeout_seconds: float = Field(default=15.0, gt=0.0)
    product_name: str = Field(default="HolisticOS Coaching Dashboard")

    @field_validator("function_url")
    def validate_function_url(cls, v: str | None) -> str | None:
        if not v:
            return None
        return _check_http_url(v)

    @property
    def is_configured(self) -> bool:
        return bool(self.function_url)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    alerts: AlertRunConfig
    whoop: WhoopAPIConfig
    email: EmailConfig
    logging: LoggingConfig

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


# ALERT_* variables override the default thresholds
THRESHOLD_ENV_VARS = {
    "ALERT_RECOVERY_LOW": "recovery_low",
    "ALERT_RECOVERY_CRITICAL": "recovery_critical",
    "ALERT_SLEEP_PERFORMANCE_LOW": "sleep_performance_low",
    "ALERT_SLEEP_DURATION_MIN_HOURS": "sleep_duration_min_hours",
    "ALERT_STRAIN_HIGH": "strain_high",
    "ALERT_HRV_DROP_PERCENT": "hrv_drop_percent",
    "ALERT_DAYS_WITHOUT_CHECKIN": "days_without_checkin",
}


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        v = val.strip().upper()
        return cast(
            Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    # Detect environment
    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    # Threshold overrides; pydantic coerces the numeric strings
    threshold_overrides = {
        field: os.environ[var] for var, field in THRESHOLD_ENV_VARS.items() if os.getenv(var)
    }

    alerts_config = AlertRunConfig(
        history_days=int(os.getenv("ALERT_HISTORY_DAYS", "7")),
        max_concurrent_clients=int(os.getenv("ALERT_MAX_CONCURRENT_CLIENTS", "5")),
        dashboard_base_url=os.getenv("DASHBOARD_BASE_URL", "http://localhost:5173"),
        default_thresholds=merge_thresholds(threshold_overrides),
    )

    whoop_config = WhoopAPIConfig(
        base_url=os.getenv("WHOOP_API_URL", "https://hos-fapi-whoop.onrender.com"),
        timeout_seconds=float(os.getenv("WHOOP_TIMEOUT_SECONDS", "10.0")),
    )

    email_config = EmailConfig(
        function_url=os.getenv("EMAIL_FUNCTION_URL") or None,
        api_key=os.getenv("EMAIL_FUNCTION_KEY") or None,
        product_name=os.getenv("EMAIL_PRODUCT_NAME", "HolisticOS Coaching Dashboard"),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        alerts=alerts_config,
        whoop=whoop_config,
        email=email_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def validate_config() -> None:
    """Validate configuration at startup."""
    try:
        config = get_config()
        print(f"✅ Configuration loaded for {config.environment} environment")

        if config.email.is_configured:
            print("✅ Email function configured")
        else:
            print("⚠️  Email function not configured, alert emails will be skipped")

    except Exception as e:
        print(f"❌ Configuration validation failed: {e}")
        raise


def print_config_summary() -> None:
    """Print configuration summary for debugging."""
    config = get_config()
    thresholds = config.alerts.default_thresholds

    print("\n🔧 CONFIGURATION SUMMARY")
    print(f"Environment: {config.environment}")
    print(f"Debug Mode: {config.debug}")
    print(f"Log Level: {config.logging.level}")

    print("\n🚨 ALERT THRESHOLDS")
    print(f"Recovery: low <= {thresholds.recovery_low}%, critical <= {thresholds.recovery_critical}%")
    print(f"Sleep Performance: < {thresholds.sleep_performance_low}%")
    print(f"Strain: >= {thresholds.strain_high}")
    print(f"HRV Drop: >= {thresholds.hrv_drop_percent}%")
    print(f"Days Without Check-in: >= {thresholds.days_without_checkin}")

    print("\n⌚ DATA SOURCES")
    print(f"WHOOP API: {config.whoop.base_url}")
    print(f"History Window: {config.alerts.history_days} days")
    print(f"Email Function: {config.email.function_url or 'not configured'}")


if __name__ == "__main__":
    # Test configuration loading
    validate_config()
    print_config_summary()
