"""
Alert thresholds and the per-coach override merge.

Defaults live in an immutable value. Overrides never mutate it; merging
always builds a new, validated ``AlertThresholds``.
"""

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

logger = structlog.get_logger(__name__)


class AlertThresholds(BaseModel):
    """Coach-configurable alert cutoffs."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    recovery_low: float = Field(default=50, ge=0.0, le=100.0, description="Recovery score %")
    recovery_critical: float = Field(default=33, ge=0.0, le=100.0, description="Recovery score %")
    sleep_performance_low: float = Field(default=70, ge=0.0, le=100.0)
    sleep_duration_min_hours: float = Field(default=6.0, ge=0.0, le=24.0)
    strain_high: float = Field(default=18.0, ge=0.0)
    hrv_drop_percent: float = Field(
        default=20, ge=0.0, le=100.0, description="Drop vs. recent HRV average, percent"
    )
    days_without_checkin: int = Field(default=3, ge=0)

    def ordering_warnings(self) -> list[str]:
        """Describe threshold pairs whose ordering makes a severity unreachable."""
        warnings = []
        if self.recovery_critical > self.recovery_low:
            warnings.append(
                f"recovery_critical ({self.recovery_critical}) is above "
                f"recovery_low ({self.recovery_low}); medium recovery alerts can never fire"
            )
        return warnings


DEFAULT_THRESHOLDS = AlertThresholds()

_FIELD_BY_ALIAS = {
    field.alias: name for name, field in AlertThresholds.model_fields.items() if field.alias
}

# Column names used by the coach_alert_preferences table
PREFERENCE_COLUMNS = {
    "recovery_low_threshold": "recovery_low",
    "recovery_critical_threshold": "recovery_critical",
    "sleep_performance_low_threshold": "sleep_performance_low",
    "sleep_duration_min_hours": "sleep_duration_min_hours",
    "strain_high_threshold": "strain_high",
    "hrv_drop_percent_threshold": "hrv_drop_percent",
    "days_without_checkin_threshold": "days_without_checkin",
}


def merge_thresholds(
    overrides: Mapping[str, Any] | None,
    defaults: AlertThresholds = DEFAULT_THRESHOLDS,
) -> AlertThresholds:
    """
    Return a new threshold set with overrides applied on top of defaults.

    Keys may be field names (``recovery_low``), camelCase aliases
    (``recoveryLow``) or preference column names (``recovery_low_threshold``).
    ``None`` values and unknown keys are ignored.
    """
    merged: dict[str, Any] = defaults.model_dump()

    for key, value in (overrides or {}).items():
        if value is None:
            continue
        name = PREFERENCE_COLUMNS.get(key) or _FIELD_BY_ALIAS.get(key) or key
        if name in AlertThresholds.model_fields:
            merged[name] = value

    thresholds = AlertThresholds.model_validate(merged)

    for warning in thresholds.ordering_warnings():
        logger.warning("alert_thresholds_misordered", detail=warning)

    return thresholds


class CoachAlertPreferences(BaseModel):
    """Stored per-coach alert preferences (``coach_alert_preferences`` row)."""

    expert_id: str
    recovery_low_threshold: float | None = None
    recovery_critical_threshold: float | None = None
    sleep_performance_low_threshold: float | None = None
    sleep_duration_min_hours: float | None = None
    strain_high_threshold: float | None = None
    hrv_drop_percent_threshold: float | None = None
    days_without_checkin_threshold: int | None = None
    email_alerts_enabled: bool = True
    push_alerts_enabled: bool = False
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def threshold_overrides(self) -> dict[str, Any]:
        """Threshold columns that the coach has actually set."""
        return self.model_dump(include=set(PREFERENCE_COLUMNS), exclude_none=True)
