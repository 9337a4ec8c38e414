"""
Domain models for coach health alerting.

These models represent the core business concepts and are framework-agnostic.
They use Pydantic for validation but could be swapped to dataclasses if needed.
"""

from datetime import UTC, date, datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class Severity(str, Enum):
    """Alert severity levels shown to the coach."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertType(str, Enum):
    """Kinds of coach alerts."""

    RECOVERY_LOW = "recovery_low"
    SLEEP_POOR = "sleep_poor"
    STRAIN_HIGH = "strain_high"
    HRV_DROP = "hrv_drop"
    CONSISTENCY_DROP = "consistency_drop"
    NO_CHECKIN = "no_checkin"


class BiometricSample(BaseModel):
    """One day of wearable data. Any field may be missing."""

    model_config = ConfigDict(frozen=True)

    day: date | None = None

    # Recovery
    recovery_score: float | None = Field(None, ge=0.0, le=100.0)
    resting_heart_rate: float | None = Field(None, ge=0.0)
    hrv_rmssd_ms: float | None = Field(None, ge=0.0)

    # Sleep
    sleep_performance_pct: float | None = Field(None, ge=0.0, le=100.0)
    sleep_efficiency_pct: float | None = Field(None, ge=0.0, le=100.0)
    time_in_bed_ms: int | None = Field(None, ge=0)

    # Cycle
    strain: float | None = Field(None, ge=0.0)
    average_heart_rate: float | None = Field(None, ge=0.0)
    max_heart_rate: float | None = Field(None, ge=0.0)

    @property
    def has_recovery(self) -> bool:
        """True when the day carries a recovery record."""
        return self.recovery_score is not None or self.hrv_rmssd_ms is not None


# Metric snapshots: one record per alert type, serialized with camelCase keys
# (``recovery``, ``sleep``, ``strain``, ``hrv`` drive the email metric chips).
class _Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    def to_metric_data(self) -> dict[str, Any]:
        """Serialize for storage, without the union tag."""
        return self.model_dump(mode="json", by_alias=True, exclude={"kind"}, exclude_none=True)


class RecoverySnapshot(_Snapshot):
    kind: Literal["recovery_low"] = "recovery_low"
    recovery: float
    rhr: float | None = None
    hrv: int | None = None


class SleepSnapshot(_Snapshot):
    kind: Literal["sleep_poor"] = "sleep_poor"
    sleep: float
    total_hours: float | None = Field(None, description="Time in bed, hours, one decimal")
    efficiency: float | None = None


class StrainSnapshot(_Snapshot):
    kind: Literal["strain_high"] = "strain_high"
    strain: float
    avg_hr: float | None = None
    max_hr: float | None = None


class HrvDropSnapshot(_Snapshot):
    kind: Literal["hrv_drop"] = "hrv_drop"
    hrv: int
    avg_hrv: int
    drop_percent: int


class CheckinSnapshot(_Snapshot):
    kind: Literal["no_checkin"] = "no_checkin"
    days_since_start: int | None = None
    days_since_last_checkin: int | None = None
    last_checkin_date: datetime | None = None


MetricSnapshot = Annotated[
    RecoverySnapshot | SleepSnapshot | StrainSnapshot | HrvDropSnapshot | CheckinSnapshot,
    Field(discriminator="kind"),
]


class AlertDescriptor(BaseModel):
    """An alert decided by the evaluator, not yet persisted."""

    model_config = ConfigDict(frozen=True)

    type: AlertType
    severity: Severity
    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    metric_snapshot: MetricSnapshot

    @model_validator(mode="after")
    def snapshot_matches_type(self) -> "AlertDescriptor":
        if self.metric_snapshot.kind != self.type:
            raise ValueError(
                f"metric snapshot {self.metric_snapshot.kind} does not match "
                f"alert type {self.type.value}"
            )
        return self


class CheckinGap(BaseModel):
    """Day counts behind a missed check-in decision."""

    model_config = ConfigDict(frozen=True)

    days_since_last_checkin: int | None
    relationship_age_days: int


class CoachContact(BaseModel):
    """Coach who receives alerts."""

    model_config = ConfigDict(frozen=True)

    expert_id: str
    email: str
    name: str


class CoachClient(BaseModel):
    """Coaching relationship as seen by the alerting pipeline."""

    model_config = ConfigDict(frozen=True)

    relationship_id: str
    user_id: str | None = None
    full_name: str | None = None
    email: str | None = None
    created_at: datetime = Field(description="Start of the coaching relationship")

    @property
    def display_name(self) -> str:
        if self.full_name:
            return self.full_name
        if self.email:
            return self.email.split("@")[0]
        return "Client"


class NewAlert(BaseModel):
    """Alert row to be written by an alert sink."""

    model_config = ConfigDict(frozen=True)

    relationship_id: str
    expert_id: str
    user_id: str
    descriptor: AlertDescriptor


class AlertRecord(BaseModel):
    """Persisted coach alert."""

    id: str
    relationship_id: str
    expert_id: str
    user_id: str
    alert_type: AlertType
    severity: Severity
    title: str
    message: str
    metric_data: dict[str, Any] | None = None
    triggered_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    is_read: bool = False
    read_at: datetime | None = None
    is_dismissed: bool = False
    is_actioned: bool = False
    actioned_at: datetime | None = None
    action_notes: str | None = None


class AlertNotification(BaseModel):
    """Everything a notifier needs to tell a coach about one alert."""

    model_config = ConfigDict(frozen=True)

    recipient_email: str
    recipient_name: str
    client_name: str
    alert: AlertDescriptor
    client_dashboard_url: str


class DigestEntry(BaseModel):
    """One line of the daily alert digest."""

    model_config = ConfigDict(frozen=True)

    client_name: str
    alert_type: AlertType
    severity: Severity
    title: str
    message: str
    triggered_at: datetime


class AlertRunResult(BaseModel):
    """Counts and errors of one alert generation run."""

    alerts_created: int = Field(default=0, ge=0)
    emails_sent: int = Field(default=0, ge=0)
    errors: list[str] = Field(default_factory=list)

    def merge(self, other: "AlertRunResult") -> "AlertRunResult":
        """Fold another run into this one and return self."""
        self.alerts_created += other.alerts_created
        self.emails_sent += other.emails_sent
        self.errors.extend(other.errors)
        return self
