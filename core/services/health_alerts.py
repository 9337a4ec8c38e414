"""
Health-alert evaluation over recent biometric samples.

Pure functions: no I/O, no shared state, safe to call concurrently for any
number of clients. Missing data never raises; a check whose inputs are
absent is simply skipped so the remaining checks still run.
"""

import math
from collections.abc import Sequence
from datetime import UTC, date, datetime, timedelta

from core.domain.models import (
    AlertDescriptor,
    AlertType,
    BiometricSample,
    CheckinGap,
    CheckinSnapshot,
    HrvDropSnapshot,
    RecoverySnapshot,
    Severity,
    SleepSnapshot,
    StrainSnapshot,
)
from core.domain.thresholds import AlertThresholds

# Fixed severity cutoffs (not coach-configurable)
SLEEP_HIGH_SEVERITY_BELOW = 50
STRAIN_HIGH_SEVERITY_AT = 20
HRV_HIGH_SEVERITY_DROP_AT = 30
CHECKIN_HIGH_SEVERITY_DAYS = 7

MIN_RECOVERY_SAMPLES_FOR_HRV = 3
MIN_PRIOR_HRV_VALUES = 2

_MS_PER_HOUR = 1000 * 60 * 60
_ONE_DAY = timedelta(days=1)


def _round(value: float) -> int:
    """Round half up, as the dashboard displays values."""
    return int(math.floor(value + 0.5))


def _num(value: float) -> str:
    return f"{value:g}"


def evaluate_health_alerts(
    history: Sequence[BiometricSample],
    thresholds: AlertThresholds,
    client_name: str,
) -> list[AlertDescriptor]:
    """
    Decide which alerts a client's recent biometrics warrant.

    Args:
        history: Daily samples, newest first (index 0 is the latest day)
        thresholds: Fully merged threshold set
        client_name: Used only in titles and messages

    Returns:
        Alerts in check order: recovery, sleep, strain, HRV drop
    """
    if not history:
        return []

    latest = history[0]
    checks = (
        _check_recovery(latest, thresholds, client_name),
        _check_sleep(latest, thresholds, client_name),
        _check_strain(latest, thresholds, client_name),
        _check_hrv_drop(history, thresholds, client_name),
    )
    return [alert for alert in checks if alert is not None]


def _check_recovery(
    latest: BiometricSample, thresholds: AlertThresholds, client_name: str
) -> AlertDescriptor | None:
    score = latest.recovery_score
    if score is None:
        return None

    snapshot = RecoverySnapshot(
        recovery=score,
        rhr=latest.resting_heart_rate,
        hrv=_round(latest.hrv_rmssd_ms) if latest.hrv_rmssd_ms is not None else None,
    )

    if score <= thresholds.recovery_critical:
        return AlertDescriptor(
            type=AlertType.RECOVERY_LOW,
            severity=Severity.CRITICAL,
            title=f"Critical: {client_name}'s recovery is dangerously low",
            message=(
                f"Recovery score is {_num(score)}%, which is below the critical threshold of "
                f"{_num(thresholds.recovery_critical)}%. This indicates severe physical or "
                "mental stress. Recommend checking in immediately."
            ),
            metric_snapshot=snapshot,
        )

    if score <= thresholds.recovery_low:
        return AlertDescriptor(
            type=AlertType.RECOVERY_LOW,
            severity=Severity.MEDIUM,
            title=f"{client_name}'s recovery is below optimal",
            message=(
                f"Recovery score is {_num(score)}%, below the {_num(thresholds.recovery_low)}% "
                "threshold. Consider suggesting lighter activities and better rest."
            ),
            metric_snapshot=snapshot,
        )

    return None


def _check_sleep(
    latest: BiometricSample, thresholds: AlertThresholds, client_name: str
) -> AlertDescriptor | None:
    performance = latest.sleep_performance_pct
    if performance is None or performance >= thresholds.sleep_performance_low:
        return None

    # A zero time-in-bed means the stage summary was never filled in
    hours = latest.time_in_bed_ms / _MS_PER_HOUR if latest.time_in_bed_ms else None
    hours_text = f"{hours:.1f}" if hours is not None else "unknown"

    return AlertDescriptor(
        type=AlertType.SLEEP_POOR,
        severity=Severity.HIGH if performance < SLEEP_HIGH_SEVERITY_BELOW else Severity.MEDIUM,
        title=f"{client_name}'s sleep quality is concerning",
        message=(
            f"Sleep performance is {_num(performance)}% with {hours_text}h in bed. This is "
            f"below the {_num(thresholds.sleep_performance_low)}% threshold. "
            "Consider discussing sleep hygiene."
        ),
        metric_snapshot=SleepSnapshot(
            sleep=performance,
            total_hours=round(hours, 1) if hours is not None else None,
            efficiency=latest.sleep_efficiency_pct,
        ),
    )


def _check_strain(
    latest: BiometricSample, thresholds: AlertThresholds, client_name: str
) -> AlertDescriptor | None:
    strain = latest.strain
    if strain is None or strain < thresholds.strain_high:
        return None

    return AlertDescriptor(
        type=AlertType.STRAIN_HIGH,
        severity=Severity.HIGH if strain >= STRAIN_HIGH_SEVERITY_AT else Severity.MEDIUM,
        title=f"{client_name}'s strain is very high",
        message=(
            f"Day strain reached {strain:.1f}, which is above the "
            f"{_num(thresholds.strain_high)} threshold. Combined with recovery status, "
            "this may require attention."
        ),
        metric_snapshot=StrainSnapshot(
            strain=round(strain, 1),
            avg_hr=latest.average_heart_rate,
            max_hr=latest.max_heart_rate,
        ),
    )


def _check_hrv_drop(
    history: Sequence[BiometricSample], thresholds: AlertThresholds, client_name: str
) -> AlertDescriptor | None:
    if sum(1 for sample in history if sample.has_recovery) < MIN_RECOVERY_SAMPLES_FOR_HRV:
        return None

    # Today's value only; an unscored latest day skips the check
    current_hrv = history[0].hrv_rmssd_ms
    prior_hrvs = [s.hrv_rmssd_ms for s in history[1:] if s.hrv_rmssd_ms is not None]
    if not current_hrv or len(prior_hrvs) < MIN_PRIOR_HRV_VALUES:
        return None

    avg_hrv = sum(prior_hrvs) / len(prior_hrvs)
    if avg_hrv <= 0:
        return None

    drop_percent = (avg_hrv - current_hrv) / avg_hrv * 100
    if drop_percent < thresholds.hrv_drop_percent:
        return None

    return AlertDescriptor(
        type=AlertType.HRV_DROP,
        severity=(
            Severity.HIGH if drop_percent >= HRV_HIGH_SEVERITY_DROP_AT else Severity.MEDIUM
        ),
        title=f"{client_name}'s HRV dropped significantly",
        message=(
            f"HRV dropped {_round(drop_percent)}% from recent average "
            f"({_round(avg_hrv)}ms to {_round(current_hrv)}ms). This could indicate "
            "accumulated stress or poor recovery."
        ),
        metric_snapshot=HrvDropSnapshot(
            hrv=_round(current_hrv),
            avg_hrv=_round(avg_hrv),
            drop_percent=_round(drop_percent),
        ),
    )


def _as_utc(moment: date | datetime) -> datetime:
    """Plain dates count from midnight UTC; naive datetimes are taken as UTC."""
    if not isinstance(moment, datetime):
        return datetime(moment.year, moment.month, moment.day, tzinfo=UTC)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment


def compute_checkin_gap(
    last_checkin_date: date | datetime | None,
    relationship_start_date: date | datetime,
    now: datetime | None = None,
) -> CheckinGap:
    """Whole days since the last check-in and since the relationship started."""
    current = _as_utc(now or datetime.now(UTC))
    age_days = (current - _as_utc(relationship_start_date)) // _ONE_DAY

    if last_checkin_date is None:
        return CheckinGap(days_since_last_checkin=None, relationship_age_days=age_days)

    return CheckinGap(
        days_since_last_checkin=(current - _as_utc(last_checkin_date)) // _ONE_DAY,
        relationship_age_days=age_days,
    )


def evaluate_checkin_gap(
    last_checkin_date: date | datetime | None,
    relationship_start_date: date | datetime,
    thresholds: AlertThresholds,
    client_name: str,
    now: datetime | None = None,
) -> AlertDescriptor | None:
    """
    Flag a client who never started checking in, or who went quiet.

    Returns None when the gap is below ``thresholds.days_without_checkin``.
    """
    gap = compute_checkin_gap(last_checkin_date, relationship_start_date, now)

    if gap.days_since_last_checkin is None:
        if gap.relationship_age_days < thresholds.days_without_checkin:
            return None
        return AlertDescriptor(
            type=AlertType.NO_CHECKIN,
            severity=Severity.MEDIUM,
            title=f"{client_name} hasn't started checking in yet",
            message=(
                f"It's been {gap.relationship_age_days} days since the coaching relationship "
                "started, but no daily check-ins have been recorded. Consider reaching out "
                "to help them get started."
            ),
            metric_snapshot=CheckinSnapshot(days_since_start=gap.relationship_age_days),
        )

    days = gap.days_since_last_checkin
    if days < thresholds.days_without_checkin:
        return None

    last_checkin = _as_utc(last_checkin_date)  # type: ignore[arg-type]
    return AlertDescriptor(
        type=AlertType.NO_CHECKIN,
        severity=Severity.HIGH if days >= CHECKIN_HIGH_SEVERITY_DAYS else Severity.LOW,
        title=f"{client_name} hasn't checked in for {days} days",
        message=(
            f"The last check-in was on {last_checkin.date().isoformat()}. This may indicate "
            "disengagement or life circumstances. Consider following up."
        ),
        metric_snapshot=CheckinSnapshot(
            days_since_last_checkin=days,
            last_checkin_date=last_checkin,
        ),
    )
