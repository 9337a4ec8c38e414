"""
Tests for the health-alert evaluator in `core/services/health_alerts.py`.

Covers:
- Threshold boundaries and severity cutoffs for every check
- Independent emission of several alerts from one sample
- HRV-drop arithmetic and its minimum-data rules
- Check-in gap arithmetic and severities
- Property-based checks for recovery exclusivity and missing data
"""

from datetime import UTC, date, datetime, timedelta

import pytest
from hypothesis import given
from hypothesis import strategies as st

from core.domain.models import AlertType, BiometricSample, Severity
from core.domain.thresholds import DEFAULT_THRESHOLDS, AlertThresholds, merge_thresholds
from core.services.health_alerts import (
    compute_checkin_gap,
    evaluate_checkin_gap,
    evaluate_health_alerts,
)

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)


def _types(alerts: list) -> list[AlertType]:
    return [a.type for a in alerts]


class TestEmptyAndMissingData:
    def test_empty_history_returns_no_alerts(self) -> None:
        assert evaluate_health_alerts([], DEFAULT_THRESHOLDS, "Alex") == []

    def test_sample_without_any_metric_returns_no_alerts(self) -> None:
        assert evaluate_health_alerts([BiometricSample()], DEFAULT_THRESHOLDS, "Alex") == []

    def test_sleep_and_strain_checked_without_recovery(self) -> None:
        history = [BiometricSample(sleep_performance_pct=40, strain=21)]

        alerts = evaluate_health_alerts(history, DEFAULT_THRESHOLDS, "Alex")

        assert _types(alerts) == [AlertType.SLEEP_POOR, AlertType.STRAIN_HIGH]

    @given(
        recovery=st.none() | st.floats(min_value=0, max_value=100),
        sleep=st.none() | st.floats(min_value=0, max_value=100),
        strain=st.none() | st.floats(min_value=0, max_value=21),
        hrv=st.none() | st.floats(min_value=0, max_value=250),
    )
    def test_partial_samples_never_raise(
        self,
        recovery: float | None,
        sleep: float | None,
        strain: float | None,
        hrv: float | None,
    ) -> None:
        sample = BiometricSample(
            recovery_score=recovery, sleep_performance_pct=sleep, strain=strain, hrv_rmssd_ms=hrv
        )
        alerts = evaluate_health_alerts([sample, sample, sample], DEFAULT_THRESHOLDS, "Alex")
        assert len(alerts) <= 4


class TestRecoveryCheck:
    @pytest.mark.parametrize(
        "score,expected",
        [
            (33, Severity.CRITICAL),
            (34, Severity.MEDIUM),
            (50, Severity.MEDIUM),
            (51, None),
        ],
    )
    def test_recovery_boundaries(self, score: float, expected: Severity | None) -> None:
        alerts = evaluate_health_alerts(
            [BiometricSample(recovery_score=score)], DEFAULT_THRESHOLDS, "Alex"
        )

        recovery = [a for a in alerts if a.type == AlertType.RECOVERY_LOW]
        if expected is None:
            assert recovery == []
        else:
            assert [a.severity for a in recovery] == [expected]

    @given(score=st.floats(min_value=0, max_value=100), low=st.floats(min_value=0, max_value=100))
    def test_recovery_never_emits_two_alerts(self, score: float, low: float) -> None:
        thresholds = merge_thresholds({"recovery_low": low, "recovery_critical": low / 2})
        alerts = evaluate_health_alerts(
            [BiometricSample(recovery_score=score)], thresholds, "Alex"
        )

        assert len([a for a in alerts if a.type == AlertType.RECOVERY_LOW]) <= 1

    def test_critical_alert_content(self) -> None:
        sample = BiometricSample(recovery_score=20, resting_heart_rate=64, hrv_rmssd_ms=31.6)

        (alert,) = evaluate_health_alerts([sample], DEFAULT_THRESHOLDS, "Alex")

        assert alert.title == "Critical: Alex's recovery is dangerously low"
        assert "Recovery score is 20%" in alert.message
        assert "critical threshold of 33%" in alert.message
        assert alert.metric_snapshot.to_metric_data() == {"recovery": 20.0, "rhr": 64.0, "hrv": 32}

    def test_misordered_thresholds_prefer_critical(self) -> None:
        thresholds = merge_thresholds({"recovery_low": 30, "recovery_critical": 40})

        (alert,) = evaluate_health_alerts(
            [BiometricSample(recovery_score=35)], thresholds, "Alex"
        )

        assert alert.severity == Severity.CRITICAL


class TestSleepCheck:
    @pytest.mark.parametrize(
        "performance,expected",
        [(49, Severity.HIGH), (50, Severity.MEDIUM), (69, Severity.MEDIUM), (70, None)],
    )
    def test_sleep_severity_cutoff(self, performance: float, expected: Severity | None) -> None:
        alerts = evaluate_health_alerts(
            [BiometricSample(sleep_performance_pct=performance)], DEFAULT_THRESHOLDS, "Alex"
        )

        if expected is None:
            assert alerts == []
        else:
            assert [(a.type, a.severity) for a in alerts] == [(AlertType.SLEEP_POOR, expected)]

    def test_hours_in_bed_reported_with_one_decimal(self) -> None:
        sample = BiometricSample(
            sleep_performance_pct=60, sleep_efficiency_pct=88, time_in_bed_ms=22_680_000
        )

        (alert,) = evaluate_health_alerts([sample], DEFAULT_THRESHOLDS, "Alex")

        assert "with 6.3h in bed" in alert.message
        assert alert.metric_snapshot.to_metric_data() == {
            "sleep": 60.0,
            "totalHours": 6.3,
            "efficiency": 88.0,
        }

    def test_short_time_in_bed_alone_does_not_alert(self) -> None:
        thresholds = merge_thresholds({"sleep_duration_min_hours": 8})
        sample = BiometricSample(sleep_performance_pct=85, time_in_bed_ms=14_400_000)

        assert evaluate_health_alerts([sample], thresholds, "Alex") == []

    def test_missing_time_in_bed_reported_as_unknown(self) -> None:
        (alert,) = evaluate_health_alerts(
            [BiometricSample(sleep_performance_pct=60)], DEFAULT_THRESHOLDS, "Alex"
        )

        assert "with unknownh in bed" in alert.message
        assert alert.metric_snapshot.to_metric_data() == {"sleep": 60.0}


class TestStrainCheck:
    @pytest.mark.parametrize(
        "strain,expected",
        [(17.9, None), (18.0, Severity.MEDIUM), (19.99, Severity.MEDIUM), (20.0, Severity.HIGH)],
    )
    def test_strain_boundaries(self, strain: float, expected: Severity | None) -> None:
        alerts = evaluate_health_alerts(
            [BiometricSample(strain=strain)], DEFAULT_THRESHOLDS, "Alex"
        )

        if expected is None:
            assert alerts == []
        else:
            assert [a.severity for a in alerts] == [expected]

    def test_strain_printed_with_one_decimal(self) -> None:
        (alert,) = evaluate_health_alerts(
            [BiometricSample(strain=19, average_heart_rate=120, max_heart_rate=178)],
            DEFAULT_THRESHOLDS,
            "Alex",
        )

        assert "Day strain reached 19.0" in alert.message
        assert alert.metric_snapshot.to_metric_data() == {
            "strain": 19.0,
            "avgHr": 120.0,
            "maxHr": 178.0,
        }


class TestHrvDropCheck:
    @staticmethod
    def _history(*hrvs: float | None) -> list[BiometricSample]:
        return [BiometricSample(recovery_score=70, hrv_rmssd_ms=h) for h in hrvs]

    def test_drop_arithmetic(self) -> None:
        alerts = evaluate_health_alerts(self._history(40, 50, 52), DEFAULT_THRESHOLDS, "Alex")

        (alert,) = alerts
        assert alert.type == AlertType.HRV_DROP
        assert alert.severity == Severity.MEDIUM
        assert alert.metric_snapshot.to_metric_data() == {
            "hrv": 40,
            "avgHrv": 51,
            "dropPercent": 22,
        }
        assert "HRV dropped 22% from recent average (51ms to 40ms)" in alert.message

    def test_two_recovery_samples_never_fire(self) -> None:
        assert evaluate_health_alerts(self._history(10, 80), DEFAULT_THRESHOLDS, "Alex") == []

    def test_latest_day_without_recovery_skips(self) -> None:
        history = [BiometricSample(sleep_performance_pct=90), *self._history(30, 60, 60)]

        assert evaluate_health_alerts(history, DEFAULT_THRESHOLDS, "Alex") == []

    def test_older_days_compared_only_against_today(self) -> None:
        history = [
            BiometricSample(recovery_score=70, hrv_rmssd_ms=40),
            BiometricSample(strain=8),
            *self._history(50, 52),
        ]

        (alert,) = evaluate_health_alerts(history, DEFAULT_THRESHOLDS, "Alex")

        assert alert.metric_snapshot.to_metric_data() == {
            "hrv": 40,
            "avgHrv": 51,
            "dropPercent": 22,
        }

    def test_samples_without_recovery_do_not_count(self) -> None:
        history = [*self._history(10, 80), BiometricSample(strain=5), BiometricSample()]

        assert evaluate_health_alerts(history, DEFAULT_THRESHOLDS, "Alex") == []

    def test_needs_two_prior_hrv_values(self) -> None:
        history = [
            BiometricSample(recovery_score=70, hrv_rmssd_ms=10),
            BiometricSample(recovery_score=70, hrv_rmssd_ms=80),
            BiometricSample(recovery_score=70),
        ]

        assert evaluate_health_alerts(history, DEFAULT_THRESHOLDS, "Alex") == []

    @pytest.mark.parametrize("current", [None, 0])
    def test_missing_or_zero_current_hrv_skips(self, current: float | None) -> None:
        assert evaluate_health_alerts(self._history(current, 80, 80), DEFAULT_THRESHOLDS, "A") == []

    def test_zero_average_skips(self) -> None:
        assert evaluate_health_alerts(self._history(10, 0, 0), DEFAULT_THRESHOLDS, "Alex") == []

    def test_large_drop_is_high(self) -> None:
        (alert,) = evaluate_health_alerts(self._history(30, 60, 60), DEFAULT_THRESHOLDS, "Alex")

        assert alert.severity == Severity.HIGH
        assert alert.metric_snapshot.to_metric_data()["dropPercent"] == 50

    def test_drop_below_threshold_is_ignored(self) -> None:
        assert evaluate_health_alerts(self._history(45, 50, 52), DEFAULT_THRESHOLDS, "Alex") == []

    def test_threshold_override_applies(self) -> None:
        thresholds = merge_thresholds({"hrvDropPercent": 5})

        alerts = evaluate_health_alerts(self._history(45, 50, 52), thresholds, "Alex")

        assert _types(alerts) == [AlertType.HRV_DROP]


class TestIndependentEmission:
    def test_three_breaches_give_three_alerts(self) -> None:
        sample = BiometricSample(recovery_score=20, sleep_performance_pct=40, strain=21)

        alerts = evaluate_health_alerts([sample], DEFAULT_THRESHOLDS, "Alex")

        assert _types(alerts) == [
            AlertType.RECOVERY_LOW,
            AlertType.SLEEP_POOR,
            AlertType.STRAIN_HIGH,
        ]
        assert alerts[0].severity == Severity.CRITICAL

    def test_end_to_end_scenario(self) -> None:
        history = [
            BiometricSample(
                recovery_score=30, hrv_rmssd_ms=35, sleep_performance_pct=65, strain=19
            ),
            BiometricSample(recovery_score=55, hrv_rmssd_ms=45),
            BiometricSample(recovery_score=60, hrv_rmssd_ms=47),
        ]

        alerts = evaluate_health_alerts(history, DEFAULT_THRESHOLDS, "Jordan")

        assert [(a.type, a.severity) for a in alerts] == [
            (AlertType.RECOVERY_LOW, Severity.CRITICAL),
            (AlertType.SLEEP_POOR, Severity.MEDIUM),
            (AlertType.STRAIN_HIGH, Severity.MEDIUM),
            (AlertType.HRV_DROP, Severity.MEDIUM),
        ]
        hrv = alerts[3].metric_snapshot.to_metric_data()
        assert hrv == {"hrv": 35, "avgHrv": 46, "dropPercent": 24}

    def test_only_latest_sample_drives_threshold_checks(self) -> None:
        history = [
            BiometricSample(recovery_score=80, sleep_performance_pct=90, strain=5),
            BiometricSample(recovery_score=10, sleep_performance_pct=10, strain=21),
        ]

        assert evaluate_health_alerts(history, DEFAULT_THRESHOLDS, "Alex") == []


class TestCheckinGap:
    def test_gap_counts_whole_days(self) -> None:
        gap = compute_checkin_gap(
            NOW - timedelta(days=2, hours=23), NOW - timedelta(days=10), now=NOW
        )

        assert gap.days_since_last_checkin == 2
        assert gap.relationship_age_days == 10

    def test_plain_dates_count_from_midnight_utc(self) -> None:
        gap = compute_checkin_gap(date(2025, 3, 7), date(2025, 3, 1), now=NOW)

        assert gap.days_since_last_checkin == 3
        assert gap.relationship_age_days == 9

    def test_naive_datetimes_taken_as_utc(self) -> None:
        gap = compute_checkin_gap(None, datetime(2025, 3, 8, 12, 0), now=NOW)

        assert gap.days_since_last_checkin is None
        assert gap.relationship_age_days == 2

    @pytest.mark.parametrize("age_days,alerts", [(2, False), (3, True)])
    def test_never_checked_in(self, age_days: int, alerts: bool) -> None:
        alert = evaluate_checkin_gap(
            None, NOW - timedelta(days=age_days), DEFAULT_THRESHOLDS, "Alex", now=NOW
        )

        if not alerts:
            assert alert is None
            return
        assert alert is not None
        assert alert.type == AlertType.NO_CHECKIN
        assert alert.severity == Severity.MEDIUM
        assert alert.title == "Alex hasn't started checking in yet"
        assert f"It's been {age_days} days" in alert.message
        assert alert.metric_snapshot.to_metric_data() == {"daysSinceStart": age_days}

    @pytest.mark.parametrize(
        "days,expected", [(2, None), (3, Severity.LOW), (6, Severity.LOW), (7, Severity.HIGH)]
    )
    def test_checkin_severity(self, days: int, expected: Severity | None) -> None:
        alert = evaluate_checkin_gap(
            NOW - timedelta(days=days),
            NOW - timedelta(days=60),
            DEFAULT_THRESHOLDS,
            "Alex",
            now=NOW,
        )

        if expected is None:
            assert alert is None
            return
        assert alert is not None
        assert alert.severity == expected
        assert alert.title == f"Alex hasn't checked in for {days} days"

    def test_message_cites_last_checkin_date(self) -> None:
        alert = evaluate_checkin_gap(
            datetime(2025, 3, 1, 8, 30, tzinfo=UTC),
            datetime(2025, 1, 1, tzinfo=UTC),
            DEFAULT_THRESHOLDS,
            "Alex",
            now=NOW,
        )

        assert alert is not None
        assert "The last check-in was on 2025-03-01." in alert.message
        data = alert.metric_snapshot.to_metric_data()
        assert data["daysSinceLastCheckin"] == 9
        assert data["lastCheckinDate"].startswith("2025-03-01T08:30:00")

    def test_custom_threshold(self) -> None:
        thresholds = AlertThresholds(days_without_checkin=10)

        assert (
            evaluate_checkin_gap(
                NOW - timedelta(days=9), NOW - timedelta(days=60), thresholds, "Alex", now=NOW
            )
            is None
        )
