"""
WHOOP raw-data records and their mapping onto core biometric samples.

WHOOP reports three independent series, each newest first:
- Recovery: recovery score, resting heart rate, HRV (RMSSD, ms)
- Sleep: sleep performance/efficiency and a stage summary (milliseconds)
- Cycle: physiological day with strain and heart-rate averages

Records may be unscored (``score`` missing) while WHOOP is still
calibrating or processing; those map to samples with empty fields.
"""

from datetime import datetime
from itertools import zip_longest

import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

from core.domain.models import BiometricSample

logger = structlog.get_logger(__name__)


class _WhoopModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class RecoveryScore(_WhoopModel):
    user_calibrating: bool = False
    recovery_score: float | None = None
    resting_heart_rate: float | None = None
    hrv_rmssd_milli: float | None = None
    spo2_percentage: float | None = None
    skin_temp_celsius: float | None = None


class WhoopRecoveryRecord(_WhoopModel):
    cycle_id: int | None = None
    sleep_id: int | None = None
    created_at: datetime | None = None
    score_state: str | None = None
    score: RecoveryScore | None = None


class SleepStageSummary(_WhoopModel):
    total_in_bed_time_milli: int | None = None
    total_awake_time_milli: int | None = None
    total_light_sleep_time_milli: int | None = None
    total_slow_wave_sleep_time_milli: int | None = None
    total_rem_sleep_time_milli: int | None = None
    sleep_cycle_count: int | None = None
    disturbance_count: int | None = None


class SleepScore(_WhoopModel):
    stage_summary: SleepStageSummary | None = None
    respiratory_rate: float | None = None
    sleep_performance_percentage: float | None = None
    sleep_consistency_percentage: float | None = None
    sleep_efficiency_percentage: float | None = None


class WhoopSleepRecord(_WhoopModel):
    id: int | str | None = None
    start: datetime | None = None
    end: datetime | None = None
    nap: bool = False
    score_state: str | None = None
    score: SleepScore | None = None


class CycleScore(_WhoopModel):
    strain: float | None = None
    kilojoule: float | None = None
    average_heart_rate: float | None = None
    max_heart_rate: float | None = None


class WhoopCycleRecord(_WhoopModel):
    id: int | str | None = None
    start: datetime | None = None
    end: datetime | None = None
    score_state: str | None = None
    score: CycleScore | None = None


def recovery_fields(record: WhoopRecoveryRecord | None) -> dict:
    if record is None:
        return {}
    score = record.score or RecoveryScore()
    return {
        "recovery_score": score.recovery_score,
        "resting_heart_rate": score.resting_heart_rate,
        "hrv_rmssd_ms": score.hrv_rmssd_milli,
    }


def sleep_fields(record: WhoopSleepRecord | None) -> dict:
    if record is None or record.score is None:
        return {}
    stages = record.score.stage_summary
    return {
        "sleep_performance_pct": record.score.sleep_performance_percentage,
        "sleep_efficiency_pct": record.score.sleep_efficiency_percentage,
        "time_in_bed_ms": stages.total_in_bed_time_milli if stages else None,
    }


def cycle_fields(record: WhoopCycleRecord | None) -> dict:
    if record is None or record.score is None:
        return {}
    return {
        "strain": record.score.strain,
        "average_heart_rate": record.score.average_heart_rate,
        "max_heart_rate": record.score.max_heart_rate,
    }


def build_history(
    recovery: list[WhoopRecoveryRecord],
    sleep: list[WhoopSleepRecord],
    cycles: list[WhoopCycleRecord],
) -> list[BiometricSample]:
    """
    Merge the three series position by position into daily samples.

    Position 0 of every series is the latest record, so the merged sample at
    index 0 is the latest day for each metric even when series lengths differ.
    A record with out-of-range values is dropped from its day; the other
    series still contribute.
    """
    samples = []
    for index, (rec, slp, cyc) in enumerate(zip_longest(recovery, sleep, cycles)):
        day = None
        if cyc is not None and cyc.start is not None:
            day = cyc.start.date()
        elif slp is not None and slp.end is not None:
            day = slp.end.date()

        fields: dict = {}
        for kind, values in (
            ("recovery", recovery_fields(rec)),
            ("sleep", sleep_fields(slp)),
            ("cycle", cycle_fields(cyc)),
        ):
            try:
                BiometricSample.model_validate(values)
            except ValidationError as e:
                logger.warning(
                    "whoop_record_rejected", kind=kind, index=index, errors=e.error_count()
                )
                continue
            fields.update(values)

        samples.append(BiometricSample(day=day, **fields))
    return samples
