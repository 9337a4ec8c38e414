"""
Alert generation pipeline: biometrics in, persisted alerts and coach emails out.

Key patterns:
- Protocol-based dependency injection for every collaborator
- Generic Result type for expected fetch failures
- Structured concurrency with asyncio.TaskGroup, bounded per coach
- Failure isolation: one broken alert never stops the rest of the batch
"""

import asyncio
import logging
from collections.abc import Iterable
from datetime import UTC, date, datetime
from typing import Generic, Protocol

import structlog
from typing_extensions import TypeVar

from core.config import AlertRunConfig, LoggingConfig
from core.domain.models import (
    AlertDescriptor,
    AlertNotification,
    AlertRecord,
    AlertRunResult,
    BiometricSample,
    CoachClient,
    CoachContact,
    NewAlert,
)
from core.domain.thresholds import AlertThresholds, CoachAlertPreferences, merge_thresholds
from core.services.health_alerts import evaluate_checkin_gap, evaluate_health_alerts

# Configure structured logging (production-ready observability)
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


def configure_logging(config: LoggingConfig) -> None:
    """Apply level and renderer from configuration (JSON in prod, console in dev)."""
    logging.basicConfig(format="%(message)s", level=config.level)
    renderer = (
        structlog.dev.ConsoleRenderer()
        if config.format == "console"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# Generic Result type for explicit error handling
ValueT = TypeVar("ValueT")
ErrorT = TypeVar("ErrorT", bound=BaseException, default=Exception)


class Result(Generic[ValueT, ErrorT]):
    """
    Explicit error handling without exceptions for expected failures.

    Why: Makes error paths visible in type system, forces handling decisions.
    When to use: When failure is expected business logic, not exceptional.
    """

    def __init__(self, value: ValueT | None = None, error: ErrorT | None = None) -> None:
        if value is not None and error is not None:
            raise ValueError("Result cannot have both value and error")
        if value is None and error is None:
            raise ValueError("Result must have either value or error")
        self._value: ValueT | None = value
        self._error: ErrorT | None = error

    @classmethod
    def ok(cls, value: ValueT) -> "Result[ValueT, ErrorT]":
        return cls(value=value)

    @classmethod
    def err(cls, error: ErrorT) -> "Result[ValueT, ErrorT]":
        return cls(error=error)

    def is_ok(self) -> bool:
        return self._error is None

    def is_err(self) -> bool:
        return self._error is not None

    def unwrap(self) -> ValueT:
        if self._error:
            raise self._error
        return self._value  # type: ignore

    def unwrap_or(self, default: ValueT) -> ValueT:
        return self._value if self._error is None else default  # type: ignore

    def unwrap_err(self) -> ErrorT:
        if self._error is None:
            raise ValueError("Called unwrap_err() on an Ok value")
        return self._error


class BiometricSource(Protocol):
    """Supplies recent wearable history for a user, newest day first."""

    source_name: str

    async def fetch_history(self, user_id: str, days: int) -> Result[list[BiometricSample]]: ...


class AlertSink(Protocol):
    """Durably records alerts. May raise; the caller records the failure."""

    async def create_alert(self, alert: NewAlert) -> AlertRecord: ...


class Notifier(Protocol):
    """Best-effort delivery of an alert to the coach. Returns True when delivered."""

    async def send_alert(self, notification: AlertNotification) -> bool: ...


class PreferenceSource(Protocol):
    async def fetch_alert_preferences(self, expert_id: str) -> CoachAlertPreferences | None: ...


class ClientDirectory(Protocol):
    async def list_clients(self, expert_id: str) -> list[CoachClient]: ...


class CheckinSource(Protocol):
    async def latest_checkin_date(self, user_id: str) -> date | datetime | None: ...


class AlertGenerator:
    """
    Runs the alert checks for a coach's clients and hands results downstream.

    The evaluator itself is stateless; this class only orchestrates fetching,
    persistence and notification, and accounts for what happened in an
    ``AlertRunResult``.
    """

    def __init__(
        self,
        biometrics: BiometricSource,
        sink: AlertSink,
        directory: ClientDirectory,
        preferences: PreferenceSource,
        checkins: CheckinSource,
        notifier: Notifier | None = None,
        config: AlertRunConfig | None = None,
    ) -> None:
        self.biometrics = biometrics
        self.sink = sink
        self.directory = directory
        self.preferences = preferences
        self.checkins = checkins
        self.notifier = notifier
        self.config = config or AlertRunConfig()
        self.logger = logger.bind(component="alert_generator")

    def dashboard_url(self, client: CoachClient) -> str:
        return f"{self.config.dashboard_base_url}/clients/{client.relationship_id}"

    async def load_thresholds(
        self, coach: CoachContact
    ) -> tuple[AlertThresholds, CoachAlertPreferences | None]:
        """Merge the coach's stored overrides onto the configured defaults."""
        prefs = await self.preferences.fetch_alert_preferences(coach.expert_id)
        overrides = prefs.threshold_overrides() if prefs else None
        return merge_thresholds(overrides, self.config.default_thresholds), prefs

    async def analyze_client_health(
        self,
        client: CoachClient,
        coach: CoachContact,
        thresholds: AlertThresholds,
        email_enabled: bool = True,
    ) -> AlertRunResult:
        """Evaluate one client's recent biometrics and deliver any alerts."""
        result = AlertRunResult()
        if not client.user_id:
            return result

        log = self.logger.bind(expert_id=coach.expert_id, user_id=client.user_id)

        history_result = await self.biometrics.fetch_history(
            client.user_id, self.config.history_days
        )
        if history_result.is_err():
            error = history_result.unwrap_err()
            log.warning("biometric_fetch_failed", error=str(error))
            result.errors.append(f"Failed to analyze client {client.user_id}: {error}")
            return result

        history = history_result.unwrap()
        if not history:
            log.info("no_biometric_data")
            return result

        alerts = evaluate_health_alerts(history, thresholds, client.display_name)
        log.info("health_alerts_evaluated", samples=len(history), alerts=len(alerts))

        for alert in alerts:
            result.merge(await self._deliver(alert, client, coach, email_enabled))

        return result

    async def analyze_all_clients(self, coach: CoachContact) -> AlertRunResult:
        """Evaluate every client of a coach, a bounded number at a time."""
        total = AlertRunResult()
        log = self.logger.bind(expert_id=coach.expert_id)

        try:
            clients = await self.directory.list_clients(coach.expert_id)
        except Exception as e:
            log.exception("client_listing_failed", error=str(e))
            total.errors.append(f"Failed to fetch clients: {e}")
            return total

        try:
            thresholds, prefs = await self.load_thresholds(coach)
        except Exception as e:
            log.exception("alert_preferences_load_failed", error=str(e))
            total.errors.append(f"Failed to load alert preferences: {e}")
            return total

        email_enabled = prefs.email_alerts_enabled if prefs else True
        semaphore = asyncio.Semaphore(self.config.max_concurrent_clients)

        async def analyze(client: CoachClient) -> AlertRunResult:
            async with semaphore:
                try:
                    return await self.analyze_client_health(
                        client, coach, thresholds, email_enabled
                    )
                except Exception as e:
                    log.exception("client_analysis_failed", user_id=client.user_id, error=str(e))
                    return AlertRunResult(errors=[f"Failed to analyze client {client.user_id}: {e}"])

        # Structured concurrency - all client tasks managed together
        async with asyncio.TaskGroup() as task_group:
            tasks = [task_group.create_task(analyze(c)) for c in clients if c.user_id]

        for task in tasks:
            total.merge(task.result())

        log.info(
            "coach_health_analysis_completed",
            clients=len(tasks),
            alerts_created=total.alerts_created,
            emails_sent=total.emails_sent,
            errors=len(total.errors),
        )
        return total

    async def check_missing_checkins(
        self,
        coach: CoachContact,
        days_threshold: int | None = None,
        now: datetime | None = None,
    ) -> AlertRunResult:
        """Raise ``no_checkin`` alerts for clients who never or no longer check in."""
        result = AlertRunResult()
        log = self.logger.bind(expert_id=coach.expert_id)
        now = now or datetime.now(UTC)

        try:
            clients = await self.directory.list_clients(coach.expert_id)
        except Exception as e:
            log.exception("client_listing_failed", error=str(e))
            result.errors.append(f"Failed to check missing check-ins: {e}")
            return result

        try:
            thresholds, prefs = await self.load_thresholds(coach)
        except Exception as e:
            log.exception("alert_preferences_load_failed", error=str(e))
            result.errors.append(f"Failed to load alert preferences: {e}")
            return result

        if days_threshold is not None:
            thresholds = thresholds.model_copy(update={"days_without_checkin": days_threshold})
        email_enabled = prefs.email_alerts_enabled if prefs else True

        for client in clients:
            if not client.user_id:
                continue
            try:
                last_checkin = await self.checkins.latest_checkin_date(client.user_id)
            except Exception as e:
                log.warning("checkin_lookup_failed", user_id=client.user_id, error=str(e))
                result.errors.append(f"Failed to fetch check-ins for {client.display_name}: {e}")
                continue

            alert = evaluate_checkin_gap(
                last_checkin, client.created_at, thresholds, client.display_name, now
            )
            if alert is not None:
                result.merge(await self._deliver(alert, client, coach, email_enabled))

        log.info(
            "missing_checkin_scan_completed",
            clients=len(clients),
            alerts_created=result.alerts_created,
            errors=len(result.errors),
        )
        return result

    async def run_for_coaches(self, coaches: Iterable[CoachContact]) -> AlertRunResult:
        """Run both the health and the check-in pass for each coach."""
        total = AlertRunResult()
        for coach in coaches:
            total.merge(await self.analyze_all_clients(coach))
            total.merge(await self.check_missing_checkins(coach))
        return total

    async def _deliver(
        self,
        alert: AlertDescriptor,
        client: CoachClient,
        coach: CoachContact,
        email_enabled: bool,
    ) -> AlertRunResult:
        """Persist one alert, then notify. Failures become error strings."""
        result = AlertRunResult()
        log = self.logger.bind(
            expert_id=coach.expert_id,
            relationship_id=client.relationship_id,
            alert_type=alert.type.value,
            severity=alert.severity.value,
        )

        try:
            record = await self.sink.create_alert(
                NewAlert(
                    relationship_id=client.relationship_id,
                    expert_id=coach.expert_id,
                    user_id=client.user_id or "",
                    descriptor=alert,
                )
            )
        except Exception as e:
            log.error("alert_create_failed", error=str(e))
            result.errors.append(f"Failed to create alert: {alert.title}")
            return result

        result.alerts_created += 1
        log.info("alert_created", alert_id=record.id)

        if not email_enabled or self.notifier is None:
            return result

        try:
            sent = await self.notifier.send_alert(
                AlertNotification(
                    recipient_email=coach.email,
                    recipient_name=coach.name,
                    client_name=client.display_name,
                    alert=alert,
                    client_dashboard_url=self.dashboard_url(client),
                )
            )
        except Exception as e:
            log.error("alert_email_failed", alert_id=record.id, error=str(e))
            result.errors.append(f"Failed to send alert email: {alert.title}")
            return result

        if sent:
            result.emails_sent += 1
        else:
            log.warning("alert_email_not_delivered", alert_id=record.id)

        return result
