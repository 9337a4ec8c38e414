"""
In-memory coach store for development, demos and tests.

Implements the collaborator protocols the alert pipeline depends on
(client directory, check-ins, preferences, alert sink, biometric source)
plus the coach-facing alert lifecycle: read, dismiss and action.
"""

import uuid
from collections import defaultdict
from datetime import UTC, date, datetime
from typing import Any

import structlog

from core.domain.models import (
    AlertRecord,
    BiometricSample,
    CoachClient,
    DigestEntry,
    NewAlert,
)
from core.domain.thresholds import CoachAlertPreferences
from core.services.alert_generator import Result

logger = structlog.get_logger(__name__)


class AlertNotFoundError(LookupError):
    """No alert with the given id."""


class InMemoryCoachStore:
    """Dictionary-backed stand-in for the hosted coaching database."""

    def __init__(self) -> None:
        self.clients: dict[str, list[CoachClient]] = defaultdict(list)
        self.checkins: dict[str, list[date | datetime]] = defaultdict(list)
        self.preferences: dict[str, CoachAlertPreferences] = {}
        self.alerts: dict[str, AlertRecord] = {}
        self.logger = logger.bind(component="in_memory_coach_store")

    # Seeding

    def add_client(self, expert_id: str, client: CoachClient) -> None:
        self.clients[expert_id].append(client)

    def record_checkin(self, user_id: str, checkin_date: date | datetime) -> None:
        self.checkins[user_id].append(checkin_date)

    # ClientDirectory / CheckinSource / PreferenceSource

    async def list_clients(self, expert_id: str) -> list[CoachClient]:
        return list(self.clients.get(expert_id, []))

    async def latest_checkin_date(self, user_id: str) -> date | datetime | None:
        dates = self.checkins.get(user_id)
        if not dates:
            return None
        return max(dates, key=_sort_key)

    async def fetch_alert_preferences(self, expert_id: str) -> CoachAlertPreferences | None:
        return self.preferences.get(expert_id)

    async def update_alert_preferences(
        self, expert_id: str, **changes: Any
    ) -> CoachAlertPreferences:
        """Insert or update a coach's preferences; ``None`` values leave fields as they are."""
        current = self.preferences.get(expert_id) or CoachAlertPreferences(expert_id=expert_id)
        update = {key: value for key, value in changes.items() if value is not None}
        update["updated_at"] = datetime.now(UTC)

        updated = CoachAlertPreferences.model_validate({**current.model_dump(), **update})
        self.preferences[expert_id] = updated
        return updated

    # AlertSink

    async def create_alert(self, alert: NewAlert) -> AlertRecord:
        descriptor = alert.descriptor
        record = AlertRecord(
            id=str(uuid.uuid4()),
            relationship_id=alert.relationship_id,
            expert_id=alert.expert_id,
            user_id=alert.user_id,
            alert_type=descriptor.type,
            severity=descriptor.severity,
            title=descriptor.title,
            message=descriptor.message,
            metric_data=descriptor.metric_snapshot.to_metric_data() or None,
        )
        self.alerts[record.id] = record
        return record

    # Alert lifecycle

    async def fetch_alerts(
        self, expert_id: str, unread_only: bool = False, limit: int | None = None
    ) -> list[AlertRecord]:
        """A coach's alerts, newest first, without dismissed ones. A falsy limit means no limit."""
        alerts = [
            a
            for a in self.alerts.values()
            if a.expert_id == expert_id and not a.is_dismissed and not (unread_only and a.is_read)
        ]
        alerts.sort(key=lambda a: a.triggered_at, reverse=True)
        return alerts[:limit] if limit else alerts

    async def fetch_client_alerts(self, relationship_id: str, limit: int = 20) -> list[AlertRecord]:
        alerts = [
            a
            for a in self.alerts.values()
            if a.relationship_id == relationship_id and not a.is_dismissed
        ]
        alerts.sort(key=lambda a: a.triggered_at, reverse=True)
        return alerts[:limit]

    def _get(self, alert_id: str) -> AlertRecord:
        try:
            return self.alerts[alert_id]
        except KeyError:
            raise AlertNotFoundError(alert_id) from None

    async def mark_alert_read(self, alert_id: str) -> None:
        alert = self._get(alert_id)
        alert.is_read = True
        alert.read_at = datetime.now(UTC)

    async def mark_alerts_read(self, alert_ids: list[str]) -> None:
        """Mark several alerts read; unknown ids are skipped."""
        now = datetime.now(UTC)
        for alert_id in alert_ids:
            alert = self.alerts.get(alert_id)
            if alert is not None:
                alert.is_read = True
                alert.read_at = now

    async def dismiss_alert(self, alert_id: str) -> None:
        self._get(alert_id).is_dismissed = True

    async def action_alert(self, alert_id: str, notes: str | None = None) -> None:
        """Record that the coach acted on an alert. Actioned alerts count as read."""
        alert = self._get(alert_id)
        now = datetime.now(UTC)
        alert.is_actioned = True
        alert.actioned_at = now
        alert.action_notes = notes or None
        alert.is_read = True
        alert.read_at = now
        self.logger.info("alert_actioned", alert_id=alert_id, has_notes=bool(notes))

    async def unread_alert_count(self, expert_id: str) -> int:
        return len(await self.fetch_alerts(expert_id, unread_only=True))

    async def digest_entries(self, expert_id: str) -> list[DigestEntry]:
        """Open alerts (not actioned, not dismissed) shaped for the daily digest."""
        names = {c.relationship_id: c.display_name for c in self.clients.get(expert_id, [])}
        return [
            DigestEntry(
                client_name=names.get(a.relationship_id, "Client"),
                alert_type=a.alert_type,
                severity=a.severity,
                title=a.title,
                message=a.message,
                triggered_at=a.triggered_at,
            )
            for a in await self.fetch_alerts(expert_id)
            if not a.is_actioned
        ]


def _sort_key(moment: date | datetime) -> datetime:
    if isinstance(moment, datetime):
        return moment if moment.tzinfo else moment.replace(tzinfo=UTC)
    return datetime(moment.year, moment.month, moment.day, tzinfo=UTC)


class InMemoryBiometricSource:
    """BiometricSource serving prepared histories keyed by user id."""

    def __init__(
        self,
        histories: dict[str, list[BiometricSample]] | None = None,
        source_name: str = "in-memory",
    ) -> None:
        self.histories = histories or {}
        self.failing_users: set[str] = set()
        self.source_name = source_name

    async def fetch_history(self, user_id: str, days: int) -> Result[list[BiometricSample]]:
        if user_id in self.failing_users:
            return Result.err(ConnectionError(f"Failed to fetch biometrics for {user_id}"))
        return Result.ok(list(self.histories.get(user_id, []))[:days])
