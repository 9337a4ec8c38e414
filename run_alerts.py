"""
Alert run demonstrating the full coach alert pipeline.

This script:
1. Loads and validates configuration
2. Seeds an in-memory coach store with scenario clients
3. Runs the health pass and the missed check-in pass
4. Prints every alert and a run summary

Run with: uv run python run_alerts.py
Pass --whoop to read biometrics from the configured WHOOP raw-data API
instead of the built-in scenarios.
"""

import asyncio
import sys
from datetime import UTC, datetime, timedelta

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from adapters.memory.store import InMemoryBiometricSource, InMemoryCoachStore
from adapters.whoop.client import WhoopBiometricSource
from core.config import get_config, print_config_summary, validate_config
from core.domain.models import AlertRunResult, BiometricSample, CoachClient, CoachContact
from core.services.alert_generator import AlertGenerator, BiometricSource, configure_logging
from core.services.notifications import (
    ConsoleAlertNotifier,
    EmailAlertNotifier,
    HTTPEmailTransport,
)

console = Console()

COACH = CoachContact(expert_id="coach-1", email="coach@example.com", name="Sam Coach")


def _day(days_ago: int, **fields: float) -> BiometricSample:
    return BiometricSample(day=(datetime.now(UTC) - timedelta(days=days_ago)).date(), **fields)


SCENARIOS: dict[str, list[BiometricSample]] = {
    # Rested, nothing to flag
    "user-steady": [
        _day(0, recovery_score=78, hrv_rmssd_ms=62, resting_heart_rate=52,
             sleep_performance_pct=91, time_in_bed_ms=28_800_000, strain=11.2),
        _day(1, recovery_score=74, hrv_rmssd_ms=60),
        _day(2, recovery_score=80, hrv_rmssd_ms=64),
    ],
    # Overreached: every check fires
    "user-overreached": [
        _day(0, recovery_score=30, hrv_rmssd_ms=35, resting_heart_rate=61,
             sleep_performance_pct=65, time_in_bed_ms=22_680_000, strain=19.0),
        _day(1, recovery_score=55, hrv_rmssd_ms=45),
        _day(2, recovery_score=60, hrv_rmssd_ms=47),
    ],
    # Short night
    "user-short-sleep": [
        _day(0, recovery_score=58, hrv_rmssd_ms=48, sleep_performance_pct=44),
    ],
}


def seed_store(store: InMemoryCoachStore) -> None:
    now = datetime.now(UTC)
    clients = [
        CoachClient(relationship_id="rel-1", user_id="user-steady", full_name="Avery Steady",
                    created_at=now - timedelta(days=60)),
        CoachClient(relationship_id="rel-2", user_id="user-overreached", full_name="Jordan Miles",
                    created_at=now - timedelta(days=30)),
        CoachClient(relationship_id="rel-3", user_id="user-short-sleep",
                    email="riley@example.com", created_at=now - timedelta(days=10)),
        CoachClient(relationship_id="rel-4", user_id="user-new", full_name="Casey New",
                    created_at=now - timedelta(days=5)),
        CoachClient(relationship_id="rel-5", user_id=None, full_name="Pending Invite",
                    created_at=now - timedelta(days=2)),
    ]
    for client in clients:
        store.add_client(COACH.expert_id, client)

    store.record_checkin("user-steady", now - timedelta(days=1))
    store.record_checkin("user-overreached", now - timedelta(days=8))
    store.record_checkin("user-short-sleep", now - timedelta(days=4))


def summary_table(result: AlertRunResult) -> Table:
    table = Table(title="Alert Run Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Alerts Created", str(result.alerts_created))
    table.add_row("Notifications Sent", str(result.emails_sent))
    table.add_row("Errors", str(len(result.errors)))
    return table


async def run(use_whoop: bool = False) -> AlertRunResult:
    """Run both alert passes for the demo coach."""
    config = get_config()
    configure_logging(config.logging)

    store = InMemoryCoachStore()
    seed_store(store)

    biometrics: BiometricSource
    if use_whoop:
        biometrics = WhoopBiometricSource(config.whoop)
    else:
        biometrics = InMemoryBiometricSource(SCENARIOS)

    notifier: EmailAlertNotifier | ConsoleAlertNotifier
    if config.email.is_configured:
        notifier = EmailAlertNotifier(HTTPEmailTransport(config.email), config.email.product_name)
    else:
        notifier = ConsoleAlertNotifier(console)

    generator = AlertGenerator(
        biometrics=biometrics,
        sink=store,
        directory=store,
        preferences=store,
        checkins=store,
        notifier=notifier,
        config=config.alerts,
    )

    console.print(Panel("💓 Health Alerts", style="blue"))
    result = await generator.analyze_all_clients(COACH)

    console.print(Panel("🔕 Missed Check-ins", style="blue"))
    result.merge(await generator.check_missing_checkins(COACH))

    console.print(summary_table(result))
    for error in result.errors:
        console.print(f"❌ {error}", style="red")

    unread = await store.unread_alert_count(COACH.expert_id)
    console.print(f"\n📬 {unread} unread alerts for {COACH.name}", style="yellow")
    return result


def cli() -> None:
    validate_config()
    print_config_summary()
    try:
        asyncio.run(run(use_whoop="--whoop" in sys.argv[1:]))
    except KeyboardInterrupt:
        console.print("\n👋 Alert run stopped by user", style="yellow")


if __name__ == "__main__":
    cli()
