"""
Core services for the application.

This package contains the alert evaluator, the alert generation pipeline
and coach notifications.
"""

from .alert_generator import (
    AlertGenerator,
    AlertSink,
    BiometricSource,
    CheckinSource,
    ClientDirectory,
    Notifier,
    PreferenceSource,
    Result,
    configure_logging,
)
from .health_alerts import compute_checkin_gap, evaluate_checkin_gap, evaluate_health_alerts
from .notifications import ConsoleAlertNotifier, EmailAlertNotifier, HTTPEmailTransport

__all__ = [
    "AlertGenerator",
    "AlertSink",
    "BiometricSource",
    "CheckinSource",
    "ClientDirectory",
    "ConsoleAlertNotifier",
    "EmailAlertNotifier",
    "HTTPEmailTransport",
    "Notifier",
    "PreferenceSource",
    "Result",
    "compute_checkin_gap",
    "configure_logging",
    "evaluate_checkin_gap",
    "evaluate_health_alerts",
]
