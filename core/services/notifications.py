"""
Coach notifications: alert email rendering and delivery.

Emails are sent through a small transport protocol so the delivery backend
(an HTTP email function in production, a console in development) can be
swapped without touching rendering. Delivery is best effort: notifiers
report failure by returning False, they never raise into the alert batch.
"""

from collections.abc import Sequence
from html import escape
from typing import Protocol

import httpx
import structlog
from pydantic import BaseModel, ConfigDict
from rich.console import Console
from rich.markup import escape as escape_markup
from rich.panel import Panel

from core.config import EmailConfig
from core.domain.models import (
    AlertNotification,
    AlertType,
    DigestEntry,
    HrvDropSnapshot,
    MetricSnapshot,
    RecoverySnapshot,
    Severity,
    SleepSnapshot,
    StrainSnapshot,
)

logger = structlog.get_logger(__name__)

SEVERITY_COLORS = {
    Severity.LOW: "#22c55e",
    Severity.MEDIUM: "#eab308",
    Severity.HIGH: "#f97316",
    Severity.CRITICAL: "#ef4444",
}

ALERT_TYPE_EMOJI = {
    AlertType.RECOVERY_LOW: "💓",
    AlertType.SLEEP_POOR: "🌙",
    AlertType.STRAIN_HIGH: "🔥",
    AlertType.HRV_DROP: "📉",
    AlertType.CONSISTENCY_DROP: "📅",
    AlertType.NO_CHECKIN: "🔕",
}
DEFAULT_EMOJI = "⚠️"

_GOOD = "#22c55e"
_BAD = "#ef4444"
_NEUTRAL = "#6366f1"


class EmailMessage(BaseModel):
    """Rendered email ready for a transport."""

    model_config = ConfigDict(frozen=True)

    to: str
    subject: str
    html: str
    text: str


class MetricChip(BaseModel):
    """One highlighted metric in an alert email."""

    model_config = ConfigDict(frozen=True)

    label: str
    display: str
    color: str


def alert_emoji(alert_type: AlertType | str) -> str:
    try:
        return ALERT_TYPE_EMOJI[AlertType(alert_type)]
    except ValueError:
        return DEFAULT_EMOJI


def _fmt(value: float) -> str:
    return f"{value:g}"


def metric_chips(snapshot: MetricSnapshot) -> list[MetricChip]:
    """Pick the metrics worth showing for an alert, by snapshot kind."""
    chips: list[MetricChip] = []

    if isinstance(snapshot, RecoverySnapshot):
        chips.append(
            MetricChip(
                label="Recovery",
                display=f"{_fmt(snapshot.recovery)}%",
                color=_BAD if snapshot.recovery < 50 else _GOOD,
            )
        )
        if snapshot.hrv is not None:
            chips.append(MetricChip(label="HRV", display=f"{snapshot.hrv}ms", color=_NEUTRAL))
    elif isinstance(snapshot, SleepSnapshot):
        chips.append(
            MetricChip(
                label="Sleep",
                display=f"{_fmt(snapshot.sleep)}%",
                color=_BAD if snapshot.sleep < 70 else _GOOD,
            )
        )
    elif isinstance(snapshot, StrainSnapshot):
        chips.append(
            MetricChip(
                label="Strain",
                display=f"{snapshot.strain:.1f}",
                color=_BAD if snapshot.strain > 18 else _GOOD,
            )
        )
    elif isinstance(snapshot, HrvDropSnapshot):
        chips.append(MetricChip(label="HRV", display=f"{snapshot.hrv}ms", color=_NEUTRAL))

    return chips


def render_subject(notification: AlertNotification) -> str:
    return f"{alert_emoji(notification.alert.type)} Alert: {notification.alert.title}"


def render_alert_html(notification: AlertNotification, product_name: str) -> str:
    """HTML body of a single-alert email."""
    alert = notification.alert
    chips = metric_chips(alert.metric_snapshot)

    metrics_block = ""
    if chips:
        chip_html = "".join(
            f"""
        <div style="background: #f0f4f8; padding: 12px 16px; border-radius: 8px; min-width: 80px;">
          <div style="font-size: 24px; font-weight: bold; color: {chip.color};">{chip.display}</div>
          <div style="font-size: 12px; color: #666;">{chip.label}</div>
        </div>"""
            for chip in chips
        )
        metrics_block = f"""
  <div style="background: white; border: 1px solid #e5e5e5; border-radius: 12px; padding: 20px; margin-bottom: 20px;">
    <h3 style="margin: 0 0 16px 0; color: #1a1a1a; font-size: 14px; text-transform: uppercase;">Current Metrics</h3>
    <div style="display: flex; flex-wrap: wrap; gap: 12px;">{chip_html}
    </div>
  </div>"""

    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Coach Alert</title>
</head>
<body style="font-family: -apple-system, 'Segoe UI', Roboto, Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
  <div style="background: linear-gradient(135deg, #1a1a2e 0%, #16213e 100%); border-radius: 12px; padding: 24px; margin-bottom: 20px;">
    <h1 style="color: white; margin: 0; font-size: 24px;">{alert_emoji(alert.type)} Client Alert</h1>
    <p style="color: rgba(255,255,255,0.7); margin: 8px 0 0 0;">{escape(product_name)}</p>
  </div>

  <div style="background: #f8f9fa; border-radius: 12px; padding: 20px; margin-bottom: 20px;">
    <span style="background: {SEVERITY_COLORS[alert.severity]}; color: white; padding: 4px 12px; border-radius: 20px; font-size: 12px; font-weight: 600; text-transform: uppercase;">{alert.severity.value}</span>
    <h2 style="margin: 12px 0 8px 0; color: #1a1a1a;">{escape(alert.title)}</h2>
    <p style="margin: 0 0 16px 0; color: #666;">Client: <strong>{escape(notification.client_name)}</strong></p>
    <p style="margin: 0; color: #444;">{escape(alert.message)}</p>
  </div>
{metrics_block}
  <div style="text-align: center; margin-bottom: 20px;">
    <a href="{escape(notification.client_dashboard_url, quote=True)}" style="display: inline-block; background: #4f46e5; color: white; padding: 14px 28px; border-radius: 8px; text-decoration: none; font-weight: 600;">View Client Dashboard</a>
  </div>

  <div style="text-align: center; color: #999; font-size: 12px; border-top: 1px solid #eee; padding-top: 20px;">
    <p style="margin: 0;">You're receiving this because you have email alerts enabled in your coach settings.</p>
  </div>
</body>
</html>"""


def render_alert_text(notification: AlertNotification, product_name: str) -> str:
    """Plain-text body of a single-alert email."""
    alert = notification.alert
    lines = [
        f"CLIENT ALERT - {alert.severity.value.upper()}",
        "================================",
        "",
        alert.title,
        "",
        f"Client: {notification.client_name}",
        "",
        alert.message,
    ]

    chips = metric_chips(alert.metric_snapshot)
    if chips:
        lines += ["", "CURRENT METRICS", "---------------"]
        lines += [f"{chip.label}: {chip.display}" for chip in chips]

    lines += [
        "",
        f"View client dashboard: {notification.client_dashboard_url}",
        "",
        "---",
        product_name,
    ]
    return "\n".join(lines)


def _attention_line(count: int) -> str:
    return f"{count} client{'' if count == 1 else 's'} need{'s' if count == 1 else ''} your attention"


def render_digest_subject(entries: Sequence[DigestEntry]) -> str:
    return f"📊 Daily Alert Digest - {len(entries)} clients need attention"


def render_digest_html(
    recipient_name: str, entries: Sequence[DigestEntry], product_name: str
) -> str:
    """HTML body of the daily digest of unactioned alerts."""
    rows = "".join(
        f"""
      <tr>
        <td style="padding: 12px; border-bottom: 1px solid #eee;"><strong>{escape(entry.client_name)}</strong></td>
        <td style="padding: 12px; border-bottom: 1px solid #eee;">{escape(entry.title)}</td>
        <td style="padding: 12px; border-bottom: 1px solid #eee;"><span style="background: {SEVERITY_COLORS[entry.severity]}; color: white; padding: 2px 8px; border-radius: 12px; font-size: 11px; text-transform: uppercase;">{entry.severity.value}</span></td>
      </tr>"""
        for entry in entries
    )

    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>Daily Alert Digest</title>
</head>
<body style="font-family: -apple-system, 'Segoe UI', Roboto, Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
  <div style="background: linear-gradient(135deg, #1a1a2e 0%, #16213e 100%); border-radius: 12px; padding: 24px; margin-bottom: 20px;">
    <h1 style="color: white; margin: 0; font-size: 24px;">📊 Daily Alert Digest</h1>
    <p style="color: rgba(255,255,255,0.7); margin: 8px 0 0 0;">{_attention_line(len(entries))}</p>
  </div>

  <p>Hi {escape(recipient_name)},</p>
  <p>Here's a summary of alerts from your clients that haven't been addressed yet:</p>

  <table style="width: 100%; border-collapse: collapse; margin: 20px 0;">
    <thead>
      <tr style="background: #f8f9fa;">
        <th style="padding: 12px; text-align: left;">Client</th>
        <th style="padding: 12px; text-align: left;">Alert</th>
        <th style="padding: 12px; text-align: left;">Severity</th>
      </tr>
    </thead>
    <tbody>{rows}
    </tbody>
  </table>

  <div style="text-align: center; color: #999; font-size: 12px; border-top: 1px solid #eee; padding-top: 20px;">
    <p>{escape(product_name)}</p>
  </div>
</body>
</html>"""


def render_digest_text(
    recipient_name: str, entries: Sequence[DigestEntry], product_name: str
) -> str:
    alert_list = "\n".join(
        f"- {entry.client_name}: {entry.title} ({entry.severity.value})" for entry in entries
    )
    return (
        "DAILY ALERT DIGEST\n"
        "==================\n\n"
        f"Hi {recipient_name},\n\n"
        f"{_attention_line(len(entries))}:\n\n"
        f"{alert_list}\n\n"
        "---\n"
        f"{product_name}"
    )


class EmailTransport(Protocol):
    """Delivers a rendered email. Raises on failure."""

    async def send(self, message: EmailMessage) -> None: ...


class HTTPEmailTransport:
    """
    Posts rendered emails to an email-sending function over HTTP.

    The function receives ``{to, subject, html, text}`` as JSON and is
    authorized with a bearer key.
    """

    def __init__(self, config: EmailConfig, client: httpx.AsyncClient | None = None) -> None:
        if not config.function_url:
            raise ValueError("EmailConfig.function_url must be set for HTTP delivery")
        self.config = config
        self._client = client
        self.logger = logger.bind(component="email_transport")

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    async def send(self, message: EmailMessage) -> None:
        payload = message.model_dump()
        if self._client is not None:
            response = await self._client.post(
                self.config.function_url, json=payload, headers=self._headers()  # type: ignore[arg-type]
            )
        else:
            async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
                response = await client.post(
                    self.config.function_url, json=payload, headers=self._headers()  # type: ignore[arg-type]
                )
        response.raise_for_status()
        self.logger.info("email_posted", to=message.to, status_code=response.status_code)


class EmailAlertNotifier:
    """Notifier that renders alert emails and hands them to a transport."""

    def __init__(
        self, transport: EmailTransport, product_name: str = "HolisticOS Coaching Dashboard"
    ) -> None:
        self.transport = transport
        self.product_name = product_name
        self.logger = logger.bind(component="email_alert_notifier")

    def render(self, notification: AlertNotification) -> EmailMessage:
        return EmailMessage(
            to=notification.recipient_email,
            subject=render_subject(notification),
            html=render_alert_html(notification, self.product_name),
            text=render_alert_text(notification, self.product_name),
        )

    async def send_alert(self, notification: AlertNotification) -> bool:
        message = self.render(notification)
        try:
            await self.transport.send(message)
        except Exception as e:
            self.logger.error(
                "alert_email_send_failed", to=message.to, subject=message.subject, error=str(e)
            )
            return False

        self.logger.info("alert_email_sent", to=message.to, alert_type=notification.alert.type)
        return True

    async def send_daily_digest(
        self, recipient_email: str, recipient_name: str, entries: Sequence[DigestEntry]
    ) -> bool:
        """Send one email summarizing alerts the coach has not acted on yet."""
        if not entries:
            return False

        message = EmailMessage(
            to=recipient_email,
            subject=render_digest_subject(entries),
            html=render_digest_html(recipient_name, entries, self.product_name),
            text=render_digest_text(recipient_name, entries, self.product_name),
        )
        try:
            await self.transport.send(message)
        except Exception as e:
            self.logger.error("digest_email_send_failed", to=recipient_email, error=str(e))
            return False

        self.logger.info("digest_email_sent", to=recipient_email, alerts=len(entries))
        return True


class ConsoleAlertNotifier:
    """Development notifier that prints alerts to the terminal."""

    _STYLES = {
        Severity.LOW: "green",
        Severity.MEDIUM: "yellow",
        Severity.HIGH: "dark_orange",
        Severity.CRITICAL: "bold red",
    }

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    async def send_alert(self, notification: AlertNotification) -> bool:
        alert = notification.alert
        chips = "  ".join(f"{c.label}: {c.display}" for c in metric_chips(alert.metric_snapshot))
        body = (
            f"[bold]{escape_markup(alert.title)}[/bold]\n"
            f"Client: {escape_markup(notification.client_name)}\n\n"
            f"{escape_markup(alert.message)}"
        )
        if chips:
            body += f"\n\n{chips}"
        body += f"\n\n[dim]{notification.client_dashboard_url}[/dim]"

        self.console.print(
            Panel(
                body,
                title=f"{alert_emoji(alert.type)} {alert.severity.value.upper()}",
                subtitle=f"to {notification.recipient_name}",
                border_style=self._STYLES[alert.severity],
            )
        )
        return True
