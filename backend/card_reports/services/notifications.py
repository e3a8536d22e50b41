"""Outbound notifications for card usage, threshold alerts and report summaries."""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import httpx

from ..config import (
    CHANNEL_ALERT_MONTHLY,
    CHANNEL_ALERT_WEEKLY,
    CHANNEL_REPORT_DAILY,
    CHANNEL_REPORT_MONTHLY,
    CHANNEL_REPORT_WEEKLY,
    CHANNEL_USAGE,
    NotificationChannels,
    Settings,
    get_settings,
)
from ..errors import ConfigurationError, NotificationError
from .calendar import DATE_RANGE_FORMAT, format_date_range
from .report_documents import bucket_window
from .report_paths import BucketKey, ReportType
from .source_records import SourceRecord
from .thresholds import ThresholdEvaluation, describe_alert

LOGGER = logging.getLogger(__name__)

DISCORD_WEBHOOK_PREFIXES = (
    "https://discord.com/api/webhooks/",
    "https://discordapp.com/api/webhooks/",
)

COLOR_USAGE = 14805795
COLOR_DAILY = 3066993
COLOR_WEEKLY = 3447003
COLOR_MONTHLY = 10181046
COLOR_LOGGING = 9807270
ALERT_COLORS = {1: 16766720, 2: 15548997, 3: 15158332}
ALERT_ICONS = {0: "📊", 1: "🔔", 2: "⚠️", 3: "🚨"}


@dataclass
class NotificationResult:
    """Outcome returned by a notification transport."""

    success: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class NotificationField:
    name: str
    value: str


@dataclass(frozen=True)
class Notification:
    """Transport-neutral message rendered as one Discord embed."""

    title: str
    headline: str
    color: int
    fields: tuple[NotificationField, ...] = field(default_factory=tuple)

    def as_text(self) -> str:
        lines = [self.title, self.headline]
        lines.extend(f"{item.name}: {item.value}" for item in self.fields)
        return " | ".join(lines)


def format_yen(amount: int) -> str:
    return f"{amount:,} yen"


class NotificationClient(abc.ABC):
    """Interface implemented by outbound notification transports."""

    transport: str

    @abc.abstractmethod
    def send(self, channel: str, notification: Notification) -> NotificationResult:
        """Deliver ``notification`` to ``channel`` and return the delivery result."""


class ConsoleNotificationClient(NotificationClient):
    """Fallback client that writes messages to the log."""

    transport = "console"

    def __init__(self) -> None:
        self.records: list[tuple[str, Notification]] = []

    def send(self, channel: str, notification: Notification) -> NotificationResult:
        self.records.append((channel, notification))
        LOGGER.info("[console:%s] %s", channel, notification.as_text())
        return NotificationResult(success=True, status_code=200)


def _embed(notification: Notification) -> dict[str, Any]:
    return {
        "title": notification.title,
        "description": f"# {notification.headline}\n-",
        "color": notification.color,
        "fields": [
            {"name": item.name, "value": item.value, "inline": False}
            for item in notification.fields
        ],
    }


class DiscordWebhookClient(NotificationClient):
    """Post notifications as embeds to Discord webhooks."""

    transport = "discord"

    def __init__(
        self,
        channels: NotificationChannels,
        *,
        timeout: float = 10.0,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        if not channels.usage:
            raise ConfigurationError("DISCORD_WEBHOOK_URL is required to send Discord notifications.")
        endpoints = channels.resolved()
        for channel, url in endpoints.items():
            if not url or not url.startswith(DISCORD_WEBHOOK_PREFIXES):
                raise ConfigurationError(f"Invalid Discord webhook URL for channel {channel}.")
        self.endpoints = endpoints
        self.timeout = timeout
        self.http_client = http_client

    def _post(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        if self.http_client is not None:
            return self.http_client.post(url, json=payload, timeout=self.timeout)
        return httpx.post(url, json=payload, timeout=self.timeout)

    def send(self, channel: str, notification: Notification) -> NotificationResult:
        url = self.endpoints.get(channel)
        if url is None:
            raise NotificationError(f"Unknown notification channel: {channel}")

        try:
            response = self._post(url, {"embeds": [_embed(notification)]})
        except httpx.HTTPError as exc:
            raise NotificationError(f"Network error while calling Discord: {exc}") from exc

        if response.status_code >= 400:
            return NotificationResult(
                success=False,
                status_code=response.status_code,
                error=response.text,
            )
        return NotificationResult(success=True, status_code=response.status_code)


def build_notification_client(settings: Optional[Settings] = None) -> NotificationClient:
    """Instantiate the transport described by the configured channels."""

    channels = (settings or get_settings()).notification_channels
    if not channels.usage:
        LOGGER.warning("No Discord webhook configured; notifications go to the console.")
        return ConsoleNotificationClient()
    return DiscordWebhookClient(channels)


class ReportNotifier:
    """Send notifications and log failures instead of raising them."""

    def __init__(self, client: NotificationClient) -> None:
        self.client = client

    def notify(self, channel: str, notification: Notification) -> bool:
        try:
            result = self.client.send(channel, notification)
        except NotificationError as exc:
            LOGGER.warning("Notification to %s failed: %s", channel, exc)
            return False

        if not result.success:
            LOGGER.warning(
                "Notification to %s rejected (status %s): %s",
                channel,
                result.status_code,
                result.error,
            )
            return False
        LOGGER.debug("Notification sent to %s: %s", channel, notification.title)
        return True

    def notify_usage(self, notification: Notification) -> bool:
        return self.notify(CHANNEL_USAGE, notification)


_ALERT_CHANNELS = {
    ReportType.WEEKLY: CHANNEL_ALERT_WEEKLY,
    ReportType.MONTHLY: CHANNEL_ALERT_MONTHLY,
}
_REPORT_CHANNELS = {
    ReportType.DAILY: CHANNEL_REPORT_DAILY,
    ReportType.WEEKLY: CHANNEL_REPORT_WEEKLY,
    ReportType.MONTHLY: CHANNEL_REPORT_MONTHLY,
}
_REPORT_COLORS = {
    ReportType.DAILY: COLOR_DAILY,
    ReportType.WEEKLY: COLOR_WEEKLY,
    ReportType.MONTHLY: COLOR_MONTHLY,
}


def alert_channel(report_type: ReportType) -> str:
    return _ALERT_CHANNELS[ReportType(report_type)]


def report_channel(report_type: ReportType) -> str:
    return _REPORT_CHANNELS[ReportType(report_type)]


def _period(bucket: BucketKey) -> str:
    window = bucket_window(bucket)
    if bucket.report_type is ReportType.DAILY:
        return window["date"].strftime(DATE_RANGE_FORMAT)
    if bucket.report_type is ReportType.WEEKLY:
        return format_date_range(window["week_start"], window["week_end"])
    return format_date_range(window["month_start"], window["month_end"])


def _totals_fields(bucket: BucketKey, data: Mapping[str, Any]) -> list[NotificationField]:
    return [
        NotificationField("Period", _period(bucket)),
        NotificationField("Usage count", f"{int(data.get('total_count', 0))} items"),
    ]


def usage_notification(record: SourceRecord) -> Notification:
    return Notification(
        title="Card usage",
        headline=f"{format_yen(record.amount)} paid",
        color=COLOR_USAGE,
        fields=(
            NotificationField("Date", record.datetime_of_use.strftime("%Y/%m/%d %H:%M")),
            NotificationField("Where", record.where_to_use or "unknown"),
            NotificationField("Card", record.card_name or "unknown"),
        ),
    )


def alert_notification(
    bucket: BucketKey, data: Mapping[str, Any], evaluation: ThresholdEvaluation
) -> Notification:
    fields = _totals_fields(bucket, data)
    fields.append(NotificationField("Details", describe_alert(evaluation)))
    return Notification(
        title=f"{ALERT_ICONS[evaluation.level]} {bucket.label} {bucket.report_type.value} alert",
        headline=format_yen(int(data.get("total_amount", 0))),
        color=ALERT_COLORS[evaluation.level],
        fields=tuple(fields),
    )


def summary_notification(bucket: BucketKey, data: Mapping[str, Any]) -> Notification:
    return Notification(
        title=f"{ALERT_ICONS[0]} {bucket.label} {bucket.report_type.value} report",
        headline=format_yen(int(data.get("total_amount", 0))),
        color=_REPORT_COLORS[bucket.report_type],
        fields=tuple(_totals_fields(bucket, data)),
    )


def log_notification(title: str, message: str) -> Notification:
    return Notification(title=title, headline=message, color=COLOR_LOGGING)
