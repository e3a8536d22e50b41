"""Runtime settings for the report engine, read once from the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta, timezone
from functools import lru_cache
from typing import Optional

LOGGER = logging.getLogger(__name__)

DEFAULT_UTC_OFFSET_HOURS = 9
DEFAULT_WRITE_MAX_ATTEMPTS = 5
DEFAULT_MAX_RECALCULATION_DAYS = 90
DEFAULT_WEEKLY_THRESHOLDS = (1000, 5000, 10000)
DEFAULT_MONTHLY_THRESHOLDS = (4000, 20000, 40000)

DEFAULT_DELIVERY_RUN_HOUR = 0
DEFAULT_DELIVERY_RUN_MINUTE = 5
DEFAULT_RECALCULATION_RUN_HOUR = 1
DEFAULT_RECALCULATION_RUN_MINUTE = 0


def _read_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc


def _read_bool_env(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _read_str_env(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    stripped = raw.strip()
    return stripped or None


def _clamp(value: int, lower: int, upper: int) -> int:
    return min(max(value, lower), upper)


CHANNEL_USAGE = "usage"
CHANNEL_ALERT_WEEKLY = "alert_weekly"
CHANNEL_ALERT_MONTHLY = "alert_monthly"
CHANNEL_REPORT_DAILY = "report_daily"
CHANNEL_REPORT_WEEKLY = "report_weekly"
CHANNEL_REPORT_MONTHLY = "report_monthly"
CHANNEL_LOGGING = "logging"

_CHANNEL_ENV = {
    CHANNEL_USAGE: "DISCORD_WEBHOOK_URL",
    CHANNEL_ALERT_WEEKLY: "DISCORD_ALERT_WEEKLY_WEBHOOK_URL",
    CHANNEL_ALERT_MONTHLY: "DISCORD_ALERT_MONTHLY_WEBHOOK_URL",
    CHANNEL_REPORT_DAILY: "DISCORD_REPORT_DAILY_WEBHOOK_URL",
    CHANNEL_REPORT_WEEKLY: "DISCORD_REPORT_WEEKLY_WEBHOOK_URL",
    CHANNEL_REPORT_MONTHLY: "DISCORD_REPORT_MONTHLY_WEBHOOK_URL",
    CHANNEL_LOGGING: "DISCORD_LOGGING_WEBHOOK_URL",
}


@dataclass(frozen=True)
class NotificationChannels:
    """Webhook endpoint per notification channel.

    Every channel except ``usage`` is an optional override; unset overrides
    resolve to the usage webhook.
    """

    usage: Optional[str] = None
    alert_weekly: Optional[str] = None
    alert_monthly: Optional[str] = None
    report_daily: Optional[str] = None
    report_weekly: Optional[str] = None
    report_monthly: Optional[str] = None
    logging: Optional[str] = None

    def resolve(self, channel: str) -> Optional[str]:
        if channel not in _CHANNEL_ENV:
            raise KeyError(f"Unknown notification channel: {channel}")
        return getattr(self, channel) or self.usage

    def resolved(self) -> dict[str, Optional[str]]:
        return {channel: self.resolve(channel) for channel in _CHANNEL_ENV}

    @classmethod
    def from_env(cls) -> "NotificationChannels":
        return cls(**{channel: _read_str_env(env) for channel, env in _CHANNEL_ENV.items()})


@dataclass(frozen=True)
class Settings:
    """Immutable snapshot of the report engine configuration."""

    utc_offset_hours: int = DEFAULT_UTC_OFFSET_HOURS
    write_max_attempts: int = DEFAULT_WRITE_MAX_ATTEMPTS
    max_recalculation_days: int = DEFAULT_MAX_RECALCULATION_DAYS
    weekly_thresholds: tuple[int, int, int] = DEFAULT_WEEKLY_THRESHOLDS
    monthly_thresholds: tuple[int, int, int] = DEFAULT_MONTHLY_THRESHOLDS
    notification_channels: NotificationChannels = field(default_factory=NotificationChannels)
    delivery_run_hour: int = DEFAULT_DELIVERY_RUN_HOUR
    delivery_run_minute: int = DEFAULT_DELIVERY_RUN_MINUTE
    recalculation_run_hour: int = DEFAULT_RECALCULATION_RUN_HOUR
    recalculation_run_minute: int = DEFAULT_RECALCULATION_RUN_MINUTE
    run_jobs_on_start: bool = False

    @property
    def report_timezone(self) -> timezone:
        return timezone(timedelta(hours=self.utc_offset_hours))


def _read_levels(prefix: str, defaults: tuple[int, int, int]) -> tuple[int, int, int]:
    # The services package imports this module, so resolve it at call time.
    from .services.thresholds import ThresholdLevels

    levels = (
        _read_int_env(f"{prefix}_LEVEL1", defaults[0]),
        _read_int_env(f"{prefix}_LEVEL2", defaults[1]),
        _read_int_env(f"{prefix}_LEVEL3", defaults[2]),
    )
    ThresholdLevels(*levels)
    return levels


def load_settings() -> Settings:
    """Build a :class:`Settings` instance from the current environment."""

    offset = _read_int_env("REPORT_UTC_OFFSET_HOURS", DEFAULT_UTC_OFFSET_HOURS)
    if not -12 <= offset <= 14:
        raise ValueError("REPORT_UTC_OFFSET_HOURS must be between -12 and 14")

    settings = Settings(
        utc_offset_hours=offset,
        write_max_attempts=max(
            _read_int_env("REPORT_WRITE_MAX_ATTEMPTS", DEFAULT_WRITE_MAX_ATTEMPTS), 1
        ),
        max_recalculation_days=max(
            _read_int_env("MAX_RECALCULATION_DAYS", DEFAULT_MAX_RECALCULATION_DAYS), 1
        ),
        weekly_thresholds=_read_levels("WEEKLY_THRESHOLD", DEFAULT_WEEKLY_THRESHOLDS),
        monthly_thresholds=_read_levels("MONTHLY_THRESHOLD", DEFAULT_MONTHLY_THRESHOLDS),
        notification_channels=NotificationChannels.from_env(),
        delivery_run_hour=_clamp(
            _read_int_env("REPORT_DELIVERY_RUN_HOUR", DEFAULT_DELIVERY_RUN_HOUR), 0, 23
        ),
        delivery_run_minute=_clamp(
            _read_int_env("REPORT_DELIVERY_RUN_MINUTE", DEFAULT_DELIVERY_RUN_MINUTE), 0, 59
        ),
        recalculation_run_hour=_clamp(
            _read_int_env("REPORT_RECALCULATION_RUN_HOUR", DEFAULT_RECALCULATION_RUN_HOUR),
            0,
            23,
        ),
        recalculation_run_minute=_clamp(
            _read_int_env(
                "REPORT_RECALCULATION_RUN_MINUTE", DEFAULT_RECALCULATION_RUN_MINUTE
            ),
            0,
            59,
        ),
        run_jobs_on_start=_read_bool_env("REPORT_JOBS_RUN_ON_START", False),
    )
    if settings.notification_channels.usage is None:
        LOGGER.info("DISCORD_WEBHOOK_URL is not set; notifications go to the console")
    return settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""

    return load_settings()
