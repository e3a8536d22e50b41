"""Alert thresholds for weekly and monthly totals."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from ..config import Settings, get_settings
from ..errors import ConfigurationError
from .document_store import DocumentStore
from .report_paths import THRESHOLDS_CONFIG_PATH, ReportType

LOGGER = logging.getLogger(__name__)

LEVELS = (1, 2, 3)


def level_flag(level: int) -> str:
    return f"notified_level{level}"


@dataclass(frozen=True)
class ThresholdLevels:
    """Three ordered alert amounts, validated on construction."""

    level1: int
    level2: int
    level3: int

    def __post_init__(self) -> None:
        values = (self.level1, self.level2, self.level3)
        if any(isinstance(value, bool) or not isinstance(value, int) for value in values):
            raise ConfigurationError(f"Threshold levels must be integers: {values}")
        if self.level1 <= 0:
            raise ConfigurationError(f"Threshold levels must be positive: {values}")
        if not self.level1 < self.level2 < self.level3:
            raise ConfigurationError(
                f"Threshold levels must satisfy level1 < level2 < level3: {values}"
            )

    def amount_for(self, level: int) -> int:
        if level not in LEVELS:
            raise ValueError(f"Unknown threshold level: {level}")
        return getattr(self, f"level{level}")

    @classmethod
    def from_mapping(cls, raw: Any, label: str) -> "ThresholdLevels":
        if not isinstance(raw, Mapping):
            raise ConfigurationError(f"{label} thresholds must define level1, level2 and level3")
        try:
            return cls(raw["level1"], raw["level2"], raw["level3"])
        except KeyError as exc:
            raise ConfigurationError(f"{label} thresholds are missing {exc.args[0]}") from exc


@dataclass(frozen=True)
class ThresholdEvaluation:
    """The level that a total newly crossed."""

    level: int
    threshold: int

    @property
    def flag(self) -> str:
        return level_flag(self.level)


def evaluate_threshold(
    total: int, flags: Mapping[str, Any], levels: ThresholdLevels
) -> Optional[ThresholdEvaluation]:
    """Return the highest crossed level whose flag is not yet set.

    At most one level fires per evaluation; already notified levels are never
    reported again.
    """

    for level in reversed(LEVELS):
        threshold = levels.amount_for(level)
        if total >= threshold and not flags.get(level_flag(level)):
            return ThresholdEvaluation(level=level, threshold=threshold)
    return None


_ALERT_HINTS = {
    1: "watch the pace",
    2: "review spending",
    3: "budget far exceeded",
}


def describe_alert(evaluation: ThresholdEvaluation) -> str:
    return f"Amount exceeded {evaluation.threshold:,}; {_ALERT_HINTS[evaluation.level]}."


@dataclass(frozen=True)
class ReportThresholds:
    weekly: ThresholdLevels
    monthly: ThresholdLevels

    def for_report_type(self, report_type: ReportType) -> ThresholdLevels:
        report_type = ReportType(report_type)
        if report_type is ReportType.WEEKLY:
            return self.weekly
        if report_type is ReportType.MONTHLY:
            return self.monthly
        raise ValueError(f"{report_type.value} reports have no alert thresholds")

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReportThresholds":
        return cls(
            weekly=ThresholdLevels(*settings.weekly_thresholds),
            monthly=ThresholdLevels(*settings.monthly_thresholds),
        )

    @classmethod
    def from_document(cls, data: Mapping[str, Any]) -> "ReportThresholds":
        return cls(
            weekly=ThresholdLevels.from_mapping(data.get("weekly"), "weekly"),
            monthly=ThresholdLevels.from_mapping(data.get("monthly"), "monthly"),
        )


def load_report_thresholds(
    store: DocumentStore, settings: Optional[Settings] = None
) -> ReportThresholds:
    """Read thresholds from ``config/report_thresholds``, falling back to settings."""

    data = store.get(THRESHOLDS_CONFIG_PATH)
    if data is None:
        LOGGER.debug("No %s document; using configured defaults", THRESHOLDS_CONFIG_PATH)
        return ReportThresholds.from_settings(settings or get_settings())
    return ReportThresholds.from_document(data)
