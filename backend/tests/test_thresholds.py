from __future__ import annotations

import pytest

from backend.card_reports.config import Settings, load_settings
from backend.card_reports.errors import ConfigurationError
from backend.card_reports.services.document_store import DocumentStore
from backend.card_reports.services.report_paths import THRESHOLDS_CONFIG_PATH, ReportType
from backend.card_reports.services.thresholds import (
    ThresholdLevels,
    describe_alert,
    evaluate_threshold,
    load_report_thresholds,
)

LEVELS = ThresholdLevels(1000, 5000, 10000)


def test_total_equal_to_a_level_fires_it() -> None:
    evaluation = evaluate_threshold(5000, {"notified_level1": True}, LEVELS)

    assert evaluation is not None
    assert evaluation.level == 2
    assert evaluation.flag == "notified_level2"


def test_only_the_highest_unflagged_level_fires() -> None:
    evaluation = evaluate_threshold(12000, {}, LEVELS)

    assert evaluation.level == 3
    assert evaluation.threshold == 10000


def test_notified_levels_do_not_fire_again() -> None:
    flags = {"notified_level1": True, "notified_level2": True, "notified_level3": True}

    assert evaluate_threshold(20000, flags, LEVELS) is None
    assert evaluate_threshold(999, {}, LEVELS) is None


def test_lower_level_fires_when_the_higher_one_was_notified() -> None:
    evaluation = evaluate_threshold(12000, {"notified_level3": True}, LEVELS)

    assert evaluation.level == 2


@pytest.mark.parametrize(
    "values",
    [(5000, 1000, 10000), (1000, 1000, 2000), (0, 1, 2), (1000, "5000", 10000)],
)
def test_misordered_levels_are_rejected(values) -> None:
    with pytest.raises(ConfigurationError):
        ThresholdLevels(*values)


def test_thresholds_fall_back_to_settings(store: DocumentStore) -> None:
    settings = Settings(weekly_thresholds=(10, 20, 30))

    thresholds = load_report_thresholds(store, settings)

    assert thresholds.for_report_type(ReportType.WEEKLY) == ThresholdLevels(10, 20, 30)
    with pytest.raises(ValueError):
        thresholds.for_report_type(ReportType.DAILY)


def test_thresholds_document_overrides_settings(store: DocumentStore, settings) -> None:
    store.create(
        THRESHOLDS_CONFIG_PATH,
        {
            "weekly": {"level1": 100, "level2": 200, "level3": 300},
            "monthly": {"level1": 400, "level2": 800, "level3": 1600},
        },
    )

    thresholds = load_report_thresholds(store, settings)

    assert thresholds.monthly == ThresholdLevels(400, 800, 1600)


def test_incomplete_thresholds_document_is_a_configuration_error(
    store: DocumentStore, settings
) -> None:
    store.create(THRESHOLDS_CONFIG_PATH, {"weekly": {"level1": 100, "level2": 200}})

    with pytest.raises(ConfigurationError):
        load_report_thresholds(store, settings)


def test_describe_alert_mentions_the_threshold() -> None:
    message = describe_alert(evaluate_threshold(10000, {}, LEVELS))

    assert "10,000" in message


def test_load_settings_rejects_misordered_environment_levels(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("WEEKLY_THRESHOLD_LEVEL1", "5000")
    monkeypatch.setenv("WEEKLY_THRESHOLD_LEVEL2", "1000")

    with pytest.raises(ConfigurationError):
        load_settings()


def test_load_settings_reads_environment_levels(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MONTHLY_THRESHOLD_LEVEL3", "90000")

    assert load_settings().monthly_thresholds == (4000, 20000, 90000)
